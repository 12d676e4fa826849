"""Publish NMIS node observations to MQTT brokers."""

__version__ = "1.0.0"
