"""MQTT client layer for publishing to brokers."""

from mqtt_observations.mqtt.client import MqttClient, MqttClientError

__all__ = ["MqttClient", "MqttClientError"]
