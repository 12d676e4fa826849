"""Publishers delivering observation units to MQTT brokers."""

from mqtt_observations.publishers.observations import ObservationPublisher, encode_payload

__all__ = ["ObservationPublisher", "encode_payload"]
