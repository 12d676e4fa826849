"""Observation publisher with bounded retry and secondary broker replay."""

import json
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol

from mqtt_observations.domain.models import PublishOutcome, PublishTarget, PublishUnit
from mqtt_observations.mqtt.client import MqttClient, MqttClientError
from mqtt_observations.observability.metrics import METRICS

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """What the publisher needs from a broker connection."""

    def __enter__(self) -> "Connection": ...

    def __exit__(self, *exc_info: Any) -> Any: ...

    def publish(self, topic: str, payload: bytes, qos: int = 0, retain: bool = False) -> None: ...


ConnectionFactory = Callable[[PublishTarget], Connection]


def encode_payload(payload: Mapping[str, Any]) -> bytes:
    """Encode a payload as UTF-8 JSON with sorted keys."""
    return json.dumps(payload, sort_keys=True, ensure_ascii=False).encode("utf-8")


class ObservationPublisher:
    """Delivers PublishUnits to a primary and optional secondary brokers.

    Each delivery attempt opens its own connection. Secondary targets get
    the same payload on a topic rewritten from the primary prefix to their
    own, and their outcome never affects the primary's.
    """

    def __init__(
        self,
        primary: PublishTarget,
        secondaries: Sequence[PublishTarget] = (),
        connection_factory: ConnectionFactory = MqttClient,
        extra_logging: bool = False,
    ):
        """Initialize the publisher.

        Args:
            primary: The primary broker target.
            secondaries: Additional targets receiving the same units.
            connection_factory: Builds a connection for one attempt.
            extra_logging: Log every topic before publishing.
        """
        self.primary = primary
        self.secondaries = tuple(secondaries)
        self._connect = connection_factory
        self.extra_logging = extra_logging

    def publish(self, target: PublishTarget, unit: PublishUnit) -> PublishOutcome:
        """Deliver one unit to one target with up to ``max_retries + 1`` attempts."""
        try:
            encoded = encode_payload(unit.payload)
        except (TypeError, ValueError) as e:
            logger.warning("Cannot encode payload for %s: %s", unit.topic, e)
            METRICS.publish_failures_total.labels(target=target.name).inc()
            return PublishOutcome(target.name, unit.topic, False, 0, f"encode error: {e}")

        if self.extra_logging:
            logger.debug("Publishing to %s via %s", unit.topic, target.name)

        last_error: str | None = None
        attempts = 0
        for attempt in range(target.max_retries + 1):
            attempts = attempt + 1
            METRICS.publish_attempts_total.labels(target=target.name).inc()
            try:
                with self._connect(target) as connection:
                    connection.publish(
                        unit.topic, encoded, qos=target.qos, retain=target.retain
                    )
            except (MqttClientError, OSError) as e:
                last_error = str(e)
                logger.debug(
                    "Attempt %d/%d to %s failed: %s",
                    attempts,
                    target.max_retries + 1,
                    target.name,
                    e,
                )
                continue

            METRICS.published_total.labels(target=target.name).inc()
            METRICS.last_publish_timestamp.set(time.time())
            return PublishOutcome(target.name, unit.topic, True, attempts)

        METRICS.publish_failures_total.labels(target=target.name).inc()
        return PublishOutcome(target.name, unit.topic, False, attempts, last_error)

    def deliver(self, unit: PublishUnit) -> list[PublishOutcome]:
        """Deliver a unit to the primary and every secondary target.

        Returns:
            One outcome per target, primary first.
        """
        outcomes = [self._publish_isolated(self.primary, unit)]
        for secondary in self.secondaries:
            topic = secondary.rewrite_topic(unit.topic, self.primary.topic_prefix)
            outcomes.append(self._publish_isolated(secondary, PublishUnit(topic, unit.payload)))

        for outcome in outcomes:
            if not outcome.success:
                logger.error(
                    "Failed to publish to %s (%s) after %d attempts: %s",
                    outcome.topic,
                    outcome.target,
                    outcome.attempts,
                    outcome.error,
                )
        return outcomes

    def _publish_isolated(self, target: PublishTarget, unit: PublishUnit) -> PublishOutcome:
        """Publish to one target; an unexpected error fails only that target."""
        try:
            return self.publish(target, unit)
        except Exception as e:
            logger.exception("Unexpected error publishing to %s via %s", unit.topic, target.name)
            METRICS.publish_failures_total.labels(target=target.name).inc()
            return PublishOutcome(target.name, unit.topic, False, 0, f"unexpected error: {e}")
