"""Assemble topics and flat payloads from measurement snapshots."""

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from mqtt_observations.domain.models import MeasurementSnapshot, PublishUnit
from mqtt_observations.mapping.canonical import canonicalize, filter_derived
from mqtt_observations.mapping.description import resolve_description
from mqtt_observations.mapping.routing import RoutingRule
from mqtt_observations.mapping.sanitize import join_topic, sanitize_description, sanitize_index

logger = logging.getLogger(__name__)


class MessageAssembler:
    """Builds PublishUnits for one node and concept.

    Two fan-out modes, chosen by ``RoutingRule.is_singleton``:

    - singleton: one unit per non-empty subconcept, topic
      ``{prefix}/{node}/{subconcept}``
    - per-instance: one unit per instance with all subconcepts flattened,
      topic ``{prefix}/{node}/{published_name}/{description or index}``

    Instances without fresh data produce no units.
    """

    def __init__(
        self,
        topic_prefix: str,
        extra_logging: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the assembler.

        Args:
            topic_prefix: Topic prefix of the primary broker (e.g. "obs/nmis").
            extra_logging: Log every skipped instance and built topic.
            clock: Time source for snapshots without an observation time.
        """
        self.topic_prefix = topic_prefix.strip("/")
        self.extra_logging = extra_logging
        self._clock = clock

    def assemble(
        self,
        rule: RoutingRule,
        envelope: Mapping[str, Any],
        instances: Iterable[MeasurementSnapshot],
    ) -> list[PublishUnit]:
        """Build all units for one concept on one node."""
        node_name = str(envelope.get("node.name", ""))
        units: list[PublishUnit] = []

        for snapshot in instances:
            if not snapshot.valid:
                if self.extra_logging:
                    logger.debug(
                        "No fresh data for '%s' instance %s on %s",
                        rule.concept_name,
                        snapshot.instance_index,
                        node_name,
                    )
                continue

            # One clock reading per snapshot so all of its units share a timestamp
            timestamp = snapshot.observed_at
            if timestamp is None:
                timestamp = self._clock()

            if rule.is_singleton:
                units.extend(
                    self._assemble_singleton(rule, envelope, node_name, snapshot, timestamp)
                )
            else:
                units.append(
                    self._assemble_instance(rule, envelope, node_name, snapshot, timestamp)
                )

        return units

    def _header(
        self,
        concept: str,
        rule: RoutingRule,
        snapshot: MeasurementSnapshot,
        timestamp: float,
    ) -> dict[str, Any]:
        """Concept/index/description/timestamp block present in every payload."""
        return {
            "concept": concept,
            "index": snapshot.instance_index,
            "description": resolve_description(
                snapshot.instance_attributes, rule.description_fields
            ),
            "timestamp": timestamp,
        }

    def _assemble_singleton(
        self,
        rule: RoutingRule,
        envelope: Mapping[str, Any],
        node_name: str,
        snapshot: MeasurementSnapshot,
        timestamp: float,
    ) -> list[PublishUnit]:
        units = []
        for subconcept in sorted(snapshot.subconcept_data):
            data = snapshot.subconcept_data[subconcept]
            if not data:
                continue

            # Measured values take precedence over derived ones with the same name
            fields = canonicalize(
                subconcept,
                filter_derived(snapshot.derived_data.get(subconcept)),
                rule.field_renames,
            )
            fields.update(canonicalize(subconcept, data, rule.field_renames))

            header = self._header(subconcept, rule, snapshot, timestamp)
            payload = {**fields, **envelope, **header}
            topic = join_topic(
                self.topic_prefix, sanitize_index(node_name), sanitize_index(subconcept)
            )
            units.append(PublishUnit(topic=topic, payload=payload))
        return units

    def _assemble_instance(
        self,
        rule: RoutingRule,
        envelope: Mapping[str, Any],
        node_name: str,
        snapshot: MeasurementSnapshot,
        timestamp: float,
    ) -> PublishUnit:
        flat_data: dict[str, Any] = {}
        for subconcept in sorted(snapshot.subconcept_data):
            flat_data.update(snapshot.subconcept_data[subconcept])

        flat_derived: dict[str, Any] = {}
        for subconcept in sorted(snapshot.derived_data):
            flat_derived.update(filter_derived(snapshot.derived_data[subconcept]))

        scope = rule.concept_name
        fields = canonicalize(scope, flat_derived, rule.field_renames)
        fields.update(canonicalize(scope, flat_data, rule.field_renames))

        header = self._header(rule.concept_name, rule, snapshot, timestamp)
        segment = sanitize_description(header["description"]) or sanitize_index(
            snapshot.instance_index
        )
        topic = join_topic(
            self.topic_prefix,
            sanitize_index(node_name),
            sanitize_index(rule.published_name),
            segment,
        )
        return PublishUnit(topic=topic, payload={**fields, **envelope, **header})
