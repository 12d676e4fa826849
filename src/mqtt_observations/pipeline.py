"""Per-node pipeline: guard, configuration, assembly, and delivery."""

import logging

from mqtt_observations.config import (
    ConfigError,
    ObservationsConfig,
    ObservationsSettings,
    load_config,
)
from mqtt_observations.domain.models import NodeContext, PublishUnit, RunResult
from mqtt_observations.mapping.assembler import MessageAssembler
from mqtt_observations.mapping.envelope import build_envelope
from mqtt_observations.mapping.routing import RoutingTable
from mqtt_observations.mqtt.client import MqttClient
from mqtt_observations.observability.metrics import METRICS
from mqtt_observations.publishers.observations import ConnectionFactory, ObservationPublisher
from mqtt_observations.sources.base import ObservationSource

logger = logging.getLogger(__name__)

STATUS_OK = 0
STATUS_FATAL = 2


class ObservationPipeline:
    """Publishes every configured concept of one node.

    Failures fetching, assembling, or publishing a single instance or unit
    are logged and counted; they never stop the run.
    """

    def __init__(
        self,
        config: ObservationsConfig,
        routing: RoutingTable,
        publisher: ObservationPublisher | None = None,
        assembler: MessageAssembler | None = None,
    ):
        """Initialize the pipeline.

        Args:
            config: Loaded configuration.
            routing: Routing rules for the configured concepts.
            publisher: Publisher to deliver units; built from config if omitted.
            assembler: Assembler for units; built from config if omitted.
        """
        self.config = config
        self.routing = routing
        self.publisher = publisher or ObservationPublisher(
            config.primary_target(),
            config.secondary_targets(),
            extra_logging=config.extra_logging,
        )
        self.assembler = assembler or MessageAssembler(
            self.publisher.primary.topic_prefix,
            extra_logging=config.extra_logging,
        )

    def run(self, node: NodeContext, source: ObservationSource) -> RunResult:
        """Assemble and deliver all units for the node's configured concepts."""
        result = RunResult()
        envelope = build_envelope(node)

        for concept in self.config.concepts:
            if self.config.extra_logging:
                logger.debug("Processing concept '%s' for %s", concept, node.node_name)
            self._run_concept(concept, node, source, envelope, result)

        logger.info(
            "Node %s: %d units assembled, %d delivered, %d failed, %d instances skipped",
            node.node_name,
            result.units_assembled,
            result.published,
            result.failed,
            result.instances_skipped,
        )
        return result

    def _run_concept(
        self,
        concept: str,
        node: NodeContext,
        source: ObservationSource,
        envelope: dict,
        result: RunResult,
    ) -> None:
        rule = self.routing.rule_for(concept)

        try:
            instance_ids = source.instance_ids(concept)
        except Exception as e:
            logger.warning("Failed to list '%s' instances on %s: %s", concept, node.node_name, e)
            METRICS.instances_skipped_total.labels(reason="fetch_error").inc()
            return

        if not instance_ids:
            if self.config.extra_logging:
                logger.debug("No inventory for '%s' on %s", concept, node.node_name)
            return

        for instance_id in instance_ids:
            try:
                snapshot = source.snapshot(concept, instance_id)
            except Exception as e:
                logger.warning(
                    "Failed to get '%s' instance %s on %s: %s",
                    concept,
                    instance_id,
                    node.node_name,
                    e,
                )
                result.instances_skipped += 1
                METRICS.instances_skipped_total.labels(reason="fetch_error").inc()
                continue

            if not snapshot.valid:
                result.instances_skipped += 1
                METRICS.instances_skipped_total.labels(reason="stale").inc()

            try:
                units = self.assembler.assemble(rule, envelope, [snapshot])
            except Exception as e:
                logger.warning(
                    "Skipping malformed '%s' instance %s on %s: %s",
                    concept,
                    instance_id,
                    node.node_name,
                    e,
                )
                result.instances_skipped += 1
                METRICS.instances_skipped_total.labels(reason="assembly_error").inc()
                continue

            result.units_assembled += len(units)
            METRICS.units_assembled_total.labels(concept=concept).inc(len(units))
            for unit in units:
                self._deliver(unit, result)

    def _deliver(self, unit: PublishUnit, result: RunResult) -> None:
        try:
            result.record(self.publisher.deliver(unit))
        except Exception as e:
            logger.error("Unexpected error publishing to %s: %s", unit.topic, e)
            result.failed += 1


def collect_node(
    node: NodeContext,
    source: ObservationSource,
    settings: ObservationsSettings | None = None,
    config: ObservationsConfig | None = None,
    routing: RoutingTable | None = None,
    connection_factory: ConnectionFactory = MqttClient,
) -> RunResult:
    """Run the observation pipeline for one node.

    Down or unreachable nodes are skipped before any configuration is read,
    so stale data is never published. Only configuration problems produce a
    non-zero status; no exception escapes this function.

    Args:
        node: The node's context for this run.
        source: Latest measurements of the node's inventory.
        settings: Locates config and routing files when not passed directly.
        config: Pre-loaded configuration (skips reading the config file).
        routing: Pre-loaded routing table (skips reading the routing file).
        connection_factory: Builds broker connections for each attempt.

    Returns:
        The aggregate run result.
    """
    try:
        if node.is_down or node.is_unreachable:
            reason = "Node Down" if node.is_down else "SNMP Down"
            logger.debug("Skipping %s: %s", node.node_name, reason)
            METRICS.runs_total.labels(result="skipped").inc()
            return RunResult(status=STATUS_OK)

        settings = settings or ObservationsSettings()
        try:
            if config is None:
                config = load_config(settings)
            if routing is None:
                routing = RoutingTable.from_yaml(settings.routing_file)
        except ConfigError as e:
            logger.error("Failed to load configuration: %s", e)
            METRICS.runs_total.labels(result="error").inc()
            return RunResult(status=STATUS_FATAL, message=f"Failed to load config: {e}")

        if not config.mqtt.server:
            logger.error("No MQTT server configured")
            METRICS.runs_total.labels(result="error").inc()
            return RunResult(status=STATUS_FATAL, message="No MQTT server configured")

        if not config.concepts:
            logger.debug("No concepts configured, skipping %s", node.node_name)
            METRICS.runs_total.labels(result="skipped").inc()
            return RunResult(status=STATUS_OK)

        publisher = ObservationPublisher(
            config.primary_target(),
            config.secondary_targets(),
            connection_factory=connection_factory,
            extra_logging=config.extra_logging,
        )
        result = ObservationPipeline(config, routing, publisher=publisher).run(node, source)
        METRICS.runs_total.labels(result="published").inc()
        return result

    except Exception as e:
        logger.exception("Observation run for %s failed", node.node_name)
        METRICS.runs_total.labels(result="error").inc()
        return RunResult(status=STATUS_FATAL, message=f"Unexpected error: {e}")
