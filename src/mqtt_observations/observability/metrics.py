"""Prometheus metrics for observation publishing."""

import logging
from pathlib import Path

from prometheus_client import REGISTRY, Counter, Gauge, write_to_textfile

logger = logging.getLogger(__name__)


# Metric definitions
class ObservationMetrics:
    """Collection of Prometheus metrics for node runs."""

    def __init__(self) -> None:
        """Initialize metrics."""
        # Counters
        self.runs_total = Counter(
            "mqtt_observations_runs_total",
            "Total number of node runs",
            ["result"],  # 'published', 'skipped' or 'error'
        )

        self.units_assembled_total = Counter(
            "mqtt_observations_units_assembled_total",
            "Total number of publish units assembled",
            ["concept"],
        )

        self.instances_skipped_total = Counter(
            "mqtt_observations_instances_skipped_total",
            "Total number of inventory instances skipped",
            ["reason"],  # 'stale', 'fetch_error' or 'assembly_error'
        )

        self.publish_attempts_total = Counter(
            "mqtt_observations_publish_attempts_total",
            "Total number of broker delivery attempts",
            ["target"],
        )

        self.published_total = Counter(
            "mqtt_observations_published_total",
            "Total number of units delivered",
            ["target"],
        )

        self.publish_failures_total = Counter(
            "mqtt_observations_publish_failures_total",
            "Total number of units not delivered after all retries",
            ["target"],
        )

        # Gauges
        self.last_publish_timestamp = Gauge(
            "mqtt_observations_last_publish_timestamp",
            "Unix timestamp of last successful publish",
        )


# Global metrics instance
METRICS = ObservationMetrics()


def write_metrics_textfile(path: Path) -> None:
    """Write the current metrics for the node-exporter textfile collector.

    Failures are logged; a run's outcome never depends on metrics export.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        write_to_textfile(str(path), REGISTRY)
    except OSError as e:
        logger.warning("Failed to write metrics to %s: %s", path, e)
