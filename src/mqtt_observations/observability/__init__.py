"""Observability components: logging and metrics."""

from mqtt_observations.observability.logging import setup_logging
from mqtt_observations.observability.metrics import METRICS, write_metrics_textfile

__all__ = ["setup_logging", "METRICS", "write_metrics_textfile"]
