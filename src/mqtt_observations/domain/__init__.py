"""Domain models for MQTT observation publishing."""

from mqtt_observations.domain.models import (
    MeasurementSnapshot,
    NodeContext,
    PublishOutcome,
    PublishTarget,
    PublishUnit,
    RunResult,
)

__all__ = [
    "MeasurementSnapshot",
    "NodeContext",
    "PublishOutcome",
    "PublishTarget",
    "PublishUnit",
    "RunResult",
]
