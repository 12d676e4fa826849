"""Measurement sources feeding the pipeline."""

from mqtt_observations.sources.base import ObservationSource
from mqtt_observations.sources.snapshot_file import SnapshotFileSource, SnapshotLoadError

__all__ = ["ObservationSource", "SnapshotFileSource", "SnapshotLoadError"]
