"""Interface to the monitoring system supplying measurements."""

from typing import Protocol

from mqtt_observations.domain.models import MeasurementSnapshot


class ObservationSource(Protocol):
    """Per-node access to the latest measurements, one concept at a time.

    Implementations wrap the host monitoring system's store. Either method
    may raise; the pipeline isolates failures per concept and per instance.
    """

    def instance_ids(self, concept: str) -> list[str]:
        """Stable identifiers of the current (non-historic) instances of a concept."""
        ...

    def snapshot(self, concept: str, instance_id: str) -> MeasurementSnapshot:
        """Latest measurements for one instance."""
        ...
