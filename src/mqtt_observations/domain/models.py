"""Core domain models for MQTT observation publishing."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

DEFAULT_INSTANCE_INDEX = "0"

# NMIS stores booleans as strings in catchall records
_TRUTHY = frozenset({"1", "true", "yes", "y", "on", "t"})


def _as_bool(value: Any) -> bool:
    """Interpret an NMIS-style boolean value."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUTHY


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _freeze(data: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(data or {}))


def _freeze_nested(data: Mapping[str, Any] | None) -> Mapping[str, Mapping[str, Any]]:
    """Freeze a subconcept → metrics mapping, dropping non-mapping entries."""
    frozen: dict[str, Mapping[str, Any]] = {}
    for name, metrics in (data or {}).items():
        if isinstance(metrics, Mapping):
            frozen[name] = MappingProxyType(dict(metrics))
    return MappingProxyType(frozen)


@dataclass(frozen=True, slots=True)
class NodeContext:
    """Per-node invariant data for one pipeline run.

    Built once per run from the node's catchall inventory record and
    shared read-only by every message produced for the node.
    """

    node_name: str
    """Node name as known to the monitoring system."""

    node_id: str = ""
    """Opaque stable node identifier (the NMIS node uuid)."""

    group: str = ""
    system_name: str = ""
    host_address: str = ""
    node_type: str = ""

    is_down: bool = False
    """Node failed its reachability check this cycle."""

    is_unreachable: bool = False
    """Node answered but its management protocol (SNMP) did not."""

    @classmethod
    def from_catchall(
        cls,
        node_name: str,
        catchall: Mapping[str, Any],
        node_id: str = "",
    ) -> "NodeContext":
        """Build a context from an NMIS catchall data record."""
        return cls(
            node_name=node_name,
            node_id=_text(node_id),
            group=_text(catchall.get("group")),
            system_name=_text(catchall.get("sysName")),
            host_address=_text(catchall.get("host")),
            node_type=_text(catchall.get("nodeType")),
            is_down=_as_bool(catchall.get("nodedown")),
            is_unreachable=_as_bool(catchall.get("snmpdown")),
        )


@dataclass(frozen=True, slots=True)
class MeasurementSnapshot:
    """Latest collected data for one inventory instance.

    Mappings are wrapped read-only on construction; a snapshot is never
    mutated once built.
    """

    instance_attributes: Mapping[str, Any] = field(default_factory=dict)
    """Inventory-level descriptive fields (ifDescr, hrStorageDescr, index, ...)."""

    subconcept_data: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    """Subconcept name → metric name → value."""

    derived_data: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    """Computed metrics, same shape as subconcept_data."""

    observed_at: float | None = None
    """Unix timestamp of the measurement, if known."""

    valid: bool = True
    """False when no fresh data exists for the instance."""

    def __post_init__(self) -> None:
        object.__setattr__(self, "instance_attributes", _freeze(self.instance_attributes))
        object.__setattr__(self, "subconcept_data", _freeze_nested(self.subconcept_data))
        object.__setattr__(self, "derived_data", _freeze_nested(self.derived_data))

    @property
    def instance_index(self) -> str:
        """Stable identifier of the instance within its concept."""
        index = self.instance_attributes.get("index")
        if index is None or index == "":
            return DEFAULT_INSTANCE_INDEX
        return str(index)

    @classmethod
    def stale(cls, instance_attributes: Mapping[str, Any] | None = None) -> "MeasurementSnapshot":
        """Snapshot for an instance without fresh data."""
        return cls(instance_attributes=instance_attributes or {}, valid=False)


@dataclass(frozen=True, slots=True)
class PublishTarget:
    """One broker destination."""

    name: str
    """Label used in logs and metrics ('primary', 'secondary')."""

    endpoint: str
    """Broker address as host[:port]."""

    topic_prefix: str
    credentials: tuple[str, str | None] | None = field(default=None, repr=False)
    retain: bool = False
    max_retries: int = 1
    qos: int = 0
    timeout_seconds: float = 10.0
    keepalive: int = 60
    client_id: str = ""
    use_tls: bool = False
    ca_cert: str | None = None

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        # Topics are built without leading or trailing separators
        object.__setattr__(self, "topic_prefix", self.topic_prefix.strip("/"))

    @property
    def host(self) -> str:
        return self._split_endpoint()[0]

    @property
    def port(self) -> int:
        return self._split_endpoint()[1]

    def _split_endpoint(self) -> tuple[str, int]:
        host, sep, port = self.endpoint.rpartition(":")
        if not sep or not port.isdigit():
            return self.endpoint, 8883 if self.use_tls else 1883
        return host, int(port)

    def rewrite_topic(self, topic: str, source_prefix: str) -> str:
        """Move a topic from another target's prefix onto this target's prefix."""
        source = source_prefix.strip("/")
        if not source:
            rest = topic
        elif topic == source or topic.startswith(source + "/"):
            rest = topic[len(source) :].lstrip("/")
        else:
            return topic
        return "/".join(part for part in (self.topic_prefix, rest) if part)


@dataclass(frozen=True, slots=True)
class PublishUnit:
    """A (topic, payload) pair ready for delivery."""

    topic: str
    payload: Mapping[str, Any]
    """Flat, JSON-serializable key → value mapping."""


@dataclass(frozen=True, slots=True)
class PublishOutcome:
    """Result of delivering one unit to one target."""

    target: str
    topic: str
    success: bool
    attempts: int
    error: str | None = None


@dataclass(slots=True)
class RunResult:
    """Aggregate outcome of one node run, returned to the scheduler."""

    status: int = 0
    """0 for success or no-op, non-zero for a fatal configuration problem."""

    message: str | None = None
    units_assembled: int = 0
    published: int = 0
    failed: int = 0
    instances_skipped: int = 0
    outcomes: list[PublishOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == 0

    def record(self, outcomes: list[PublishOutcome]) -> None:
        """Add per-target outcomes for one delivered unit."""
        self.outcomes.extend(outcomes)
        for outcome in outcomes:
            if outcome.success:
                self.published += 1
            else:
                self.failed += 1
