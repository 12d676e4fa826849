"""Shared pytest fixtures for MQTT observations tests."""

from pathlib import Path
from typing import Any

import pytest

from mqtt_observations.domain.models import MeasurementSnapshot, NodeContext, PublishTarget
from mqtt_observations.mqtt.client import MqttClientError

# Test fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers.

    Note: Markers are also defined in pyproject.toml [tool.pytest.ini_options].
    This function ensures they're registered even when running pytest directly.
    """
    config.addinivalue_line("markers", "integration: integration tests requiring MQTT broker")
    config.addinivalue_line("markers", "security: security and input validation tests")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        if "/integration/" in str(item.fspath):
            item.add_marker(pytest.mark.integration)

        if "/security/" in str(item.fspath):
            item.add_marker(pytest.mark.security)


@pytest.fixture(scope="session")
def fixtures_dir() -> Path:
    """Return the fixtures directory path."""
    return FIXTURES_DIR


@pytest.fixture
def node() -> NodeContext:
    """A reachable node."""
    return NodeContext(
        node_name="router1",
        node_id="3f2b6c1e-0000-4000-8000-000000000001",
        group="core",
        system_name="router1.example.com",
        host_address="192.0.2.1",
        node_type="router",
    )


@pytest.fixture
def catchall_snapshot() -> MeasurementSnapshot:
    """Catchall snapshot with health, tcp and an empty laload subconcept."""
    return MeasurementSnapshot(
        instance_attributes={"sysDescr": "Cisco IOS 15.2", "sysName": "router1"},
        subconcept_data={
            "health": {"reachability": 100, "responsetime": 3.2, "loss": 0, "custom": "x"},
            "tcp": {"tcpCurrEstab": 12, "tcpInSegs_raw": 998877},
            "laload": {},
        },
        derived_data={
            "health": {"08_reachability": 1, "16_health": 2, "healthScore": 99},
        },
        observed_at=1718000000.0,
    )


@pytest.fixture
def interface_snapshot() -> MeasurementSnapshot:
    """One interface with data and derived data."""
    return MeasurementSnapshot(
        instance_attributes={"index": "1", "ifDescr": "Gi0/0", "Description": "WAN link"},
        subconcept_data={
            "interface": {"ifInOctets": 1000, "ifInOctets_raw": 123456, "ifAlias": "uplink"},
        },
        derived_data={"interface": {"inputUtil": 2.5, "16_debug": 7}},
        observed_at=1718000000.0,
    )


@pytest.fixture
def target_factory() -> Any:
    """Build PublishTargets with test defaults."""

    def _make(**overrides: Any) -> PublishTarget:
        values: dict[str, Any] = {
            "name": "primary",
            "endpoint": "localhost:1883",
            "topic_prefix": "obs/nmis",
            "max_retries": 1,
        }
        values.update(overrides)
        return PublishTarget(**values)

    return _make


class FakeBroker:
    """Connection factory recording deliveries and failing on demand.

    ``failures`` maps a target name to the number of attempts that fail
    before connections succeed; targets in ``always_fail`` never connect.
    """

    def __init__(
        self,
        failures: dict[str, int] | None = None,
        always_fail: set[str] | None = None,
    ):
        self.failures = dict(failures or {})
        self.always_fail = always_fail or set()
        self.connects: list[str] = []
        self.published: list[dict[str, Any]] = []

    def __call__(self, target: PublishTarget) -> "FakeConnection":
        return FakeConnection(self, target)


class FakeConnection:
    def __init__(self, broker: FakeBroker, target: PublishTarget):
        self.broker = broker
        self.target = target

    def __enter__(self) -> "FakeConnection":
        self.broker.connects.append(self.target.name)
        if self.target.name in self.broker.always_fail:
            raise MqttClientError(f"{self.target.endpoint} unreachable")
        if self.broker.failures.get(self.target.name, 0) > 0:
            self.broker.failures[self.target.name] -= 1
            raise MqttClientError("connection refused")
        return self

    def __exit__(self, *exc_info: Any) -> None:
        pass

    def publish(self, topic: str, payload: bytes, qos: int = 0, retain: bool = False) -> None:
        self.broker.published.append(
            {
                "target": self.target.name,
                "topic": topic,
                "payload": payload,
                "qos": qos,
                "retain": retain,
            }
        )


@pytest.fixture
def fake_broker() -> type[FakeBroker]:
    """Fake broker connection factory class."""
    return FakeBroker
