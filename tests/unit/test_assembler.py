"""Unit tests for message assembly."""

import itertools

import pytest

from mqtt_observations.domain.models import MeasurementSnapshot, NodeContext
from mqtt_observations.mapping.assembler import MessageAssembler
from mqtt_observations.mapping.envelope import build_envelope
from mqtt_observations.mapping.routing import RoutingRule, RoutingTable


@pytest.fixture
def routing() -> RoutingTable:
    """Built-in routing table."""
    return RoutingTable()


@pytest.fixture
def assembler() -> MessageAssembler:
    """Assembler with a fixed clock."""
    return MessageAssembler("obs/nmis", clock=lambda: 1700000000.0)


class TestSingletonMode:
    """Tests for per-subconcept fan-out."""

    def test_one_unit_per_non_empty_subconcept(
        self,
        assembler: MessageAssembler,
        routing: RoutingTable,
        node: NodeContext,
        catchall_snapshot: MeasurementSnapshot,
    ) -> None:
        """Test that empty subconcepts produce no unit."""
        units = assembler.assemble(
            routing.rule_for("catchall"), build_envelope(node), [catchall_snapshot]
        )

        assert [u.topic for u in units] == [
            "obs/nmis/router1/health",
            "obs/nmis/router1/tcp",
        ]

    def test_payload_contents(
        self,
        assembler: MessageAssembler,
        routing: RoutingTable,
        node: NodeContext,
        catchall_snapshot: MeasurementSnapshot,
    ) -> None:
        """Test that the payload holds envelope, header, and canonical fields."""
        units = assembler.assemble(
            routing.rule_for("catchall"), build_envelope(node), [catchall_snapshot]
        )
        health = units[0].payload

        assert health["concept"] == "health"
        assert health["index"] == "0"
        assert health["description"] == "Cisco IOS 15.2"
        assert health["timestamp"] == 1718000000.0
        assert health["node.name"] == "router1"
        assert health["host.address"] == "192.0.2.1"
        assert health["node.reachability"] == 100
        assert health["node.response_time"] == 3.2
        assert health["nmis.custom"] == "x"
        assert health["nmis.healthScore"] == 99

    def test_derived_prefixes_filtered(
        self,
        assembler: MessageAssembler,
        routing: RoutingTable,
        node: NodeContext,
        catchall_snapshot: MeasurementSnapshot,
    ) -> None:
        """Test that 08/16 derived metrics are not republished."""
        units = assembler.assemble(
            routing.rule_for("catchall"), build_envelope(node), [catchall_snapshot]
        )
        keys = set(units[0].payload)

        assert "nmis.08_reachability" not in keys
        assert "nmis.16_health" not in keys

    def test_raw_fields_dropped(
        self,
        assembler: MessageAssembler,
        routing: RoutingTable,
        node: NodeContext,
        catchall_snapshot: MeasurementSnapshot,
    ) -> None:
        """Test that _raw fields never reach the payload."""
        units = assembler.assemble(
            routing.rule_for("catchall"), build_envelope(node), [catchall_snapshot]
        )
        tcp = units[1].payload

        assert tcp["tcp.established"] == 12
        assert not any(k.endswith("_raw") for k in tcp)

    def test_no_subconcepts_no_units(
        self, assembler: MessageAssembler, routing: RoutingTable, node: NodeContext
    ) -> None:
        """Test that a snapshot without subconcept data yields nothing."""
        units = assembler.assemble(
            routing.rule_for("catchall"), build_envelope(node), [MeasurementSnapshot()]
        )
        assert units == []

    def test_measured_value_wins_over_derived(
        self, assembler: MessageAssembler, node: NodeContext
    ) -> None:
        """Test precedence when data and derived data share a field."""
        rule = RoutingRule(concept_name="catchall", is_singleton=True)
        snapshot = MeasurementSnapshot(
            subconcept_data={"health": {"cpu": 10}},
            derived_data={"health": {"cpu": 99}},
        )
        units = assembler.assemble(rule, build_envelope(node), [snapshot])
        assert units[0].payload["nmis.cpu"] == 10


class TestPerInstanceMode:
    """Tests for one-unit-per-instance fan-out."""

    def test_topic_uses_sanitized_description(
        self,
        assembler: MessageAssembler,
        routing: RoutingTable,
        node: NodeContext,
        interface_snapshot: MeasurementSnapshot,
    ) -> None:
        """Test that the description becomes the last topic level."""
        units = assembler.assemble(
            routing.rule_for("interface"), build_envelope(node), [interface_snapshot]
        )

        assert len(units) == 1
        assert units[0].topic == "obs/nmis/router1/interface/Gi0-0"

    def test_topic_falls_back_to_index(
        self, assembler: MessageAssembler, routing: RoutingTable, node: NodeContext
    ) -> None:
        """Test that the index is used when there is no usable description."""
        snapshot = MeasurementSnapshot(
            instance_attributes={"index": "Fa0/1 sub"},
            subconcept_data={"interface": {"ifInOctets": 1}},
        )
        root_fs = MeasurementSnapshot(
            instance_attributes={"index": "7", "hrFSMountPoint": "/"},
            subconcept_data={"Host_File_System": {"hrFSUsed": 1}},
        )
        envelope = build_envelope(node)

        iface = assembler.assemble(routing.rule_for("interface"), envelope, [snapshot])
        fs = assembler.assemble(routing.rule_for("Host_File_System"), envelope, [root_fs])

        assert iface[0].topic == "obs/nmis/router1/interface/Fa0_1_sub"
        assert fs[0].topic == "obs/nmis/router1/Host_File_System/7"

    def test_published_name_in_topic(
        self, assembler: MessageAssembler, node: NodeContext
    ) -> None:
        """Test that the concept alias is used as a topic level."""
        rule = RoutingRule(concept_name="Host_File_System", published_name="filesystem")
        snapshot = MeasurementSnapshot(
            instance_attributes={"hrFSMountPoint": "/var/log"},
            subconcept_data={"Host_File_System": {"hrFSUsed": 1}},
        )

        units = assembler.assemble(rule, build_envelope(node), [snapshot])

        assert units[0].topic == "obs/nmis/router1/filesystem/var-log"
        assert units[0].payload["concept"] == "Host_File_System"

    def test_subconcepts_flattened_and_canonicalized(
        self,
        assembler: MessageAssembler,
        routing: RoutingTable,
        node: NodeContext,
        interface_snapshot: MeasurementSnapshot,
    ) -> None:
        """Test the flat payload of one instance."""
        units = assembler.assemble(
            routing.rule_for("interface"), build_envelope(node), [interface_snapshot]
        )
        payload = units[0].payload

        assert payload["concept"] == "interface"
        assert payload["index"] == "1"
        assert payload["description"] == "Gi0/0"
        assert payload["network.in.octets"] == 1000
        assert payload["network.in.utilization"] == 2.5
        assert payload["nmis.ifAlias"] == "uplink"
        assert "nmis.16_debug" not in payload
        assert not any(k.endswith("_raw") for k in payload)

    def test_one_unit_per_instance(
        self, assembler: MessageAssembler, routing: RoutingTable, node: NodeContext
    ) -> None:
        """Test that each valid instance yields one unit."""
        snapshots = [
            MeasurementSnapshot(
                instance_attributes={"index": str(i), "hrStorageDescr": f"disk {i}"},
                subconcept_data={"Host_Storage": {"hrStorageUsed": i}},
            )
            for i in range(3)
        ]
        units = assembler.assemble(
            routing.rule_for("Host_Storage"), build_envelope(node), snapshots
        )
        assert [u.topic.rsplit("/", 1)[-1] for u in units] == ["disk_0", "disk_1", "disk_2"]


class TestCommon:
    """Behavior shared by both modes."""

    def test_stale_instances_skipped(
        self, assembler: MessageAssembler, routing: RoutingTable, node: NodeContext
    ) -> None:
        """Test that instances without fresh data produce no units."""
        stale = MeasurementSnapshot.stale({"index": "1", "ifDescr": "Gi0/0"})
        envelope = build_envelope(node)

        assert assembler.assemble(routing.rule_for("interface"), envelope, [stale]) == []
        assert assembler.assemble(routing.rule_for("catchall"), envelope, [stale]) == []

    def test_timestamp_falls_back_to_clock(
        self, assembler: MessageAssembler, routing: RoutingTable, node: NodeContext
    ) -> None:
        """Test that a missing observation time uses the current time."""
        snapshot = MeasurementSnapshot(subconcept_data={"interface": {"ifInOctets": 1}})
        units = assembler.assemble(routing.rule_for("interface"), build_envelope(node), [snapshot])
        assert units[0].payload["timestamp"] == 1700000000.0

    def test_envelope_wins_over_fields(
        self, assembler: MessageAssembler, node: NodeContext
    ) -> None:
        """Test that renamed fields cannot overwrite envelope or header keys."""
        rule = RoutingRule(
            concept_name="sensor",
            field_renames={"sensor": {"victim": "node.name", "when": "timestamp"}},
        )
        snapshot = MeasurementSnapshot(
            subconcept_data={"sensor": {"victim": "evil", "when": 1}},
            observed_at=5.0,
        )

        payload = assembler.assemble(rule, build_envelope(node), [snapshot])[0].payload

        assert payload["node.name"] == "router1"
        assert payload["timestamp"] == 5.0

    def test_node_name_sanitized(self, assembler: MessageAssembler, routing: RoutingTable) -> None:
        """Test that node names with separators stay one topic level."""
        envelope = build_envelope(NodeContext(node_name="site a/router"))
        snapshot = MeasurementSnapshot(subconcept_data={"health": {"loss": 0}})

        units = assembler.assemble(routing.rule_for("catchall"), envelope, [snapshot])

        assert units[0].topic == "obs/nmis/site_a_router/health"

    def test_clock_read_once_per_snapshot(self, routing: RoutingTable, node: NodeContext) -> None:
        """Test that all subconcepts of one snapshot share a fallback timestamp."""
        ticks = itertools.count(100.0)
        calls = []

        def clock() -> float:
            calls.append(1)
            return next(ticks)

        assembler = MessageAssembler("obs/nmis", clock=clock)
        snapshot = MeasurementSnapshot(
            subconcept_data={"health": {"loss": 0}, "tcp": {"tcpCurrEstab": 3}}
        )

        units = assembler.assemble(routing.rule_for("catchall"), build_envelope(node), [snapshot])

        assert len(units) == 2
        assert {u.payload["timestamp"] for u in units} == {100.0}
        assert len(calls) == 1
