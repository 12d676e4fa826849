"""Per-concept routing rules: fan-out mode, labels, and field renames."""

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from mqtt_observations.config import ConfigError

logger = logging.getLogger(__name__)

# Tried in order after a concept's own description fields
FALLBACK_DESCRIPTION_FIELDS: tuple[str, ...] = (
    "Description",
    "description",
    "Name",
    "name",
    "ifDescr",
)

DEFAULT_DESCRIPTION_FIELDS: dict[str, list[str]] = {
    "interface": ["ifDescr", "Description"],
    "catchall": ["sysDescr", "sysName", "nodeType"],
    "Host_Storage": ["hrStorageDescr"],
    "Host_File_System": ["hrFSMountPoint", "hrFSType"],
    "Host_Partition": ["hrPartitionLabel", "hrPartitionID"],
    "entityMib": ["entPhysicalName", "entPhysicalDescr"],
    "cdp": ["cdpCacheDeviceId", "cdpCacheDevicePort"],
    "lldp": ["lldpRemSysName", "lldpRemPortDesc"],
    "bgp": ["bgpPeerIdentifier"],
    "vlan": ["vlanName", "vtpVlanName"],
    "mpls": ["mplsVpnVrfName"],
    "cbqos": ["CbQosPolicyMapName"],
    "addressTable": ["dot1dTpFdbAddress"],
}

# Concepts with one instance per node whose data is published per subconcept
DEFAULT_SINGLETON_CONCEPTS: frozenset[str] = frozenset({"catchall"})

# Scope (subconcept for singleton concepts, concept otherwise) → raw → canonical
DEFAULT_FIELD_RENAMES: dict[str, dict[str, dict[str, str]]] = {
    "catchall": {
        "health": {
            "reachability": "node.reachability",
            "availability": "node.availability",
            "responsetime": "node.response_time",
            "loss": "node.packet_loss",
            "health": "node.health",
            "cpu": "node.cpu.utilization",
            "mem": "node.memory.utilization",
            "swap": "node.swap.utilization",
            "disk": "node.disk.utilization",
            "intfCollect": "node.interfaces.collected",
            "intfColUp": "node.interfaces.up",
        },
        "tcp": {
            "tcpActiveOpens": "tcp.active_opens",
            "tcpPassiveOpens": "tcp.passive_opens",
            "tcpAttemptFails": "tcp.attempt_fails",
            "tcpEstabResets": "tcp.established_resets",
            "tcpCurrEstab": "tcp.established",
            "tcpInSegs": "tcp.in.segments",
            "tcpOutSegs": "tcp.out.segments",
            "tcpRetransSegs": "tcp.retransmitted_segments",
            "tcpInErrs": "tcp.in.errors",
            "tcpOutRsts": "tcp.out.resets",
        },
        "laload": {
            "laLoad1": "system.load.1m",
            "laLoad5": "system.load.5m",
            "laLoad15": "system.load.15m",
        },
        "mib2ip": {
            "ipInReceives": "ip.in.receives",
            "ipInDelivers": "ip.in.delivers",
            "ipOutRequests": "ip.out.requests",
            "ipInDiscards": "ip.in.discards",
            "ipOutDiscards": "ip.out.discards",
            "ipForwDatagrams": "ip.forwarded_datagrams",
        },
    },
    "interface": {
        "interface": {
            "ifInOctets": "network.in.octets",
            "ifOutOctets": "network.out.octets",
            "ifHCInOctets": "network.in.hc_octets",
            "ifHCOutOctets": "network.out.hc_octets",
            "ifInUcastPkts": "network.in.packets",
            "ifOutUcastPkts": "network.out.packets",
            "ifInErrors": "network.in.errors",
            "ifOutErrors": "network.out.errors",
            "ifInDiscards": "network.in.discards",
            "ifOutDiscards": "network.out.discards",
            "ifOperStatus": "interface.oper_status",
            "ifAdminStatus": "interface.admin_status",
            "inputUtil": "network.in.utilization",
            "outputUtil": "network.out.utilization",
            "totalUtil": "network.utilization",
        },
    },
    "Host_Storage": {
        "Host_Storage": {
            "hrStorageSize": "storage.size",
            "hrStorageUsed": "storage.used",
            "hrStorageUnits": "storage.allocation_units",
            "hrStorageUtil": "storage.utilization",
        },
    },
}


class RoutingRule(BaseModel):
    """Publishing policy for one concept."""

    model_config = ConfigDict(frozen=True)

    concept_name: str
    is_singleton: bool = False
    """Publish once per subconcept instead of once per instance."""

    published_name: str = ""
    """Topic alias for the concept; defaults to the concept name."""

    description_fields: list[str] = Field(default_factory=list)
    """Candidate label fields, tried before the global fallbacks."""

    field_renames: dict[str, dict[str, str]] = Field(default_factory=dict)
    """Scope name → raw field name → canonical field name."""

    @model_validator(mode="before")
    @classmethod
    def default_published_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("published_name"):
            data = {**data, "published_name": data.get("concept_name", "")}
        return data

    def renames_for(self, scope_name: str) -> dict[str, str]:
        return self.field_renames.get(scope_name, {})

    def merged(self, overrides: dict[str, Any]) -> "RoutingRule":
        """Return a copy with overrides applied; rename tables merge per scope."""
        data = self.model_dump()
        renames = {scope: dict(table) for scope, table in self.field_renames.items()}
        for scope, table in (overrides.get("field_renames") or {}).items():
            renames.setdefault(scope, {}).update(table or {})

        data.update({k: v for k, v in overrides.items() if k != "field_renames"})
        data["field_renames"] = renames
        data["concept_name"] = self.concept_name
        return RoutingRule.model_validate(data)


def default_rules() -> dict[str, RoutingRule]:
    """Build the built-in rules for the standard NMIS concepts."""
    concepts = (
        set(DEFAULT_DESCRIPTION_FIELDS) | set(DEFAULT_FIELD_RENAMES) | DEFAULT_SINGLETON_CONCEPTS
    )
    return {
        concept: RoutingRule(
            concept_name=concept,
            is_singleton=concept in DEFAULT_SINGLETON_CONCEPTS,
            description_fields=DEFAULT_DESCRIPTION_FIELDS.get(concept, []),
            field_renames=DEFAULT_FIELD_RENAMES.get(concept, {}),
        )
        for concept in sorted(concepts)
    }


class RoutingTable:
    """Immutable lookup of routing rules keyed by concept name."""

    def __init__(self, rules: dict[str, RoutingRule] | None = None):
        """Initialize the table.

        Args:
            rules: Rules keyed by concept name. Defaults to the built-in rules.
        """
        self._rules = dict(default_rules() if rules is None else rules)

    def __contains__(self, concept_name: object) -> bool:
        return concept_name in self._rules

    def rule_for(self, concept_name: str) -> RoutingRule:
        """Get the rule for a concept, or a per-instance default when unconfigured."""
        rule = self._rules.get(concept_name)
        if rule is None:
            return RoutingRule(concept_name=concept_name)
        return rule

    @classmethod
    def from_yaml(cls, path: Path) -> "RoutingTable":
        """Load routing overrides from YAML on top of the built-in rules.

        Raises:
            ConfigError: If the file exists but cannot be parsed or validated.
        """
        if not path.exists():
            logger.debug("Routing file not found: %s, using built-in rules", path)
            return cls()

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read routing file {path}: {e}") from e

        if not data:
            return cls()

        concepts = data.get("concepts") if isinstance(data, dict) else None
        if not isinstance(concepts, dict):
            raise ConfigError(f"Routing file {path} must contain a 'concepts' mapping")

        rules = default_rules()
        try:
            for concept_name, overrides in concepts.items():
                base = rules.get(concept_name) or RoutingRule(concept_name=concept_name)
                rules[concept_name] = base.merged(overrides or {})
        except (ValidationError, AttributeError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid routing file {path}: {e}") from e

        return cls(rules)
