"""Node metadata envelope shared by every message of a run."""

from typing import Any

from mqtt_observations.domain.models import NodeContext

SERVICE_NAME = "nmis"
SCOPE_NAME = "mqtt_observations"


def build_envelope(node: NodeContext) -> dict[str, Any]:
    """Build the fixed node-identifying block.

    Every key is always present; unknown attributes are emitted as ``""``
    so consumers see a stable key set.
    """
    return {
        "node.name": node.node_name or "",
        "node.uuid": node.node_id or "",
        "node.group": node.group or "",
        "node.type": node.node_type or "",
        "host.name": node.system_name or "",
        "host.address": node.host_address or "",
        "service.name": SERVICE_NAME,
        "scope.name": SCOPE_NAME,
    }
