"""Node snapshot documents exported from the monitoring system.

A snapshot document describes one node and the latest data of its
inventory, as JSON or YAML::

    node: router1
    uuid: 3f2b...
    catchall:
      nodedown: "false"
      snmpdown: "false"
      group: core
      sysName: router1.example.com
      host: 192.0.2.1
      nodeType: router
    concepts:
      interface:
        - id: 5f1c...
          inventory: {index: "1", ifDescr: "Gi0/0"}
          latest:
            time: 1718000000
            data: {interface: {ifInOctets: 1234}}
            derived_data: {interface: {inputUtil: 2.5}}

Instances without ``latest.data`` have no fresh data and are stale.
"""

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from mqtt_observations.domain.models import MeasurementSnapshot, NodeContext

logger = logging.getLogger(__name__)


class SnapshotLoadError(Exception):
    """Raised when a snapshot document or one of its entries cannot be read."""

    pass


def load_document(path: Path) -> dict[str, Any]:
    """Read a snapshot document from a JSON or YAML file.

    Raises:
        SnapshotLoadError: If the file is missing or cannot be parsed.
    """
    if not path.exists():
        raise SnapshotLoadError(f"Snapshot file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise SnapshotLoadError(f"Failed to load snapshot {path}: {e}") from e

    if not isinstance(data, dict) or not data.get("node"):
        raise SnapshotLoadError(f"Snapshot {path} must be a mapping with a 'node' name")
    return data


class SnapshotFileSource:
    """ObservationSource backed by a snapshot document."""

    def __init__(self, document: Mapping[str, Any]):
        self._document = document
        concepts = document.get("concepts") or {}
        self._concepts: Mapping[str, Any] = concepts if isinstance(concepts, Mapping) else {}

    @classmethod
    def from_file(cls, path: Path) -> "SnapshotFileSource":
        source = cls(load_document(path))
        logger.info("Loaded snapshot for node %s from %s", source.node_name, path)
        return source

    @property
    def node_name(self) -> str:
        return str(self._document.get("node", ""))

    def node_context(self) -> NodeContext:
        """Build the run's node context from the catchall record."""
        catchall = self._document.get("catchall") or {}
        if not isinstance(catchall, Mapping):
            raise SnapshotLoadError(f"Catchall record for {self.node_name} is not a mapping")
        return NodeContext.from_catchall(
            self.node_name,
            catchall,
            node_id=str(self._document.get("uuid") or ""),
        )

    def _entries(self, concept: str) -> list[Any]:
        entries = self._concepts.get(concept) or []
        if not isinstance(entries, list):
            raise SnapshotLoadError(f"Instances of '{concept}' must be a list")
        return entries

    def instance_ids(self, concept: str) -> list[str]:
        ids = []
        for position, entry in enumerate(self._entries(concept)):
            entry_id = entry.get("id") if isinstance(entry, Mapping) else None
            ids.append(str(entry_id) if entry_id is not None else str(position))
        return ids

    def snapshot(self, concept: str, instance_id: str) -> MeasurementSnapshot:
        entries = self._entries(concept)
        for position, entry in enumerate(entries):
            if not isinstance(entry, Mapping):
                continue
            entry_id = entry.get("id")
            if str(entry_id if entry_id is not None else position) == instance_id:
                return self._to_snapshot(concept, entry)

        if instance_id.isdigit() and int(instance_id) < len(entries):
            raise SnapshotLoadError(f"Malformed '{concept}' instance {instance_id}")
        raise SnapshotLoadError(f"No '{concept}' instance with id {instance_id}")

    def _to_snapshot(self, concept: str, entry: Mapping[str, Any]) -> MeasurementSnapshot:
        inventory = entry.get("inventory") or {}
        if not isinstance(inventory, Mapping):
            raise SnapshotLoadError(f"Inventory of '{concept}' instance is not a mapping")

        latest = entry.get("latest") or {}
        data = latest.get("data") if isinstance(latest, Mapping) else None
        if not isinstance(data, Mapping) or not data:
            return MeasurementSnapshot.stale(inventory)

        observed_at = latest.get("time")
        derived = latest.get("derived_data")
        return MeasurementSnapshot(
            instance_attributes=inventory,
            subconcept_data=data,
            derived_data=derived if isinstance(derived, Mapping) else {},
            observed_at=float(observed_at) if observed_at is not None else None,
        )
