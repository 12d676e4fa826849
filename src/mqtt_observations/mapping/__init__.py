"""Mapping layer: labels, field names, topics, and payload assembly."""

from mqtt_observations.mapping.assembler import MessageAssembler
from mqtt_observations.mapping.canonical import canonicalize, filter_derived
from mqtt_observations.mapping.description import resolve, resolve_description
from mqtt_observations.mapping.envelope import build_envelope
from mqtt_observations.mapping.routing import RoutingRule, RoutingTable
from mqtt_observations.mapping.sanitize import sanitize_description, sanitize_index

__all__ = [
    "MessageAssembler",
    "RoutingRule",
    "RoutingTable",
    "build_envelope",
    "canonicalize",
    "filter_derived",
    "resolve",
    "resolve_description",
    "sanitize_description",
    "sanitize_index",
]
