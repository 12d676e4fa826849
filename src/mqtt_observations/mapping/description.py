"""Human-readable labels for measured instances."""

from collections.abc import Mapping, Sequence
from typing import Any

from mqtt_observations.mapping.routing import FALLBACK_DESCRIPTION_FIELDS, RoutingTable


def resolve_description(
    instance_attributes: Mapping[str, Any],
    description_fields: Sequence[str] = (),
) -> str:
    """Pick the first present, non-empty candidate field.

    Candidates are ``description_fields`` followed by the global fallbacks.
    An empty string counts as absent; ``"0"`` or ``0`` is a valid label.

    Returns:
        The label, or ``""`` when no candidate matches.
    """
    for name in (*description_fields, *FALLBACK_DESCRIPTION_FIELDS):
        value = instance_attributes.get(name)
        if value is None or value == "":
            continue
        return str(value)
    return ""


_DEFAULT_ROUTING = RoutingTable()


def resolve(
    concept_name: str,
    instance_attributes: Mapping[str, Any],
    routing: RoutingTable | None = None,
) -> str:
    """Resolve the label for an instance of a concept.

    Uses the concept's description fields from ``routing`` (the built-in
    table when omitted), then the global fallbacks.
    """
    rule = (routing or _DEFAULT_ROUTING).rule_for(concept_name)
    return resolve_description(instance_attributes, rule.description_fields)
