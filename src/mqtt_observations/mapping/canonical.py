"""Field canonicalization: rename known fields, namespace the rest."""

import re
from collections.abc import Mapping
from typing import Any

# Raw counter values are volatile between polls and never published
RAW_SUFFIX = "_raw"

# Producer-specific fields are kept under this namespace
FIELD_NAMESPACE = "nmis."

# Derived metrics whose keys start with these codes are not republished
UNPUBLISHED_DERIVED = re.compile(r"^(?:08|16)")


def canonicalize(
    scope_name: str,
    raw_fields: Mapping[str, Any],
    renames: Mapping[str, Mapping[str, str]],
) -> dict[str, Any]:
    """Rename the fields of one scope to the canonical vocabulary.

    Args:
        scope_name: Subconcept name for singleton concepts, concept name otherwise.
        raw_fields: Metric name → value.
        renames: Scope name → raw field name → canonical name.

    Returns:
        New mapping with ``_raw`` fields dropped, known fields renamed and
        unknown fields prefixed with ``nmis.``. When two raw fields rename
        to the same canonical name, the first keeps it and the later one is
        emitted under ``nmis.``. Values are untouched.
    """
    table = renames.get(scope_name, {})
    result: dict[str, Any] = {}
    for key, value in raw_fields.items():
        key = str(key)
        if key.endswith(RAW_SUFFIX):
            continue
        canonical = table.get(key)
        if not canonical or canonical in result:
            # A canonical name already taken by another raw field keeps both values
            canonical = f"{FIELD_NAMESPACE}{key}"
        result[canonical] = value
    return result


def filter_derived(derived: Mapping[str, Any] | None) -> dict[str, Any]:
    """Drop derived metrics that must not be republished."""
    if not isinstance(derived, Mapping):
        return {}
    return {k: v for k, v in derived.items() if not UNPUBLISHED_DERIVED.match(str(k))}
