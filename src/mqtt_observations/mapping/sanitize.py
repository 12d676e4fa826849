"""Topic segment sanitization for MQTT compliance.

Two sanitizers exist because descriptions and indexes are rewritten with
different replacement characters: a description like ``Gi0/0`` becomes
``Gi0-0`` while the same string used as an index becomes ``Gi0_0``.
"""

import re

# Whitespace pattern for replacement
WHITESPACE = re.compile(r"\s+")

# + and # are MQTT wildcards
WILDCARDS = re.compile(r"[+#\x00]")

LEADING_SLASHES = re.compile(r"^/+")


def sanitize_description(description: str) -> str:
    """Sanitize a free-text description for use as a topic segment.

    Strips leading slashes, replaces ``/`` and ``:`` with ``-`` and
    whitespace runs with ``_``. An empty result means the caller should
    fall back to the instance index.

    Examples:
        >>> sanitize_description("Gi0/0")
        'Gi0-0'
        >>> sanitize_description("/var/log")
        'var-log'
        >>> sanitize_description("Physical memory")
        'Physical_memory'
        >>> sanitize_description("/")
        ''
    """
    if not description:
        return ""

    result = LEADING_SLASHES.sub("", str(description))
    result = result.replace("/", "-").replace(":", "-")
    result = WHITESPACE.sub("_", result)
    return WILDCARDS.sub("_", result)


def sanitize_index(index: str) -> str:
    """Sanitize an instance index (or other identifier) for use as a topic segment.

    Examples:
        >>> sanitize_index("GigabitEthernet0/0")
        'GigabitEthernet0_0'
        >>> sanitize_index("eth 0")
        'eth_0'
        >>> sanitize_index("3")
        '3'
    """
    result = str(index)
    result = result.replace("/", "_").replace(":", "_")
    result = WHITESPACE.sub("_", result)
    return WILDCARDS.sub("_", result)


def join_topic(*segments: str) -> str:
    """Join topic levels, skipping empty ones and doubled separators."""
    parts = [s.strip("/") for s in segments if s and s.strip("/")]
    return "/".join(parts)
