"""Fixtures for security tests."""

import pytest


@pytest.fixture
def hostile_segments() -> list[str]:
    """Instance descriptions and indexes an attacker could set on a device."""
    return [
        "../../../etc/passwd",
        "topic/#/injection",
        "topic/+/wildcard",
        "#",
        "+",
        "topic\x00null",
        "topic\nwith\nnewlines",
        "port: 1/0/1 # uplink",
        "/",
        "a" * 10000,
    ]
