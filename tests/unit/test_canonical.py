"""Unit tests for field canonicalization."""

from mqtt_observations.mapping.canonical import (
    FIELD_NAMESPACE,
    RAW_SUFFIX,
    canonicalize,
    filter_derived,
)
from mqtt_observations.mapping.routing import DEFAULT_FIELD_RENAMES

RENAMES = {
    "health": {"reachability": "node.reachability", "responsetime": "node.response_time"},
    "interface": {"ifInOctets": "network.in.octets"},
}


class TestCanonicalize:
    """Tests for canonicalize function."""

    def test_known_fields_renamed(self) -> None:
        """Test that fields in the scope's table get canonical names."""
        result = canonicalize("health", {"reachability": 100, "responsetime": 2.1}, RENAMES)
        assert result == {"node.reachability": 100, "node.response_time": 2.1}

    def test_unknown_fields_prefixed(self) -> None:
        """Test that unmapped fields are namespaced, not dropped."""
        result = canonicalize("health", {"custom": "x"}, RENAMES)
        assert result == {"nmis.custom": "x"}

    def test_raw_fields_dropped(self) -> None:
        """Test that volatile raw counters are never emitted."""
        result = canonicalize(
            "interface", {"ifInOctets": 5, "ifInOctets_raw": 123456}, RENAMES
        )
        assert result == {"network.in.octets": 5}

    def test_scope_is_respected(self) -> None:
        """Test that renames only apply within their own scope."""
        result = canonicalize("tcp", {"reachability": 100}, RENAMES)
        assert result == {"nmis.reachability": 100}

    def test_values_pass_through(self) -> None:
        """Test that values are not converted or coerced."""
        values = {"a": "12", "b": None, "c": 1.5, "d": [1, 2]}
        result = canonicalize("none", values, RENAMES)
        assert list(result.values()) == ["12", None, 1.5, [1, 2]]

    def test_does_not_mutate_input(self) -> None:
        """Test that the input mapping is left unchanged."""
        raw = {"reachability": 100, "x_raw": 1}
        canonicalize("health", raw, RENAMES)
        assert raw == {"reachability": 100, "x_raw": 1}

    def test_every_key_canonical_or_prefixed(self) -> None:
        """Test the output key invariant against the built-in tables."""
        renames = DEFAULT_FIELD_RENAMES["interface"]
        canonical_names = set(renames["interface"].values())
        raw = {
            "ifInOctets": 1,
            "ifOutOctets": 2,
            "ifInOctets_raw": 3,
            "ifAlias": "uplink",
            "weird key": 4,
        }

        result = canonicalize("interface", raw, renames)

        for key in result:
            assert not key.endswith(RAW_SUFFIX)
            assert key in canonical_names or key.startswith(FIELD_NAMESPACE)

    def test_hc_and_32bit_counters_both_kept(self) -> None:
        """Test that 64-bit and 32-bit octet counters do not overwrite each other."""
        raw = {"ifHCInOctets": 5_000_000_000, "ifInOctets": 705032704}

        result = canonicalize("interface", raw, DEFAULT_FIELD_RENAMES["interface"])

        assert result == {"network.in.hc_octets": 5_000_000_000, "network.in.octets": 705032704}

    def test_colliding_renames_keep_both_values(self) -> None:
        """Test that a second field renamed onto a taken name is namespaced instead."""
        renames = {"interface": {"ifInOctets": "network.in", "ifHCInOctets": "network.in"}}

        result = canonicalize("interface", {"ifHCInOctets": 2, "ifInOctets": 1}, renames)

        assert result == {"network.in": 2, "nmis.ifInOctets": 1}


class TestFilterDerived:
    """Tests for filter_derived function."""

    def test_excludes_reserved_prefixes(self) -> None:
        """Test that keys starting with 08 or 16 are dropped."""
        derived = {"08_reachability": 1, "16_health": 2, "healthScore": 99, "1608": 3}
        assert filter_derived(derived) == {"healthScore": 99}

    def test_other_numeric_prefixes_kept(self) -> None:
        """Test that only the two reserved codes are excluded."""
        assert filter_derived({"07_x": 1, "80_y": 2}) == {"07_x": 1, "80_y": 2}

    def test_non_mapping(self) -> None:
        """Test that missing or malformed derived data yields an empty dict."""
        assert filter_derived(None) == {}
        assert filter_derived("nope") == {}  # type: ignore[arg-type]
