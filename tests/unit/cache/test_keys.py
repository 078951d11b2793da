"""Tests for cache key generation."""

from bahngate.cache.keys import HASH_FUNCTION_ID, CacheKeys, canonical_params, combined_hash


class TestCombinedHash:
    """Test the parameter digest."""

    def test_empty_string(self) -> None:
        assert combined_hash("") == "00z7gcou"

    def test_single_character(self) -> None:
        assert combined_hash("a") == "007r43bm"

    def test_two_characters(self) -> None:
        assert combined_hash("ab") == "00lhzjky"

    def test_is_deterministic(self) -> None:
        text = '{"from":"8000105","to":"8000261"}'
        assert combined_hash(text) == combined_hash(text)

    def test_shape(self) -> None:
        digest = combined_hash('{"date":"2025-01-01","from":"Berlin Hbf"}')
        assert len(digest) == 8
        assert set(digest) <= set("0123456789abcdefghijklmnopqrstuvwxyz")

    def test_non_bmp_text(self) -> None:
        """Characters outside the BMP hash as surrogate pairs."""
        assert len(combined_hash("Zug 🚆")) == 8
        assert combined_hash("Zug 🚆") != combined_hash("Zug ")

    def test_hash_function_id(self) -> None:
        assert HASH_FUNCTION_ID == "custom-djb2-fnv1a"


class TestCanonicalParams:
    """Test canonical parameter rendering."""

    def test_sorted_compact_json(self) -> None:
        assert canonical_params({"to": "B", "from": "A", "adults": 2}) == (
            '{"adults":2,"from":"A","to":"B"}'
        )

    def test_order_insensitive(self) -> None:
        assert canonical_params({"a": 1, "b": 2}) == canonical_params({"b": 2, "a": 1})

    def test_drops_callables(self) -> None:
        params = {"a": 1, "callback": lambda: None}
        assert canonical_params(params) == '{"a":1}'

    def test_drops_unserializable_values(self) -> None:
        params = {"a": 1, "marker": object(), "tags": {"x"}}
        assert canonical_params(params) == '{"a":1}'

    def test_keeps_null(self) -> None:
        assert canonical_params({"a": None}) == '{"a":null}'

    def test_nested_objects_sorted(self) -> None:
        assert canonical_params({"filter": {"z": 1, "a": 2}}) == '{"filter":{"a":2,"z":1}}'


class TestCacheKeys:
    """Test cache key generation."""

    def test_params_key(self) -> None:
        key = CacheKeys.for_params("journeys", {"from": "A", "to": "B"})
        digest = combined_hash('{"from":"A","to":"B"}')
        assert key == f"bahngate:journeys:{digest}"

    def test_params_key_order_insensitive(self) -> None:
        first = CacheKeys.derive("journeys", {"from": "A", "to": "B", "date": "2025-01-01"})
        second = CacheKeys.derive("journeys", {"date": "2025-01-01", "to": "B", "from": "A"})
        assert first == second

    def test_params_key_ignores_dropped_entries(self) -> None:
        first = CacheKeys.derive("journeys", {"from": "A"})
        second = CacheKeys.derive("journeys", {"from": "A", "on_done": print})
        assert first == second

    def test_params_key_differs_by_value(self) -> None:
        assert CacheKeys.derive("journeys", {"from": "A"}) != CacheKeys.derive(
            "journeys", {"from": "B"}
        )

    def test_name_key_with_prefix(self) -> None:
        assert CacheKeys.derive("stations", key_prefix="static") == "bahngate:static:stations"

    def test_name_key_default_prefix(self) -> None:
        assert CacheKeys.derive("stations") == "bahngate:default:stations"

    def test_empty_params_use_name_key(self) -> None:
        assert CacheKeys.derive("stations", {}, key_prefix="static") == "bahngate:static:stations"

    def test_namespace_pattern(self) -> None:
        assert CacheKeys.namespace_pattern() == "bahngate:*"

    def test_in_namespace(self) -> None:
        assert CacheKeys.in_namespace("bahngate:journeys:*")
        assert not CacheKeys.in_namespace("ratelimit:*")
        assert not CacheKeys.in_namespace("*")
