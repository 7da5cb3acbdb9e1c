"""Tests for the in-memory result cache."""
import pytest

from tcgprice.core.cache import ResultCache


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestResultCache:
    """Tests for ResultCache."""

    def test_get_missing_returns_none(self):
        cache = ResultCache()
        assert cache.get("nope") is None
        assert "nope" not in cache

    def test_set_and_get(self):
        cache = ResultCache()
        cache.set("k", [{"id": "swsh3-020"}])
        assert cache.get("k") == [{"id": "swsh3-020"}]
        assert len(cache) == 1

    def test_entry_expires_at_ttl(self):
        clock = FakeClock()
        cache = ResultCache(default_ttl=60, clock=clock)
        cache.set("k", "v")

        clock.now = 59.9
        assert cache.get("k") == "v"

        clock.now = 60
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_per_entry_ttl_overrides_default(self):
        clock = FakeClock()
        cache = ResultCache(default_ttl=60, clock=clock)
        cache.set("short", "v", ttl=5)
        cache.set("long", "v")

        clock.now = 10
        assert cache.get("short") is None
        assert cache.get("long") == "v"

    def test_overwrite_resets_age(self):
        clock = FakeClock()
        cache = ResultCache(default_ttl=60, clock=clock)
        cache.set("k", "old")
        clock.now = 50
        cache.set("k", "new")
        clock.now = 100

        entry = cache.get_entry("k")
        assert entry is not None
        assert entry.value == "new"
        assert entry.created_at == 50

    def test_lru_eviction(self):
        cache = ResultCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert cache.get("a") == 1
        assert cache.get("b") is None
        assert cache.get("c") == 3

    def test_invalidate_and_clear(self):
        cache = ResultCache()
        cache.set("a", 1)
        cache.set("b", 2)

        cache.invalidate("a")
        assert cache.get("a") is None
        assert cache.get("b") == 2

        cache.clear()
        assert len(cache) == 0


class TestMakeKey:
    """Cache keys are normalized so equivalent requests share an entry."""

    def test_parameter_order_does_not_matter(self):
        assert ResultCache.make_key(query="pikachu", set="base") == ResultCache.make_key(
            set="base", query="pikachu"
        )

    @pytest.mark.parametrize(
        "left,right",
        [
            ("Pikachu", "pikachu"),
            ("  pikachu ", "pikachu"),
            ("Charizard   VMAX", "charizard vmax"),
            (None, ""),
        ],
    )
    def test_values_are_normalized(self, left, right):
        assert ResultCache.make_key(query=left) == ResultCache.make_key(query=right)

    def test_distinct_values_differ(self):
        assert ResultCache.make_key(query="pikachu", include_pricing=True) != ResultCache.make_key(
            query="pikachu", include_pricing=False
        )

    def test_prefix(self):
        assert ResultCache.make_key("sets", language="en").startswith("sets:")
