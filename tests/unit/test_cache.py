"""Unit tests for the TTL cache and cache keys."""

from trialscope.utils.cache import TTLCache, cache_key


class TestCacheKey:
    def test_deterministic_regardless_of_dict_order(self):
        k1 = cache_key("ns", {"a": 1, "b": 2})
        k2 = cache_key("ns", {"b": 2, "a": 1})
        assert k1 == k2

    def test_different_namespace_different_key(self):
        assert cache_key("pagination", {"a": 1}) != cache_key("client_filter", {"a": 1})

    def test_different_params_different_key(self):
        assert cache_key("ns", {"a": 1}) != cache_key("ns", {"a": 2})


class TestTTLCache:
    def test_get_missing_returns_none(self, clock):
        cache = TTLCache(60, clock)
        assert cache.get("nope") is None

    def test_entry_lives_until_ttl(self, clock):
        cache = TTLCache(60, clock)
        cache.set("k", "v")

        clock.advance(59.9)
        assert cache.get("k") == "v"

        clock.advance(0.1)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_reads_do_not_refresh(self, clock):
        cache = TTLCache(60, clock)
        cache.set("k", "v")
        clock.advance(30)
        cache.get("k")
        clock.advance(30)
        assert "k" not in cache

    def test_set_replaces_entry_and_restarts_ttl(self, clock):
        cache = TTLCache(60, clock)
        cache.set("k", "old")
        clock.advance(50)
        cache.set("k", "new")
        clock.advance(50)
        assert cache.get("k") == "new"

    def test_setdefault_creates_once(self, clock):
        cache = TTLCache(60, clock)
        first = cache.setdefault("k", list)
        first.append(1)
        assert cache.setdefault("k", list) == [1]

        clock.advance(60)
        assert cache.setdefault("k", list) == []

    def test_pop(self, clock):
        cache = TTLCache(60, clock)
        cache.set("k", "v")
        assert cache.pop("k") == "v"
        assert cache.pop("k") is None

    def test_purge_expired(self, clock):
        cache = TTLCache(60, clock)
        cache.set("old", 1)
        clock.advance(45)
        cache.set("new", 2)
        clock.advance(20)

        assert cache.purge_expired() == 1
        assert len(cache) == 1
        assert cache.get("new") == 2
