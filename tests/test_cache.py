"""Tests for the cache-aside store."""
import redis

from ticketing.cache import CacheStore, NullCache, build_cache, tickets_key


class BrokenRedis:
    """A client whose server is gone."""

    def get(self, key):
        raise redis.ConnectionError("connection refused")

    def set(self, key, value, ex=None):
        raise redis.ConnectionError("connection refused")

    def delete(self, *keys):
        raise redis.ConnectionError("connection refused")


class TestGetSet:
    def test_miss_returns_none(self, cache):
        assert cache.get("tickets:nothing") is None

    def test_set_then_get_round_trips_json(self, cache):
        cache.set("tickets:e1", [{"type": "VIP", "ticketsAvailable": 5}])
        assert cache.get("tickets:e1") == [{"type": "VIP", "ticketsAvailable": 5}]

    def test_set_overwrites(self, cache):
        cache.set("k", {"v": 1})
        cache.set("k", {"v": 2})
        assert cache.get("k") == {"v": 2}

    def test_set_applies_default_ttl(self, cache, redis_client):
        cache.set("k", 1)
        ttl = redis_client.ttl("k")
        assert 0 < ttl <= cache.default_ttl

    def test_set_applies_explicit_ttl(self, cache, redis_client):
        cache.set("k", 1, ttl=30)
        assert 0 < redis_client.ttl("k") <= 30


class TestInvalidate:
    def test_removes_keys(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        cache.invalidate("a", "b")
        assert cache.get("a") is None
        assert cache.get("b") is None

    def test_missing_key_is_noop(self, cache):
        cache.invalidate("never-set")
        assert cache.get("never-set") is None

    def test_no_keys_is_noop(self, cache):
        cache.invalidate()


class TestFetch:
    def test_loads_on_miss_and_serves_hit(self, cache):
        calls = []

        def loader():
            calls.append(1)
            return {"tickets": 5}

        assert cache.fetch(tickets_key("e1"), loader) == {"tickets": 5}
        assert cache.fetch(tickets_key("e1"), loader) == {"tickets": 5}
        assert len(calls) == 1

    def test_none_is_not_cached(self, cache):
        calls = []

        def loader():
            calls.append(1)
            return None

        assert cache.fetch("k", loader) is None
        assert cache.fetch("k", loader) is None
        assert len(calls) == 2

    def test_invalidate_forces_reload(self, cache):
        values = iter([1, 2])
        assert cache.fetch("k", lambda: next(values)) == 1
        cache.invalidate("k")
        assert cache.fetch("k", lambda: next(values)) == 2


class TestUnavailableRedis:
    def test_read_failure_degrades_to_miss(self):
        store = CacheStore(BrokenRedis())
        assert store.get("k") is None

    def test_fetch_falls_back_to_loader(self):
        store = CacheStore(BrokenRedis())
        assert store.fetch("k", lambda: [1, 2]) == [1, 2]

    def test_write_and_invalidate_failures_do_not_raise(self):
        store = CacheStore(BrokenRedis())
        store.set("k", 1)
        store.invalidate("k")


class TestNullCache:
    def test_always_misses(self):
        store = NullCache()
        store.set("k", 1)
        assert store.get("k") is None

    def test_fetch_always_loads(self):
        store = NullCache()
        calls = []
        store.fetch("k", lambda: calls.append(1) or "v")
        store.fetch("k", lambda: calls.append(1) or "v")
        assert len(calls) == 2

    def test_build_cache_without_url(self):
        assert isinstance(build_cache(""), NullCache)
