"""Tests for services.cache."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock, patch

import pytest
import redis

from services.cache import (
    CacheUnavailableError,
    MemoryCache,
    RedisCache,
    create_cache,
)

# =========================================================================
# MemoryCache
# =========================================================================


class TestMemoryCacheCounters:
    def test_increment_from_missing(self, cache: MemoryCache) -> None:
        assert cache.increment("k") == 1
        assert cache.increment("k") == 2
        assert cache.get("k") == "2"

    def test_increment_keeps_ttl(self, cache: MemoryCache, clock) -> None:
        cache.increment("k")
        cache.expire("k", 10)
        cache.increment("k")
        assert cache.ttl("k") == 10
        clock.advance(11)
        assert cache.get("k") is None
        assert cache.increment("k") == 1

    def test_increment_to_at_least_raises_low_counter(self, cache: MemoryCache) -> None:
        cache.increment("k")
        assert cache.increment_to_at_least("k", 8) == 8
        assert cache.increment("k") == 9

    def test_increment_to_at_least_increments_high_counter(self, cache: MemoryCache) -> None:
        cache.increment_to_at_least("k", 20)
        assert cache.increment_to_at_least("k", 8) == 21

    def test_concurrent_increments_are_unique(self, cache: MemoryCache) -> None:
        results: list[int] = []
        lock = threading.Lock()

        def worker() -> None:
            for _ in range(100):
                value = cache.increment("k")
                with lock:
                    results.append(value)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(results) == list(range(1, 801))


class TestMemoryCacheConditionalOps:
    def test_set_if_absent(self, cache: MemoryCache) -> None:
        assert cache.set_if_absent("lock", "A", 60) is True
        assert cache.set_if_absent("lock", "B", 60) is False
        assert cache.get("lock") == "A"

    def test_set_if_absent_after_expiry(self, cache: MemoryCache, clock) -> None:
        cache.set_if_absent("lock", "A", 1)
        clock.advance(1.01)
        assert cache.set_if_absent("lock", "B", 1) is True
        assert cache.get("lock") == "B"

    def test_delete(self, cache: MemoryCache) -> None:
        cache.increment("k")
        assert cache.delete("k") is True
        assert cache.delete("k") is False

    def test_delete_if_equals(self, cache: MemoryCache) -> None:
        cache.set_if_absent("k", "A", 60)
        assert cache.delete_if_equals("k", "B") is False
        assert cache.get("k") == "A"
        assert cache.delete_if_equals("k", "A") is True
        assert cache.get("k") is None

    def test_expire_missing_key(self, cache: MemoryCache) -> None:
        assert cache.expire("missing", 10) is False

    def test_ttl(self, cache: MemoryCache, clock) -> None:
        cache.increment("persistent")
        cache.set_if_absent("temp", "v", 30)
        clock.advance(10)
        assert cache.ttl("persistent") is None
        assert cache.ttl("temp") == 20
        assert cache.ttl("missing") is None

    def test_ping(self, cache: MemoryCache) -> None:
        assert cache.ping() is True


# =========================================================================
# RedisCache
# =========================================================================


@pytest.fixture
def redis_client() -> MagicMock:
    client = MagicMock(spec=redis.Redis)
    client.register_script.side_effect = lambda source: MagicMock(name="script")
    return client


class TestRedisCache:
    def test_registers_scripts(self, redis_client: MagicMock) -> None:
        RedisCache(redis_client)
        assert redis_client.register_script.call_count == 2

    def test_increment(self, redis_client: MagicMock) -> None:
        redis_client.incr.return_value = 7
        assert RedisCache(redis_client).increment("sku:seq:NIKE:SHO") == 7
        redis_client.incr.assert_called_once_with("sku:seq:NIKE:SHO")

    def test_set_if_absent_uses_nx_and_ex(self, redis_client: MagicMock) -> None:
        redis_client.set.return_value = True
        assert RedisCache(redis_client).set_if_absent("sku:lock:X", "A", 300) is True
        redis_client.set.assert_called_once_with("sku:lock:X", "A", ex=300, nx=True)

    def test_set_if_absent_conflict(self, redis_client: MagicMock) -> None:
        redis_client.set.return_value = None
        assert RedisCache(redis_client).set_if_absent("sku:lock:X", "A", 300) is False

    def test_increment_to_at_least_runs_script(self, redis_client: MagicMock) -> None:
        cache = RedisCache(redis_client)
        cache._increment_to_at_least.return_value = 6
        assert cache.increment_to_at_least("k", 6) == 6
        cache._increment_to_at_least.assert_called_once_with(keys=["k"], args=[6])

    def test_delete_if_equals_runs_script(self, redis_client: MagicMock) -> None:
        cache = RedisCache(redis_client)
        cache._delete_if_equals.return_value = 0
        assert cache.delete_if_equals("k", "A") is False
        cache._delete_if_equals.assert_called_once_with(keys=["k"], args=["A"])

    @pytest.mark.parametrize(("raw", "expected"), [(-2, None), (-1, None), (42, 42)])
    def test_ttl_mapping(self, redis_client: MagicMock, raw: int, expected) -> None:
        redis_client.ttl.return_value = raw
        assert RedisCache(redis_client).ttl("k") == expected

    @pytest.mark.parametrize(
        "error",
        [redis.exceptions.ConnectionError("refused"), redis.exceptions.TimeoutError("slow")],
    )
    def test_outage_becomes_cache_unavailable(self, redis_client: MagicMock, error) -> None:
        redis_client.incr.side_effect = error
        with pytest.raises(CacheUnavailableError, match="INCR"):
            RedisCache(redis_client).increment("k")

    def test_other_redis_errors_propagate(self, redis_client: MagicMock) -> None:
        redis_client.incr.side_effect = redis.exceptions.ResponseError("not an integer")
        with pytest.raises(redis.exceptions.ResponseError):
            RedisCache(redis_client).increment("k")

    def test_ping_failure_is_false(self, redis_client: MagicMock) -> None:
        redis_client.ping.side_effect = redis.exceptions.ConnectionError("refused")
        assert RedisCache(redis_client).ping() is False


class TestCreateCache:
    def test_memory_without_url(self) -> None:
        assert isinstance(create_cache(""), MemoryCache)

    def test_redis_with_url(self) -> None:
        with patch("services.cache.redis.Redis.from_url") as from_url:
            cache = create_cache("redis://localhost:6379/0", socket_timeout=0.5)
        assert isinstance(cache, RedisCache)
        from_url.assert_called_once_with(
            "redis://localhost:6379/0",
            decode_responses=True,
            socket_timeout=0.5,
            socket_connect_timeout=0.5,
        )
