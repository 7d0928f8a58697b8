"""Shared key-value cache used for sequence counters, reservations and analytics.

Every operation touches exactly one key and is atomic on that key. Two
implementations share the contract:

* :class:`RedisCache`: redis-py client, for multi-process deployments.
  Compound single-key operations run as Lua scripts.
* :class:`MemoryCache`: a lock-guarded dict, for single-process use and tests.

Connection failures and timeouts surface as :class:`CacheUnavailableError`,
which callers treat as the degraded-mode signal.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager

import redis

from api.exceptions import AppError

logger = logging.getLogger(__name__)


class CacheUnavailableError(AppError):
    """The shared cache could not be reached (connection error or timeout)."""

    status_code = 503


class SharedCache(ABC):
    """Atomic single-key operations over string values."""

    @abstractmethod
    def increment(self, key: str) -> int:
        """Atomically add one to the integer at *key* (missing counts as 0)."""

    @abstractmethod
    def increment_to_at_least(self, key: str, floor: int) -> int:
        """Atomically raise the counter to *floor*, or increment it if already there.

        Returns the value this call took: *floor* if the counter was below
        it, otherwise the incremented value. The key's TTL is kept.
        """

    @abstractmethod
    def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        """Set *key* with an expiry only if it does not exist."""

    @abstractmethod
    def get(self, key: str) -> str | None: ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete *key*. Returns True if it existed."""

    @abstractmethod
    def delete_if_equals(self, key: str, value: str) -> bool:
        """Delete *key* only if it currently holds *value*."""

    @abstractmethod
    def expire(self, key: str, ttl: int) -> bool:
        """Set a TTL on an existing key. Returns False if the key is missing."""

    @abstractmethod
    def ttl(self, key: str) -> int | None:
        """Seconds until *key* expires, or None if missing or persistent."""

    @abstractmethod
    def ping(self) -> bool: ...


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------

_INCREMENT_TO_AT_LEAST = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
local floor = tonumber(ARGV[1])
if current < floor then
    redis.call('SET', KEYS[1], floor, 'KEEPTTL')
    return floor
end
return redis.call('INCR', KEYS[1])
"""

_DELETE_IF_EQUALS = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


class RedisCache(SharedCache):
    """SharedCache backed by a redis-py client with ``decode_responses=True``."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client
        self._increment_to_at_least = client.register_script(_INCREMENT_TO_AT_LEAST)
        self._delete_if_equals = client.register_script(_DELETE_IF_EQUALS)

    @classmethod
    def from_url(cls, url: str, socket_timeout: float = 1.0) -> RedisCache:
        """Connect lazily to the Redis server at *url*."""
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError) as exc:
            msg = f"Redis {operation} failed: {exc}"
            raise CacheUnavailableError(msg) from exc

    def increment(self, key: str) -> int:
        with self._guard("INCR"):
            return int(self._client.incr(key))

    def increment_to_at_least(self, key: str, floor: int) -> int:
        with self._guard("increment_to_at_least"):
            return int(self._increment_to_at_least(keys=[key], args=[floor]))

    def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        with self._guard("SET NX"):
            return bool(self._client.set(key, value, ex=ttl, nx=True))

    def get(self, key: str) -> str | None:
        with self._guard("GET"):
            return self._client.get(key)

    def delete(self, key: str) -> bool:
        with self._guard("DEL"):
            return bool(self._client.delete(key))

    def delete_if_equals(self, key: str, value: str) -> bool:
        with self._guard("delete_if_equals"):
            return bool(self._delete_if_equals(keys=[key], args=[value]))

    def expire(self, key: str, ttl: int) -> bool:
        with self._guard("EXPIRE"):
            return bool(self._client.expire(key, ttl))

    def ttl(self, key: str) -> int | None:
        with self._guard("TTL"):
            remaining = int(self._client.ttl(key))
        # -2: missing, -1: no expiry
        return remaining if remaining >= 0 else None

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
            return False


# ---------------------------------------------------------------------------
# In-process
# ---------------------------------------------------------------------------


class MemoryCache(SharedCache):
    """Thread-safe in-process SharedCache with lazy TTL expiry.

    Not shared between processes; use RedisCache when more than one
    process allocates SKUs.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._data: dict[str, tuple[str, float | None]] = {}

    def _live(self, key: str) -> tuple[str, float | None] | None:
        """Return the entry for *key*, dropping it if expired. Caller holds the lock."""
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return entry

    def _expiry(self, ttl: int | None) -> float | None:
        return None if ttl is None else self._clock() + ttl

    def increment(self, key: str) -> int:
        with self._lock:
            entry = self._live(key)
            current, expires_at = (int(entry[0]), entry[1]) if entry else (0, None)
            self._data[key] = (str(current + 1), expires_at)
            return current + 1

    def increment_to_at_least(self, key: str, floor: int) -> int:
        with self._lock:
            entry = self._live(key)
            current, expires_at = (int(entry[0]), entry[1]) if entry else (0, None)
            taken = floor if current < floor else current + 1
            self._data[key] = (str(taken), expires_at)
            return taken

    def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        with self._lock:
            if self._live(key) is not None:
                return False
            self._data[key] = (value, self._expiry(ttl))
            return True

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._live(key)
            return entry[0] if entry else None

    def delete(self, key: str) -> bool:
        with self._lock:
            existed = self._live(key) is not None
            self._data.pop(key, None)
            return existed

    def delete_if_equals(self, key: str, value: str) -> bool:
        with self._lock:
            entry = self._live(key)
            if entry is None or entry[0] != value:
                return False
            del self._data[key]
            return True

    def expire(self, key: str, ttl: int) -> bool:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return False
            self._data[key] = (entry[0], self._expiry(ttl))
            return True

    def ttl(self, key: str) -> int | None:
        with self._lock:
            entry = self._live(key)
            if entry is None or entry[1] is None:
                return None
            return max(0, int(entry[1] - self._clock() + 0.999))

    def ping(self) -> bool:
        return True


def create_cache(redis_url: str, socket_timeout: float = 1.0) -> SharedCache:
    """Build the configured cache: Redis when a URL is given, else in-process."""
    if redis_url:
        logger.info("Using Redis shared cache")
        return RedisCache.from_url(redis_url, socket_timeout=socket_timeout)
    logger.warning("No REDIS_URL configured, using in-process cache")
    return MemoryCache()
