"""Per brand/category sequence allocation.

The primary path is an atomic counter in the shared cache, keyed by
``sku:seq:{BRAND}:{CATEGORY}``. A counter seen for the first time is
backfilled from the catalog so it never restarts below the highest committed
sequence. When the cache is unreachable the allocator falls back to reading
the catalog maximum directly; that path is not race-free and relies on the
uniqueness verifier to catch collisions.
"""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from services.cache import CacheUnavailableError, SharedCache
from utils.sku import format_sequence, sku_prefix

logger = logging.getLogger(__name__)

SEQUENCE_PREFIX = "sku:seq:"
DEFAULT_SEQUENCE_TTL = 86400


class SequenceSource(Protocol):
    def find_max_sequence(self, prefix: str) -> int | None: ...


def sequence_key(brand: str, category: str) -> str:
    return f"{SEQUENCE_PREFIX}{brand}:{category}"


class SequenceAllocator:
    """Hand out increasing sequence numbers for (brand, category) pairs."""

    def __init__(
        self,
        cache: SharedCache,
        catalog: SequenceSource,
        ttl_seconds: int = DEFAULT_SEQUENCE_TTL,
    ) -> None:
        self.cache = cache
        self.catalog = catalog
        self.ttl_seconds = ttl_seconds
        self.degraded_allocations = 0
        self._stats_lock = threading.Lock()

    def next_sequence(self, brand: str, category: str) -> str:
        """Return the next sequence for the pair, zero-padded to 3+ digits."""
        try:
            number = self._next_from_cache(brand, category)
        except CacheUnavailableError as exc:
            number = self._next_from_catalog(brand, category, exc)
        return format_sequence(number)

    def peek_sequence(self, brand: str, category: str) -> str | None:
        """Return the last issued sequence without advancing, if known."""
        try:
            value = self.cache.get(sequence_key(brand, category))
        except CacheUnavailableError:
            return None
        if value is None:
            return None
        return format_sequence(int(value))

    def _next_from_cache(self, brand: str, category: str) -> int:
        key = sequence_key(brand, category)
        number = self.cache.increment(key)
        if number != 1:
            return number

        # First increment: the counter was missing (never used or expired)
        self.cache.expire(key, self.ttl_seconds)
        committed_max = self.catalog.find_max_sequence(sku_prefix(brand, category))
        if not committed_max:
            return number

        number = self.cache.increment_to_at_least(key, committed_max + 1)
        self.cache.expire(key, self.ttl_seconds)
        logger.info(
            "Backfilled sequence counter %s from catalog max %d, issued %d",
            key, committed_max, number,
        )
        return number

    def _next_from_catalog(
        self,
        brand: str,
        category: str,
        cause: CacheUnavailableError,
    ) -> int:
        with self._stats_lock:
            self.degraded_allocations += 1
        committed_max = self.catalog.find_max_sequence(sku_prefix(brand, category))
        number = (committed_max or 0) + 1
        logger.warning(
            "degraded sequence allocation for %s-%s: cache unavailable (%s), "
            "issued %d from catalog",
            brand, category, cause, number,
        )
        return number
