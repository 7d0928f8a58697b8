"""Tests for services.reservations."""

from __future__ import annotations

import time
from datetime import UTC, datetime

import pytest

from api.exceptions import ReservationConflictError, ValidationError
from services.cache import MemoryCache
from services.reservations import ReservationManager, lock_key

SKU = "NIKE-SHO-L-BLK-001"


@pytest.fixture
def manager(cache: MemoryCache) -> ReservationManager:
    return ReservationManager(cache, default_ttl=300)


class TestReserve:
    def test_success(self, manager: ReservationManager, cache: MemoryCache) -> None:
        before = datetime.now(UTC)
        result = manager.reserve(SKU, "A")
        assert result.success is True
        assert result.holder_id == "A"
        assert result.expires_at is not None
        assert (result.expires_at - before).total_seconds() >= 299
        assert cache.get(lock_key(SKU)) == "A"
        assert cache.ttl(lock_key(SKU)) == 300

    def test_mutual_exclusion(self, manager: ReservationManager) -> None:
        assert manager.reserve(SKU, "A").success is True
        second = manager.reserve(SKU, "B")
        assert second.success is False
        assert second.expires_at is None
        assert manager.holder_of(SKU) == "A"

    def test_same_holder_does_not_refresh(
        self, manager: ReservationManager, cache: MemoryCache, clock
    ) -> None:
        manager.reserve(SKU, "A", ttl_seconds=60)
        clock.advance(30)
        assert manager.reserve(SKU, "A", ttl_seconds=60).success is False
        assert cache.ttl(lock_key(SKU)) == 30

    def test_available_after_release(self, manager: ReservationManager) -> None:
        manager.reserve(SKU, "A")
        manager.release(SKU, "A")
        assert manager.reserve(SKU, "B").success is True

    def test_expires(self, manager: ReservationManager, clock) -> None:
        manager.reserve(SKU, "A", ttl_seconds=1)
        clock.advance(1.1)
        assert manager.is_reserved(SKU) is False
        assert manager.reserve(SKU, "B", ttl_seconds=1).success is True

    def test_expires_in_real_time(self) -> None:
        manager = ReservationManager(MemoryCache())
        manager.reserve(SKU, "A", ttl_seconds=1)
        time.sleep(1.1)
        assert manager.reserve(SKU, "B").success is True

    @pytest.mark.parametrize(("holder", "ttl"), [("", 60), ("A", 0), ("A", -5)])
    def test_rejects_bad_arguments(
        self, manager: ReservationManager, holder: str, ttl: int
    ) -> None:
        with pytest.raises(ValidationError):
            manager.reserve(SKU, holder, ttl_seconds=ttl)

    def test_reserve_or_raise(self, manager: ReservationManager) -> None:
        manager.reserve_or_raise(SKU, "A")
        with pytest.raises(ReservationConflictError):
            manager.reserve_or_raise(SKU, "B")


class TestRelease:
    def test_idempotent(self, manager: ReservationManager) -> None:
        assert manager.release(SKU) is False
        manager.reserve(SKU, "A")
        assert manager.release(SKU, "A") is True
        assert manager.release(SKU, "A") is False

    def test_wrong_holder_is_refused(self, manager: ReservationManager) -> None:
        manager.reserve(SKU, "A")
        with pytest.raises(ReservationConflictError):
            manager.release(SKU, "B")
        assert manager.holder_of(SKU) == "A"

    def test_without_holder_is_unconditional(self, manager: ReservationManager) -> None:
        manager.reserve(SKU, "A")
        assert manager.release(SKU) is True
        assert manager.is_reserved(SKU) is False

    def test_force_release(self, manager: ReservationManager) -> None:
        manager.reserve(SKU, "A")
        assert manager.force_release(SKU) is True
        assert manager.force_release(SKU) is False

    def test_only_affects_named_sku(self, manager: ReservationManager) -> None:
        manager.reserve(SKU, "A")
        manager.reserve("NIKE-SHO-L-BLK-002", "A")
        manager.release(SKU, "A")
        assert manager.is_reserved("NIKE-SHO-L-BLK-002") is True
