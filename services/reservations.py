"""Short-lived exclusive holds on SKU strings.

A reservation is a cache key ``sku:lock:{SKU}`` whose value is the holder
identity and whose TTL is the hold duration. Acquisition is a single
set-if-absent, so at most one live reservation exists per SKU. Expiry is the
only way an abandoned hold is cleared; there is no renewal.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel

from api.exceptions import ReservationConflictError, ValidationError
from services.cache import SharedCache

logger = logging.getLogger(__name__)

LOCK_PREFIX = "sku:lock:"
DEFAULT_LOCK_TTL = 300


class ReservationResult(BaseModel):
    """Outcome of a reserve attempt."""

    success: bool
    sku: str
    holder_id: str
    expires_at: datetime | None = None


def lock_key(sku: str) -> str:
    return f"{LOCK_PREFIX}{sku}"


class ReservationManager:
    """Acquire, inspect and release SKU reservations."""

    def __init__(self, cache: SharedCache, default_ttl: int = DEFAULT_LOCK_TTL) -> None:
        self.cache = cache
        self.default_ttl = default_ttl

    def reserve(
        self,
        sku: str,
        holder_id: str,
        ttl_seconds: int | None = None,
    ) -> ReservationResult:
        """Hold *sku* for *holder_id* unless any live reservation exists.

        A failed attempt changes nothing, even when the existing holder is
        *holder_id* itself.
        """
        if not holder_id:
            msg = "holder_id is required to reserve a SKU"
            raise ValidationError(msg)
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        if ttl < 1:
            msg = "ttl_seconds must be at least 1"
            raise ValidationError(msg)

        acquired = self.cache.set_if_absent(lock_key(sku), holder_id, ttl)
        if not acquired:
            logger.info("SKU %s already reserved, %s did not get it", sku, holder_id)
            return ReservationResult(success=False, sku=sku, holder_id=holder_id)

        expires_at = datetime.now(UTC) + timedelta(seconds=ttl)
        logger.info("Reserved SKU %s for %s until %s", sku, holder_id, expires_at.isoformat())
        return ReservationResult(
            success=True, sku=sku, holder_id=holder_id, expires_at=expires_at
        )

    def reserve_or_raise(
        self,
        sku: str,
        holder_id: str,
        ttl_seconds: int | None = None,
    ) -> ReservationResult:
        """Like :meth:`reserve` but raise ReservationConflictError on failure."""
        result = self.reserve(sku, holder_id, ttl_seconds)
        if not result.success:
            msg = f"SKU {sku} is already reserved"
            raise ReservationConflictError(msg)
        return result

    def release(self, sku: str, holder_id: str | None = None) -> bool:
        """Drop the reservation on *sku*. Safe to call when none exists.

        With *holder_id*, only that holder's reservation is removed and a
        reservation owned by someone else raises ReservationConflictError.
        Without it, the release is unconditional (see :meth:`force_release`).
        Returns True if a reservation was removed.
        """
        if holder_id is None:
            return self.force_release(sku)

        key = lock_key(sku)
        if self.cache.delete_if_equals(key, holder_id):
            logger.info("Released SKU %s held by %s", sku, holder_id)
            return True

        current = self.cache.get(key)
        if current is not None and current != holder_id:
            logger.warning(
                "Refused release of SKU %s by %s: held by %s", sku, holder_id, current
            )
            msg = f"SKU {sku} is reserved by another holder"
            raise ReservationConflictError(msg)
        return False

    def force_release(self, sku: str) -> bool:
        """Unconditionally delete the reservation on *sku*."""
        removed = self.cache.delete(lock_key(sku))
        if removed:
            logger.info("Force-released SKU %s", sku)
        return removed

    def is_reserved(self, sku: str) -> bool:
        return self.cache.get(lock_key(sku)) is not None

    def holder_of(self, sku: str) -> str | None:
        """Return the identity holding *sku*, or None if it is free."""
        return self.cache.get(lock_key(sku))
