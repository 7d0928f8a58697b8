"""Bounded-retry uniqueness check for candidate SKUs."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from typing import Protocol

from api.exceptions import SKUExhaustedError
from services.cache import CacheUnavailableError
from services.reservations import ReservationManager
from utils.sku import build_sku, format_sequence, parse_sku

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 10


class SkuLookup(Protocol):
    def exists(self, sku: str, exclude_product_id: int | None = None) -> bool: ...


def random_sequence() -> str:
    """A cryptographically random sequence between 001 and 999."""
    return format_sequence(secrets.randbelow(999) + 1)


def with_random_sequence(sku: str) -> str:
    """Keep the first four fields of *sku* and replace its sequence."""
    components = parse_sku(sku)
    if components is None:
        msg = f"Cannot derive a new candidate from malformed SKU {sku!r}"
        raise ValueError(msg)
    return build_sku(
        components.brand,
        components.category,
        components.size,
        components.color,
        random_sequence(),
    )


class UniquenessVerifier:
    """Confirm a candidate is free, swapping in random sequences on collision."""

    def __init__(
        self,
        catalog: SkuLookup,
        reservations: ReservationManager,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self.catalog = catalog
        self.reservations = reservations
        self.max_attempts = max_attempts

    def ensure_unique(
        self,
        candidate: str,
        holder_id: str | None = None,
        claim: Callable[[str], bool] | None = None,
    ) -> str:
        """Return the first free SKU starting from *candidate*.

        A candidate is taken if it is committed in the catalog or reserved by
        anyone other than *holder_id*. When given, *claim* is called on a free
        candidate and returning False counts as a collision; callers use it
        to reserve atomically. Raises SKUExhaustedError after max_attempts.
        """
        sku = candidate
        for attempt in range(1, self.max_attempts + 1):
            if self._is_free(sku, holder_id) and (claim is None or claim(sku)):
                if attempt > 1:
                    logger.info(
                        "SKU candidate %s collided, settled on %s after %d attempts",
                        candidate, sku, attempt,
                    )
                return sku
            logger.debug("SKU %s is taken (attempt %d)", sku, attempt)
            sku = with_random_sequence(sku)

        logger.error(
            "Unable to find a unique SKU from %s after %d attempts",
            candidate, self.max_attempts,
        )
        msg = f"Unable to generate unique SKU after {self.max_attempts} attempts"
        raise SKUExhaustedError(msg)

    def _is_free(self, sku: str, holder_id: str | None) -> bool:
        if self.catalog.exists(sku):
            return False
        try:
            holder = self.reservations.holder_of(sku)
        except CacheUnavailableError as exc:
            logger.warning("Reservation check for %s skipped, cache unavailable: %s", sku, exc)
            return True
        return holder is None or (holder_id is not None and holder == holder_id)
