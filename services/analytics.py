"""Advisory SKU usage analytics.

Events are counted per day in the shared cache under
``sku:analytics:{event}:{YYYY-MM-DD}`` and the most recent ones are kept in an
in-process ring buffer. Nothing here is correctness-critical: write failures
are logged and dropped.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import UTC, date, datetime, timedelta

from pydantic import BaseModel, Field

from services.cache import CacheUnavailableError, SharedCache

logger = logging.getLogger(__name__)

ANALYTICS_PREFIX = "sku:analytics:"
DEFAULT_ANALYTICS_TTL = 86400 * 30
RECENT_EVENTS_LIMIT = 100

EVENT_GENERATED = "generated"
EVENT_BULK_GENERATED = "bulk_generated"
EVENT_VALIDATED = "validated"
EVENT_RESERVED = "reserved"
EVENT_RELEASED = "released"

EVENT_NAMES = (
    EVENT_GENERATED,
    EVENT_BULK_GENERATED,
    EVENT_VALIDATED,
    EVENT_RESERVED,
    EVENT_RELEASED,
)


class SkuEvent(BaseModel):
    """A single analytics record."""

    name: str
    sku: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    tags: dict[str, str] = Field(default_factory=dict)


class DailyCount(BaseModel):
    day: date
    counts: dict[str, int]


class AnalyticsSummary(BaseModel):
    date_from: date
    date_to: date
    total_generated: int = 0
    total_bulk_generated: int = 0
    total_validated: int = 0
    total_reserved: int = 0
    total_released: int = 0
    daily: list[DailyCount] = Field(default_factory=list)
    recent_activity: list[SkuEvent] = Field(default_factory=list)


def counter_key(event_name: str, day: date) -> str:
    return f"{ANALYTICS_PREFIX}{event_name}:{day.isoformat()}"


class SkuAnalytics:
    """Record SKU events and summarise them over a date range."""

    def __init__(self, cache: SharedCache, ttl_seconds: int = DEFAULT_ANALYTICS_TTL) -> None:
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self._recent: deque[SkuEvent] = deque(maxlen=RECENT_EVENTS_LIMIT)
        self._recent_lock = threading.Lock()

    @property
    def max_range_days(self) -> int:
        """Longest summary range; counters older than their TTL are gone anyway."""
        return max(1, self.ttl_seconds // 86400)

    def record(self, name: str, sku: str, **tags: object) -> SkuEvent:
        """Count an event. Never raises on cache failure."""
        event = SkuEvent(
            name=name,
            sku=sku,
            tags={k: str(v) for k, v in tags.items() if v is not None},
        )
        with self._recent_lock:
            self._recent.append(event)

        key = counter_key(name, event.timestamp.date())
        try:
            if self.cache.increment(key) == 1:
                self.cache.expire(key, self.ttl_seconds)
        except CacheUnavailableError as exc:
            logger.warning("SKU analytics write for %s (%s) dropped: %s", sku, name, exc)
        return event

    def recent(self, limit: int = 20) -> list[SkuEvent]:
        """Newest-first list of recently recorded events in this process."""
        with self._recent_lock:
            events = list(self._recent)
        return events[::-1][:limit]

    def summary(self, date_from: date, date_to: date) -> AnalyticsSummary:
        """Totals and per-day counts for every event between the two dates."""
        if date_to < date_from:
            msg = "date_to must not be before date_from"
            raise ValueError(msg)
        if (date_to - date_from).days + 1 > self.max_range_days:
            msg = f"Date range must not exceed {self.max_range_days} days"
            raise ValueError(msg)

        totals = dict.fromkeys(EVENT_NAMES, 0)
        daily: list[DailyCount] = []
        day = date_from
        while day <= date_to:
            counts = {name: self._count(name, day) for name in EVENT_NAMES}
            for name, count in counts.items():
                totals[name] += count
            daily.append(DailyCount(day=day, counts=counts))
            day += timedelta(days=1)

        return AnalyticsSummary(
            date_from=date_from,
            date_to=date_to,
            total_generated=totals[EVENT_GENERATED],
            total_bulk_generated=totals[EVENT_BULK_GENERATED],
            total_validated=totals[EVENT_VALIDATED],
            total_reserved=totals[EVENT_RESERVED],
            total_released=totals[EVENT_RELEASED],
            daily=daily,
            recent_activity=self.recent(),
        )

    def _count(self, name: str, day: date) -> int:
        try:
            value = self.cache.get(counter_key(name, day))
        except CacheUnavailableError as exc:
            logger.warning("SKU analytics read failed: %s", exc)
            return 0
        return int(value) if value else 0
