"""Adhan Notifier — Cached Loader.

TTL-bounded read-through cache over the two stored documents (prayer
times and subscribers). Reads are normalized on the way in: legacy
subscriber lists of bare chat ids are migrated to full records and the
corrected list is written back. Store faults never escape; a missing or
unreadable document degrades to an empty list.

Usage:
    loader = CachedLoader(store, clock, ttl_seconds=300)
    subscribers = await loader.get_subscribers()
    today = await loader.get_day_schedule("2024-01-01")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Protocol

from src.database.documents import (
    DocumentCorruptError,
    DocumentError,
    DocumentNotFoundError,
)
from src.database.models import (
    DEFAULT_LEAD_MINUTES,
    DaySchedule,
    StoreName,
    Subscriber,
    SubscriberSettings,
    is_valid_lead_minutes,
    is_valid_recipient_id,
    normalize_recipient_id,
)
from src.utils.clock import Clock
from src.utils.logger import get_logger

logger = get_logger(__name__)


class BackingStore(Protocol):
    """What the loader needs from a document store."""

    async def load(self, name: str) -> Any: ...

    async def save(self, name: str, value: Any) -> None: ...


@dataclass
class _CacheEntry:
    value: list
    loaded_at_ms: int


def normalize_subscribers(
    raw: Any,
    default_lead_minutes: int = DEFAULT_LEAD_MINUTES,
) -> tuple[list[Subscriber], int]:
    """Repair a persisted subscriber list.

    - bare ids (legacy format) become {id, settings: defaults}
    - missing or invalid settings get defaults
    - entries without a usable id, and non-object entries, are dropped
    - numeric-string ids become ints
    - duplicate ids keep the first record

    Args:
        raw: The parsed subscribers document.
        default_lead_minutes: Lead time given to repaired records.

    Returns:
        (subscribers, corrections) where corrections counts the entries
        that had to be changed or dropped.
    """
    if not isinstance(raw, list):
        return [], 1

    subscribers: list[Subscriber] = []
    seen: set[Any] = set()
    corrections = 0
    defaults = SubscriberSettings(lead_minutes=default_lead_minutes)

    for entry in raw:
        if is_valid_recipient_id(entry):
            subscriber = Subscriber(id=entry, settings=defaults)
            corrections += 1
        elif isinstance(entry, dict) and is_valid_recipient_id(entry.get("id")):
            settings = entry.get("settings")
            lead = settings.get("leadMinutes") if isinstance(settings, dict) else None
            if is_valid_lead_minutes(lead):
                subscriber = Subscriber(
                    id=entry["id"],
                    settings=SubscriberSettings(lead_minutes=lead),
                )
            else:
                subscriber = Subscriber(id=entry["id"], settings=defaults)
                corrections += 1
        else:
            corrections += 1
            continue

        chat_id = normalize_recipient_id(subscriber.id)
        if chat_id != subscriber.id:
            subscriber = Subscriber(id=chat_id, settings=subscriber.settings)
            corrections += 1
        if subscriber.id in seen:
            corrections += 1
            continue
        seen.add(subscriber.id)
        subscribers.append(subscriber)

    return subscribers, corrections


def parse_schedule(raw: Any) -> list[DaySchedule]:
    """Parse the prayer-times document, skipping records without a date."""
    if not isinstance(raw, list):
        logger.warning("Prayer times document is not a list, ignoring it")
        return []

    days: list[DaySchedule] = []
    for record in raw:
        day = DaySchedule.from_dict(record)
        if day is None:
            logger.debug("Skipping prayer-times record without a valid date: %r", record)
            continue
        days.append(day)
    return days


class CachedLoader:
    """Read-through cache over the prayer-times and subscriber documents.

    Attributes:
        store: Backing document store.
        clock: Clock used for cache ages.
        ttl_ms: Cache lifetime in milliseconds.
        default_lead_minutes: Lead time applied when repairing records.
    """

    def __init__(
        self,
        store: BackingStore,
        clock: Clock,
        ttl_seconds: int = 300,
        default_lead_minutes: int = DEFAULT_LEAD_MINUTES,
    ) -> None:
        self.store = store
        self.clock = clock
        self.ttl_ms = ttl_seconds * 1000
        self.default_lead_minutes = default_lead_minutes
        self._cache: dict[StoreName, _CacheEntry] = {}

    # ── Generic interface ────────────────────────────────

    async def load(self, name: StoreName) -> list:
        """Load a document through the cache.

        Returns:
            list[DaySchedule] for SCHEDULE, list[Subscriber] for SUBSCRIBERS.
            A copy of the cached list; callers may not share it.
        """
        entry = self._cache.get(name)
        now = self.clock.epoch_millis()
        if entry is not None and now - entry.loaded_at_ms < self.ttl_ms:
            return list(entry.value)

        if name is StoreName.SCHEDULE:
            value = await self._read_schedule()
        else:
            value = await self._read_subscribers()

        self._cache[name] = _CacheEntry(value=value, loaded_at_ms=self.clock.epoch_millis())
        return list(value)

    async def save(self, name: StoreName, value: Iterable[Any]) -> bool:
        """Persist a document and refresh its cache entry.

        Args:
            name: Which document to write.
            value: DaySchedule objects for SCHEDULE, Subscriber objects
                for SUBSCRIBERS.

        Returns:
            True on success, False if the write failed.
        """
        items = list(value)
        if name is StoreName.SUBSCRIBERS:
            valid = [s for s in items if is_valid_recipient_id(s.id)]
            if len(valid) != len(items):
                logger.warning(
                    "Dropping %d subscriber(s) without a valid id before save",
                    len(items) - len(valid),
                )
            items = valid

        try:
            await self.store.save(name.value, [item.to_dict() for item in items])
        except DocumentError as e:
            logger.error("Failed to save %s: %s", name.value, e)
            return False

        self._cache[name] = _CacheEntry(value=items, loaded_at_ms=self.clock.epoch_millis())
        logger.debug("Saved %s (%d entries)", name.value, len(items))
        return True

    # ── Typed helpers ────────────────────────────────────

    async def get_subscribers(self) -> list[Subscriber]:
        return await self.load(StoreName.SUBSCRIBERS)

    async def get_day_schedule(self, date: str) -> Optional[DaySchedule]:
        """Find the prayer times for one date.

        Returns:
            The DaySchedule for date, or None if none was published.
        """
        for day in await self.load(StoreName.SCHEDULE):
            if day.date == date:
                return day
        return None

    async def save_subscribers(self, subscribers: Iterable[Subscriber]) -> bool:
        return await self.save(StoreName.SUBSCRIBERS, subscribers)

    async def save_schedule(self, days: Iterable[DaySchedule]) -> bool:
        return await self.save(StoreName.SCHEDULE, days)

    # ── Housekeeping ─────────────────────────────────────

    def invalidate(self, name: Optional[StoreName] = None) -> None:
        """Forget one cached document, or all of them."""
        if name is None:
            self._cache.clear()
        else:
            self._cache.pop(name, None)

    def purge_expired(self) -> int:
        """Drop cache entries older than the TTL.

        Returns:
            Number of entries dropped.
        """
        now = self.clock.epoch_millis()
        expired = [
            name for name, entry in self._cache.items()
            if now - entry.loaded_at_ms >= self.ttl_ms
        ]
        for name in expired:
            del self._cache[name]
        return len(expired)

    # ── Backing store reads ──────────────────────────────

    async def _read_schedule(self) -> list[DaySchedule]:
        try:
            raw = await self.store.load(StoreName.SCHEDULE.value)
        except DocumentNotFoundError:
            logger.debug("No prayer times stored yet")
            return []
        except DocumentCorruptError as e:
            logger.error("Prayer times unreadable, treating as empty: %s", e)
            return []
        return parse_schedule(raw)

    async def _read_subscribers(self) -> list[Subscriber]:
        name = StoreName.SUBSCRIBERS
        try:
            raw = await self.store.load(name.value)
        except DocumentNotFoundError:
            logger.info("No subscribers stored yet, creating an empty list")
            await self._write_back(name, [])
            return []
        except DocumentCorruptError as e:
            logger.error("Subscribers unreadable, resetting to empty: %s", e)
            await self._write_back(name, [])
            return []

        subscribers, corrections = normalize_subscribers(raw, self.default_lead_minutes)
        if corrections:
            logger.warning(
                "Repaired %d subscriber entr%s, writing corrected list back",
                corrections, "y" if corrections == 1 else "ies",
            )
            await self._write_back(name, [s.to_dict() for s in subscribers])
        return subscribers

    async def _write_back(self, name: StoreName, raw: list) -> None:
        try:
            await self.store.save(name.value, raw)
        except DocumentError as e:
            # The repaired value is still served from cache
            logger.error("Write-back of %s failed: %s", name.value, e)
