"""Adhan Notifier — Work Queue.

In-memory, time-sorted list of pending notifications for today. The
builder, rescheduler and dispatcher all mutate it from different
scheduled tasks, so every mutation goes through one asyncio.Lock:

    async with queue.locked() as items:
        items.append(...)

Items stay sorted by send_at (stable) and dedup keys stay unique.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable

from src.database.models import RecipientId, WorkItem, parse_hhmm
from src.utils.logger import get_logger

logger = get_logger(__name__)


def _sorted_unique(items: Iterable[WorkItem]) -> list[WorkItem]:
    """Sort by send_at keeping first occurrence of each dedup key."""
    seen: set[str] = set()
    unique: list[WorkItem] = []
    for item in items:
        if item.dedup_key in seen:
            continue
        seen.add(item.dedup_key)
        unique.append(item)
    return sorted(unique, key=lambda item: item.send_at)


class WorkQueue:
    """Single-writer container for today's WorkItems."""

    def __init__(self) -> None:
        self._items: list[WorkItem] = []
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def locked(self) -> AsyncIterator[list[WorkItem]]:
        """Critical section over the item list.

        Yields the live list for in-place mutation. On exit the list is
        re-sorted and duplicate dedup keys are dropped.
        """
        async with self._lock:
            try:
                yield self._items
            finally:
                self._items[:] = _sorted_unique(self._items)

    async def replace_all(self, items: Iterable[WorkItem]) -> int:
        """Swap in a freshly built queue.

        Returns:
            Number of items now queued.
        """
        async with self.locked() as current:
            current[:] = list(items)
        return len(self._items)

    async def clear(self) -> None:
        async with self.locked() as current:
            current.clear()

    async def add(self, items: Iterable[WorkItem]) -> int:
        """Insert items whose dedup key is not queued yet.

        Returns:
            Number of items actually inserted.
        """
        async with self.locked() as current:
            keys = {item.dedup_key for item in current}
            fresh = [item for item in items if item.dedup_key not in keys]
            current.extend(fresh)
        return len(fresh)

    async def take_due(self, now_hhmm: str) -> tuple[list[WorkItem], int]:
        """Remove and return the items due this minute.

        Items scheduled exactly at now_hhmm are returned. Items scheduled
        earlier can never fire any more and are dropped.

        Returns:
            (due items, number of stale items dropped)
        """
        now = parse_hhmm(now_hhmm)
        async with self.locked() as current:
            due = [item for item in current if item.send_at == now_hhmm]
            stale = [
                item for item in current
                if item.send_at != now_hhmm and parse_hhmm(item.send_at) < now
            ]
            if due or stale:
                gone = {item.dedup_key for item in due} | {item.dedup_key for item in stale}
                current[:] = [item for item in current if item.dedup_key not in gone]
        if stale:
            logger.debug("Dropped %d stale item(s) before %s", len(stale), now_hhmm)
        return due, len(stale)

    async def purge_recipient(self, recipient: RecipientId) -> int:
        """Remove every item for one recipient.

        Returns:
            Number of items removed.
        """
        async with self.locked() as current:
            before = len(current)
            current[:] = [item for item in current if item.recipient != recipient]
            removed = before - len(current)
        return removed

    def snapshot(self) -> list[WorkItem]:
        """Copy of the queued items, in send order."""
        return list(self._items)

    def items_for(self, recipient: RecipientId) -> list[WorkItem]:
        return [item for item in self._items if item.recipient == recipient]

    def __len__(self) -> int:
        return len(self._items)
