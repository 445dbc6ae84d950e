"""Adhan Notifier — Incremental Rescheduler.

Keeps the work queue in step with single-subscriber changes without a
full rebuild:
  - lead time changed  → swap that subscriber's future reminders
  - new subscriber     → queue the rest of today's items
  - unsubscribe/evict  → drop everything queued for them

Adhan alerts and items at or before the current minute are never
touched by a lead-time change.
"""

from __future__ import annotations

from typing import Optional

from src.database.loader import CachedLoader
from src.database.models import (
    RecipientId,
    Subscriber,
    SubscriberSettings,
    WorkItem,
    parse_hhmm,
)
from src.scheduler.builder import build_items, build_reminder_item
from src.scheduler.work_queue import WorkQueue
from src.utils.clock import Clock
from src.utils.health import HealthMonitor
from src.utils.logger import get_logger

logger = get_logger(__name__)


class Rescheduler:
    """Surgical edits to the work queue for one recipient.

    Attributes:
        loader: Cached access to prayer times and subscribers.
        queue: The shared work queue.
        clock: Civil clock in the configured timezone.
        health: Receives faults.
        city_label: Location shown in adhan alerts.
    """

    def __init__(
        self,
        loader: CachedLoader,
        queue: WorkQueue,
        clock: Clock,
        health: Optional[HealthMonitor] = None,
        city_label: str = "",
    ) -> None:
        self.loader = loader
        self.queue = queue
        self.clock = clock
        self.health = health
        self.city_label = city_label

    async def _find_subscriber(self, recipient: RecipientId) -> Optional[Subscriber]:
        for subscriber in await self.loader.get_subscribers():
            if subscriber.id == recipient:
                return subscriber
        return None

    def _fault(self, message: str) -> None:
        logger.error(message)
        if self.health:
            self.health.record_error("rescheduler", message)

    async def reschedule_for(self, recipient: RecipientId) -> int:
        """Rebuild one recipient's future reminders after a lead-time change.

        Removes the recipient's reminders scheduled strictly after now,
        then queues reminders derived from the current lead time for
        every prayer still ahead, provided the new reminder is itself
        still ahead. If today has no prayer times the queue is left as
        it is.

        Returns:
            Number of reminders inserted.
        """
        today = self.clock.today()
        now_hhmm = self.clock.current_hhmm()
        now = parse_hhmm(now_hhmm)

        day = await self.loader.get_day_schedule(today)
        if day is None:
            self._fault(f"Cannot reschedule {recipient}: no prayer times for {today}")
            return 0

        subscriber = await self._find_subscriber(recipient)
        if subscriber is None:
            # Unknown recipients end up with no reminders at all
            subscriber = Subscriber(id=recipient, settings=SubscriberSettings(lead_minutes=0))

        candidates: list[WorkItem] = []
        for occasion, prayer_time in day.ordered():
            if parse_hhmm(prayer_time) <= now:
                continue
            reminder = build_reminder_item(day, subscriber, occasion)
            if reminder is not None and parse_hhmm(reminder.send_at) > now:
                candidates.append(reminder)

        async with self.queue.locked() as items:
            before = len(items)
            items[:] = [
                item for item in items
                if not (
                    item.recipient == recipient
                    and item.is_reminder
                    and parse_hhmm(item.send_at) > now
                )
            ]
            removed = before - len(items)

            # A reminder firing this very minute still counts for its prayer
            covered = {
                item.occasion for item in items
                if item.recipient == recipient
                and item.is_reminder
                and parse_hhmm(item.send_at) == now
            }
            inserted = [item for item in candidates if item.occasion not in covered]
            items.extend(inserted)

        logger.info(
            "Rescheduled %s (lead %d min): -%d / +%d reminder(s)",
            recipient, subscriber.settings.lead_minutes, removed, len(inserted),
        )
        return len(inserted)

    async def schedule_subscriber(self, recipient: RecipientId) -> int:
        """Queue the rest of today's notifications for a new subscriber.

        Returns:
            Number of items inserted.
        """
        today = self.clock.today()
        now = parse_hhmm(self.clock.current_hhmm())

        day = await self.loader.get_day_schedule(today)
        if day is None:
            self._fault(f"Cannot schedule {recipient}: no prayer times for {today}")
            return 0

        subscriber = await self._find_subscriber(recipient)
        if subscriber is None:
            logger.warning("Cannot schedule %s: not a subscriber", recipient)
            return 0

        upcoming = [
            item for item in build_items(day, subscriber, self.city_label)
            if parse_hhmm(item.send_at) > now
        ]
        inserted = await self.queue.add(upcoming)
        logger.info("Scheduled %d item(s) for new subscriber %s", inserted, recipient)
        return inserted

    async def remove_recipient(self, recipient: RecipientId) -> int:
        """Drop every queued item for a recipient."""
        removed = await self.queue.purge_recipient(recipient)
        if removed:
            logger.info("Removed %d queued item(s) for %s", removed, recipient)
        return removed
