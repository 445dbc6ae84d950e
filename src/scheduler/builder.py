"""Adhan Notifier — Daily Queue Builder.

Expands today's prayer times × every subscriber's settings into the
flat, time-sorted work queue. Runs once after midnight and once at
startup; each run fully replaces the queue.

For a subscriber with lead time m and a prayer at T it emits:
  - an adhan alert at T          (dedup offset 0)
  - a reminder at T - m          (dedup offset m), only when m > 0
A reminder that would fall before 00:00 is skipped.
"""

from __future__ import annotations

from typing import Optional

from src.database.loader import CachedLoader
from src.database.models import (
    DaySchedule,
    Subscriber,
    WorkItem,
    make_dedup_key,
    subtract_minutes,
)
from src.notifier.formatters import format_adhan_alert, format_reminder
from src.scheduler.work_queue import WorkQueue
from src.utils.clock import Clock
from src.utils.health import HealthMonitor
from src.utils.logger import get_logger

logger = get_logger(__name__)


def build_adhan_item(
    day: DaySchedule, subscriber: Subscriber, occasion: str, city_label: str = "",
) -> WorkItem:
    """The at-prayer alert for one subscriber."""
    prayer_time = day.occasions[occasion]
    return WorkItem(
        recipient=subscriber.id,
        send_at=prayer_time,
        payload=format_adhan_alert(occasion, prayer_time, city_label),
        dedup_key=make_dedup_key(day.date, occasion, subscriber.id, 0),
        occasion=occasion,
        offset_minutes=0,
    )


def build_reminder_item(
    day: DaySchedule, subscriber: Subscriber, occasion: str,
) -> Optional[WorkItem]:
    """The pre-prayer reminder for one subscriber.

    Returns:
        The reminder, or None when reminders are off or the reminder
        would cross midnight.
    """
    lead = subscriber.settings.lead_minutes
    if lead <= 0:
        return None

    prayer_time = day.occasions[occasion]
    send_at = subtract_minutes(prayer_time, lead)
    if send_at is None:
        logger.debug(
            "Skipping %s reminder for %s: %s minus %d min crosses midnight",
            occasion, subscriber.id, prayer_time, lead,
        )
        return None

    return WorkItem(
        recipient=subscriber.id,
        send_at=send_at,
        payload=format_reminder(occasion, prayer_time, lead),
        dedup_key=make_dedup_key(day.date, occasion, subscriber.id, lead),
        occasion=occasion,
        offset_minutes=lead,
    )


def build_items(
    day: DaySchedule, subscriber: Subscriber, city_label: str = "",
) -> list[WorkItem]:
    """All of one subscriber's items for a day, in prayer order."""
    items: list[WorkItem] = []
    for occasion, _ in day.ordered():
        items.append(build_adhan_item(day, subscriber, occasion, city_label))
        reminder = build_reminder_item(day, subscriber, occasion)
        if reminder is not None:
            items.append(reminder)
    return items


class QueueBuilder:
    """Rebuilds the whole work queue from today's schedule.

    Attributes:
        loader: Cached access to prayer times and subscribers.
        queue: The shared work queue.
        clock: Civil clock in the configured timezone.
        health: Receives build results and faults.
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

    async def build_daily_queue(self) -> int:
        """Replace the work queue with today's notifications.

        If today has no published prayer times the queue is cleared, so
        yesterday's items can never fire, and a fault is recorded.

        Returns:
            Number of items queued.
        """
        today = self.clock.today()
        day = await self.loader.get_day_schedule(today)

        if day is None or not day.occasions:
            await self.queue.clear()
            logger.error("No prayer times for %s, work queue cleared", today)
            if self.health:
                self.health.record_error("builder", f"No prayer times for {today}")
            return 0

        subscribers = await self.loader.get_subscribers()
        items: list[WorkItem] = []
        for subscriber in subscribers:
            items.extend(build_items(day, subscriber, self.city_label))

        count = await self.queue.replace_all(items)
        logger.info(
            "Daily queue built for %s: %d item(s) for %d subscriber(s)",
            today, count, len(subscribers),
        )
        if self.health:
            self.health.record_build(count)
        return count
