"""Adhan Notifier — Subscriber Registry.

All read-modify-write sequences on the subscriber document (subscribe,
unsubscribe, change lead time, evict) run here under one lock. The
matching work-queue update runs under the same lock, so a change and
its queue edit are never interleaved with another change.
"""

from __future__ import annotations

import asyncio
import dataclasses
from typing import Optional

from src.database.loader import CachedLoader
from src.database.models import (
    DEFAULT_LEAD_MINUTES,
    MAX_LEAD_MINUTES,
    MIN_LEAD_MINUTES,
    RecipientId,
    Subscriber,
    SubscriberSettings,
    is_valid_lead_minutes,
    is_valid_recipient_id,
    normalize_recipient_id,
)
from src.scheduler.rescheduler import Rescheduler
from src.utils.logger import get_logger

logger = get_logger(__name__)


class SubscriberRegistry:
    """Serialized mutations of the subscriber set.

    Attributes:
        loader: Cached access to the subscriber document.
        rescheduler: Keeps the work queue consistent with each change.
        default_lead_minutes: Lead time for new subscribers.
    """

    def __init__(
        self,
        loader: CachedLoader,
        rescheduler: Rescheduler,
        default_lead_minutes: int = DEFAULT_LEAD_MINUTES,
    ) -> None:
        self.loader = loader
        self.rescheduler = rescheduler
        self.default_lead_minutes = default_lead_minutes
        self._lock = asyncio.Lock()

    async def get(self, recipient: RecipientId) -> Optional[Subscriber]:
        for subscriber in await self.loader.get_subscribers():
            if subscriber.id == recipient:
                return subscriber
        return None

    async def subscribe(self, recipient: RecipientId) -> bool:
        """Register a chat with default settings.

        Returns:
            True if the chat was added, False if it was already subscribed.

        Raises:
            ValueError: If the id is not a usable chat id.
            RuntimeError: If the subscriber list could not be saved.
        """
        if not is_valid_recipient_id(recipient):
            raise ValueError(f"Invalid recipient id: {recipient!r}")
        recipient = normalize_recipient_id(recipient)

        async with self._lock:
            subscribers = await self.loader.get_subscribers()
            if any(s.id == recipient for s in subscribers):
                return False

            subscribers.append(Subscriber(
                id=recipient,
                settings=SubscriberSettings(lead_minutes=self.default_lead_minutes),
            ))
            if not await self.loader.save_subscribers(subscribers):
                raise RuntimeError(f"Could not save new subscriber {recipient}")

            logger.info("New subscriber added: %s", recipient)
            await self.rescheduler.schedule_subscriber(recipient)
        return True

    async def unsubscribe(self, recipient: RecipientId) -> bool:
        """Remove a chat at its own request.

        Returns:
            True if the chat was subscribed and has been removed.
        """
        removed = await self._remove(recipient)
        if removed:
            logger.info("Subscriber left: %s", recipient)
        return removed

    async def evict(self, recipient: RecipientId) -> bool:
        """Remove a chat that permanently rejects delivery."""
        removed = await self._remove(recipient)
        if removed:
            logger.warning("Evicted subscriber %s (delivery rejected)", recipient)
        return removed

    async def _remove(self, recipient: RecipientId) -> bool:
        async with self._lock:
            subscribers = await self.loader.get_subscribers()
            remaining = [s for s in subscribers if s.id != recipient]
            found = len(remaining) != len(subscribers)
            if found and not await self.loader.save_subscribers(remaining):
                raise RuntimeError(f"Could not save subscribers after removing {recipient}")

            await self.rescheduler.remove_recipient(recipient)
        return found

    async def set_lead_minutes(self, recipient: RecipientId, minutes: int) -> Subscriber:
        """Change a subscriber's reminder lead time and reschedule.

        Args:
            recipient: Subscribed chat id.
            minutes: New lead time, 0 turns reminders off.

        Returns:
            The updated subscriber.

        Raises:
            ValueError: If minutes is out of range.
            LookupError: If the chat is not subscribed.
            RuntimeError: If the change could not be saved.
        """
        if not is_valid_lead_minutes(minutes):
            raise ValueError(
                f"Lead time must be between {MIN_LEAD_MINUTES} and "
                f"{MAX_LEAD_MINUTES} minutes, got {minutes!r}"
            )

        async with self._lock:
            subscribers = await self.loader.get_subscribers()
            for i, subscriber in enumerate(subscribers):
                if subscriber.id == recipient:
                    updated = dataclasses.replace(
                        subscriber,
                        settings=SubscriberSettings(lead_minutes=minutes),
                    )
                    subscribers[i] = updated
                    break
            else:
                raise LookupError(f"{recipient} is not subscribed")

            if not await self.loader.save_subscribers(subscribers):
                raise RuntimeError(f"Could not save lead time for {recipient}")

            logger.info("Lead time for %s set to %d min", recipient, minutes)
            await self.rescheduler.reschedule_for(recipient)
        return updated
