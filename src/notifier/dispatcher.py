"""Adhan Notifier — Notification Dispatcher.

Runs every few seconds. Each tick takes the work items due in the
current minute out of the queue, skips any already recorded in the
idempotency ledger, and delivers the rest concurrently through the
message sink. Every attempt is recorded in the ledger, whatever its
outcome, so a same-minute rebuild never retries it. Chats that
permanently reject delivery are evicted.

Matching is exact on HH:MM: a minute missed while the process was down
is never sent late.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Optional, Protocol

from src.database.models import DeliveryResult, RecipientId, WorkItem
from src.scheduler.ledger import IdempotencyLedger
from src.scheduler.work_queue import WorkQueue
from src.utils.clock import Clock
from src.utils.health import HealthMonitor
from src.utils.logger import get_logger
from src.utils.rate_limiter import AsyncRateLimiter

if TYPE_CHECKING:
    from src.scheduler.subscribers import SubscriberRegistry

logger = get_logger(__name__)


class MessageSink(Protocol):
    """Anything that can attempt delivery to one chat."""

    async def send(self, chat_id: RecipientId, text: str) -> DeliveryResult: ...


class Dispatcher:
    """Drains the work queue against the clock.

    Attributes:
        queue: The shared work queue.
        ledger: Dedup keys already attempted.
        sink: Message sink (TelegramNotifier at runtime).
        registry: Evicts chats that reject delivery.
        clock: Civil clock in the configured timezone.
        health: Receives tick tallies and faults.
        delivery_timeout: Upper bound in seconds for one send, not
            counting the wait for a rate-limit slot.
        rate_limiter: Global send throttle shared by all deliveries.
    """

    def __init__(
        self,
        queue: WorkQueue,
        ledger: IdempotencyLedger,
        sink: MessageSink,
        registry: "SubscriberRegistry",
        clock: Clock,
        health: Optional[HealthMonitor] = None,
        delivery_timeout: float = 10.0,
        rate_limiter: Optional[AsyncRateLimiter] = None,
    ) -> None:
        self.queue = queue
        self.ledger = ledger
        self.sink = sink
        self.registry = registry
        self.clock = clock
        self.health = health
        self.delivery_timeout = delivery_timeout
        self.rate_limiter = rate_limiter
        self._tick_lock = asyncio.Lock()

    async def tick(self) -> dict[str, int]:
        """Run one dispatch cycle.

        Skipped entirely if the previous tick is still running.

        Returns:
            Tally with keys due, skipped, sent, rejected, failed, stale.
            Empty if the tick was skipped.
        """
        if self._tick_lock.locked():
            logger.warning("Previous dispatch tick still running, skipping")
            return {}

        async with self._tick_lock:
            now_hhmm = self.clock.current_hhmm()
            due, stale = await self.queue.take_due(now_hhmm)

            stats = {
                "due": len(due), "skipped": 0, "sent": 0,
                "rejected": 0, "failed": 0, "stale": stale,
            }

            pending: list[WorkItem] = []
            for item in due:
                if self.ledger.contains(item.dedup_key):
                    stats["skipped"] += 1
                    logger.debug("Already delivered, skipping %s", item.dedup_key)
                else:
                    pending.append(item)

            if pending:
                logger.info("═══ %s — delivering %d notification(s) ═══", now_hhmm, len(pending))
                results = await asyncio.gather(*(self._deliver(item) for item in pending))
                await self._apply_results(pending, results, stats)

                logger.info(
                    "Tick %s: sent %d | rejected %d | failed %d | skipped %d",
                    now_hhmm, stats["sent"], stats["rejected"],
                    stats["failed"], stats["skipped"],
                )

            if self.health:
                self.health.record_tick(stats)
            return stats

    async def _deliver(self, item: WorkItem) -> DeliveryResult:
        """Attempt one delivery, bounded by the delivery timeout.

        The timeout starts once a rate-limit slot is taken. Never raises:
        one failing chat must not abort the batch.
        """
        if self.rate_limiter:
            await self.rate_limiter.acquire()
        try:
            return await asyncio.wait_for(
                self.sink.send(item.recipient, item.payload),
                timeout=self.delivery_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(
                "Delivery to %s timed out after %.0fs (%s)",
                item.recipient, self.delivery_timeout, item.dedup_key,
            )
        except Exception as e:
            logger.error("Delivery to %s raised: %s (%s)", item.recipient, e, item.dedup_key)
        return DeliveryResult.FAILED

    async def _apply_results(
        self,
        items: list[WorkItem],
        results: list[DeliveryResult],
        stats: dict[str, int],
    ) -> None:
        rejected: set[RecipientId] = set()

        for item, result in zip(items, results):
            # Attempted keys are never retried, whatever the outcome
            self.ledger.record(item.dedup_key)
            if result is DeliveryResult.SENT:
                stats["sent"] += 1
            elif result is DeliveryResult.REJECTED:
                stats["rejected"] += 1
                rejected.add(item.recipient)
            else:
                stats["failed"] += 1
                logger.warning("Dropped %s after failed delivery", item.dedup_key)

        for recipient in rejected:
            try:
                await self.registry.evict(recipient)
            except Exception as e:
                logger.error("Could not evict %s: %s", recipient, e)
                if self.health:
                    self.health.record_error("dispatcher", f"Eviction of {recipient} failed: {e}")
                # Keep the queue free of a chat we know is dead
                await self.queue.purge_recipient(recipient)
