"""Adhan Notifier — Test Doubles.

In-memory stand-ins shared by the scripts/test_*.py suites:
  - FixedClock: a Clock pinned to a settable local time
  - MemoryStore: document store kept in a dict
  - ScriptedSink: message sink with per-chat outcomes
  - build_engine: the scheduler components wired over a MemoryStore
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Any, Optional

from src.database.documents import (
    DocumentCorruptError,
    DocumentNotFoundError,
    DocumentWriteError,
)
from src.database.loader import CachedLoader
from src.database.models import DeliveryResult, RecipientId
from src.scheduler import (
    IdempotencyLedger,
    QueueBuilder,
    Rescheduler,
    SubscriberRegistry,
    WorkQueue,
)
from src.utils.clock import Clock
from src.utils.health import HealthMonitor

CORRUPT = object()


class FixedClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, at: str = "2024-01-01 07:30", timezone_name: str = "Africa/Algiers") -> None:
        super().__init__(timezone_name)
        self.set(at)

    def set(self, at: str) -> None:
        """Pin the clock to a local 'YYYY-MM-DD HH:MM'."""
        self._now = self.tz.localize(datetime.strptime(at, "%Y-%m-%d %H:%M"))

    def advance(self, minutes: int = 0, hours: int = 0, seconds: int = 0) -> None:
        self._now = self._now + timedelta(hours=hours, minutes=minutes, seconds=seconds)

    def now(self) -> datetime:
        return self._now


class MemoryStore:
    """Document store in a dict, with JSON copies on the way in and out."""

    def __init__(self, **documents: Any) -> None:
        self.documents: dict[str, Any] = {}
        for name, value in documents.items():
            self.documents[name] = value if value is CORRUPT else json.loads(json.dumps(value))
        self.loads = 0
        self.saves = 0
        self.fail_saves = False

    async def load(self, name: str) -> Any:
        self.loads += 1
        if name not in self.documents:
            raise DocumentNotFoundError(name, "not found")
        value = self.documents[name]
        if value is CORRUPT:
            raise DocumentCorruptError(name, "invalid JSON")
        return json.loads(json.dumps(value))

    async def save(self, name: str, value: Any) -> None:
        if self.fail_saves:
            raise DocumentWriteError(name, "disk full")
        self.saves += 1
        self.documents[name] = json.loads(json.dumps(value))


class ScriptedSink:
    """Message sink whose outcome is chosen per chat."""

    def __init__(
        self,
        outcomes: Optional[dict[RecipientId, DeliveryResult]] = None,
        delays: Optional[dict[RecipientId, float]] = None,
        explode: Optional[set[RecipientId]] = None,
    ) -> None:
        self.outcomes = outcomes or {}
        self.delays = delays or {}
        self.explode = explode or set()
        self.calls: list[tuple[RecipientId, str]] = []

    async def send(self, chat_id: RecipientId, text: str) -> DeliveryResult:
        self.calls.append((chat_id, text))
        if chat_id in self.delays:
            await asyncio.sleep(self.delays[chat_id])
        if chat_id in self.explode:
            raise ConnectionError("connection reset by peer")
        return self.outcomes.get(chat_id, DeliveryResult.SENT)

    def sent_to(self, chat_id: RecipientId) -> list[str]:
        return [text for cid, text in self.calls if cid == chat_id]


def schedule_record(date: str = "2024-01-01", **times: str) -> dict[str, str]:
    """A prayer-times ingestion record."""
    return {"date": date, **times}


def subscriber_record(chat_id: RecipientId, lead: int = 10) -> dict[str, Any]:
    return {"id": chat_id, "settings": {"leadMinutes": lead}}


def build_engine(
    schedule: Any = None,
    subscribers: Any = None,
    at: str = "2024-01-01 07:30",
    default_lead: int = 10,
    city_label: str = "Test City",
) -> SimpleNamespace:
    """Wire loader, queue, builder, rescheduler and registry over a MemoryStore.

    Pass None to leave a document out of the store entirely.
    """
    documents: dict[str, Any] = {}
    if schedule is not None:
        documents["prayer_times"] = schedule
    if subscribers is not None:
        documents["subscribers"] = subscribers

    clock = FixedClock(at)
    store = MemoryStore(**documents)
    loader = CachedLoader(store, clock, ttl_seconds=300, default_lead_minutes=default_lead)
    queue = WorkQueue()
    health = HealthMonitor()
    rescheduler = Rescheduler(loader, queue, clock, health, city_label)
    return SimpleNamespace(
        clock=clock,
        store=store,
        loader=loader,
        queue=queue,
        health=health,
        ledger=IdempotencyLedger(clock, retention_hours=24),
        builder=QueueBuilder(loader, queue, clock, health, city_label),
        rescheduler=rescheduler,
        registry=SubscriberRegistry(loader, rescheduler, default_lead),
    )
