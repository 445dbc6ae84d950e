"""Adhan Notifier — Scheduler Package.

Builds and maintains today's work queue of prayer notifications.
Components:
  - work_queue: lock-guarded, time-sorted pending items
  - ledger: delivered dedup keys (idempotency)
  - builder: full daily rebuild from prayer times × subscribers
  - rescheduler: per-subscriber incremental edits
  - subscribers: serialized subscriber mutations
"""

from src.scheduler.builder import QueueBuilder
from src.scheduler.ledger import IdempotencyLedger
from src.scheduler.rescheduler import Rescheduler
from src.scheduler.subscribers import SubscriberRegistry
from src.scheduler.work_queue import WorkQueue

__all__ = [
    "QueueBuilder",
    "IdempotencyLedger",
    "Rescheduler",
    "SubscriberRegistry",
    "WorkQueue",
]
