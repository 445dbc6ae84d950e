"""Adhan Notifier — Idempotency Ledger.

Bounded record of dedup keys whose delivery was already attempted. A
key that is present is never delivered again; entries older than the retention
window are purged by the housekeeping job so memory stays flat.
"""

from __future__ import annotations

from src.database.models import LedgerEntry
from src.utils.clock import Clock
from src.utils.logger import get_logger

logger = get_logger(__name__)


class IdempotencyLedger:
    """Attempted dedup keys with their attempt time.

    Attributes:
        clock: Clock used to timestamp and age entries.
        retention_ms: How long a key is remembered.
    """

    def __init__(self, clock: Clock, retention_hours: int = 24) -> None:
        self.clock = clock
        self.retention_ms = retention_hours * 3600 * 1000
        self._entries: dict[str, LedgerEntry] = {}

    def contains(self, dedup_key: str) -> bool:
        return dedup_key in self._entries

    def record(self, dedup_key: str) -> LedgerEntry:
        entry = LedgerEntry(dedup_key=dedup_key, delivered_at_ms=self.clock.epoch_millis())
        self._entries[dedup_key] = entry
        return entry

    def purge_expired(self) -> int:
        """Forget keys older than the retention window.

        Returns:
            Number of entries removed.
        """
        cutoff = self.clock.epoch_millis() - self.retention_ms
        expired = [
            key for key, entry in self._entries.items()
            if entry.delivered_at_ms < cutoff
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info("Ledger: purged %d expired key(s), %d left", len(expired), len(self._entries))
        return len(expired)

    def __contains__(self, dedup_key: object) -> bool:
        return dedup_key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
