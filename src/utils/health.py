"""Adhan Notifier — Health Monitoring.

Tracks dispatcher ticks, queue builds and faults for the /health
endpoint. Uses in-memory data structures (deque) for bounded event
history.

Usage:
    monitor = HealthMonitor()
    monitor.record_tick({"due": 3, "sent": 3, "failed": 0})
    status = monitor.get_status()
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from src.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class _TickRecord:
    """Record of a single dispatcher tick that had due items."""
    timestamp: float
    due: int
    sent: int
    rejected: int
    failed: int


@dataclass
class _ErrorRecord:
    """Record of a single fault."""
    timestamp: float
    component: str
    error: str


class HealthMonitor:
    """Tracks engine health metrics.

    All data is in-memory with bounded history (deque).

    Attributes:
        start_time: When the monitor was created (app start).
    """

    def __init__(self, max_history: int = 200) -> None:
        """Initialize the health monitor.

        Args:
            max_history: Maximum number of tick/error records to keep.
        """
        self.start_time = time.monotonic()
        self._start_datetime = datetime.now()

        self._ticks: deque[_TickRecord] = deque(maxlen=max_history)
        self._errors: deque[_ErrorRecord] = deque(maxlen=max_history)

        # Aggregate counters (never reset)
        self.total_ticks = 0
        self.total_sent = 0
        self.total_rejected = 0
        self.total_failed = 0
        self.total_errors = 0

        self.last_tick_time: Optional[float] = None
        self.last_build_time: Optional[float] = None
        self.last_build_items = 0

    def record_tick(self, stats: dict[str, Any]) -> None:
        """Record the tally of one dispatcher tick.

        Args:
            stats: Dict with keys: due, sent, rejected, failed.
        """
        now = time.monotonic()
        self.total_ticks += 1
        self.last_tick_time = now

        if not stats.get("due"):
            return

        record = _TickRecord(
            timestamp=now,
            due=stats.get("due", 0),
            sent=stats.get("sent", 0),
            rejected=stats.get("rejected", 0),
            failed=stats.get("failed", 0),
        )
        self._ticks.append(record)
        self.total_sent += record.sent
        self.total_rejected += record.rejected
        self.total_failed += record.failed

    def record_build(self, items: int) -> None:
        """Record a successful daily queue build."""
        self.last_build_time = time.monotonic()
        self.last_build_items = items
        self._log_memory()

    def record_error(self, component: str, error: str) -> None:
        """Record a fault.

        Args:
            component: Component name (builder, rescheduler, dispatcher, ...).
            error: Error description.
        """
        self._errors.append(_ErrorRecord(
            timestamp=time.monotonic(),
            component=component,
            error=error[:200],
        ))
        self.total_errors += 1
        logger.debug("Health: error recorded for %s", component)

    def recent_errors(self, limit: int = 5) -> list[dict[str, Any]]:
        return [
            {"component": e.component, "error": e.error}
            for e in list(self._errors)[-limit:]
        ]

    def get_status(
        self,
        circuit_breakers: Optional[list] = None,
    ) -> dict[str, Any]:
        """Get current engine health status.

        Args:
            circuit_breakers: CircuitBreaker instances whose state to include.

        Returns:
            Dict with uptime, totals, recent errors, circuits and memory.
        """
        now = time.monotonic()
        one_hour_ago = now - 3600

        since_tick = now - self.last_tick_time if self.last_tick_time else None
        since_build = now - self.last_build_time if self.last_build_time else None

        return {
            "uptime": self._format_uptime(now - self.start_time),
            "started_at": self._start_datetime.strftime("%Y-%m-%d %H:%M"),
            "total_ticks": self.total_ticks,
            "total_sent": self.total_sent,
            "total_rejected": self.total_rejected,
            "total_failed": self.total_failed,
            "total_errors": self.total_errors,
            "recent_errors_1h": sum(1 for e in self._errors if e.timestamp > one_hour_ago),
            "last_errors": self.recent_errors(),
            "seconds_since_last_tick": round(since_tick, 0) if since_tick is not None else None,
            "seconds_since_last_build": round(since_build, 0) if since_build is not None else None,
            "last_build_items": self.last_build_items,
            "circuits": [cb.to_dict() for cb in circuit_breakers or []],
            "memory_mb": round(self._get_memory_mb(), 1),
        }

    def _get_memory_mb(self) -> float:
        """Get current process RSS memory in MB."""
        try:
            # /proc/self/status is most reliable on Linux
            with open("/proc/self/status") as f:
                for line in f:
                    if line.startswith("VmRSS:"):
                        return int(line.split()[1]) / 1024  # kB → MB
        except (FileNotFoundError, ValueError, IndexError):
            pass

        try:
            import resource
            usage = resource.getrusage(resource.RUSAGE_SELF)
            return usage.ru_maxrss / 1024  # kB → MB on Linux
        except (ImportError, AttributeError):
            return 0.0

    def _log_memory(self) -> None:
        logger.info(
            "Health check: RSS=%.1fMB, ticks=%d, sent=%d, errors=%d",
            self._get_memory_mb(), self.total_ticks,
            self.total_sent, self.total_errors,
        )

    @staticmethod
    def _format_uptime(seconds: float) -> str:
        """Format seconds into human-readable uptime."""
        hours = int(seconds // 3600)
        mins = int((seconds % 3600) // 60)
        if hours >= 24:
            days = hours // 24
            hours = hours % 24
            return f"{days}d {hours}h {mins}m"
        if hours:
            return f"{hours}h {mins}m"
        return f"{mins}m"
