"""Adhan Notifier — Circuit Breaker.

Stops hammering Telegram while it is unreachable. After
`failure_threshold` consecutive transport failures the circuit opens
and calls fail fast for `cooldown_seconds`; the first call after the
cooldown is a trial (HALF_OPEN) that either closes the circuit or
re-opens it.

Usage:
    cb = CircuitBreaker("telegram", failure_threshold=5, cooldown_seconds=120)
    result = await cb.call(bot.send_message, chat_id=..., text=...)
"""

from __future__ import annotations

import time
from typing import Any, Callable

from src.utils.logger import get_logger

logger = get_logger(__name__)


class CircuitOpenError(Exception):
    """Raised when a circuit breaker is OPEN and blocking requests."""

    def __init__(self, name: str, remaining_seconds: float) -> None:
        self.name = name
        self.remaining_seconds = remaining_seconds
        super().__init__(
            f"Circuit '{name}' is OPEN — retry in {remaining_seconds:.0f}s"
        )


class CircuitBreaker:
    """Consecutive-failure circuit breaker for one external service.

    Attributes:
        name: Service name (for logging/health).
        failure_threshold: Consecutive failures before opening.
        cooldown_seconds: How long the circuit stays open.
    """

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        cooldown_seconds: float = 120.0,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds

        self._state = self.CLOSED
        self._failure_count = 0
        self._opened_at = 0.0
        self._total_trips = 0

    @property
    def state(self) -> str:
        """Current circuit state, accounting for cooldown expiry."""
        if self._state == self.OPEN and self.remaining_cooldown == 0.0:
            return self.HALF_OPEN
        return self._state

    @property
    def is_open(self) -> bool:
        return self.state == self.OPEN

    @property
    def remaining_cooldown(self) -> float:
        if self._state != self.OPEN:
            return 0.0
        return max(0.0, self.cooldown_seconds - (time.monotonic() - self._opened_at))

    async def call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run an async callable through the breaker.

        Raises:
            CircuitOpenError: If the circuit is OPEN.
            Exception: Whatever func raised (after counting the failure).
        """
        current_state = self.state
        if current_state == self.OPEN:
            raise CircuitOpenError(self.name, self.remaining_cooldown)

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            self._on_failure(current_state, e)
            raise

        if current_state == self.HALF_OPEN:
            logger.info("Circuit '%s': HALF_OPEN → CLOSED", self.name)
        self._state = self.CLOSED
        self._failure_count = 0
        return result

    def _on_failure(self, state: str, error: Exception) -> None:
        self._failure_count += 1

        if state == self.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = self.OPEN
            self._opened_at = time.monotonic()
            self._total_trips += 1
            logger.warning(
                "Circuit '%s': %s → OPEN (trip #%d, %d failures, cooldown %.0fs): %s",
                self.name, state, self._total_trips, self._failure_count,
                self.cooldown_seconds, str(error)[:200],
            )
        else:
            logger.debug(
                "Circuit '%s': failure %d/%d: %s",
                self.name, self._failure_count, self.failure_threshold,
                type(error).__name__,
            )

    def to_dict(self) -> dict[str, Any]:
        """Serialize state for health reporting."""
        return {
            "name": self.name,
            "state": self.state,
            "failure_count": self._failure_count,
            "total_trips": self._total_trips,
            "remaining_cooldown": round(self.remaining_cooldown, 1),
        }
