"""Adhan Notifier — Civil Clock.

Single source of "now" for the engine. Every date and time-of-day is
derived in one fixed timezone; components receive a Clock instead of
calling datetime.now() so tests can pin the time.
"""

from __future__ import annotations

from datetime import datetime

import pytz


class Clock:
    """Wall clock in a fixed civil timezone.

    Attributes:
        tz: The pytz timezone all readings are expressed in.
    """

    def __init__(self, timezone_name: str) -> None:
        """Initialize the clock.

        Args:
            timezone_name: IANA timezone name, e.g. "Africa/Algiers".

        Raises:
            pytz.UnknownTimeZoneError: If the name is not a known zone.
        """
        self.tz = pytz.timezone(timezone_name)

    def now(self) -> datetime:
        """Current timezone-aware datetime."""
        return datetime.now(self.tz)

    def today(self) -> str:
        """Current civil date as YYYY-MM-DD."""
        return self.now().strftime("%Y-%m-%d")

    def current_hhmm(self) -> str:
        """Current time of day at minute granularity, as HH:MM."""
        return self.now().strftime("%H:%M")

    def epoch_millis(self) -> int:
        """Milliseconds since the Unix epoch."""
        return int(self.now().timestamp() * 1000)

    def __repr__(self) -> str:
        return f"Clock(tz={self.tz.zone})"
