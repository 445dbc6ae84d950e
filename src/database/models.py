"""Adhan Notifier — Data Models.

Dataclasses for every entity the engine handles: subscribers and their
settings, one day of prayer times, pending work items and ledger
entries. Also the small time-of-day and dedup-key helpers shared by the
builder, rescheduler and dispatcher.

Persisted entities include:
  - to_dict(): converts to the JSON shape stored in the document store
  - from_dict(raw): classmethod to reconstruct from that shape
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

RecipientId = Union[int, str]

# ── Domain Constants ─────────────────────────────────────
# The five daily prayers, in the order they occur.
OCCASIONS: tuple[str, ...] = ("fajr", "dhuhr", "asr", "maghrib", "isha")

MIN_LEAD_MINUTES = 0   # 0 turns reminders off
MAX_LEAD_MINUTES = 60
DEFAULT_LEAD_MINUTES = 10

_MINUTES_PER_DAY = 24 * 60
_TIME_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})")
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_NUMERIC_ID_PATTERN = re.compile(r"^-?\d+$")


class StoreName(str, Enum):
    """Documents held by the backing store."""

    SCHEDULE = "prayer_times"
    SUBSCRIBERS = "subscribers"


class DeliveryResult(str, Enum):
    """Outcome of one message-sink attempt."""

    SENT = "sent"
    REJECTED = "rejected"  # recipient blocked the bot or no longer exists
    FAILED = "failed"      # transient: network, timeout, rate limit


# ═══════════════════════════════════════════════════════════
# Time & Key Helpers
# ═══════════════════════════════════════════════════════════


def parse_hhmm(value: Any) -> Optional[int]:
    """Parse a time of day into minutes since midnight.

    Accepts "5:30", "05:30" and values with a trailing suffix such as
    "05:30 (CET)".

    Args:
        value: Raw time value from a schedule record.

    Returns:
        Minutes since midnight, or None if the value is not a valid time.
    """
    if not isinstance(value, str):
        return None
    match = _TIME_PATTERN.match(value)
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def format_hhmm(minutes: int) -> str:
    """Format minutes since midnight as zero-padded HH:MM."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def subtract_minutes(hhmm: str, minutes: int) -> Optional[str]:
    """Shift a time of day earlier by a number of minutes.

    Borrows across the hour boundary. Results before midnight are not
    wrapped to the previous day.

    Returns:
        The earlier HH:MM, or None if it would fall before 00:00.
    """
    base = parse_hhmm(hhmm)
    if base is None:
        return None
    shifted = base - minutes
    if shifted < 0:
        return None
    return format_hhmm(shifted)


def make_dedup_key(date: str, occasion: str, recipient: RecipientId, offset_minutes: int) -> str:
    """Build the idempotency key date:occasion:recipient:offset."""
    return f"{date}:{occasion}:{recipient}:{offset_minutes}"


def dedup_offset(dedup_key: str) -> int:
    """Read the offset suffix back out of a dedup key."""
    return int(dedup_key.rsplit(":", 1)[1])


def is_valid_recipient_id(value: Any) -> bool:
    """Whether a value can identify a Telegram chat.

    Integers (chat ids) and non-empty strings (channel usernames or
    numeric strings) are accepted. Booleans are not.
    """
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, str) and value.strip() != ""


def normalize_recipient_id(value: RecipientId) -> RecipientId:
    """Turn numeric-string chat ids into ints; @usernames are kept as-is.

    "42" and 42 name the same chat and produce the same dedup keys, so
    they must also compare equal as subscriber ids.
    """
    if isinstance(value, str) and _NUMERIC_ID_PATTERN.match(value.strip()):
        return int(value.strip())
    return value


def is_valid_lead_minutes(value: Any) -> bool:
    """Whether a value is an acceptable lead time in minutes."""
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and MIN_LEAD_MINUTES <= value <= MAX_LEAD_MINUTES
    )


# ═══════════════════════════════════════════════════════════
# Subscriber Models
# ═══════════════════════════════════════════════════════════


@dataclass(frozen=True)
class SubscriberSettings:
    """Per-subscriber preferences.

    Attributes:
        lead_minutes: Minutes before each prayer to send a reminder.
    """

    lead_minutes: int = DEFAULT_LEAD_MINUTES

    def to_dict(self) -> dict[str, Any]:
        return {"leadMinutes": self.lead_minutes}


@dataclass(frozen=True)
class Subscriber:
    """A chat that receives prayer notifications.

    Attributes:
        id: Telegram chat identifier (unique).
        settings: The subscriber's preferences.
    """

    id: RecipientId
    settings: SubscriberSettings = field(default_factory=SubscriberSettings)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted JSON shape.

        Returns:
            {"id": ..., "settings": {"leadMinutes": ...}}
        """
        return {"id": self.id, "settings": self.settings.to_dict()}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Subscriber":
        """Reconstruct from an already-normalized persisted record."""
        settings = raw.get("settings") or {}
        return cls(
            id=raw["id"],
            settings=SubscriberSettings(
                lead_minutes=settings.get("leadMinutes", DEFAULT_LEAD_MINUTES),
            ),
        )


# ═══════════════════════════════════════════════════════════
# Schedule Models
# ═══════════════════════════════════════════════════════════


@dataclass(frozen=True)
class DaySchedule:
    """Prayer times for one calendar date.

    Attributes:
        date: Civil date, YYYY-MM-DD.
        occasions: Prayer key → zero-padded HH:MM. Only the keys in
            OCCASIONS are kept; unparseable times are left out.
    """

    date: str
    occasions: dict[str, str]

    def time_of(self, occasion: str) -> Optional[str]:
        return self.occasions.get(occasion)

    def ordered(self) -> list[tuple[str, str]]:
        """(occasion, HH:MM) pairs in fixed prayer order."""
        return [
            (occasion, self.occasions[occasion])
            for occasion in OCCASIONS
            if occasion in self.occasions
        ]

    def to_dict(self) -> dict[str, Any]:
        """Convert to the flat ingestion record {"date": ..., "fajr": ...}."""
        return {"date": self.date, **dict(self.ordered())}

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["DaySchedule"]:
        """Parse one ingestion record.

        Args:
            raw: A record like {"date": "2024-01-01", "fajr": "05:30", ...}.

        Returns:
            A DaySchedule, or None if the record has no valid date.
        """
        if not isinstance(raw, dict):
            return None
        date = raw.get("date")
        if not isinstance(date, str) or not _DATE_PATTERN.match(date.strip()):
            return None

        occasions: dict[str, str] = {}
        for occasion in OCCASIONS:
            minutes = parse_hhmm(raw.get(occasion))
            if minutes is not None:
                occasions[occasion] = format_hhmm(minutes)
        return cls(date=date.strip(), occasions=occasions)


# ═══════════════════════════════════════════════════════════
# Engine Models
# ═══════════════════════════════════════════════════════════


@dataclass(frozen=True)
class WorkItem:
    """One pending notification in the work queue.

    Attributes:
        recipient: Chat that receives the message.
        send_at: HH:MM at which the dispatcher fires it.
        payload: Message text.
        dedup_key: date:occasion:recipient:offset idempotency key.
        occasion: Prayer key the item belongs to.
        offset_minutes: 0 for the at-prayer alert, lead time for a reminder.
    """

    recipient: RecipientId
    send_at: str
    payload: str
    dedup_key: str
    occasion: str
    offset_minutes: int = 0

    @property
    def is_reminder(self) -> bool:
        return dedup_offset(self.dedup_key) != 0


@dataclass
class LedgerEntry:
    """A dedup key that has already been delivered."""

    dedup_key: str
    delivered_at_ms: int
