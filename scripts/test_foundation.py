"""Adhan Notifier — Foundation Test Script.

Verifies the project foundation:
  1. Configuration loading and validation
  2. Time and dedup-key helpers
  3. Model parsing (prayer-time records, subscribers)
  4. SQLite document store: round trip, not-found, corrupt
  5. Legacy JSON file import

Run: python scripts/test_foundation.py  (or pytest)
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
import tempfile
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.config import ConfigurationError, load_config
from src.database import queries
from src.database.db import Database
from src.database.documents import (
    DocumentCorruptError,
    DocumentNotFoundError,
    DocumentStore,
    import_legacy_files,
)
from src.database.models import (
    DaySchedule,
    Subscriber,
    WorkItem,
    dedup_offset,
    is_valid_lead_minutes,
    is_valid_recipient_id,
    make_dedup_key,
    normalize_recipient_id,
    parse_hhmm,
    subtract_minutes,
)
from src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Test counters ─────────────────────────────────────────
_passed = 0
_failed = 0


def check(label: str, condition: bool) -> None:
    """Assert a test condition and track pass/fail counts.

    Args:
        label: Human-readable description of the test.
        condition: Whether the test passed.
    """
    global _passed, _failed
    if condition:
        _passed += 1
        logger.info("  ✅ %s", label)
    else:
        _failed += 1
        logger.error("  ❌ FAILED: %s", label)
    assert condition, label


_SETTINGS_YAML = """
telegram:
  bot_token: ${ADHAN_TEST_BOT_TOKEN}
  delivery_timeout_seconds: 7
scheduler:
  timezone: Africa/Algiers
  dispatch_interval_seconds: 30
subscribers:
  default_lead_minutes: 15
storage:
  database_path: data/test.db
messages:
  city_label: "Test City"
logging:
  level: DEBUG
"""


def test_config() -> None:
    """Settings file with env placeholders loads into typed dataclasses."""
    logger.info("═══ Test 1: Configuration System ═══")

    with tempfile.TemporaryDirectory() as tmp:
        settings = Path(tmp) / "settings.yaml"
        settings.write_text(_SETTINGS_YAML, encoding="utf-8")
        env_file = Path(tmp) / ".env"
        env_file.write_text("ADHAN_TEST_BOT_TOKEN=123:abc\n", encoding="utf-8")

        os.environ.pop("ADHAN_TEST_BOT_TOKEN", None)
        config = load_config(settings_path=settings, env_path=env_file)

        check("Token resolved from .env", config.telegram.bot_token == "123:abc")
        check("Delivery timeout read", config.telegram.delivery_timeout_seconds == 7.0)
        check("Rate limit default", config.telegram.max_messages_per_second == 25)
        check("Timezone", config.scheduler.timezone == "Africa/Algiers")
        check("Build time default 00:05",
              (config.scheduler.daily_build_hour, config.scheduler.daily_build_minute) == (0, 5))
        check("Housekeeping default", config.scheduler.housekeeping_interval_minutes == 60)
        check("Ledger retention default", config.scheduler.ledger_retention_hours == 24)
        check("Cache TTL default", config.storage.cache_ttl_seconds == 300)
        check("Default lead time", config.default_lead_minutes == 15)
        check("Server port default", config.server.port == 3001)
        check("City label", config.city_label == "Test City")
        check("Log level", config.log_level == "DEBUG")
        os.environ.pop("ADHAN_TEST_BOT_TOKEN", None)


def test_config_faults() -> None:
    """Missing token, file, section or unknown timezone is a ConfigurationError."""
    logger.info("═══ Test 2: Configuration Faults ═══")

    with tempfile.TemporaryDirectory() as tmp:
        settings = Path(tmp) / "settings.yaml"
        settings.write_text(
            _SETTINGS_YAML.replace("ADHAN_TEST_BOT_TOKEN", "ADHAN_TEST_UNSET_TOKEN"),
            encoding="utf-8",
        )
        os.environ.pop("ADHAN_TEST_UNSET_TOKEN", None)
        missing_env = Path(tmp) / "none.env"

        try:
            load_config(settings_path=settings, env_path=missing_env)
            raised = False
        except ConfigurationError:
            raised = True
        check("Unset token is fatal", raised)

        try:
            load_config(settings_path=Path(tmp) / "absent.yaml", env_path=missing_env)
            raised = False
        except ConfigurationError:
            raised = True
        check("Missing settings file is fatal", raised)

        settings.write_text("telegram:\n  bot_token: x\n", encoding="utf-8")
        try:
            load_config(settings_path=settings, env_path=missing_env)
            raised = False
        except ConfigurationError:
            raised = True
        check("Missing scheduler/storage sections is fatal", raised)

        settings.write_text(
            "telegram:\n  bot_token: x\n"
            "scheduler:\n  timezone: Mars/Olympus_Mons\n"
            "storage:\n  database_path: data/test.db\n",
            encoding="utf-8",
        )
        try:
            load_config(settings_path=settings, env_path=missing_env)
            raised = False
        except ConfigurationError:
            raised = True
        check("Unknown timezone is fatal", raised)

        check("ConfigurationError is a ValueError", issubclass(ConfigurationError, ValueError))


def test_time_helpers() -> None:
    """HH:MM parsing, borrow across the hour, midnight handling."""
    logger.info("═══ Test 3: Time & Key Helpers ═══")

    check("parse 05:30", parse_hhmm("05:30") == 330)
    check("parse 5:30", parse_hhmm("5:30") == 330)
    check("parse with suffix", parse_hhmm("05:30 (CET)") == 330)
    check("reject 24:00", parse_hhmm("24:00") is None)
    check("reject garbage", parse_hhmm("soon") is None)
    check("reject non-string", parse_hhmm(530) is None)

    check("05:30 - 10 = 05:20", subtract_minutes("05:30", 10) == "05:20")
    check("borrow: 08:05 - 10 = 07:55", subtract_minutes("08:05", 10) == "07:55")
    check("exactly midnight allowed", subtract_minutes("00:10", 10) == "00:00")
    check("crossing midnight → None", subtract_minutes("00:05", 10) is None)

    key = make_dedup_key("2024-01-01", "fajr", 42, 10)
    check("dedup key layout", key == "2024-01-01:fajr:42:10")
    check("offset suffix", dedup_offset(key) == 10)
    check("string recipient keys", dedup_offset(make_dedup_key("2024-01-01", "isha", "@ch", 0)) == 0)

    check("int id valid", is_valid_recipient_id(42))
    check("negative group id valid", is_valid_recipient_id(-100123))
    check("bool id invalid", not is_valid_recipient_id(True))
    check("blank id invalid", not is_valid_recipient_id("  "))
    check("None id invalid", not is_valid_recipient_id(None))
    check("numeric string id → int", normalize_recipient_id(" -100123") == -100123)
    check("username id kept", normalize_recipient_id("@adhan_channel") == "@adhan_channel")
    check("int id kept", normalize_recipient_id(42) == 42)

    check("lead 0 valid", is_valid_lead_minutes(0))
    check("lead 60 valid", is_valid_lead_minutes(60))
    check("lead 61 invalid", not is_valid_lead_minutes(61))
    check("lead '5' invalid", not is_valid_lead_minutes("5"))


def test_models() -> None:
    """Prayer-time records and subscriber records parse as expected."""
    logger.info("═══ Test 4: Models ═══")

    day = DaySchedule.from_dict({
        "date": "2024-01-01", "fajr": "5:30", "dhuhr": "12:40",
        "asr": "not a time", "maghrib": "17:55", "isha": "19:20", "sunrise": "07:00",
    })
    check("record parsed", day is not None)
    check("times zero-padded", day.time_of("fajr") == "05:30")
    check("bad time dropped", day.time_of("asr") is None)
    check("unknown keys ignored", "sunrise" not in day.occasions)
    check("fixed prayer order",
          [o for o, _ in day.ordered()] == ["fajr", "dhuhr", "maghrib", "isha"])
    check("to_dict flat record", day.to_dict()["fajr"] == "05:30")

    check("record without date rejected", DaySchedule.from_dict({"fajr": "05:30"}) is None)
    check("bad date rejected", DaySchedule.from_dict({"date": "01/01/2024"}) is None)
    check("non-dict rejected", DaySchedule.from_dict(["2024-01-01"]) is None)

    sub = Subscriber.from_dict({"id": 42, "settings": {"leadMinutes": 5}})
    check("subscriber lead", sub.settings.lead_minutes == 5)
    check("subscriber round trip",
          sub.to_dict() == {"id": 42, "settings": {"leadMinutes": 5}})

    reminder = WorkItem(42, "05:20", "x", "2024-01-01:fajr:42:10", "fajr", 10)
    alert = WorkItem(42, "05:30", "x", "2024-01-01:fajr:42:0", "fajr", 0)
    check("reminder detected from key", reminder.is_reminder)
    check("adhan alert not a reminder", not alert.is_reminder)


async def _document_store() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        async with Database(str(Path(tmp) / "docs.db")) as db:
            store = DocumentStore(db)

            try:
                await store.load("subscribers")
                outcome = "loaded"
            except DocumentNotFoundError:
                outcome = "not_found"
            check("absent document → NotFound", outcome == "not_found")

            value = [{"id": 42, "settings": {"leadMinutes": 10}}]
            await store.save("subscribers", value)
            check("round trip", await store.load("subscribers") == value)

            await store.save("subscribers", [])
            check("save replaces in full", await store.load("subscribers") == [])

            await queries.put_document(db, "prayer_times", "{not json")
            try:
                await store.load("prayer_times")
                outcome = "loaded"
            except DocumentCorruptError:
                outcome = "corrupt"
            check("unparseable body → Corrupt", outcome == "corrupt")

            arabic = [{"date": "2024-01-01", "note": "الفجر"}]
            await store.save("prayer_times", arabic)
            check("non-ASCII preserved", await store.load("prayer_times") == arabic)


def test_document_store() -> None:
    """SQLite document store load/save and error taxonomy."""
    logger.info("═══ Test 5: Document Store ═══")
    asyncio.run(_document_store())


async def _legacy_import() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        data_dir = Path(tmp) / "data"
        data_dir.mkdir()
        (data_dir / "subscribers.json").write_text(json.dumps([42, 77]), encoding="utf-8")
        (data_dir / "prayer_times.json").write_text("{broken", encoding="utf-8")

        async with Database(str(Path(tmp) / "docs.db")) as db:
            store = DocumentStore(db)
            imported = await import_legacy_files(store, str(data_dir))
            check("one file imported", imported == 1)
            check("legacy ids imported verbatim", await store.load("subscribers") == [42, 77])
            check("broken file skipped", not await queries.document_exists(db, "prayer_times"))

            (data_dir / "subscribers.json").write_text(json.dumps([1]), encoding="utf-8")
            again = await import_legacy_files(store, str(data_dir))
            check("existing document never overwritten", again == 0)
            check("store unchanged", await store.load("subscribers") == [42, 77])

            check("empty dir setting is a no-op", await import_legacy_files(store, "") == 0)


def test_legacy_import() -> None:
    """Old prayer_times.json / subscribers.json are imported once."""
    logger.info("═══ Test 6: Legacy Import ═══")
    asyncio.run(_legacy_import())


def main() -> None:
    """Run all foundation tests and print a summary."""
    logger.info("╔══════════════════════════════════════════════════════╗")
    logger.info("║  Adhan Notifier — Foundation Test                    ║")
    logger.info("╚══════════════════════════════════════════════════════╝")

    for test in (
        test_config, test_config_faults, test_time_helpers,
        test_models, test_document_store, test_legacy_import,
    ):
        try:
            test()
        except AssertionError:
            pass

    logger.info("═══ Results: %d passed, %d failed ═══", _passed, _failed)
    sys.exit(1 if _failed else 0)


if __name__ == "__main__":
    main()
