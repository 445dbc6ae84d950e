"""Adhan Notifier — Cached Loader Test Script.

Tests the read-through cache over the document store:
  1. TTL caching and expiry
  2. Missing / corrupt documents
  3. Legacy subscriber migration with write-back
  4. Saves: validation, cache refresh, failure

Run: python scripts/test_loader.py  (or pytest)
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Optional

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from scripts.fakes import (
    CORRUPT,
    FixedClock,
    MemoryStore,
    schedule_record,
    subscriber_record,
)
from src.database.loader import CachedLoader, normalize_subscribers, parse_schedule
from src.database.models import DaySchedule, StoreName, Subscriber, SubscriberSettings
from src.utils.logger import get_logger

logger = get_logger(__name__)

_passed = 0
_failed = 0


def check(label: str, condition: bool) -> None:
    """Track test pass/fail and fail the current test under pytest."""
    global _passed, _failed
    if condition:
        _passed += 1
        logger.info("  ✅ %s", label)
    else:
        _failed += 1
        logger.error("  ❌ FAILED: %s", label)
    assert condition, label


def _loader(store: MemoryStore, clock: Optional[FixedClock] = None, ttl: int = 300) -> CachedLoader:
    return CachedLoader(store, clock or FixedClock(), ttl_seconds=ttl, default_lead_minutes=10)


async def _caching() -> None:
    clock = FixedClock()
    store = MemoryStore(
        prayer_times=[schedule_record(fajr="05:30")],
        subscribers=[subscriber_record(42)],
    )
    loader = _loader(store, clock)

    first = await loader.get_subscribers()
    await loader.get_subscribers()
    check("second read served from cache", store.loads == 1)

    first.append(Subscriber(id=99))
    check("callers get a copy", len(await loader.get_subscribers()) == 1)

    clock.advance(seconds=299)
    await loader.get_subscribers()
    check("still fresh just before TTL", store.loads == 1)

    clock.advance(seconds=1)
    await loader.get_subscribers()
    check("reloaded at TTL", store.loads == 2)

    day = await loader.get_day_schedule("2024-01-01")
    check("day found", day is not None and day.time_of("fajr") == "05:30")
    check("other day absent", await loader.get_day_schedule("2024-01-02") is None)
    check("documents cached separately", store.loads == 3)

    clock.advance(seconds=300)
    check("purge drops expired entries", loader.purge_expired() == 2)

    await loader.get_subscribers()
    loader.invalidate(StoreName.SUBSCRIBERS)
    await loader.get_subscribers()
    check("invalidate forces a reload", store.loads == 5)


def test_caching() -> None:
    """Reads within the TTL never touch the store."""
    logger.info("═══ Test 1: TTL Cache ═══")
    asyncio.run(_caching())


async def _missing_and_corrupt() -> None:
    store = MemoryStore()
    loader = _loader(store)
    check("missing subscribers → []", await loader.get_subscribers() == [])
    check("missing subscribers created", store.documents.get("subscribers") == [])
    check("missing schedule → []", await loader.load(StoreName.SCHEDULE) == [])
    check("missing schedule not created", "prayer_times" not in store.documents)

    store = MemoryStore(subscribers=CORRUPT, prayer_times=CORRUPT)
    loader = _loader(store)
    check("corrupt subscribers → []", await loader.get_subscribers() == [])
    check("corrupt subscribers reset", store.documents["subscribers"] == [])
    check("corrupt schedule → no day", await loader.get_day_schedule("2024-01-01") is None)
    check("corrupt schedule left for the next upload", store.documents["prayer_times"] is CORRUPT)

    store = MemoryStore(subscribers=CORRUPT)
    store.fail_saves = True
    loader = _loader(store)
    check("write-back failure does not escape", await loader.get_subscribers() == [])


def test_missing_and_corrupt() -> None:
    """Store faults degrade to empty lists."""
    logger.info("═══ Test 2: Missing & Corrupt Documents ═══")
    asyncio.run(_missing_and_corrupt())


async def _migration() -> None:
    store = MemoryStore(subscribers=[
        42,
        "@adhan_channel",
        {"id": 77, "settings": {"leadMinutes": 25}},
        {"id": 88},
        {"id": 89, "settings": {"leadMinutes": 500}},
        {"settings": {"leadMinutes": 5}},
        42,
        None,
    ])
    loader = _loader(store)
    subscribers = await loader.get_subscribers()

    check("ids in original order",
          [s.id for s in subscribers] == [42, "@adhan_channel", 77, 88, 89])
    check("bare id gets default lead", subscribers[0].settings.lead_minutes == 10)
    check("valid lead kept", subscribers[2].settings.lead_minutes == 25)
    check("missing settings defaulted", subscribers[3].settings.lead_minutes == 10)
    check("out-of-range lead defaulted", subscribers[4].settings.lead_minutes == 10)
    check("corrected list written back", store.documents["subscribers"] == [
        {"id": 42, "settings": {"leadMinutes": 10}},
        {"id": "@adhan_channel", "settings": {"leadMinutes": 10}},
        {"id": 77, "settings": {"leadMinutes": 25}},
        {"id": 88, "settings": {"leadMinutes": 10}},
        {"id": 89, "settings": {"leadMinutes": 10}},
    ])

    store = MemoryStore(subscribers=[subscriber_record(42, 5)])
    await _loader(store).get_subscribers()
    check("clean list not rewritten", store.saves == 0)

    subs, corrections = normalize_subscribers({"id": 42})
    check("non-list document → empty, corrected", subs == [] and corrections == 1)

    subs, corrections = normalize_subscribers([
        {"id": 42, "settings": {"leadMinutes": 5}},
        {"id": "42", "settings": {"leadMinutes": 20}},
        {"id": "-100123", "settings": {"leadMinutes": 0}},
    ])
    check("numeric-string ids become ints", [s.id for s in subs] == [42, -100123])
    check("\"42\" is the same chat as 42, first record kept", subs[0].settings.lead_minutes == 5)
    check("id conversions and duplicate counted", corrections == 3)

    days = parse_schedule([schedule_record(fajr="05:30"), {"fajr": "05:31"}, "junk"])
    check("records without date skipped", [d.date for d in days] == ["2024-01-01"])
    check("non-list schedule → []", parse_schedule({"date": "2024-01-01"}) == [])


def test_migration() -> None:
    """Legacy and malformed subscriber entries are repaired."""
    logger.info("═══ Test 3: Subscriber Migration ═══")
    asyncio.run(_migration())


async def _saves() -> None:
    store = MemoryStore(subscribers=[])
    loader = _loader(store)
    await loader.get_subscribers()

    ok = await loader.save_subscribers([
        Subscriber(id=42, settings=SubscriberSettings(lead_minutes=5)),
        Subscriber(id="", settings=SubscriberSettings(lead_minutes=5)),
    ])
    check("save succeeded", ok)
    check("invalid id dropped before write",
          store.documents["subscribers"] == [{"id": 42, "settings": {"leadMinutes": 5}}])
    loads = store.loads
    check("cache refreshed by save",
          [s.id for s in await loader.get_subscribers()] == [42] and store.loads == loads)

    store.fail_saves = True
    ok = await loader.save_subscribers([Subscriber(id=7)])
    check("failed save → False", ok is False)
    check("failed save leaves cache alone",
          [s.id for s in await loader.get_subscribers()] == [42])

    store.fail_saves = False
    day = DaySchedule.from_dict(schedule_record(fajr="5:30", isha="19:20"))
    check("schedule saved", await loader.save_schedule([day]))
    check("schedule stored as flat records",
          store.documents["prayer_times"] == [{"date": "2024-01-01", "fajr": "05:30", "isha": "19:20"}])


def test_saves() -> None:
    """Saves validate, persist and refresh the cache."""
    logger.info("═══ Test 4: Saves ═══")
    asyncio.run(_saves())


def main() -> None:
    """Run all loader tests and print a summary."""
    logger.info("╔══════════════════════════════════════════════════════╗")
    logger.info("║  Adhan Notifier — Cached Loader Test                 ║")
    logger.info("╚══════════════════════════════════════════════════════╝")

    for test in (test_caching, test_missing_and_corrupt, test_migration, test_saves):
        try:
            test()
        except AssertionError:
            pass

    logger.info("═══ Results: %d passed, %d failed ═══", _passed, _failed)
    sys.exit(1 if _failed else 0)


if __name__ == "__main__":
    main()
