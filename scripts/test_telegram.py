"""Adhan Notifier — Telegram Delivery Test.

Verifies message texts and delivery classification against a fake bot,
so no token or network is needed:
  1. Message formatters (alert, reminder, replies)
  2. SENT / REJECTED / FAILED classification of Telegram errors
  3. RetryAfter handling
  4. Circuit breaker and rate limiter

Run: python scripts/test_telegram.py  (or pytest)
"""

from __future__ import annotations

import asyncio
import sys
import time
from pathlib import Path
from types import SimpleNamespace
from typing import Optional

from telegram.error import BadRequest, ChatMigrated, Forbidden, NetworkError, RetryAfter

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.config import TelegramConfig
from src.database.models import DaySchedule, DeliveryResult, Subscriber, SubscriberSettings
from src.notifier.formatters import (
    _e,
    format_adhan_alert,
    format_day_schedule,
    format_reminder,
    format_settings,
)
from src.notifier.telegram_bot import TelegramNotifier, is_permanent_rejection
from src.utils.logger import get_logger
from src.utils.rate_limiter import AsyncRateLimiter
from src.utils.resilience import CircuitBreaker

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


class FakeBot:
    """Stands in for telegram.Bot; raises scripted errors per chat."""

    def __init__(self, script: Optional[dict] = None, get_me_fails: bool = False) -> None:
        self.script = script or {}
        self.get_me_fails = get_me_fails
        self.attempts = 0
        self.sent: list[tuple] = []

    async def get_me(self):
        if self.get_me_fails:
            raise NetworkError("Connection refused")
        return SimpleNamespace(username="adhan_test_bot")

    async def send_message(self, chat_id, text):
        self.attempts += 1
        pending = self.script.get(chat_id)
        if pending:
            error = pending.pop(0)
            if error is not None:
                raise error
        self.sent.append((chat_id, text))


def _notifier(bot: FakeBot, timeout: float = 10.0) -> TelegramNotifier:
    config = TelegramConfig(
        bot_token="123:abc", delivery_timeout_seconds=timeout, max_messages_per_second=25,
    )
    return TelegramNotifier(config, bot=bot)


def test_formatters() -> None:
    """Arabic texts carry prayer name, time, lead and city."""
    logger.info("═══ Test 1: Formatters ═══")

    alert = format_adhan_alert("fajr", "05:30", "مدينة الصالح، الجزائر")
    check("alert has prayer name", "الفجر" in alert)
    check("alert has time", "05:30" in alert)
    check("alert has city", "مدينة الصالح" in alert)
    check("alert without city", "حسب توقيت" not in format_adhan_alert("isha", "19:20"))

    reminder = format_reminder("maghrib", "17:55", 15)
    check("reminder has prayer name", "المغرب" in reminder)
    check("reminder has lead", "15" in reminder)
    check("reminder has prayer time", "17:55" in reminder)

    check("settings: not subscribed", "/start" in format_settings(None))
    check("settings: reminders off",
          "متوقف" in format_settings(Subscriber(id=1, settings=SubscriberSettings(0))))
    check("settings: lead shown",
          "25" in format_settings(Subscriber(id=1, settings=SubscriberSettings(25))))

    day = DaySchedule.from_dict({"date": "2024-01-01", "fajr": "05:30", "isha": "19:20"})
    table = format_day_schedule(day)
    check("today table lists prayers", "الفجر" in table and "19:20" in table)
    check("today table without data", "غير متوفرة" in format_day_schedule(None))
    check("HTML escaping", _e("<b>&") == "&lt;b&gt;&amp;")


async def _classification() -> None:
    bot = FakeBot({
        1: [],
        2: [Forbidden("Forbidden: bot was blocked by the user")],
        3: [BadRequest("Chat not found")],
        4: [BadRequest("Message is too long")],
        5: [ChatMigrated(-1001234)],
        6: [NetworkError("Connection reset")],
    })
    notifier = _notifier(bot)

    check("plain send → SENT", await notifier.send(1, "hi") is DeliveryResult.SENT)
    check("message reached the bot", bot.sent == [(1, "hi")])
    check("blocked → REJECTED", await notifier.send(2, "hi") is DeliveryResult.REJECTED)
    check("chat not found → REJECTED", await notifier.send(3, "hi") is DeliveryResult.REJECTED)
    check("other BadRequest → FAILED", await notifier.send(4, "hi") is DeliveryResult.FAILED)
    check("migrated chat → FAILED", await notifier.send(5, "hi") is DeliveryResult.FAILED)
    check("network error → FAILED", await notifier.send(6, "hi") is DeliveryResult.FAILED)

    check("Forbidden is permanent", is_permanent_rejection(Forbidden("bot was kicked")))
    check("deactivated user is permanent",
          is_permanent_rejection(BadRequest("Forbidden: user is deactivated")))
    check("bad markup is not permanent",
          not is_permanent_rejection(BadRequest("Can't parse entities")))
    check("network error is not permanent", not is_permanent_rejection(NetworkError("x")))


def test_classification() -> None:
    """Telegram errors map onto delivery results."""
    logger.info("═══ Test 2: Delivery Classification ═══")
    asyncio.run(_classification())


async def _retry_after() -> None:
    bot = FakeBot({1: [RetryAfter(0)], 2: [RetryAfter(30)], 3: [RetryAfter(0), RetryAfter(0)]})
    notifier = _notifier(bot)

    check("short flood wait retried once → SENT", await notifier.send(1, "x") is DeliveryResult.SENT)
    check("two attempts used", bot.attempts == 2)

    started = time.monotonic()
    check("long flood wait → FAILED", await notifier.send(2, "x") is DeliveryResult.FAILED)
    check("long flood wait not slept", time.monotonic() - started < 1.0)

    check("second flood wait → FAILED", await notifier.send(3, "x") is DeliveryResult.FAILED)


def test_retry_after() -> None:
    """RetryAfter waits only when it fits the delivery timeout."""
    logger.info("═══ Test 3: RetryAfter ═══")
    asyncio.run(_retry_after())


async def _circuit_breaker() -> None:
    bot = FakeBot({7: [NetworkError("down")] * 5})
    notifier = _notifier(bot)

    for _ in range(5):
        await notifier.send(7, "x")
    check("breaker open after 5 transport failures", notifier.circuit_breaker.is_open)

    attempts = bot.attempts
    check("open breaker → FAILED", await notifier.send(1, "x") is DeliveryResult.FAILED)
    check("open breaker does not call Telegram", bot.attempts == attempts)

    blocked = FakeBot({2: [Forbidden("blocked")] * 6})
    notifier = _notifier(blocked)
    for _ in range(6):
        await notifier.send(2, "x")
    check("rejections never trip the breaker", not notifier.circuit_breaker.is_open)

    breaker = CircuitBreaker("probe", failure_threshold=1, cooldown_seconds=0.05)

    async def boom():
        raise NetworkError("down")

    async def fine():
        return "ok"

    try:
        await breaker.call(boom)
    except NetworkError:
        pass
    check("threshold 1 opens at once", breaker.state == CircuitBreaker.OPEN)
    await asyncio.sleep(0.06)
    check("half-open after cooldown", breaker.state == CircuitBreaker.HALF_OPEN)
    check("trial call passes", await breaker.call(fine) == "ok")
    check("closed after successful trial", breaker.to_dict()["state"] == CircuitBreaker.CLOSED)


def test_circuit_breaker() -> None:
    """Transport failures trip the breaker; rejections do not."""
    logger.info("═══ Test 4: Circuit Breaker ═══")
    asyncio.run(_circuit_breaker())


async def _rate_limiter() -> None:
    limiter = AsyncRateLimiter(max_calls=2, period_seconds=0.2)
    started = time.monotonic()
    for _ in range(3):
        async with limiter:
            pass
    check("third call waited for the window", time.monotonic() - started >= 0.15)

    try:
        AsyncRateLimiter(max_calls=0)
        raised = False
    except ValueError:
        raised = True
    check("max_calls < 1 rejected", raised)


def test_rate_limiter() -> None:
    """Sliding window holds back the call over the limit."""
    logger.info("═══ Test 5: Rate Limiter ═══")
    asyncio.run(_rate_limiter())


async def _initialize() -> None:
    check("getMe ok → connected", await _notifier(FakeBot()).initialize())
    check("getMe fails → not connected",
          not await _notifier(FakeBot(get_me_fails=True)).initialize())


def test_initialize() -> None:
    """Token check via getMe."""
    logger.info("═══ Test 6: Bot Connection ═══")
    asyncio.run(_initialize())


def main() -> None:
    """Run all Telegram delivery tests and print a summary."""
    logger.info("╔══════════════════════════════════════════════════════╗")
    logger.info("║  Adhan Notifier — Telegram Delivery Test             ║")
    logger.info("╚══════════════════════════════════════════════════════╝")

    for test in (
        test_formatters, test_classification, test_retry_after,
        test_circuit_breaker, test_rate_limiter, test_initialize,
    ):
        try:
            test()
        except AssertionError:
            pass

    logger.info("═══ Results: %d passed, %d failed ═══", _passed, _failed)
    sys.exit(1 if _failed else 0)


if __name__ == "__main__":
    main()
