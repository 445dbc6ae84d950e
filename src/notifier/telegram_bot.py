"""Adhan Notifier — Telegram Message Sink.

Async delivery to individual chats using python-telegram-bot v22+.
Each send is classified as:
  - SENT      message accepted by Telegram
  - REJECTED  chat blocked the bot, was deleted, or never existed
  - FAILED    anything transient (network, timeout, rate limit, outage)

A circuit breaker fails sends fast while Telegram is unreachable.
Throttling a broadcast is up to the caller (see Dispatcher).
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Optional

from telegram import Bot
from telegram.error import (
    BadRequest,
    ChatMigrated,
    Forbidden,
    RetryAfter,
    TelegramError,
)

from src.config import TelegramConfig
from src.database.models import DeliveryResult, RecipientId
from src.utils.logger import get_logger
from src.utils.resilience import CircuitBreaker, CircuitOpenError

logger = get_logger(__name__)

# BadRequest messages that mean the chat is gone for good
_PERMANENT_BAD_REQUESTS = (
    "chat not found",
    "user is deactivated",
    "bot was kicked",
    "bot was blocked",
    "peer_id_invalid",
    "have no rights to send",
    "not enough rights to send",
)


def _retry_after_seconds(error: RetryAfter) -> float:
    wait = error.retry_after
    if isinstance(wait, timedelta):
        return wait.total_seconds()
    return float(wait)


def is_permanent_rejection(error: TelegramError) -> bool:
    """Whether a Telegram error means the chat can never be reached."""
    if isinstance(error, Forbidden):
        return True
    if isinstance(error, BadRequest):
        message = str(error).lower()
        return any(marker in message for marker in _PERMANENT_BAD_REQUESTS)
    return False


class TelegramNotifier:
    """Message sink delivering plain-text notifications to chats.

    Attributes:
        config: TelegramConfig with the bot token and delivery limits.
        circuit_breaker: Trips after repeated transport failures.
    """

    def __init__(self, config: TelegramConfig, bot: Optional[Bot] = None) -> None:
        """Initialize the notifier.

        Args:
            config: TelegramConfig from the app configuration.
            bot: Bot to send with; the polling Application's bot is
                passed in at runtime. A new Bot is created if omitted.
        """
        self.config = config
        self._bot = bot if bot is not None else Bot(token=config.bot_token)
        self.circuit_breaker = CircuitBreaker(
            name="telegram",
            failure_threshold=5,
            cooldown_seconds=120,
        )

    async def initialize(self) -> bool:
        """Verify the token with getMe.

        Returns:
            True if connected successfully, False otherwise.
        """
        try:
            me = await self._bot.get_me()
            logger.info("Telegram bot connected: @%s", me.username)
            return True
        except TelegramError as e:
            logger.error("Telegram bot connection failed: %s", e)
            return False

    async def send(self, chat_id: RecipientId, text: str) -> DeliveryResult:
        """Deliver one message to one chat.

        Never raises for Telegram-side problems; the outcome is returned.

        Args:
            chat_id: Target chat.
            text: Plain-text message.

        Returns:
            DeliveryResult.SENT, REJECTED or FAILED.
        """
        try:
            return await self.circuit_breaker.call(self._deliver, chat_id, text)
        except CircuitOpenError as e:
            logger.warning("Not sending to %s: %s", chat_id, e)
            return DeliveryResult.FAILED
        except TelegramError as e:
            logger.error("Failed to send to %s: %s", chat_id, e)
            return DeliveryResult.FAILED

    async def _deliver(self, chat_id: RecipientId, text: str) -> DeliveryResult:
        """Send and classify chat-level errors.

        Transport errors propagate so the circuit breaker counts them.
        """
        for attempt in range(2):
            try:
                await self._bot.send_message(chat_id=chat_id, text=text)
                return DeliveryResult.SENT

            except RetryAfter as e:
                wait = _retry_after_seconds(e)
                if attempt > 0 or wait > self.config.delivery_timeout_seconds / 2:
                    logger.warning("Rate limited sending to %s (retry after %.0fs)", chat_id, wait)
                    return DeliveryResult.FAILED
                logger.warning("Telegram rate limited. Waiting %.0f seconds...", wait)
                await asyncio.sleep(wait)

            except ChatMigrated as e:
                logger.warning("Chat %s migrated to %s", chat_id, e.new_chat_id)
                return DeliveryResult.FAILED

            except (Forbidden, BadRequest) as e:
                if is_permanent_rejection(e):
                    logger.info("Chat %s rejected delivery: %s", chat_id, e)
                    return DeliveryResult.REJECTED
                logger.error("Telegram BadRequest for %s: %s", chat_id, e)
                return DeliveryResult.FAILED

        return DeliveryResult.FAILED
