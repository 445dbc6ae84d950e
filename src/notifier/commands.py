"""Adhan Notifier — Telegram Command Handlers.

Interactive commands via Telegram bot:
  /start — subscribe to prayer notifications
  /stop — unsubscribe
  /reminder <0-60> — minutes before each prayer to send a reminder
  /settings — show the current reminder setting
  /today — today's prayer times
  /help — list commands

Uses python-telegram-bot v22+ Application with polling.
"""

from __future__ import annotations

from telegram import Update
from telegram.ext import Application, CommandHandler as TgCmdHandler, ContextTypes

from src.database.loader import CachedLoader
from src.database.models import MAX_LEAD_MINUTES, MIN_LEAD_MINUTES
from src.notifier.formatters import (
    format_day_schedule,
    format_help,
    format_settings,
    format_welcome,
)
from src.scheduler.subscribers import SubscriberRegistry
from src.utils.clock import Clock
from src.utils.logger import get_logger

logger = get_logger(__name__)


class CommandHandler:
    """Telegram bot command handlers.

    Attributes:
        registry: Subscriber mutations (subscribe, lead time, ...).
        loader: Read access to today's prayer times.
        clock: Civil clock, for "today".
    """

    def __init__(self, registry: SubscriberRegistry, loader: CachedLoader, clock: Clock) -> None:
        self.registry = registry
        self.loader = loader
        self.clock = clock

    def register(self, tg_app: Application) -> None:
        """Register all command handlers with the Telegram Application."""
        tg_app.add_handler(TgCmdHandler("start", self._cmd_start))
        tg_app.add_handler(TgCmdHandler("stop", self._cmd_stop))
        tg_app.add_handler(TgCmdHandler("reminder", self._cmd_reminder))
        tg_app.add_handler(TgCmdHandler("settings", self._cmd_settings))
        tg_app.add_handler(TgCmdHandler("today", self._cmd_today))
        tg_app.add_handler(TgCmdHandler("help", self._cmd_help))
        logger.info("Registered 6 Telegram commands")

    async def _cmd_start(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Handle /start — subscribe this chat."""
        chat_id = update.effective_chat.id
        try:
            added = await self.registry.subscribe(chat_id)
        except (ValueError, RuntimeError) as e:
            logger.error("Error handling /start for %s: %s", chat_id, e)
            await update.message.reply_text(
                "حدث خطأ ما أثناء محاولة تسجيل اشتراكك. يرجى المحاولة مرة أخرى."
            )
            return

        if added:
            await update.message.reply_text(format_welcome(self.registry.default_lead_minutes))
        else:
            await update.message.reply_text("أنت مشترك بالفعل في خدمة الإشعارات.")

    async def _cmd_stop(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Handle /stop — unsubscribe this chat."""
        chat_id = update.effective_chat.id
        try:
            removed = await self.registry.unsubscribe(chat_id)
        except RuntimeError as e:
            logger.error("Error handling /stop for %s: %s", chat_id, e)
            await update.message.reply_text("حدث خطأ ما. يرجى المحاولة مرة أخرى.")
            return

        if removed:
            await update.message.reply_text("تم إلغاء اشتراكك. أرسل /start للعودة في أي وقت.")
        else:
            await update.message.reply_text("أنت غير مشترك حالياً.")

    async def _cmd_reminder(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Handle /reminder N — change the lead time, then reschedule."""
        chat_id = update.effective_chat.id
        usage = (
            f"الاستخدام: /reminder &lt;{MIN_LEAD_MINUTES}-{MAX_LEAD_MINUTES}&gt;\n"
            "مثال: /reminder 15 — و /reminder 0 لإيقاف التذكير"
        )

        args = context.args or []
        if len(args) != 1 or not args[0].isdigit():
            await update.message.reply_text(usage, parse_mode="HTML")
            return

        try:
            subscriber = await self.registry.set_lead_minutes(chat_id, int(args[0]))
        except ValueError:
            await update.message.reply_text(usage, parse_mode="HTML")
            return
        except LookupError:
            await update.message.reply_text("أنت غير مشترك. أرسل /start للاشتراك.")
            return
        except RuntimeError as e:
            logger.error("Error handling /reminder for %s: %s", chat_id, e)
            await update.message.reply_text("حدث خطأ ما. يرجى المحاولة مرة أخرى.")
            return

        await update.message.reply_text("✅ تم الحفظ.\n" + format_settings(subscriber))

    async def _cmd_settings(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Handle /settings — show the current lead time."""
        subscriber = await self.registry.get(update.effective_chat.id)
        await update.message.reply_text(format_settings(subscriber))

    async def _cmd_today(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Handle /today — today's prayer times."""
        day = await self.loader.get_day_schedule(self.clock.today())
        await update.message.reply_text(format_day_schedule(day), parse_mode="HTML")

    async def _cmd_help(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Handle /help — list commands."""
        await update.message.reply_text(format_help(), parse_mode="HTML")
