"""Adhan Notifier — Notifier Package.

Telegram delivery of prayer notifications.
Components:
  - formatters: Arabic message texts
  - telegram_bot: message sink with rejection classification
  - dispatcher: per-tick delivery of due work items (src.notifier.dispatcher)
  - commands: /start, /stop, /reminder ... (src.notifier.commands)
"""

from src.notifier.formatters import (
    format_adhan_alert,
    format_reminder,
)
from src.notifier.telegram_bot import TelegramNotifier

__all__ = [
    "format_adhan_alert",
    "format_reminder",
    "TelegramNotifier",
]
