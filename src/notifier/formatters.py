"""Adhan Notifier — Telegram Message Formatters.

Arabic notification texts. Messages are sent as plain text, so nothing
here needs escaping except the command replies that use HTML.
"""

from __future__ import annotations

from typing import Optional

from src.database.models import DaySchedule, Subscriber

# ── Prayer display names ─────────────────────────────────
PRAYER_NAMES = {
    "fajr": "الفجر",
    "dhuhr": "الظهر",
    "asr": "العصر",
    "maghrib": "المغرب",
    "isha": "العشاء",
}


def _e(text: str) -> str:
    """Escape HTML special characters for Telegram HTML parse mode."""
    if not text:
        return ""
    return str(text).replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def prayer_name(occasion: str) -> str:
    return PRAYER_NAMES.get(occasion, occasion)


def format_adhan_alert(occasion: str, prayer_time: str, city_label: str = "") -> str:
    """Text sent at the moment of the adhan.

    Args:
        occasion: Prayer key (fajr, dhuhr, ...).
        prayer_time: HH:MM of the prayer.
        city_label: Location shown in the message; omitted when empty.
    """
    where = f" حسب توقيت {city_label}" if city_label else ""
    return f"🕌 حان الآن موعد أذان {prayer_name(occasion)}{where} ({prayer_time})"


def format_reminder(occasion: str, prayer_time: str, lead_minutes: int) -> str:
    """Text sent lead_minutes before a prayer."""
    return (
        f"⏰ تبقّى {lead_minutes} دقيقة على أذان {prayer_name(occasion)} "
        f"({prayer_time})"
    )


def format_welcome(lead_minutes: int) -> str:
    return (
        "أهلاً بك! تم اشتراكك في خدمة إشعارات الأذان. "
        "ستصلك رسالة عند كل وقت صلاة.\n"
        f"⏰ التذكير قبل الأذان: {lead_minutes} دقيقة.\n"
        "لتغيير مدة التذكير: /reminder 15"
    )


def format_settings(subscriber: Optional[Subscriber]) -> str:
    if subscriber is None:
        return "أنت غير مشترك. أرسل /start للاشتراك."
    lead = subscriber.settings.lead_minutes
    if lead == 0:
        return "⚙️ التذكير قبل الأذان: متوقف"
    return f"⚙️ التذكير قبل الأذان: {lead} دقيقة"


def format_day_schedule(day: Optional[DaySchedule]) -> str:
    """Today's prayer times as an HTML block."""
    if day is None or not day.occasions:
        return "⚠️ مواقيت اليوم غير متوفرة حالياً."
    lines = [f"<b>🕌 مواقيت الصلاة — {_e(day.date)}</b>", ""]
    for occasion, prayer_time in day.ordered():
        lines.append(f"{_e(prayer_name(occasion))}: <b>{_e(prayer_time)}</b>")
    return "\n".join(lines)


def format_help() -> str:
    return (
        "<b>🕌 بوت إشعارات الأذان</b>\n"
        "\n"
        "<b>الأوامر المتاحة:</b>\n"
        "/start — الاشتراك في الإشعارات\n"
        "/stop — إلغاء الاشتراك\n"
        "/reminder &lt;0-60&gt; — مدة التذكير قبل الأذان (0 لإيقافه)\n"
        "/settings — الإعدادات الحالية\n"
        "/today — مواقيت اليوم\n"
    )
