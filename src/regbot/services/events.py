from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from aiogram.utils.text_decorations import html_decoration

from regbot.db.models import Event, EventPayment
from regbot.texts import t


def quote(value: Optional[str]) -> str:
    return html_decoration.quote(value) if value else ""


def format_event_date(value: datetime, tz: ZoneInfo) -> str:
    return value.astimezone(tz).strftime("%d.%m.%Y %H:%M")


def format_event_title(event: Event, locale: Optional[str] = None) -> str:
    prefix = ""
    if event.cancelled:
        prefix = t(locale, "event.title_cancelled_prefix") + " "
    elif event.date_changed:
        prefix = t(locale, "event.title_date_changed_prefix") + " "
    return prefix + quote(event.name)


def format_event_price(event: Event, locale: Optional[str] = None) -> str:
    if event.payment == EventPayment.NOT_REQUIRED:
        return t(locale, "event.free")
    if event.payment == EventPayment.DONATION and event.price is None:
        return t(locale, "event.free_donation")
    return quote(event.price)


def requires_payment(event: Event) -> bool:
    """Whether a new signup has to go through the payment stage."""
    if event.payment == EventPayment.REQUIRED:
        return True
    return event.payment == EventPayment.DONATION and event.price is not None


def format_payment_details(
    event: Event,
    locale: Optional[str],
    *,
    default_iban: str,
    default_recipient: str,
) -> str:
    params = {
        "iban": quote(event.iban or default_iban),
        "recipient": quote(event.recipient or default_recipient),
    }
    if event.price is not None:
        return t(locale, "reminders.payment_details_with_price", price=quote(event.price), **params)
    return t(locale, "reminders.payment_details", **params)


def reminder_window(now: datetime, tz: ZoneInfo, reminder_hour: int) -> tuple[datetime, datetime]:
    """Return the ``[start, end]`` range of event dates due for a reminder at ``now``.

    Days roll over at ``reminder_hour`` local time, so until that hour the bot
    still reminds about the same events as the evening before. The range
    starts at local midnight of "tomorrow" and ends at 03:59 of the day after,
    which keeps late-night parties on the previous day.
    """
    local = now.astimezone(tz) - timedelta(hours=reminder_hour)
    today = datetime(local.year, local.month, local.day, tzinfo=tz)
    start = today + timedelta(days=1)
    end = start + timedelta(days=1, hours=3, minutes=59)
    return start, end
