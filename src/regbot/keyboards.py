from __future__ import annotations

from typing import Optional

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from regbot.db.models import SignupStatus
from regbot.texts import t

CONFIRM_SIGNUP = "signup_confirm"
CONFIRM_PAYMENT = "signup_payment"
REJECT_SIGNUP = "signup_reject"
WILL_BE_THERE = "reminder_going"
CANT_MAKE_IT = "reminder_cancel"


def parse_callback_ids(data: str) -> tuple[int, ...]:
    """``"prefix:1:2"`` -> ``(1, 2)``."""
    _, _, rest = data.partition(":")
    return tuple(int(part) for part in rest.split(":"))


def admin_signup_keyboard(event_id: int, user_id: int, status: SignupStatus) -> Optional[InlineKeyboardMarkup]:
    if status == SignupStatus.PENDING_APPROVAL:
        confirm = InlineKeyboardButton(
            text=t(None, "admin.confirm"),
            callback_data=f"{CONFIRM_SIGNUP}:{event_id}:{user_id}",
        )
    elif status == SignupStatus.PENDING_PAYMENT:
        confirm = InlineKeyboardButton(
            text=t(None, "admin.confirm_payment"),
            callback_data=f"{CONFIRM_PAYMENT}:{event_id}:{user_id}",
        )
    else:
        return None

    reject = InlineKeyboardButton(
        text=t(None, "admin.reject"),
        callback_data=f"{REJECT_SIGNUP}:{event_id}:{user_id}",
    )
    return InlineKeyboardMarkup(inline_keyboard=[[confirm, reject]])


def signup_reminder_keyboard(event_id: int, locale: Optional[str]) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(
                    text=t(locale, "reminders.i_cant_make_it"),
                    callback_data=f"{CANT_MAKE_IT}:{event_id}",
                ),
                InlineKeyboardButton(
                    text=t(locale, "reminders.i_will_be_there"),
                    callback_data=f"{WILL_BE_THERE}:{event_id}",
                ),
            ]
        ]
    )
