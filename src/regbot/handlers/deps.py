from __future__ import annotations

from aiogram import Bot

from regbot.config import get_settings
from regbot.db.repo import RegbotRepository, get_global_repository
from regbot.services.mirror import MessageMirror
from regbot.services.notifications import SignupNotifier


def get_repo() -> RegbotRepository:
    return get_global_repository()


def get_notifier(bot: Bot) -> SignupNotifier:
    settings = get_settings()
    return SignupNotifier(
        bot,
        get_repo(),
        admin_group=settings.admin_group,
        tz=settings.zoneinfo,
        default_locale=settings.default_locale,
        payment_iban=settings.payment_iban,
        payment_recipient=settings.payment_recipient,
    )


def get_mirror(bot: Bot) -> MessageMirror:
    settings = get_settings()
    return MessageMirror(
        bot,
        get_repo(),
        tz=settings.zoneinfo,
        locale=settings.default_locale,
        send_timeout=settings.send_timeout_s,
    )
