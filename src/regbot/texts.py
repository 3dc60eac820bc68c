"""Тексты уведомлений бота по локалям."""

from __future__ import annotations

from typing import Any, Optional

DEFAULT_LOCALE = "ru"

TEXTS: dict[str, dict[str, str]] = {
    "ru": {
        "mirror.edited": "изменено {date}",
        "event.free": "бесплатно",
        "event.free_donation": "бесплатно, донат приветствуется",
        "event.title_cancelled_prefix": "❌ ОТМЕНЕНО",
        "event.title_date_changed_prefix": "⚠️ ПЕРЕНОС",
        "reminders.event": (
            "Напоминаем: завтра <b>{name}</b>, {date}!\n\n"
            "Ещё можно записаться: https://t.me/{bot_username}?start=event_{event_id}"
        ),
        "reminders.signup": "Напоминаем, что ты записан(а) на <b>{name}</b>, {date}.{more}",
        "reminders.payment_details": "IBAN: <code>{iban}</code>\nПолучатель: {recipient}",
        "reminders.payment_details_with_price": (
            "Рекомендуемый донат: {price}\nIBAN: <code>{iban}</code>\nПолучатель: {recipient}"
        ),
        "reminders.donate_reminder": "Не забудь про донат, он помогает нам проводить встречи.\n{payment_details}",
        "reminders.i_will_be_there": "Буду!",
        "reminders.i_cant_make_it": "Не смогу",
        "reminders.waiting_for_you": "Ждём тебя!",
        "signup.pending_approval": "Заявка отправлена, организаторы скоро её рассмотрят.",
        "signup.pending_payment": (
            "Чтобы завершить запись, переведи {price}.\nIBAN: <code>{iban}</code>\nПолучатель: {recipient}"
        ),
        "signup.registered": "Ты записан(а) на <b>{name}</b>, {date}!",
        "signup.rejected": "К сожалению, запись на <b>{name}</b>, {date} отклонена.",
        "signup.rejected_with_refund": (
            "К сожалению, запись на <b>{name}</b>, {date} отклонена. Организаторы свяжутся с тобой насчёт возврата."
        ),
        "signup.withdrawn": "Запись на <b>{name}</b>, {date} отменена.",
        "signup.withdrawn_with_refund": (
            "Запись на <b>{name}</b>, {date} отменена. Организаторы свяжутся с тобой насчёт возврата."
        ),
        "signup.already_registered": "Ты уже записан(а) на <b>{name}</b>, {date}.",
        "signup.unknown_event": "Такого мероприятия нет.",
        "signup.registration_closed": "Запись на это мероприятие закрыта.",
        "signup.event_in_past": "Это мероприятие уже прошло.",
        "signup.not_signed_up": "Ты не записан(а) на это мероприятие.",
        "admin.topic_name": "{name} (@{username})",
        "admin.topic_header": "Пользователь {link}\nID: <code>{user_id}</code>\nUsername: {username}",
        "admin.pending_approval": "Заявка на <b>{name}</b>, {date}.{options}",
        "admin.pending_payment": "Ожидается оплата за <b>{name}</b>, {date}.{options}",
        "admin.registered": "Записан(а) на <b>{name}</b>, {date}. Подтвердил(а) {admin} {decided_at}.{options}",
        "admin.rejected": "Запись на <b>{name}</b>, {date} отклонена. Решение: {admin} {decided_at}.",
        "admin.rejected_with_refund": (
            "Запись на <b>{name}</b>, {date} отклонена, нужен возврат. Решение: {admin} {decided_at}."
        ),
        "admin.withdrawn": "Отменил(а) запись на <b>{name}</b>, {date}.",
        "admin.withdrawn_with_refund": "Отменил(а) запись на <b>{name}</b>, {date}, нужен возврат.",
        "admin.chosen_options": "\nВыбрано: {options}",
        "admin.confirm": "✅ Подтвердить",
        "admin.confirm_payment": "💸 Оплата получена",
        "admin.reject": "❌ Отклонить",
        "admin.not_allowed": "Недостаточно прав.",
        "admin.already_decided": "Решение уже принято.",
    },
    "en": {
        "mirror.edited": "edited {date}",
        "event.free": "free",
        "event.free_donation": "free, donations welcome",
        "event.title_cancelled_prefix": "❌ CANCELLED",
        "event.title_date_changed_prefix": "⚠️ RESCHEDULED",
        "reminders.event": (
            "Reminder: <b>{name}</b> is tomorrow, {date}!\n\n"
            "You can still sign up: https://t.me/{bot_username}?start=event_{event_id}"
        ),
        "reminders.signup": "A reminder that you are signed up for <b>{name}</b>, {date}.{more}",
        "reminders.payment_details": "IBAN: <code>{iban}</code>\nRecipient: {recipient}",
        "reminders.payment_details_with_price": (
            "Suggested donation: {price}\nIBAN: <code>{iban}</code>\nRecipient: {recipient}"
        ),
        "reminders.donate_reminder": "Please don't forget to donate, it keeps our events going.\n{payment_details}",
        "reminders.i_will_be_there": "I'll be there!",
        "reminders.i_cant_make_it": "I can't make it",
        "reminders.waiting_for_you": "See you there!",
        "signup.pending_approval": "Your application was sent, the organizers will review it soon.",
        "signup.pending_payment": (
            "To complete your signup, please transfer {price}.\nIBAN: <code>{iban}</code>\nRecipient: {recipient}"
        ),
        "signup.registered": "You are signed up for <b>{name}</b>, {date}!",
        "signup.rejected": "Unfortunately, your signup for <b>{name}</b>, {date} was declined.",
        "signup.rejected_with_refund": (
            "Unfortunately, your signup for <b>{name}</b>, {date} was declined. "
            "The organizers will contact you about a refund."
        ),
        "signup.withdrawn": "Your signup for <b>{name}</b>, {date} was cancelled.",
        "signup.withdrawn_with_refund": (
            "Your signup for <b>{name}</b>, {date} was cancelled. The organizers will contact you about a refund."
        ),
        "signup.already_registered": "You are already signed up for <b>{name}</b>, {date}.",
        "signup.unknown_event": "There is no such event.",
        "signup.registration_closed": "Registration for this event is closed.",
        "signup.event_in_past": "This event has already happened.",
        "signup.not_signed_up": "You are not signed up for this event.",
    },
}


def t(locale: Optional[str], key: str, **params: Any) -> str:
    """Return the localized template for ``key`` formatted with ``params``.

    Unknown locales and keys missing from a locale fall back to
    :data:`DEFAULT_LOCALE`.
    """
    table = TEXTS.get(locale or DEFAULT_LOCALE, {})
    template = table.get(key)
    if template is None:
        template = TEXTS[DEFAULT_LOCALE][key]
    return template.format(**params)
