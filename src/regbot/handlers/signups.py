from __future__ import annotations

import re

from aiogram import Bot, F, Router
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.types import CallbackQuery, Message

from regbot.config import get_settings
from regbot.db.models import SignupStatus, User
from regbot.handlers.deps import get_notifier, get_repo
from regbot.keyboards import (
    CANT_MAKE_IT,
    CONFIRM_PAYMENT,
    CONFIRM_SIGNUP,
    REJECT_SIGNUP,
    WILL_BE_THERE,
    parse_callback_ids,
)
from regbot.logging import get_logger
from regbot.services.authz import AuthorizationError, assert_event_manager
from regbot.services.events import format_event_date, format_event_title
from regbot.services.signups import (
    EventNotFoundError,
    RegistrationClosedError,
    SignupNotFoundError,
    confirm_participation,
    confirm_signup,
    reject_signup,
    signup_for_event,
    withdraw_signup,
)
from regbot.texts import t

signups_router = Router()

EVENT_DEEP_LINK = re.compile(r"^event_(\d+)$")

log = get_logger(__name__)


async def perform_signup(bot: Bot, user: User, event_id: int) -> None:
    repo = get_repo()
    notifier = get_notifier(bot)
    locale = user.locale or get_settings().default_locale

    try:
        result = await signup_for_event(repo, event_id, user.id, decided_by=bot.id)
    except EventNotFoundError:
        log.warning("signup.unknown_event", event_id=event_id, user_id=user.id)
        await notifier.send_to_user(user, t(locale, "signup.unknown_event"))
        return
    except RegistrationClosedError as exc:
        key = "signup.event_in_past" if exc.reason == RegistrationClosedError.IN_PAST else "signup.registration_closed"
        await notifier.send_to_user(user, t(locale, key))
        return

    event = await repo.get_event(event_id)
    if event is None:
        return

    if not result.signup_performed:
        await notifier.send_to_user(
            user,
            t(
                locale,
                "signup.already_registered",
                name=format_event_title(event, locale),
                date=format_event_date(event.date, get_settings().zoneinfo),
            ),
        )
        return

    assert result.signup is not None
    await notifier.notify_status(event, result.signup, user)


async def perform_withdraw(bot: Bot, user: User, event_id: int) -> bool:
    repo = get_repo()
    notifier = get_notifier(bot)

    event = await repo.get_event(event_id)
    if event is None:
        await notifier.send_to_user(user, t(user.locale, "signup.unknown_event"))
        return False

    result = await withdraw_signup(repo, event_id, user.id)
    if not result.withdraw_performed:
        await notifier.send_to_user(user, t(user.locale, "signup.not_signed_up"))
        return False

    await notifier.notify_withdrawn(event, user, require_refund=result.require_refund)
    return True


@signups_router.message(CommandStart(deep_link=True, magic=F.args.regexp(EVENT_DEEP_LINK)))
async def cmd_start_signup(message: Message, command: CommandObject) -> None:
    tg_user = message.from_user
    if not tg_user or not command.args:
        return

    match = EVENT_DEEP_LINK.match(command.args)
    assert match is not None
    user = await get_repo().ensure_user(tg_user.id, tg_user.full_name, tg_user.username)
    await perform_signup(message.bot, user, int(match.group(1)))


@signups_router.message(Command("withdraw"))
async def cmd_withdraw(message: Message, command: CommandObject) -> None:
    tg_user = message.from_user
    if not tg_user:
        return
    try:
        event_id = int((command.args or "").strip())
    except ValueError:
        await message.answer("Использование: /withdraw [event_id]")
        return

    user = await get_repo().ensure_user(tg_user.id, tg_user.full_name, tg_user.username)
    await perform_withdraw(message.bot, user, event_id)


async def _authorize_admin(callback: CallbackQuery) -> bool:
    settings = get_settings()
    try:
        await assert_event_manager(get_repo(), callback.from_user.id, settings.bot_admins)
    except AuthorizationError:
        await callback.answer(t(None, "admin.not_allowed"), show_alert=True)
        return False
    return True


async def _clear_keyboard(callback: CallbackQuery) -> None:
    if isinstance(callback.message, Message):
        await callback.message.edit_reply_markup(reply_markup=None)


@signups_router.callback_query(
    F.data.startswith(f"{CONFIRM_SIGNUP}:") | F.data.startswith(f"{CONFIRM_PAYMENT}:")
)
async def cb_confirm_signup(callback: CallbackQuery) -> None:
    if not callback.data or not await _authorize_admin(callback):
        return

    repo = get_repo()
    event_id, user_id = parse_callback_ids(callback.data)
    expected = (
        SignupStatus.PENDING_APPROVAL
        if callback.data.startswith(f"{CONFIRM_SIGNUP}:")
        else SignupStatus.PENDING_PAYMENT
    )
    admin = callback.from_user
    await repo.ensure_user(admin.id, admin.full_name, admin.username)

    try:
        result = await confirm_signup(repo, event_id, user_id, admin.id, expected_status=expected)
    except SignupNotFoundError:
        await callback.answer(t(None, "signup.not_signed_up"), show_alert=True)
        return

    await _clear_keyboard(callback)
    if not result.confirm_performed:
        await callback.answer(t(None, "admin.already_decided"))
        return

    event = await repo.get_event(event_id)
    user = await repo.get_user(user_id)
    if event is not None and user is not None:
        await get_notifier(callback.bot).notify_status(event, result.signup, user)
    await callback.answer()


@signups_router.callback_query(F.data.startswith(f"{REJECT_SIGNUP}:"))
async def cb_reject_signup(callback: CallbackQuery) -> None:
    if not callback.data or not await _authorize_admin(callback):
        return

    repo = get_repo()
    event_id, user_id = parse_callback_ids(callback.data)
    admin = callback.from_user
    await repo.ensure_user(admin.id, admin.full_name, admin.username)

    try:
        result = await reject_signup(repo, event_id, user_id, admin.id)
    except SignupNotFoundError:
        await callback.answer(t(None, "signup.not_signed_up"), show_alert=True)
        return

    await _clear_keyboard(callback)
    if not result.reject_performed:
        await callback.answer(t(None, "admin.already_decided"))
        return

    event = await repo.get_event(event_id)
    user = await repo.get_user(user_id)
    if event is not None and user is not None:
        await get_notifier(callback.bot).notify_status(
            event,
            result.signup,
            user,
            require_refund=result.require_refund,
        )
    await callback.answer()


@signups_router.callback_query(F.data.startswith(f"{WILL_BE_THERE}:"))
async def cb_will_be_there(callback: CallbackQuery) -> None:
    if not callback.data:
        return
    (event_id,) = parse_callback_ids(callback.data)
    repo = get_repo()
    user = await repo.get_user(callback.from_user.id)
    locale = user.locale if user is not None else None

    try:
        await confirm_participation(repo, event_id, callback.from_user.id)
    except SignupNotFoundError:
        await _clear_keyboard(callback)
        await callback.answer(t(locale, "signup.not_signed_up"), show_alert=True)
        return

    await _clear_keyboard(callback)
    if isinstance(callback.message, Message):
        await callback.message.reply(t(locale, "reminders.waiting_for_you"))
    await callback.answer()


@signups_router.callback_query(F.data.startswith(f"{CANT_MAKE_IT}:"))
async def cb_cant_make_it(callback: CallbackQuery) -> None:
    if not callback.data:
        return
    (event_id,) = parse_callback_ids(callback.data)
    tg_user = callback.from_user
    user = await get_repo().ensure_user(tg_user.id, tg_user.full_name, tg_user.username)

    await perform_withdraw(callback.bot, user, event_id)
    await _clear_keyboard(callback)
    await callback.answer()
