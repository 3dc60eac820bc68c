from __future__ import annotations

from aiogram import Router
from aiogram.enums import ChatType
from aiogram.exceptions import TelegramAPIError
from aiogram.types import Message, MessageReactionUpdated

from regbot.config import get_settings
from regbot.handlers.deps import get_mirror, get_notifier, get_repo
from regbot.logging import get_logger

relay_router = Router()

log = get_logger(__name__)


def is_command(message: Message) -> bool:
    return (message.text or "").startswith("/")


def is_private(message: Message) -> bool:
    return message.chat.type == ChatType.PRIVATE


def is_admin_group(message: Message) -> bool:
    return message.chat.id == get_settings().admin_group


def is_mirrored_chat(message: Message) -> bool:
    return is_private(message) or is_admin_group(message)


@relay_router.message(is_private, lambda m: not is_command(m))
async def user_to_admin_topic(message: Message) -> None:
    tg_user = message.from_user
    if not tg_user:
        return

    user = await get_repo().ensure_user(tg_user.id, tg_user.full_name, tg_user.username)
    topic_id = await get_notifier(message.bot).ensure_admin_group_topic(user)
    await get_mirror(message.bot).relay(
        message,
        get_settings().admin_group,
        message_thread_id=topic_id,
    )


@relay_router.message(is_admin_group, lambda m: not is_command(m))
async def admin_topic_to_user(message: Message) -> None:
    if message.message_thread_id is None:
        return
    # Topic service messages are posted by the bot itself.
    if message.from_user is None or message.from_user.is_bot:
        return

    user = await get_repo().get_user_by_admin_group_topic(message.message_thread_id)
    if user is None:
        return

    try:
        await get_mirror(message.bot).relay(message, user.id)
    except TelegramAPIError as exc:
        log.warning("relay.admin_to_user.failed", user_id=user.id, error=exc.message)


@relay_router.edited_message(is_mirrored_chat)
async def propagate_edit(message: Message) -> None:
    updated = await get_mirror(message.bot).propagate_edit(message)
    log.info("relay.edit", origin_id=message.message_id, chat_id=message.chat.id, updated=updated)


@relay_router.message_reaction()
async def propagate_reaction(reaction: MessageReactionUpdated) -> None:
    if reaction.user is not None and reaction.user.is_bot:
        return
    settings = get_settings()
    if reaction.chat.type != ChatType.PRIVATE and reaction.chat.id != settings.admin_group:
        return

    await get_mirror(reaction.bot).propagate_reaction(
        reaction.chat.id,
        reaction.message_id,
        reaction.new_reaction,
    )
