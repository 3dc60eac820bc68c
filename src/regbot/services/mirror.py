"""Relaying messages between private chats and admin topics.

Every relayed copy is recorded as a mirror link so that later edits, reactions
and replies on the origin can be applied to the copies.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional, Protocol, Sequence
from zoneinfo import ZoneInfo

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.types import (
    InputMediaAnimation,
    InputMediaAudio,
    InputMediaDocument,
    InputMediaPhoto,
    InputMediaVideo,
    Message,
    MessageEntity,
    ReactionTypeCustomEmoji,
    ReactionTypeEmoji,
    ReplyParameters,
)

from regbot.db.models import MessageMirrorLink
from regbot.logging import get_logger
from regbot.services.events import format_event_date
from regbot.texts import t

InputMedia = InputMediaPhoto | InputMediaVideo | InputMediaAnimation | InputMediaAudio | InputMediaDocument
Reaction = ReactionTypeEmoji | ReactionTypeCustomEmoji


class MirrorStore(Protocol):
    async def save_mirror_link(
        self,
        origin_id: int,
        origin_chat_id: int,
        destination_id: int,
        destination_chat_id: int,
    ) -> MessageMirrorLink: ...

    async def find_mirror_links(self, origin_id: int, origin_chat_id: int) -> list[MessageMirrorLink]: ...

    async def find_mirror_link(
        self,
        origin_id: int,
        origin_chat_id: int,
        destination_chat_id: int,
    ) -> Optional[MessageMirrorLink]: ...


def edited_at(message: Message) -> datetime:
    # Bot API sends edit_date as unix seconds.
    if message.edit_date is None:
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(message.edit_date, timezone.utc)


def is_not_modified(error: TelegramBadRequest) -> bool:
    return "message is not modified" in error.message


def utf16_len(text: str) -> int:
    """Length of ``text`` in UTF-16 code units, as Telegram counts entity offsets."""
    return len(text.encode("utf-16-le")) // 2


def add_edited_label(
    text: Optional[str],
    entities: Optional[Sequence[MessageEntity]],
    label: str,
) -> tuple[str, list[MessageEntity]]:
    new_text = f"{text}\n\n{label}" if text else label
    label_entity = MessageEntity(
        type="italic",
        offset=utf16_len(new_text) - utf16_len(label),
        length=utf16_len(label),
    )
    return new_text, [*(entities or []), label_entity]


def edited_media(message: Message, caption: str, caption_entities: list[MessageEntity]) -> Optional[InputMedia]:
    # Voice notes, stickers and the like cannot be edited by clients, only these can.
    params = {"caption": caption, "caption_entities": caption_entities, "parse_mode": None}
    if message.photo:
        largest = max(message.photo, key=lambda size: size.width)
        return InputMediaPhoto(media=largest.file_id, **params)
    if message.video:
        return InputMediaVideo(media=message.video.file_id, **params)
    if message.animation:
        return InputMediaAnimation(media=message.animation.file_id, **params)
    if message.audio:
        return InputMediaAudio(media=message.audio.file_id, **params)
    if message.document:
        return InputMediaDocument(media=message.document.file_id, **params)
    return None


class MessageMirror:
    def __init__(
        self,
        bot: Bot,
        store: MirrorStore,
        *,
        tz: ZoneInfo,
        locale: Optional[str] = None,
        send_timeout: Optional[float] = None,
    ) -> None:
        self._bot = bot
        self._store = store
        self._tz = tz
        self._locale = locale
        self._send_timeout = send_timeout
        self._log = get_logger(__name__)

    async def relay(
        self,
        message: Message,
        destination_chat_id: int,
        *,
        message_thread_id: Optional[int] = None,
        thread_replies: bool = True,
    ) -> int:
        """Copy ``message`` to ``destination_chat_id`` and return the copy's id.

        If the origin replies to a message that was already mirrored into the
        destination chat, the copy replies to that mirrored message.
        """
        reply_parameters = None
        replied = message.reply_to_message
        if thread_replies and replied is not None:
            link = await self._store.find_mirror_link(replied.message_id, message.chat.id, destination_chat_id)
            if link is not None:
                reply_parameters = ReplyParameters(
                    message_id=link.destination_id,
                    allow_sending_without_reply=True,
                )

        copied = await self._call(
            self._bot.copy_message(
                chat_id=destination_chat_id,
                from_chat_id=message.chat.id,
                message_id=message.message_id,
                message_thread_id=message_thread_id,
                reply_parameters=reply_parameters,
            )
        )
        await self._store.save_mirror_link(
            message.message_id,
            message.chat.id,
            copied.message_id,
            destination_chat_id,
        )
        self._log.info(
            "mirror.relayed",
            origin_id=message.message_id,
            origin_chat_id=message.chat.id,
            destination_id=copied.message_id,
            destination_chat_id=destination_chat_id,
            threaded=reply_parameters is not None,
        )
        return copied.message_id

    async def propagate_edit(self, message: Message) -> int:
        """Re-apply an edit of ``message`` to all of its copies.

        Returns the number of copies that now match the origin.
        """
        links = await self._store.find_mirror_links(message.message_id, message.chat.id)
        if not links:
            return 0

        label = t(self._locale, "mirror.edited", date=format_event_date(edited_at(message), self._tz))
        updated = 0
        for link in links:
            if await self._edit_copy(message, link, label):
                updated += 1
        return updated

    async def propagate_reaction(self, chat_id: int, message_id: int, reaction: Sequence[Reaction]) -> int:
        links = await self._store.find_mirror_links(message_id, chat_id)
        # Bots may set at most one reaction per message.
        applied = list(reaction)[:1]
        updated = 0
        for link in links:
            try:
                await self._call(
                    self._bot.set_message_reaction(
                        chat_id=link.destination_chat_id,
                        message_id=link.destination_id,
                        reaction=applied,
                    )
                )
            except (TelegramAPIError, asyncio.TimeoutError) as exc:
                self._log.warning(
                    "mirror.reaction.failed",
                    destination_id=link.destination_id,
                    destination_chat_id=link.destination_chat_id,
                    error=str(exc),
                )
                continue
            updated += 1
        return updated

    async def _edit_copy(self, message: Message, link: MessageMirrorLink, label: str) -> bool:
        try:
            if message.text is not None:
                text, entities = add_edited_label(message.text, message.entities, label)
                await self._call(
                    self._bot.edit_message_text(
                        text=text,
                        chat_id=link.destination_chat_id,
                        message_id=link.destination_id,
                        entities=entities,
                        link_preview_options=message.link_preview_options,
                        parse_mode=None,
                    )
                )
                return True

            caption, caption_entities = add_edited_label(message.caption, message.caption_entities, label)
            media = edited_media(message, caption, caption_entities)
            if media is None:
                self._log.debug("mirror.edit.unsupported", origin_id=message.message_id)
                return False
            await self._call(
                self._bot.edit_message_media(
                    media=media,
                    chat_id=link.destination_chat_id,
                    message_id=link.destination_id,
                )
            )
            return True
        except TelegramBadRequest as exc:
            if is_not_modified(exc):
                self._log.debug("mirror.edit.not_modified", destination_id=link.destination_id)
                return True
            self._log.warning(
                "mirror.edit.failed",
                destination_id=link.destination_id,
                destination_chat_id=link.destination_chat_id,
                error=exc.message,
            )
        except (TelegramAPIError, asyncio.TimeoutError) as exc:
            self._log.warning(
                "mirror.edit.failed",
                destination_id=link.destination_id,
                destination_chat_id=link.destination_chat_id,
                error=str(exc),
            )
        return False

    async def _call(self, awaitable):
        if self._send_timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self._send_timeout)
