from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol
from zoneinfo import ZoneInfo

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.types import InlineKeyboardMarkup

from regbot.db.models import Event, EventSignup, SignupStatus, User
from regbot.keyboards import admin_signup_keyboard
from regbot.logging import get_logger
from regbot.services.events import format_event_date, format_event_title, quote
from regbot.texts import t

TOPIC_NAME_LIMIT = 128


class UserStore(Protocol):
    async def get_user(self, user_id: int) -> Optional[User]: ...

    async def set_user_admin_group_topic(self, user_id: int, topic_id: int) -> Optional[User]: ...


def user_link(user: Optional[User], fallback_id: Optional[int] = None) -> str:
    user_id = user.id if user is not None else fallback_id
    if user_id is None:
        return "—"
    name = quote(user.name) if user is not None and user.name else str(user_id)
    return f'<a href="tg://user?id={user_id}">{name}</a>'


class SignupNotifier:
    """Sends the user and their admin topic a message about a signup change."""

    def __init__(
        self,
        bot: Bot,
        store: UserStore,
        *,
        admin_group: int,
        tz: ZoneInfo,
        default_locale: str,
        payment_iban: str,
        payment_recipient: str,
    ) -> None:
        self._bot = bot
        self._store = store
        self._admin_group = admin_group
        self._tz = tz
        self._default_locale = default_locale
        self._payment_iban = payment_iban
        self._payment_recipient = payment_recipient
        self._log = get_logger(__name__)

    async def ensure_admin_group_topic(self, user: User) -> int:
        if user.admin_group_topic is not None:
            return user.admin_group_topic

        name = t(
            self._default_locale,
            "admin.topic_name",
            name=user.name or str(user.id),
            username=user.username or "—",
        )
        topic = await self._bot.create_forum_topic(chat_id=self._admin_group, name=name[:TOPIC_NAME_LIMIT])
        await self._store.set_user_admin_group_topic(user.id, topic.message_thread_id)
        self._log.info("admin_topic.created", user_id=user.id, topic_id=topic.message_thread_id)

        try:
            await self._bot.send_message(
                chat_id=self._admin_group,
                text=t(
                    self._default_locale,
                    "admin.topic_header",
                    link=user_link(user),
                    user_id=user.id,
                    username=f"@{quote(user.username)}" if user.username else "—",
                ),
                message_thread_id=topic.message_thread_id,
            )
        except TelegramAPIError as exc:
            self._log.warning("admin_topic.header.failed", user_id=user.id, error=str(exc))
        return topic.message_thread_id

    async def send_to_admin_topic(
        self,
        user: User,
        text: str,
        reply_markup: Optional[InlineKeyboardMarkup] = None,
    ) -> None:
        try:
            topic_id = await self.ensure_admin_group_topic(user)
            await self._bot.send_message(
                chat_id=self._admin_group,
                text=text,
                message_thread_id=topic_id,
                reply_markup=reply_markup,
            )
        except TelegramAPIError as exc:
            self._log.warning("notify.admin_topic.failed", user_id=user.id, error=str(exc))

    async def send_to_user(self, user: User, text: str, **kwargs: Any) -> None:
        try:
            await self._bot.send_message(chat_id=user.id, text=text, **kwargs)
        except TelegramAPIError as exc:
            self._log.warning("notify.user.failed", user_id=user.id, error=str(exc))

    async def notify_status(
        self,
        event: Event,
        signup: EventSignup,
        user: User,
        *,
        require_refund: bool = False,
    ) -> None:
        """Announce the signup's current status. Call only after a performed transition."""
        locale = user.locale or self._default_locale
        admin_locale = self._default_locale
        common = {
            "name": format_event_title(event, admin_locale),
            "date": format_event_date(event.date, self._tz),
        }
        user_params = {
            "name": format_event_title(event, locale),
            "date": common["date"],
        }
        options = ""
        if event.participation_options is not None:
            options = t(
                admin_locale,
                "admin.chosen_options",
                options=quote("; ".join(signup.participation_options or [])),
            )

        if signup.status == SignupStatus.PENDING_APPROVAL:
            await self.send_to_admin_topic(
                user,
                t(admin_locale, "admin.pending_approval", options=options, **common),
                admin_signup_keyboard(event.id, user.id, signup.status),
            )
            await self.send_to_user(user, t(locale, "signup.pending_approval"))
        elif signup.status == SignupStatus.PENDING_PAYMENT:
            await self.send_to_admin_topic(
                user,
                t(admin_locale, "admin.pending_payment", options=options, **common),
                admin_signup_keyboard(event.id, user.id, signup.status),
            )
            await self.send_to_user(
                user,
                t(
                    locale,
                    "signup.pending_payment",
                    price=quote(event.price),
                    iban=quote(event.iban or self._payment_iban),
                    recipient=quote(event.recipient or self._payment_recipient),
                ),
            )
        elif signup.status == SignupStatus.APPROVED:
            await self.send_to_admin_topic(
                user,
                t(admin_locale, "admin.registered", options=options, **common, **await self._decision(signup)),
            )
            await self.send_to_user(user, t(locale, "signup.registered", **user_params))
        elif signup.status == SignupStatus.REJECTED:
            admin_key = "admin.rejected_with_refund" if require_refund else "admin.rejected"
            user_key = "signup.rejected_with_refund" if require_refund else "signup.rejected"
            await self.send_to_admin_topic(user, t(admin_locale, admin_key, **common, **await self._decision(signup)))
            await self.send_to_user(user, t(locale, user_key, **user_params))

    async def notify_withdrawn(self, event: Event, user: User, *, require_refund: bool) -> None:
        locale = user.locale or self._default_locale
        date = format_event_date(event.date, self._tz)
        await self.send_to_user(
            user,
            t(
                locale,
                "signup.withdrawn_with_refund" if require_refund else "signup.withdrawn",
                name=format_event_title(event, locale),
                date=date,
            ),
        )
        await self.send_to_admin_topic(
            user,
            t(
                self._default_locale,
                "admin.withdrawn_with_refund" if require_refund else "admin.withdrawn",
                name=format_event_title(event, self._default_locale),
                date=date,
            ),
        )

    async def _decision(self, signup: EventSignup) -> dict[str, str]:
        admin = await self._store.get_user(signup.approved_by) if signup.approved_by is not None else None
        decided_at: Optional[datetime] = signup.approved_at
        return {
            "admin": user_link(admin, signup.approved_by),
            "decided_at": format_event_date(decided_at, self._tz) if decided_at is not None else "—",
        }
