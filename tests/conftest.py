from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime
from itertools import count
from types import SimpleNamespace
from typing import Any, Collection, Optional

import pytest

from regbot.db.models import (
    ClaimedEvent,
    Event,
    EventSignup,
    MessageMirrorLink,
    SignupStatus,
    SignupTransition,
    SignupWithUser,
    User,
)


class FakeRepository:
    """In-memory stand-in for RegbotRepository with the same guarded semantics."""

    def __init__(self) -> None:
        self.users: dict[int, User] = {}
        self.events: dict[int, Event] = {}
        self.signups: dict[tuple[int, int], EventSignup] = {}
        self.links: list[MessageMirrorLink] = []
        self.claims = 0
        self._lock = asyncio.Lock()
        self._link_ids = count(1)

    def add_user(self, user_id: int, **fields: Any) -> User:
        user = User(id=user_id, **fields)
        self.users[user_id] = user
        return user

    def add_event(self, event_id: int, date: datetime, **fields: Any) -> Event:
        fields.setdefault("name", f"Event {event_id}")
        fields.setdefault("published", True)
        event = Event(id=event_id, date=date, **fields)
        self.events[event_id] = event
        return event

    def add_signup(self, event_id: int, user_id: int, status: SignupStatus, **fields: Any) -> EventSignup:
        signup = EventSignup(event_id=event_id, user_id=user_id, status=status, **fields)
        self.signups[(event_id, user_id)] = signup
        return signup

    async def fetchval(self, query: str, *args: object) -> object:
        user = self.users.get(args[0])  # type: ignore[arg-type]
        return user.can_manage_events if user is not None else None

    async def ensure_user(self, user_id: int, name: Optional[str], username: Optional[str]) -> User:
        user = self.users.get(user_id)
        if user is None:
            return self.add_user(user_id, name=name, username=username)
        user.username = username
        return replace(user)

    async def get_user(self, user_id: int) -> Optional[User]:
        user = self.users.get(user_id)
        return replace(user) if user is not None else None

    async def get_user_by_admin_group_topic(self, topic_id: int) -> Optional[User]:
        for user in self.users.values():
            if user.admin_group_topic == topic_id:
                return replace(user)
        return None

    async def set_user_admin_group_topic(self, user_id: int, topic_id: int) -> Optional[User]:
        user = self.users.get(user_id)
        if user is None:
            return None
        user.admin_group_topic = topic_id
        return replace(user)

    async def get_event(self, event_id: int) -> Optional[Event]:
        event = self.events.get(event_id)
        return replace(event) if event is not None else None

    async def claim_event_for_reminders(self, start: datetime, end: datetime) -> Optional[ClaimedEvent]:
        async with self._lock:
            self.claims += 1
            due = sorted(
                (
                    event
                    for event in self.events.values()
                    if not event.reminder_sent
                    and event.published
                    and not event.cancelled
                    and start <= event.date <= end
                ),
                key=lambda event: (event.date, event.id),
            )
            if not due:
                return None
            event = due[0]
            event.reminder_sent = True
            signups = [
                SignupWithUser(signup=replace(signup), user=replace(self.users[signup.user_id]))
                for (event_id, _), signup in sorted(self.signups.items())
                if event_id == event.id and signup.status == SignupStatus.APPROVED
            ]
            return ClaimedEvent(event=replace(event), signups=signups)

    async def get_signup(self, event_id: int, user_id: int) -> Optional[EventSignup]:
        signup = self.signups.get((event_id, user_id))
        return replace(signup) if signup is not None else None

    async def insert_signup(self, signup: EventSignup) -> Optional[EventSignup]:
        async with self._lock:
            key = (signup.event_id, signup.user_id)
            if key in self.signups:
                return None
            self.signups[key] = replace(signup)
            return replace(signup)

    async def transition_signup(
        self,
        event_id: int,
        user_id: int,
        *,
        allowed_from: Collection[SignupStatus],
        status: SignupStatus,
        decided_by: int,
        decided_at: datetime,
    ) -> Optional[SignupTransition]:
        async with self._lock:
            current = self.signups.get((event_id, user_id))
            if current is None:
                return None
            previous = replace(current)
            if previous.status not in allowed_from:
                return SignupTransition(previous=previous, current=previous, performed=False)
            current.status = status
            current.approved_by = decided_by
            current.approved_at = decided_at
            return SignupTransition(previous=previous, current=replace(current), performed=True)

    async def delete_signup(self, event_id: int, user_id: int) -> Optional[EventSignup]:
        async with self._lock:
            return self.signups.pop((event_id, user_id), None)

    async def update_signup(self, event_id: int, user_id: int, **fields: Any) -> Optional[EventSignup]:
        signup = self.signups.get((event_id, user_id))
        if signup is None:
            return None
        for name, value in fields.items():
            setattr(signup, name, value)
        return replace(signup)

    async def save_mirror_link(
        self,
        origin_id: int,
        origin_chat_id: int,
        destination_id: int,
        destination_chat_id: int,
    ) -> MessageMirrorLink:
        forward = MessageMirrorLink(next(self._link_ids), origin_id, origin_chat_id, destination_id, destination_chat_id)
        reverse = MessageMirrorLink(next(self._link_ids), destination_id, destination_chat_id, origin_id, origin_chat_id)
        self.links.extend([forward, reverse])
        return forward

    async def find_mirror_links(self, origin_id: int, origin_chat_id: int) -> list[MessageMirrorLink]:
        return [
            link for link in self.links if link.origin_id == origin_id and link.origin_chat_id == origin_chat_id
        ]

    async def find_mirror_link(
        self,
        origin_id: int,
        origin_chat_id: int,
        destination_chat_id: int,
    ) -> Optional[MessageMirrorLink]:
        matches = [
            link
            for link in await self.find_mirror_links(origin_id, origin_chat_id)
            if link.destination_chat_id == destination_chat_id
        ]
        return matches[-1] if matches else None


class FakeBot:
    """Records outgoing calls; ``failures`` maps a chat id to the error its calls raise."""

    def __init__(self, bot_id: int = 999) -> None:
        self.id = bot_id
        self.sent: list[dict[str, Any]] = []
        self.copies: list[dict[str, Any]] = []
        self.text_edits: list[dict[str, Any]] = []
        self.media_edits: list[dict[str, Any]] = []
        self.reactions: list[dict[str, Any]] = []
        self.topics: list[dict[str, Any]] = []
        self.failures: dict[int, Exception] = {}
        self._message_ids = count(1000)
        self._topic_ids = count(500)

    def _check(self, chat_id: int) -> None:
        error = self.failures.get(chat_id)
        if error is not None:
            raise error

    async def send_message(self, chat_id: int, text: str, **kwargs: Any) -> SimpleNamespace:
        self._check(chat_id)
        self.sent.append({"chat_id": chat_id, "text": text, **kwargs})
        return SimpleNamespace(message_id=next(self._message_ids), chat=SimpleNamespace(id=chat_id))

    async def copy_message(self, chat_id: int, from_chat_id: int, message_id: int, **kwargs: Any) -> SimpleNamespace:
        self._check(chat_id)
        copied_id = next(self._message_ids)
        self.copies.append(
            {"chat_id": chat_id, "from_chat_id": from_chat_id, "message_id": message_id, "copy_id": copied_id, **kwargs}
        )
        return SimpleNamespace(message_id=copied_id)

    async def edit_message_text(self, text: str, chat_id: int, message_id: int, **kwargs: Any) -> bool:
        self._check(chat_id)
        self.text_edits.append({"chat_id": chat_id, "message_id": message_id, "text": text, **kwargs})
        return True

    async def edit_message_media(self, media: Any, chat_id: int, message_id: int, **kwargs: Any) -> bool:
        self._check(chat_id)
        self.media_edits.append({"chat_id": chat_id, "message_id": message_id, "media": media, **kwargs})
        return True

    async def set_message_reaction(self, chat_id: int, message_id: int, reaction: list[Any]) -> bool:
        self._check(chat_id)
        self.reactions.append({"chat_id": chat_id, "message_id": message_id, "reaction": reaction})
        return True

    async def create_forum_topic(self, chat_id: int, name: str) -> SimpleNamespace:
        self._check(chat_id)
        topic_id = next(self._topic_ids)
        self.topics.append({"chat_id": chat_id, "name": name, "message_thread_id": topic_id})
        return SimpleNamespace(message_thread_id=topic_id)


@pytest.fixture
def repo() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def bot() -> FakeBot:
    return FakeBot()
