from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Collection, Mapping, Optional

import asyncpg

from regbot.db.models import (
    ClaimedEvent,
    Event,
    EventPayment,
    EventSignup,
    MessageMirrorLink,
    SignupStatus,
    SignupTransition,
    SignupWithUser,
    User,
)
from regbot.logging import get_logger, sql_logger

EVENT_UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "date",
        "announce_text_html",
        "reminder_text_html",
        "published",
        "registration_open",
        "cancelled",
        "date_changed",
        "require_approval",
        "payment",
        "price",
        "iban",
        "recipient",
        "participation_options",
    }
)

SIGNUP_UPDATABLE_FIELDS = frozenset({"participation_options", "participation_confirmed"})


class Transaction:
    """Query methods bound to one connection inside an open transaction."""

    def __init__(self, conn: asyncpg.Connection) -> None:
        self._conn = conn

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        sql_logger.debug("sql.tx.fetch", query=query, args=args)
        return await self._conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        sql_logger.debug("sql.tx.fetchrow", query=query, args=args)
        return await self._conn.fetchrow(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        sql_logger.debug("sql.tx.execute", query=query, args=args)
        return await self._conn.execute(query, *args)


class Database:
    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._pool: asyncpg.Pool | None = None
        self._log = get_logger(__name__)

    async def connect(self) -> None:
        if self._pool is None:
            # asyncpg ожидает схему postgresql/postgres, без "+asyncpg"
            dsn = self._dsn.replace("+asyncpg", "")
            self._pool = await asyncpg.create_pool(dsn)
            self._log.info("db.pool.created")

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            self._log.info("db.pool.closed")

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        await self._ensure_pool()
        assert self._pool
        sql_logger.debug("sql.fetch", query=query, args=args)
        return await self._pool.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        await self._ensure_pool()
        assert self._pool
        sql_logger.debug("sql.fetchrow", query=query, args=args)
        return await self._pool.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        await self._ensure_pool()
        assert self._pool
        sql_logger.debug("sql.fetchval", query=query, args=args)
        return await self._pool.fetchval(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        await self._ensure_pool()
        assert self._pool
        sql_logger.debug("sql.execute", query=query, args=args)
        return await self._pool.execute(query, *args)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        await self._ensure_pool()
        assert self._pool
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                yield Transaction(conn)

    async def _ensure_pool(self) -> None:
        if self._pool is None:
            await self.connect()


def user_from_row(row: Mapping[str, Any]) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        username=row["username"],
        locale=row["locale"],
        admin_group_topic=row["admin_group_topic"],
        can_manage_events=row["can_manage_events"],
    )


def event_from_row(row: Mapping[str, Any]) -> Event:
    options = row["participation_options"]
    return Event(
        id=row["id"],
        name=row["name"],
        date=row["date"],
        announce_text_html=row["announce_text_html"],
        reminder_text_html=row["reminder_text_html"],
        published=row["published"],
        registration_open=row["registration_open"],
        cancelled=row["cancelled"],
        date_changed=row["date_changed"],
        require_approval=row["require_approval"],
        reminder_sent=row["reminder_sent"],
        payment=EventPayment(row["payment"]),
        price=row["price"],
        iban=row["iban"],
        recipient=row["recipient"],
        participation_options=list(options) if options is not None else None,
    )


def signup_from_row(row: Mapping[str, Any]) -> EventSignup:
    options = row["participation_options"]
    return EventSignup(
        event_id=row["event_id"],
        user_id=row["user_id"],
        status=SignupStatus(row["status"]),
        approved_by=row["approved_by"],
        approved_at=row["approved_at"],
        participation_options=list(options) if options is not None else None,
        participation_confirmed=row["participation_confirmed"],
    )


def mirror_link_from_row(row: Mapping[str, Any]) -> MessageMirrorLink:
    return MessageMirrorLink(
        id=row["id"],
        origin_id=row["origin_id"],
        origin_chat_id=row["origin_chat_id"],
        destination_id=row["destination_id"],
        destination_chat_id=row["destination_chat_id"],
    )


def _assignments(fields: Mapping[str, Any], allowed: Collection[str], offset: int) -> tuple[str, list[Any]]:
    unknown = set(fields) - set(allowed)
    if unknown:
        raise ValueError(f"Недопустимые поля для обновления: {', '.join(sorted(unknown))}")
    if not fields:
        raise ValueError("Нет полей для обновления")
    parts = []
    values = []
    for index, (name, value) in enumerate(fields.items(), start=offset):
        parts.append(f"{name} = ${index}")
        values.append(value.value if isinstance(value, EventPayment) else value)
    return ", ".join(parts), values


class RegbotRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    # Users

    async def ensure_user(self, user_id: int, name: Optional[str], username: Optional[str]) -> User:
        row = await self.db.fetchrow(
            """
            INSERT INTO users (id, name, username)
            VALUES ($1, $2, $3)
            ON CONFLICT (id) DO UPDATE
                SET name = COALESCE(users.name, EXCLUDED.name),
                    username = EXCLUDED.username
            RETURNING *
            """,
            user_id,
            name,
            username,
        )
        assert row is not None
        return user_from_row(row)

    async def get_user(self, user_id: int) -> Optional[User]:
        row = await self.db.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
        return user_from_row(row) if row is not None else None

    async def get_user_by_admin_group_topic(self, topic_id: int) -> Optional[User]:
        row = await self.db.fetchrow("SELECT * FROM users WHERE admin_group_topic = $1", topic_id)
        return user_from_row(row) if row is not None else None

    async def set_user_admin_group_topic(self, user_id: int, topic_id: int) -> Optional[User]:
        row = await self.db.fetchrow(
            "UPDATE users SET admin_group_topic = $1 WHERE id = $2 RETURNING *",
            topic_id,
            user_id,
        )
        return user_from_row(row) if row is not None else None

    async def fetchval(self, query: str, *args: object) -> object:
        return await self.db.fetchval(query, *args)

    # Events

    async def create_event(self, name: str, date: datetime, announce_text_html: str, **fields: Any) -> Event:
        unknown = set(fields) - EVENT_UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Недопустимые поля события: {', '.join(sorted(unknown))}")
        columns = ["name", "date", "announce_text_html", *fields]
        values: list[Any] = [name, date, announce_text_html]
        values.extend(value.value if isinstance(value, EventPayment) else value for value in fields.values())
        placeholders = ", ".join(f"${i}" for i in range(1, len(values) + 1))
        row = await self.db.fetchrow(
            f"INSERT INTO events ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *",
            *values,
        )
        assert row is not None
        return event_from_row(row)

    async def get_event(self, event_id: int) -> Optional[Event]:
        row = await self.db.fetchrow("SELECT * FROM events WHERE id = $1", event_id)
        return event_from_row(row) if row is not None else None

    async def update_event(self, event_id: int, **fields: Any) -> Optional[Event]:
        assignments, values = _assignments(fields, EVENT_UPDATABLE_FIELDS, 2)
        row = await self.db.fetchrow(
            f"UPDATE events SET {assignments} WHERE id = $1 RETURNING *",
            event_id,
            *values,
        )
        return event_from_row(row) if row is not None else None

    async def delete_event(self, event_id: int) -> bool:
        status = await self.db.execute("DELETE FROM events WHERE id = $1", event_id)
        return status != "DELETE 0"

    async def claim_event_for_reminders(self, start: datetime, end: datetime) -> Optional[ClaimedEvent]:
        async with self.db.transaction() as tx:
            row = await tx.fetchrow(
                """
                UPDATE events SET reminder_sent = true
                WHERE id = (
                    SELECT id FROM events
                    WHERE reminder_sent = false
                      AND published = true
                      AND cancelled = false
                      AND date >= $1
                      AND date <= $2
                    ORDER BY date, id
                    LIMIT 1
                    FOR UPDATE SKIP LOCKED
                )
                AND reminder_sent = false
                RETURNING *
                """,
                start,
                end,
            )
            if row is None:
                return None
            event = event_from_row(row)
            rows = await tx.fetch(
                """
                SELECT s.*,
                       u.name AS user_name,
                       u.username AS user_username,
                       u.locale AS user_locale,
                       u.admin_group_topic AS user_admin_group_topic,
                       u.can_manage_events AS user_can_manage_events
                FROM event_signups s
                JOIN users u ON u.id = s.user_id
                WHERE s.event_id = $1 AND s.status = $2
                ORDER BY u.name NULLS LAST, u.id
                """,
                event.id,
                SignupStatus.APPROVED.value,
            )
        return ClaimedEvent(event=event, signups=[_signup_with_user(r) for r in rows])

    # Signups

    async def get_signup(self, event_id: int, user_id: int) -> Optional[EventSignup]:
        row = await self.db.fetchrow(
            "SELECT * FROM event_signups WHERE event_id = $1 AND user_id = $2",
            event_id,
            user_id,
        )
        return signup_from_row(row) if row is not None else None

    async def list_event_signups(self, event_id: int) -> list[EventSignup]:
        rows = await self.db.fetch(
            "SELECT * FROM event_signups WHERE event_id = $1 ORDER BY user_id",
            event_id,
        )
        return [signup_from_row(row) for row in rows]

    async def insert_signup(self, signup: EventSignup) -> Optional[EventSignup]:
        row = await self.db.fetchrow(
            """
            INSERT INTO event_signups (event_id, user_id, status, approved_by, approved_at, participation_options)
            VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (event_id, user_id) DO NOTHING
            RETURNING *
            """,
            signup.event_id,
            signup.user_id,
            signup.status.value,
            signup.approved_by,
            signup.approved_at,
            signup.participation_options,
        )
        return signup_from_row(row) if row is not None else None

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
        async with self.db.transaction() as tx:
            row = await tx.fetchrow(
                "SELECT * FROM event_signups WHERE event_id = $1 AND user_id = $2 FOR UPDATE",
                event_id,
                user_id,
            )
            if row is None:
                return None
            previous = signup_from_row(row)
            if previous.status not in allowed_from:
                return SignupTransition(previous=previous, current=previous, performed=False)
            updated = await tx.fetchrow(
                """
                UPDATE event_signups
                SET status = $3, approved_by = $4, approved_at = $5
                WHERE event_id = $1 AND user_id = $2
                RETURNING *
                """,
                event_id,
                user_id,
                status.value,
                decided_by,
                decided_at,
            )
            assert updated is not None
            return SignupTransition(previous=previous, current=signup_from_row(updated), performed=True)

    async def delete_signup(self, event_id: int, user_id: int) -> Optional[EventSignup]:
        row = await self.db.fetchrow(
            "DELETE FROM event_signups WHERE event_id = $1 AND user_id = $2 RETURNING *",
            event_id,
            user_id,
        )
        return signup_from_row(row) if row is not None else None

    async def update_signup(self, event_id: int, user_id: int, **fields: Any) -> Optional[EventSignup]:
        assignments, values = _assignments(fields, SIGNUP_UPDATABLE_FIELDS, 3)
        row = await self.db.fetchrow(
            f"UPDATE event_signups SET {assignments} WHERE event_id = $1 AND user_id = $2 RETURNING *",
            event_id,
            user_id,
            *values,
        )
        return signup_from_row(row) if row is not None else None

    # Message mirror

    async def save_mirror_link(
        self,
        origin_id: int,
        origin_chat_id: int,
        destination_id: int,
        destination_chat_id: int,
    ) -> MessageMirrorLink:
        """Record a relayed copy in both directions and return the forward link."""
        async with self.db.transaction() as tx:
            row = await tx.fetchrow(
                """
                INSERT INTO message_mirror_links (origin_id, origin_chat_id, destination_id, destination_chat_id)
                VALUES ($1, $2, $3, $4)
                RETURNING *
                """,
                origin_id,
                origin_chat_id,
                destination_id,
                destination_chat_id,
            )
            await tx.execute(
                """
                INSERT INTO message_mirror_links (origin_id, origin_chat_id, destination_id, destination_chat_id)
                VALUES ($1, $2, $3, $4)
                """,
                destination_id,
                destination_chat_id,
                origin_id,
                origin_chat_id,
            )
        assert row is not None
        return mirror_link_from_row(row)

    async def find_mirror_links(self, origin_id: int, origin_chat_id: int) -> list[MessageMirrorLink]:
        rows = await self.db.fetch(
            """
            SELECT * FROM message_mirror_links
            WHERE origin_id = $1 AND origin_chat_id = $2
            ORDER BY id
            """,
            origin_id,
            origin_chat_id,
        )
        return [mirror_link_from_row(row) for row in rows]

    async def find_mirror_link(
        self,
        origin_id: int,
        origin_chat_id: int,
        destination_chat_id: int,
    ) -> Optional[MessageMirrorLink]:
        row = await self.db.fetchrow(
            """
            SELECT * FROM message_mirror_links
            WHERE origin_id = $1 AND origin_chat_id = $2 AND destination_chat_id = $3
            ORDER BY id DESC
            LIMIT 1
            """,
            origin_id,
            origin_chat_id,
            destination_chat_id,
        )
        return mirror_link_from_row(row) if row is not None else None


def _signup_with_user(row: Mapping[str, Any]) -> SignupWithUser:
    return SignupWithUser(
        signup=signup_from_row(row),
        user=User(
            id=row["user_id"],
            name=row["user_name"],
            username=row["user_username"],
            locale=row["user_locale"],
            admin_group_topic=row["user_admin_group_topic"],
            can_manage_events=row["user_can_manage_events"],
        ),
    )


_global_repo: RegbotRepository | None = None


def set_global_repository(repo: RegbotRepository) -> None:
    global _global_repo
    _global_repo = repo


def get_global_repository() -> RegbotRepository:
    if _global_repo is None:
        raise RuntimeError("Репозиторий не инициализирован")
    return _global_repo
