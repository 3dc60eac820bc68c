from __future__ import annotations

from typing import Collection, Protocol


class Repository(Protocol):
    async def fetchval(self, query: str, *args: object) -> object: ...


class AuthorizationError(PermissionError):
    pass


async def is_event_manager(repo: Repository, user_id: int, bot_admins: Collection[int] = ()) -> bool:
    if user_id in bot_admins:
        return True
    allowed = await repo.fetchval(
        "SELECT can_manage_events FROM users WHERE id = $1",
        user_id,
    )
    return bool(allowed)


async def assert_event_manager(repo: Repository, user_id: int, bot_admins: Collection[int] = ()) -> None:
    if not await is_event_manager(repo, user_id, bot_admins):
        raise AuthorizationError("Только организаторы могут принимать решения по заявкам.")
