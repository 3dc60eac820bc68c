import pytest

from regbot.services.authz import AuthorizationError, assert_event_manager, is_event_manager


class StubRepo:
    def __init__(self, managers: set[int]) -> None:
        self.managers = managers
        self.queries = 0

    async def fetchval(self, query: str, *args: object) -> object:
        self.queries += 1
        assert "can_manage_events" in query
        return args[0] in self.managers


@pytest.mark.asyncio
async def test_is_event_manager():
    repo = StubRepo(managers={42})
    result = await is_event_manager(repo, 42)
    assert result is True


@pytest.mark.asyncio
async def test_bot_admin_needs_no_lookup():
    repo = StubRepo(managers=set())
    assert await is_event_manager(repo, 7, bot_admins=[7]) is True
    assert repo.queries == 0


@pytest.mark.asyncio
async def test_unknown_user_is_not_manager():
    class EmptyRepo:
        async def fetchval(self, query: str, *args: object) -> object:
            return None

    assert await is_event_manager(EmptyRepo(), 5) is False


@pytest.mark.asyncio
async def test_assert_event_manager_denied():
    repo = StubRepo(managers={10})
    with pytest.raises(AuthorizationError):
        await assert_event_manager(repo, 11, bot_admins=[12])
