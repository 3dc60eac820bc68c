from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest
from aiogram.exceptions import TelegramForbiddenError

from regbot.handlers import relay
from regbot.services.mirror import MessageMirror

ADMIN_GROUP = -100500
TOPIC = 77


@pytest.fixture
def wired(monkeypatch, bot, repo):
    monkeypatch.setattr(relay, "get_repo", lambda: repo)
    monkeypatch.setattr(relay, "get_mirror", lambda b: MessageMirror(b, repo, tz=ZoneInfo("UTC")))
    repo.add_user(42, name="Аня", admin_group_topic=TOPIC)


def topic_message(bot, *, is_bot=False, thread_id=TOPIC):
    return SimpleNamespace(
        message_id=5,
        message_thread_id=thread_id,
        from_user=SimpleNamespace(is_bot=is_bot),
        chat=SimpleNamespace(id=ADMIN_GROUP),
        reply_to_message=None,
        bot=bot,
    )


@pytest.mark.asyncio
async def test_admin_reply_is_copied_to_user(wired, bot, repo):
    await relay.admin_topic_to_user(topic_message(bot))

    assert [copy["chat_id"] for copy in bot.copies] == [42]
    assert len(repo.links) == 2


@pytest.mark.asyncio
async def test_admin_reply_to_blocked_user_is_logged_not_raised(wired, bot, repo):
    bot.failures[42] = TelegramForbiddenError(method=None, message="Forbidden: bot was blocked by the user")

    await relay.admin_topic_to_user(topic_message(bot))

    assert bot.copies == []
    assert repo.links == []


@pytest.mark.asyncio
async def test_bot_and_unknown_topic_messages_are_ignored(wired, bot, repo):
    await relay.admin_topic_to_user(topic_message(bot, is_bot=True))
    await relay.admin_topic_to_user(topic_message(bot, thread_id=1))
    await relay.admin_topic_to_user(topic_message(bot, thread_id=None))

    assert bot.copies == []
