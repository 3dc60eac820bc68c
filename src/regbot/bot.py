from __future__ import annotations

import asyncio

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

from regbot.config import Settings, get_settings
from regbot.db.repo import Database, RegbotRepository, set_global_repository
from regbot.handlers import relay_router, signups_router
from regbot.logging import configure_logging, get_logger
from regbot.scheduler import ReminderConfig, ReminderScheduler


def build_reminder_config(settings: Settings, bot_username: str) -> ReminderConfig:
    return ReminderConfig(
        members_group=settings.members_group,
        bot_username=bot_username,
        tz=settings.zoneinfo,
        default_locale=settings.default_locale,
        payment_iban=settings.payment_iban,
        payment_recipient=settings.payment_recipient,
        frequency=settings.reminder_frequency_s,
        error_backoff=settings.reminder_error_backoff_s,
        jitter=settings.reminder_jitter_s,
        reminder_hour=settings.reminder_time_hh,
        send_timeout=settings.send_timeout_s,
    )


async def setup_scheduler(bot: Bot, repo: RegbotRepository, settings: Settings) -> ReminderScheduler:
    me = await bot.me()
    reminders = ReminderScheduler(bot, repo, build_reminder_config(settings, me.username or ""))
    await reminders.start()
    return reminders


async def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    bot = Bot(token=settings.bot_token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    dp = Dispatcher()
    db = Database(settings.database_url)
    await db.connect()
    repo = RegbotRepository(db)

    dp.include_router(signups_router)
    dp.include_router(relay_router)

    set_global_repository(repo)

    reminders = await setup_scheduler(bot, repo, settings)

    log = get_logger(__name__)
    log.info("bot.start")
    try:
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        await reminders.stop()
        await db.close()
        await bot.session.close()
        log.info("bot.stop")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
