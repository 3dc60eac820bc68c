"""Background event reminders.

One :class:`ReminderScheduler` per process. Each cycle claims at most one
event (the claim flips ``reminder_sent`` atomically, so concurrent processes
never remind the same event twice), announces it in the members group and
sends a personal reminder to every approved participant. The next cycle is
armed as a one-shot APScheduler job; that job is the only timer handle.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol
from zoneinfo import ZoneInfo

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from regbot.db.models import ClaimedEvent, Event, EventPayment, User
from regbot.keyboards import signup_reminder_keyboard
from regbot.logging import get_logger
from regbot.services.events import (
    format_event_date,
    format_event_title,
    format_payment_details,
    reminder_window,
)
from regbot.texts import t

REMINDER_JOB_ID = "event-reminders"


class ReminderStore(Protocol):
    async def claim_event_for_reminders(self, start: datetime, end: datetime) -> Optional[ClaimedEvent]: ...


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(slots=True, frozen=True)
class ReminderConfig:
    members_group: int
    bot_username: str
    tz: ZoneInfo
    default_locale: str
    payment_iban: str
    payment_recipient: str
    frequency: float = 30.0
    error_backoff: float = 60.0
    jitter: float = 2.5
    reminder_hour: int = 15
    send_timeout: float = 30.0
    announce_delay: float = 1.0
    signup_delay_min: float = 1.0
    signup_delay_max: float = 6.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def send_signup_reminder(
    bot: Bot,
    event: Event,
    user: User,
    *,
    tz: ZoneInfo,
    default_locale: str,
    payment_iban: str,
    payment_recipient: str,
    with_keyboard: bool = True,
) -> None:
    locale = user.locale or default_locale
    # reminder_text_html is written by admins and already HTML.
    more = event.reminder_text_html or ""
    if event.payment == EventPayment.DONATION:
        details = format_payment_details(
            event,
            locale,
            default_iban=payment_iban,
            default_recipient=payment_recipient,
        )
        donate = t(locale, "reminders.donate_reminder", payment_details=details)
        more = f"{more}\n\n{donate}" if more else donate

    await bot.send_message(
        chat_id=user.id,
        text=t(
            locale,
            "reminders.signup",
            name=format_event_title(event, locale),
            date=format_event_date(event.date, tz),
            more=f"\n\n{more}" if more else "",
        ),
        reply_markup=signup_reminder_keyboard(event.id, locale) if with_keyboard else None,
    )


class ReminderScheduler:
    def __init__(
        self,
        bot: Bot,
        store: ReminderStore,
        config: ReminderConfig,
        *,
        scheduler: Optional[AsyncIOScheduler] = None,
        clock: Callable[[], datetime] = _utcnow,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._bot = bot
        self._store = store
        self._config = config
        self._owns_scheduler = scheduler is None
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._clock = clock
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._log = get_logger(__name__)

        self.state = SchedulerState.IDLE
        self._stopping = False
        self._stopped: Optional[asyncio.Future[None]] = None

    @property
    def stopping(self) -> bool:
        return self._stopping

    async def start(self, initial_delay: float = 1.0) -> None:
        if self._stopped is not None:
            raise RuntimeError("reminder scheduler can only be started once")
        self._stopped = asyncio.get_running_loop().create_future()
        if not self._scheduler.running:
            self._scheduler.start()
        self._arm(initial_delay)
        self._log.info("reminders.started", initial_delay=initial_delay)

    async def stop(self) -> None:
        """Stop the loop.

        Returns right away if the loop is waiting for its next cycle; otherwise
        waits for the current cycle to finish sending its reminders.
        """
        if self._stopped is None:
            raise RuntimeError("reminder scheduler is not running")

        first_call = not self._stopping
        if first_call:
            self._stopping = True
            if self.state == SchedulerState.IDLE:
                self._disarm()
                self._finish()

        await asyncio.shield(self._stopped)
        # AsyncIOScheduler.shutdown is deferred to the loop, so only the first caller issues it.
        if first_call and self._owns_scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def next_delay(self, *, failed: bool) -> float:
        base = self._config.error_backoff if failed else self._config.frequency
        return base + self._rng.random() * self._config.jitter

    async def run_cycle(self) -> Optional[ClaimedEvent]:
        start, end = reminder_window(self._clock(), self._config.tz, self._config.reminder_hour)
        claimed = await self._store.claim_event_for_reminders(start, end)
        if claimed is None:
            return None

        self._log.info(
            "reminders.event.claimed",
            event_id=claimed.event.id,
            num_signups=len(claimed.signups),
        )
        await self._send_event_reminder(claimed.event)
        await asyncio.gather(
            *(self._send_signup_reminder(claimed.event, entry.user) for entry in claimed.signups)
        )
        return claimed

    def _arm(self, delay: float) -> None:
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay)
        self._scheduler.add_job(
            self._tick,
            DateTrigger(run_date=run_date),
            id=REMINDER_JOB_ID,
            replace_existing=True,
            misfire_grace_time=None,
            # The next cycle is armed from inside the running one.
            max_instances=2,
        )
        self.state = SchedulerState.IDLE

    def _disarm(self) -> None:
        try:
            self._scheduler.remove_job(REMINDER_JOB_ID)
        except JobLookupError:
            pass

    def _finish(self) -> None:
        self.state = SchedulerState.STOPPED
        if self._stopped is not None and not self._stopped.done():
            self._stopped.set_result(None)
        self._log.info("reminders.stopped")

    async def _tick(self) -> None:
        if self._stopping:
            return

        self.state = SchedulerState.RUNNING
        failed = False
        try:
            await self.run_cycle()
        except asyncio.CancelledError:
            self._finish()
            raise
        except Exception:
            failed = True
            self._log.exception("reminders.cycle.failed")

        if self._stopping:
            self._finish()
        else:
            self._arm(self.next_delay(failed=failed))

    async def _send_event_reminder(self, event: Event) -> None:
        await self._sleep(self._rng.random() * self._config.announce_delay)
        text = t(
            self._config.default_locale,
            "reminders.event",
            event_id=event.id,
            name=format_event_title(event, self._config.default_locale),
            date=format_event_date(event.date, self._config.tz),
            bot_username=self._config.bot_username,
        )
        try:
            await asyncio.wait_for(
                self._bot.send_message(chat_id=self._config.members_group, text=text),
                timeout=self._config.send_timeout,
            )
        except (TelegramAPIError, asyncio.TimeoutError) as exc:
            self._log.warning("reminders.event.failed", event_id=event.id, error=str(exc) or type(exc).__name__)
        except Exception:
            self._log.exception("reminders.event.failed", event_id=event.id)

    async def _send_signup_reminder(self, event: Event, user: User) -> None:
        config = self._config
        spread = max(config.signup_delay_max - config.signup_delay_min, 0.0)
        await self._sleep(config.signup_delay_min + self._rng.random() * spread)
        try:
            await asyncio.wait_for(
                send_signup_reminder(
                    self._bot,
                    event,
                    user,
                    tz=config.tz,
                    default_locale=config.default_locale,
                    payment_iban=config.payment_iban,
                    payment_recipient=config.payment_recipient,
                ),
                timeout=config.send_timeout,
            )
        except (TelegramAPIError, asyncio.TimeoutError) as exc:
            self._log.warning(
                "reminders.signup.failed",
                event_id=event.id,
                user_id=user.id,
                error=str(exc) or type(exc).__name__,
            )
        except Exception:
            self._log.exception("reminders.signup.failed", event_id=event.id, user_id=user.id)
        else:
            self._log.info("reminders.signup.sent", event_id=event.id, user_id=user.id)
