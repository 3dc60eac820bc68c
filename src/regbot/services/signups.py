"""Signup state machine.

A signup moves between ``PendingApproval``, ``PendingPayment``, ``Approved``
and ``Rejected``; a missing row means "not signed up". Every operation checks
the current state inside an atomic store call and reports whether it actually
changed anything, so a retried or duplicated request is a no-op. Callers only
notify people when the ``*_performed`` flag is true.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Collection, Optional, Protocol, Sequence

from regbot.db.models import Event, EventSignup, SignupStatus, SignupTransition
from regbot.logging import get_logger
from regbot.services.events import requires_payment

CONFIRMABLE = frozenset({SignupStatus.PENDING_APPROVAL, SignupStatus.PENDING_PAYMENT})
REJECTABLE = frozenset(
    {SignupStatus.PENDING_APPROVAL, SignupStatus.PENDING_PAYMENT, SignupStatus.APPROVED}
)
# Withdrawing from these may mean money has already changed hands.
REFUNDABLE_ON_WITHDRAW = frozenset({SignupStatus.APPROVED, SignupStatus.PENDING_PAYMENT})

log = get_logger(__name__)


class SignupStore(Protocol):
    async def get_event(self, event_id: int) -> Optional[Event]: ...

    async def get_signup(self, event_id: int, user_id: int) -> Optional[EventSignup]: ...

    async def insert_signup(self, signup: EventSignup) -> Optional[EventSignup]: ...

    async def transition_signup(
        self,
        event_id: int,
        user_id: int,
        *,
        allowed_from: Collection[SignupStatus],
        status: SignupStatus,
        decided_by: int,
        decided_at: datetime,
    ) -> Optional[SignupTransition]: ...

    async def delete_signup(self, event_id: int, user_id: int) -> Optional[EventSignup]: ...

    async def update_signup(self, event_id: int, user_id: int, **fields: Any) -> Optional[EventSignup]: ...


class EventNotFoundError(LookupError):
    def __init__(self, event_id: int) -> None:
        super().__init__(f"event {event_id} not found")
        self.event_id = event_id


class SignupNotFoundError(LookupError):
    def __init__(self, event_id: int, user_id: int) -> None:
        super().__init__(f"signup of user {user_id} for event {event_id} not found")
        self.event_id = event_id
        self.user_id = user_id


class RegistrationClosedError(Exception):
    CLOSED = "closed"
    CANCELLED = "cancelled"
    IN_PAST = "in_past"

    def __init__(self, event: Event, reason: str) -> None:
        super().__init__(f"registration for event {event.id} is unavailable: {reason}")
        self.event = event
        self.reason = reason


@dataclass(slots=True)
class SignupResult:
    signup: Optional[EventSignup]
    signup_performed: bool


@dataclass(slots=True)
class ConfirmResult:
    signup: EventSignup
    confirm_performed: bool


@dataclass(slots=True)
class RejectResult:
    signup: EventSignup
    reject_performed: bool
    require_refund: bool = False


@dataclass(slots=True)
class WithdrawResult:
    signup: Optional[EventSignup]
    withdraw_performed: bool
    require_refund: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def initial_status(event: Event) -> SignupStatus:
    if event.require_approval:
        return SignupStatus.PENDING_APPROVAL
    if requires_payment(event):
        return SignupStatus.PENDING_PAYMENT
    return SignupStatus.APPROVED


def check_registration(event: Event, now: datetime) -> None:
    if event.cancelled:
        raise RegistrationClosedError(event, RegistrationClosedError.CANCELLED)
    if not event.registration_open:
        raise RegistrationClosedError(event, RegistrationClosedError.CLOSED)
    if event.date < now:
        raise RegistrationClosedError(event, RegistrationClosedError.IN_PAST)


async def get_event_or_fail(store: SignupStore, event_id: int) -> Event:
    event = await store.get_event(event_id)
    if event is None:
        raise EventNotFoundError(event_id)
    return event


async def signup_for_event(
    store: SignupStore,
    event_id: int,
    user_id: int,
    decided_by: int,
    participation_options: Optional[Sequence[str]] = None,
    *,
    now: Optional[datetime] = None,
) -> SignupResult:
    """Create a signup for ``user_id``.

    ``decided_by`` is recorded as the approver when the event needs neither
    approval nor payment and the signup is approved right away; the front end
    passes the bot's own id.
    """
    now = now or _utcnow()
    event = await get_event_or_fail(store, event_id)
    check_registration(event, now)

    status = initial_status(event)
    approved = status == SignupStatus.APPROVED
    candidate = EventSignup(
        event_id=event.id,
        user_id=user_id,
        status=status,
        approved_by=decided_by if approved else None,
        approved_at=now if approved else None,
        participation_options=list(participation_options) if participation_options is not None else None,
    )

    created = await store.insert_signup(candidate)
    if created is None:
        existing = await store.get_signup(event.id, user_id)
        log.info("signup.duplicate", event_id=event.id, user_id=user_id)
        return SignupResult(signup=existing, signup_performed=False)

    log.info("signup.created", event_id=event.id, user_id=user_id, status=created.status.value)
    return SignupResult(signup=created, signup_performed=True)


async def confirm_signup(
    store: SignupStore,
    event_id: int,
    user_id: int,
    admin_id: int,
    *,
    expected_status: Optional[SignupStatus] = None,
    now: Optional[datetime] = None,
) -> ConfirmResult:
    """Approve a pending signup.

    With ``expected_status`` the confirmation only applies to that stage, so a
    stale "payment received" button cannot approve a signup that is still
    waiting for review.
    """
    allowed = CONFIRMABLE if expected_status is None else CONFIRMABLE & {expected_status}
    transition = await store.transition_signup(
        event_id,
        user_id,
        allowed_from=allowed,
        status=SignupStatus.APPROVED,
        decided_by=admin_id,
        decided_at=now or _utcnow(),
    )
    if transition is None:
        raise SignupNotFoundError(event_id, user_id)

    if transition.performed:
        log.info("signup.confirmed", event_id=event_id, user_id=user_id, admin_id=admin_id)
    return ConfirmResult(signup=transition.current, confirm_performed=transition.performed)


async def reject_signup(
    store: SignupStore,
    event_id: int,
    user_id: int,
    admin_id: int,
    *,
    now: Optional[datetime] = None,
) -> RejectResult:
    transition = await store.transition_signup(
        event_id,
        user_id,
        allowed_from=REJECTABLE,
        status=SignupStatus.REJECTED,
        decided_by=admin_id,
        decided_at=now or _utcnow(),
    )
    if transition is None:
        raise SignupNotFoundError(event_id, user_id)
    if not transition.performed:
        return RejectResult(signup=transition.current, reject_performed=False)

    require_refund = transition.previous.status == SignupStatus.APPROVED
    log.info(
        "signup.rejected",
        event_id=event_id,
        user_id=user_id,
        admin_id=admin_id,
        require_refund=require_refund,
    )
    return RejectResult(signup=transition.current, reject_performed=True, require_refund=require_refund)


async def withdraw_signup(store: SignupStore, event_id: int, user_id: int) -> WithdrawResult:
    removed = await store.delete_signup(event_id, user_id)
    if removed is None:
        return WithdrawResult(signup=None, withdraw_performed=False)

    require_refund = removed.status in REFUNDABLE_ON_WITHDRAW
    log.info("signup.withdrawn", event_id=event_id, user_id=user_id, require_refund=require_refund)
    return WithdrawResult(signup=removed, withdraw_performed=True, require_refund=require_refund)


async def confirm_participation(store: SignupStore, event_id: int, user_id: int) -> EventSignup:
    signup = await store.update_signup(event_id, user_id, participation_confirmed=True)
    if signup is None:
        raise SignupNotFoundError(event_id, user_id)
    return signup
