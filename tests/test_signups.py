from datetime import datetime, timedelta, timezone

import pytest

from regbot.db.models import EventPayment, SignupStatus
from regbot.services.signups import (
    EventNotFoundError,
    RegistrationClosedError,
    SignupNotFoundError,
    confirm_participation,
    confirm_signup,
    reject_signup,
    signup_for_event,
    withdraw_signup,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
LATER = NOW + timedelta(days=3)
BOT_ID = 999
ADMIN_ID = 7


@pytest.mark.asyncio
async def test_signup_free_event_is_approved_once(repo):
    repo.add_event(1, LATER, payment=EventPayment.NOT_REQUIRED)

    first = await signup_for_event(repo, 1, 42, BOT_ID, now=NOW)
    assert first.signup_performed is True
    assert first.signup is not None
    assert first.signup.status == SignupStatus.APPROVED
    assert first.signup.approved_by == BOT_ID
    assert first.signup.approved_at == NOW

    second = await signup_for_event(repo, 1, 42, BOT_ID, now=NOW)
    assert second.signup_performed is False
    assert second.signup is not None
    assert second.signup.status == SignupStatus.APPROVED
    assert len(repo.signups) == 1


@pytest.mark.asyncio
async def test_donation_with_price_waits_for_payment(repo):
    repo.add_event(1, LATER, payment=EventPayment.DONATION, price="50")

    result = await signup_for_event(repo, 1, 42, BOT_ID, now=NOW)
    assert result.signup is not None
    assert result.signup.status == SignupStatus.PENDING_PAYMENT
    assert result.signup.approved_by is None

    confirmed = await confirm_signup(repo, 1, 42, ADMIN_ID, now=NOW)
    assert confirmed.confirm_performed is True
    assert confirmed.signup.status == SignupStatus.APPROVED
    assert confirmed.signup.approved_by == ADMIN_ID


@pytest.mark.asyncio
async def test_donation_without_price_is_approved_right_away(repo):
    repo.add_event(1, LATER, payment=EventPayment.DONATION)

    result = await signup_for_event(repo, 1, 42, BOT_ID, now=NOW)
    assert result.signup is not None
    assert result.signup.status == SignupStatus.APPROVED


@pytest.mark.asyncio
async def test_approval_takes_precedence_over_payment(repo):
    repo.add_event(1, LATER, payment=EventPayment.REQUIRED, price="20", require_approval=True)

    result = await signup_for_event(repo, 1, 42, BOT_ID, participation_options=["vegan"], now=NOW)
    assert result.signup is not None
    assert result.signup.status == SignupStatus.PENDING_APPROVAL
    assert result.signup.participation_options == ["vegan"]


@pytest.mark.asyncio
async def test_confirm_twice_is_noop(repo):
    repo.add_signup(1, 42, SignupStatus.PENDING_APPROVAL)

    first = await confirm_signup(repo, 1, 42, ADMIN_ID, now=NOW)
    second = await confirm_signup(repo, 1, 42, ADMIN_ID + 1, now=NOW)

    assert first.confirm_performed is True
    assert second.confirm_performed is False
    assert second.signup.approved_by == ADMIN_ID


@pytest.mark.asyncio
async def test_confirm_payment_button_ignores_pending_approval(repo):
    repo.add_signup(1, 42, SignupStatus.PENDING_APPROVAL)

    result = await confirm_signup(repo, 1, 42, ADMIN_ID, expected_status=SignupStatus.PENDING_PAYMENT, now=NOW)

    assert result.confirm_performed is False
    assert repo.signups[(1, 42)].status == SignupStatus.PENDING_APPROVAL


@pytest.mark.asyncio
async def test_confirm_missing_signup(repo):
    with pytest.raises(SignupNotFoundError):
        await confirm_signup(repo, 1, 42, ADMIN_ID, now=NOW)


@pytest.mark.asyncio
async def test_reject_approved_requires_refund(repo):
    repo.add_signup(1, 42, SignupStatus.APPROVED, approved_by=BOT_ID)

    result = await reject_signup(repo, 1, 42, ADMIN_ID, now=NOW)

    assert result.reject_performed is True
    assert result.require_refund is True
    assert result.signup.status == SignupStatus.REJECTED
    assert result.signup.approved_by == ADMIN_ID


@pytest.mark.asyncio
async def test_reject_pending_needs_no_refund(repo):
    repo.add_signup(1, 42, SignupStatus.PENDING_APPROVAL)

    result = await reject_signup(repo, 1, 42, ADMIN_ID, now=NOW)
    again = await reject_signup(repo, 1, 42, ADMIN_ID, now=NOW)

    assert result.reject_performed is True
    assert result.require_refund is False
    assert again.reject_performed is False


@pytest.mark.asyncio
async def test_withdraw_approved_requires_refund(repo):
    repo.add_signup(1, 42, SignupStatus.APPROVED)

    result = await withdraw_signup(repo, 1, 42)

    assert result.withdraw_performed is True
    assert result.require_refund is True
    assert (1, 42) not in repo.signups


@pytest.mark.asyncio
async def test_withdraw_pending_approval_and_missing(repo):
    repo.add_signup(1, 42, SignupStatus.PENDING_APPROVAL)

    first = await withdraw_signup(repo, 1, 42)
    second = await withdraw_signup(repo, 1, 42)

    assert first.withdraw_performed is True
    assert first.require_refund is False
    assert second.withdraw_performed is False
    assert second.signup is None


@pytest.mark.asyncio
async def test_signup_again_after_withdraw(repo):
    repo.add_event(1, LATER, payment=EventPayment.NOT_REQUIRED)

    await signup_for_event(repo, 1, 42, BOT_ID, now=NOW)
    await withdraw_signup(repo, 1, 42)
    again = await signup_for_event(repo, 1, 42, BOT_ID, now=NOW)

    assert again.signup_performed is True


@pytest.mark.asyncio
async def test_signup_unknown_event(repo):
    with pytest.raises(EventNotFoundError):
        await signup_for_event(repo, 404, 42, BOT_ID, now=NOW)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("fields", "date", "reason"),
    [
        ({"registration_open": False}, LATER, RegistrationClosedError.CLOSED),
        ({"cancelled": True}, LATER, RegistrationClosedError.CANCELLED),
        ({}, NOW - timedelta(hours=1), RegistrationClosedError.IN_PAST),
    ],
)
async def test_signup_rejected_when_registration_unavailable(repo, fields, date, reason):
    repo.add_event(1, date, **fields)

    with pytest.raises(RegistrationClosedError) as exc_info:
        await signup_for_event(repo, 1, 42, BOT_ID, now=NOW)

    assert exc_info.value.reason == reason
    assert not repo.signups


@pytest.mark.asyncio
async def test_confirm_participation(repo):
    repo.add_signup(1, 42, SignupStatus.APPROVED)

    signup = await confirm_participation(repo, 1, 42)

    assert signup.participation_confirmed is True
    with pytest.raises(SignupNotFoundError):
        await confirm_participation(repo, 1, 43)
