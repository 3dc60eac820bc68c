from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class EventPayment(str, Enum):
    REQUIRED = "Required"
    DONATION = "Donation"
    NOT_REQUIRED = "NotRequired"


class SignupStatus(str, Enum):
    PENDING_APPROVAL = "PendingApproval"
    PENDING_PAYMENT = "PendingPayment"
    APPROVED = "Approved"
    REJECTED = "Rejected"


@dataclass(slots=True)
class User:
    id: int
    name: Optional[str] = None
    username: Optional[str] = None
    locale: Optional[str] = None
    admin_group_topic: Optional[int] = None
    can_manage_events: bool = False


@dataclass(slots=True)
class Event:
    id: int
    name: str
    date: datetime
    announce_text_html: str = ""
    reminder_text_html: Optional[str] = None
    published: bool = False
    registration_open: bool = True
    cancelled: bool = False
    date_changed: bool = False
    require_approval: bool = False
    reminder_sent: bool = False
    payment: EventPayment = EventPayment.DONATION
    price: Optional[str] = None
    iban: Optional[str] = None
    recipient: Optional[str] = None
    participation_options: Optional[list[str]] = None


@dataclass(slots=True)
class EventSignup:
    event_id: int
    user_id: int
    status: SignupStatus
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    participation_options: Optional[list[str]] = None
    participation_confirmed: bool = False


@dataclass(slots=True)
class SignupWithUser:
    signup: EventSignup
    user: User


@dataclass(slots=True)
class SignupTransition:
    """Outcome of a guarded status update on one signup row."""

    previous: EventSignup
    current: EventSignup
    performed: bool


@dataclass(slots=True)
class ClaimedEvent:
    event: Event
    signups: list[SignupWithUser] = field(default_factory=list)


@dataclass(slots=True)
class MessageMirrorLink:
    id: int
    origin_id: int
    origin_chat_id: int
    destination_id: int
    destination_chat_id: int
