import re
from dataclasses import dataclass
from datetime import date, datetime, time, tzinfo
from decimal import Decimal
from enum import StrEnum
from typing import Optional

from ..models import BookingStatus
from .errors import InvalidStatusTransitionError, SlotUnavailableError

_TIME_LABEL = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*(AM|PM)\s*$", re.IGNORECASE)


class SlotAvailability(StrEnum):
    AVAILABLE = "Available"
    FULL = "Full"
    OUTDATED = "Outdated"


class SlotEffect(StrEnum):
    NONE = "none"
    RESERVE = "reserve"
    RELEASE = "release"


ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.COMPLETED}
    ),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED}),
    BookingStatus.CANCELLED: frozenset({BookingStatus.CONFIRMED, BookingStatus.COMPLETED}),
    BookingStatus.COMPLETED: frozenset(),
}


@dataclass(frozen=True)
class SlotSnapshot:
    capacity: int
    booked_count: int
    is_booked: bool


@dataclass(frozen=True)
class BookingRequest:
    full_name: str
    email: str
    phone: str
    shirt_type: str
    price: Decimal
    slot_id: Optional[int] = None
    special_requests: Optional[str] = None
    appointment_type: Optional[str] = None


def parse_time_label(label: str) -> time:
    """
    Parse a slot label such as "10:00 AM" into a wall-clock time.
    12 AM is midnight, 12 PM is noon. Raises ValueError on anything else.
    """
    match = _TIME_LABEL.match(label)
    if match is None:
        raise ValueError(f"invalid time label: {label!r}")
    hours, minutes, period = int(match.group(1)), int(match.group(2)), match.group(3).upper()
    if not 1 <= hours <= 12 or minutes > 59:
        raise ValueError(f"invalid time label: {label!r}")
    if period == "PM" and hours < 12:
        hours += 12
    if period == "AM" and hours == 12:
        hours = 0
    return time(hours, minutes)


def slot_starts_at(slot_date: date, label: str, tz: tzinfo) -> datetime:
    return datetime.combine(slot_date, parse_time_label(label), tzinfo=tz)


def compute_slot_status(
    *,
    slot_date: date,
    label: str,
    snapshot: SlotSnapshot,
    now: datetime,
    tz: tzinfo,
) -> SlotAvailability:
    """Read-side projection; `now` must be timezone-aware."""
    if slot_starts_at(slot_date, label, tz) < now:
        return SlotAvailability.OUTDATED
    if snapshot.is_booked or snapshot.booked_count >= snapshot.capacity:
        return SlotAvailability.FULL
    return SlotAvailability.AVAILABLE


def ensure_can_reserve(snapshot: SlotSnapshot) -> None:
    if snapshot.is_booked or snapshot.booked_count >= snapshot.capacity:
        raise SlotUnavailableError("slot is fully booked")


def validate_transition(old: BookingStatus, new: BookingStatus) -> None:
    if old == new:
        return
    if new not in ALLOWED_TRANSITIONS[old]:
        raise InvalidStatusTransitionError(f"cannot change booking status from {old} to {new}")


def transition_effect(old: BookingStatus, new: BookingStatus, *, has_slot: bool) -> SlotEffect:
    """Slot-ledger side effect required by a status change. Persists nothing."""
    if not has_slot:
        return SlotEffect.NONE
    if new == BookingStatus.CANCELLED and old != BookingStatus.CANCELLED:
        return SlotEffect.RELEASE
    if new == BookingStatus.CONFIRMED and old == BookingStatus.CANCELLED:
        return SlotEffect.RESERVE
    return SlotEffect.NONE
