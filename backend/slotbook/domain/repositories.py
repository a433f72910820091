from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Protocol, Sequence

from ..models import Booking, BookingStatus, Gender, Slot, User, UserRole


class SlotRepository(Protocol):
    async def get(self, slot_id: int) -> Slot | None: ...

    async def get_for_update(self, slot_id: int) -> Slot | None: ...

    async def get_with_bookings(self, slot_id: int) -> Slot | None: ...

    async def list_slots(self, on_date: date | None = None) -> Sequence[Slot]: ...

    async def existing_times(self, on_date: date, times: Sequence[str]) -> list[str]: ...

    async def create_many(self, *, on_date: date, times: Sequence[str], capacity: int) -> list[Slot]: ...

    async def delete(self, slot: Slot) -> None: ...

    async def reserve_unit(self, slot_id: int) -> Slot | None:
        """Conditionally take one unit; None when the slot is missing or full."""
        ...

    async def release_unit(self, slot_id: int) -> Slot | None: ...


class BookingRepository(Protocol):
    async def create(
        self,
        *,
        user_id: int | None,
        slot_id: int | None,
        full_name: str,
        email: str,
        phone: str,
        shirt_type: str,
        price: Decimal,
        special_requests: str | None,
        appointment_type: str | None,
        status: BookingStatus,
    ) -> Booking: ...

    async def get(self, booking_id: int) -> Booking | None: ...

    async def get_for_update(self, booking_id: int) -> Booking | None: ...

    async def update_status(self, booking: Booking, status: BookingStatus) -> Booking: ...

    async def list_by_user(self, user_id: int) -> Sequence[Booking]: ...


class UserRepository(Protocol):
    async def get(self, user_id: int) -> User | None: ...

    async def find_by_email_or_mobile(self, email: str, mobile: str, *, locking: bool = False) -> User | None: ...

    async def create(
        self,
        *,
        name: str,
        email: str,
        mobile: str,
        password_hash: str,
        gender: Gender,
        role: UserRole,
    ) -> User:
        """Insert a user; raises IdentityConflictError on a uniqueness violation."""
        ...
