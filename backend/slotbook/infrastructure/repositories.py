from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy import Update, case, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from ..domain.errors import IdentityConflictError
from ..domain.repositories import BookingRepository, SlotRepository, UserRepository
from ..models import Booking, BookingStatus, Gender, Slot, User, UserRole
from ..utils.time import utc_now_naive


def reserve_unit_stmt(slot_id: int, now: datetime) -> Update:
    """
    Take one unit only while the slot still has room. The capacity check and the
    increment are a single statement, so concurrent reservations cannot both pass.
    is_booked is listed first: MySQL evaluates SET assignments left to right.
    """
    return (
        update(Slot)
        .where(
            Slot.id == slot_id,
            Slot.is_booked.is_(False),
            Slot.booked_count < Slot.capacity,
        )
        .ordered_values(
            (Slot.is_booked, case((Slot.booked_count + 1 >= Slot.capacity, True), else_=False)),
            (Slot.booked_count, Slot.booked_count + 1),
            (Slot.updated_at, now),
        )
        .execution_options(synchronize_session=False)
    )


def release_unit_stmt(slot_id: int, now: datetime) -> Update:
    return (
        update(Slot)
        .where(Slot.id == slot_id)
        .values(
            booked_count=case((Slot.booked_count > 0, Slot.booked_count - 1), else_=0),
            is_booked=False,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )


class SqlAlchemySlotRepository(SlotRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, slot_id: int) -> Slot | None:
        return await self.session.get(Slot, slot_id)

    async def get_for_update(self, slot_id: int) -> Slot | None:
        return await self.session.scalar(
            select(Slot)
            .where(Slot.id == slot_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    async def get_with_bookings(self, slot_id: int) -> Slot | None:
        return await self.session.scalar(
            select(Slot).options(selectinload(Slot.bookings)).where(Slot.id == slot_id)
        )

    async def list_slots(self, on_date: date | None = None) -> List[Slot]:
        stmt = select(Slot).order_by(Slot.date, Slot.id)
        if on_date is not None:
            stmt = stmt.where(Slot.date == on_date)
        return list((await self.session.scalars(stmt)).all())

    async def existing_times(self, on_date: date, times: Sequence[str]) -> List[str]:
        stmt = select(Slot.time).where(Slot.date == on_date, Slot.time.in_(list(times)))
        return list((await self.session.scalars(stmt)).all())

    async def create_many(self, *, on_date: date, times: Sequence[str], capacity: int) -> List[Slot]:
        now = utc_now_naive()
        slots = [
            Slot(
                date=on_date,
                time=label,
                capacity=capacity,
                booked_count=0,
                is_booked=False,
                created_at=now,
                updated_at=now,
            )
            for label in times
        ]
        self.session.add_all(slots)
        await self.session.flush()
        return slots

    async def delete(self, slot: Slot) -> None:
        await self.session.delete(slot)
        await self.session.flush()

    async def reserve_unit(self, slot_id: int) -> Slot | None:
        result = await self.session.execute(reserve_unit_stmt(slot_id, utc_now_naive()))
        if result.rowcount != 1:
            return None
        return await self._reload(slot_id)

    async def release_unit(self, slot_id: int) -> Slot | None:
        result = await self.session.execute(release_unit_stmt(slot_id, utc_now_naive()))
        if result.rowcount != 1:
            return None
        return await self._reload(slot_id)

    async def _reload(self, slot_id: int) -> Slot | None:
        return await self.session.scalar(
            select(Slot).where(Slot.id == slot_id).execution_options(populate_existing=True)
        )


class SqlAlchemyBookingRepository(BookingRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

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
    ) -> Booking:
        now = utc_now_naive()
        booking = Booking(
            user_id=user_id,
            slot_id=slot_id,
            full_name=full_name,
            email=email,
            phone=phone,
            shirt_type=shirt_type,
            price=price,
            special_requests=special_requests,
            appointment_type=appointment_type,
            status=status,
            created_at=now,
            updated_at=now,
        )
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get(self, booking_id: int) -> Optional[Booking]:
        stmt = (
            select(Booking)
            .options(joinedload(Booking.user), joinedload(Booking.slot))
            .where(Booking.id == booking_id)
        )
        return await self.session.scalar(stmt)

    async def get_for_update(self, booking_id: int) -> Optional[Booking]:
        stmt = select(Booking).where(Booking.id == booking_id).with_for_update()
        return await self.session.scalar(stmt)

    async def update_status(self, booking: Booking, status: BookingStatus) -> Booking:
        booking.status = status
        booking.updated_at = utc_now_naive()
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def list_by_user(self, user_id: int) -> List[Booking]:
        stmt = (
            select(Booking)
            .options(joinedload(Booking.user), joinedload(Booking.slot))
            .where(Booking.user_id == user_id)
            .order_by(Booking.created_at.desc())
        )
        return list((await self.session.scalars(stmt)).all())


class SqlAlchemyUserRepository(UserRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, user_id: int) -> Optional[User]:
        return await self.session.get(User, user_id)

    async def find_by_email_or_mobile(self, email: str, mobile: str, *, locking: bool = False) -> Optional[User]:
        stmt = select(User).where(or_(User.email == email, User.mobile == mobile)).order_by(User.id).limit(1)
        if locking:
            # A locking read sees rows committed after this transaction's snapshot.
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return await self.session.scalar(stmt)

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
        now = utc_now_naive()
        user = User(
            name=name,
            email=email,
            mobile=mobile,
            password_hash=password_hash,
            gender=gender,
            role=role,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(user)
        except IntegrityError as exc:
            raise IdentityConflictError("email or mobile already registered") from exc
        return user
