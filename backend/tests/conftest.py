"""In-memory repositories shared by the use case tests."""

import asyncio
import itertools
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, AsyncIterator, Optional

import pytest
from slotbook.domain.errors import IdentityConflictError
from slotbook.domain.services import BookingRequest
from slotbook.models import Booking, BookingStatus, Gender, Slot, User, UserRole


def _utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class _Transaction:
    inserted: list[tuple[dict[int, Any], Any]] = field(default_factory=list)
    deleted: list[tuple[dict[int, Any], Any]] = field(default_factory=list)
    originals: dict[int, tuple[Any, dict[str, Any]]] = field(default_factory=dict)
    locks: list[asyncio.Lock] = field(default_factory=list)


_current: ContextVar[Optional[_Transaction]] = ContextVar("fake_transaction", default=None)


class InMemoryStore:
    """
    Row storage with concurrent transactions.

    Transactions are not serialized: they interleave at every repository call.
    `lock_row` behaves like SELECT ... FOR UPDATE, holding a per-row lock until
    the owning transaction ends. A failing transaction undoes its own inserts,
    deletes and updates.
    """

    def __init__(self) -> None:
        self.users: dict[int, User] = {}
        self.slots: dict[int, Slot] = {}
        self.bookings: dict[int, Booking] = {}
        self._ids = {name: itertools.count(1) for name in ("users", "slots", "bookings")}
        self._row_locks: dict[tuple[str, int], asyncio.Lock] = {}

    def next_id(self, table: str) -> int:
        return next(self._ids[table])

    async def round_trip(self) -> None:
        # Hand control to other tasks, as a database call would.
        await asyncio.sleep(0)

    async def lock_row(self, table: str, row_id: int) -> None:
        tx = _current.get()
        if tx is None:
            return
        lock = self._row_locks.setdefault((table, row_id), asyncio.Lock())
        if lock in tx.locks:
            return
        await lock.acquire()
        tx.locks.append(lock)

    def insert(self, rows: dict[int, Any], row: Any) -> Any:
        rows[row.id] = row
        tx = _current.get()
        if tx is not None:
            tx.inserted.append((rows, row))
        return row

    def delete(self, rows: dict[int, Any], row: Any) -> None:
        del rows[row.id]
        tx = _current.get()
        if tx is not None:
            tx.deleted.append((rows, row))

    def touch(self, row: Any) -> None:
        """Record a row's values before it is modified."""
        tx = _current.get()
        if tx is not None and id(row) not in tx.originals:
            tx.originals[id(row)] = (row, {key: getattr(row, key) for key in row.__table__.columns.keys()})

    @staticmethod
    def _undo(tx: _Transaction) -> None:
        for rows, row in reversed(tx.inserted):
            rows.pop(row.id, None)
        for rows, row in tx.deleted:
            rows[row.id] = row
        for row, values in tx.originals.values():
            for key, value in values.items():
                setattr(row, key, value)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        tx = _Transaction()
        token = _current.set(tx)
        try:
            yield
        except BaseException:
            self._undo(tx)
            raise
        finally:
            _current.reset(token)
            for lock in tx.locks:
                lock.release()

    def add_slot(self, *, capacity: int, booked_count: int = 0, is_booked: bool = False,
                 on_date: Optional[date] = None, time: str = "10:00 AM") -> Slot:
        now = _utc_now_naive()
        slot = Slot(
            id=self.next_id("slots"),
            date=on_date or date(2099, 1, 1),
            time=time,
            capacity=capacity,
            booked_count=booked_count,
            is_booked=is_booked,
            created_at=now,
            updated_at=now,
        )
        return self.insert(self.slots, slot)

    def add_user(self, *, email: str, mobile: str, name: str = "Existing Customer") -> User:
        now = _utc_now_naive()
        user = User(
            id=self.next_id("users"),
            name=name,
            email=email,
            mobile=mobile,
            password_hash="stored-hash",
            gender=Gender.OTHER,
            role=UserRole.USER,
            created_at=now,
            updated_at=now,
        )
        return self.insert(self.users, user)


class FakeSlotRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def get(self, slot_id: int) -> Slot | None:
        await self.store.round_trip()
        return self.store.slots.get(slot_id)

    async def get_for_update(self, slot_id: int) -> Slot | None:
        await self.store.lock_row("slots", slot_id)
        await self.store.round_trip()
        return self.store.slots.get(slot_id)

    async def get_with_bookings(self, slot_id: int) -> Slot | None:
        await self.store.round_trip()
        return self.store.slots.get(slot_id)

    async def list_slots(self, on_date: date | None = None) -> list[Slot]:
        await self.store.round_trip()
        return [slot for slot in self.store.slots.values() if on_date is None or slot.date == on_date]

    async def existing_times(self, on_date: date, times: list[str]) -> list[str]:
        await self.store.round_trip()
        return [slot.time for slot in self.store.slots.values() if slot.date == on_date and slot.time in times]

    async def create_many(self, *, on_date: date, times: list[str], capacity: int) -> list[Slot]:
        await self.store.round_trip()
        return [self.store.add_slot(capacity=capacity, on_date=on_date, time=label) for label in times]

    async def delete(self, slot: Slot) -> None:
        await self.store.round_trip()
        self.store.delete(self.store.slots, slot)
        for booking in self.store.bookings.values():
            if booking.slot_id == slot.id:
                self.store.touch(booking)
                booking.slot_id = None

    async def reserve_unit(self, slot_id: int) -> Slot | None:
        await self.store.round_trip()
        # Check and increment without yielding: one conditional UPDATE.
        slot = self.store.slots.get(slot_id)
        if slot is None or slot.is_booked or slot.booked_count >= slot.capacity:
            return None
        self.store.touch(slot)
        slot.booked_count += 1
        slot.is_booked = slot.booked_count >= slot.capacity
        return slot

    async def release_unit(self, slot_id: int) -> Slot | None:
        await self.store.round_trip()
        slot = self.store.slots.get(slot_id)
        if slot is None:
            return None
        self.store.touch(slot)
        slot.booked_count = max(slot.booked_count - 1, 0)
        slot.is_booked = False
        return slot


class FakeBookingRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def create(self, **fields: Any) -> Booking:
        await self.store.round_trip()
        now = _utc_now_naive()
        booking = Booking(id=self.store.next_id("bookings"), created_at=now, updated_at=now, **fields)
        return self.store.insert(self.store.bookings, booking)

    async def get(self, booking_id: int) -> Booking | None:
        await self.store.round_trip()
        return self.store.bookings.get(booking_id)

    async def get_for_update(self, booking_id: int) -> Booking | None:
        await self.store.lock_row("bookings", booking_id)
        await self.store.round_trip()
        return self.store.bookings.get(booking_id)

    async def update_status(self, booking: Booking, status: BookingStatus) -> Booking:
        await self.store.round_trip()
        self.store.touch(booking)
        booking.status = status
        booking.updated_at = _utc_now_naive()
        return booking

    async def list_by_user(self, user_id: int) -> list[Booking]:
        await self.store.round_trip()
        return [booking for booking in self.store.bookings.values() if booking.user_id == user_id]


class FakeUserRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store
        self.created = 0

    async def get(self, user_id: int) -> User | None:
        await self.store.round_trip()
        return self.store.users.get(user_id)

    async def find_by_email_or_mobile(self, email: str, mobile: str, *, locking: bool = False) -> User | None:
        await self.store.round_trip()
        for user in sorted(self.store.users.values(), key=lambda u: u.id):
            if user.email == email or user.mobile == mobile:
                return user
        return None

    async def create(self, **fields: Any) -> User:
        await self.store.round_trip()
        # Uniqueness is checked and the row inserted without yielding, like a unique index.
        if any(u.email == fields["email"] or u.mobile == fields["mobile"] for u in self.store.users.values()):
            raise IdentityConflictError("email or mobile already registered")
        now = _utc_now_naive()
        user = User(id=self.store.next_id("users"), created_at=now, updated_at=now, **fields)
        self.created += 1
        return self.store.insert(self.store.users, user)


def make_request(
    *,
    slot_id: Optional[int] = None,
    email: str = "a@x.com",
    phone: str = "555",
    full_name: str = "Ada Tailor",
) -> BookingRequest:
    return BookingRequest(
        full_name=full_name,
        email=email,
        phone=phone,
        shirt_type="Oxford",
        price=Decimal("120.00"),
        slot_id=slot_id,
        special_requests=None,
        appointment_type="fitting",
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def slot_repo(store: InMemoryStore) -> FakeSlotRepo:
    return FakeSlotRepo(store)


@pytest.fixture
def booking_repo(store: InMemoryStore) -> FakeBookingRepo:
    return FakeBookingRepo(store)


@pytest.fixture
def user_repo(store: InMemoryStore) -> FakeUserRepo:
    return FakeUserRepo(store)


@pytest.fixture
def booking_request() -> Any:
    return make_request
