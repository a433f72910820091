import datetime as dt
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator

from .domain.services import BookingRequest, SlotAvailability
from .models import Booking, BookingStatus, Slot, User


class SlotBatchCreate(BaseModel):
    date: dt.date
    times: List[str] = Field(min_length=1)
    capacity: int = Field(default=1, ge=1)


class SlotBatchCreated(BaseModel):
    count: int
    slot_ids: List[int]


class SlotRead(BaseModel):
    slot_id: int
    date: dt.date
    time: str
    capacity: int
    booked_count: int
    is_booked: bool
    status: Optional[SlotAvailability] = None

    @classmethod
    def from_db(cls, *, slot: Slot, status: Optional[SlotAvailability] = None) -> "SlotRead":
        return cls(
            slot_id=slot.id,
            date=slot.date,
            time=slot.time,
            capacity=slot.capacity,
            booked_count=slot.booked_count,
            is_booked=slot.is_booked,
            status=status,
        )


class BookingCreate(BaseModel):
    full_name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255)
    phone: str = Field(min_length=1, max_length=50)
    shirt_type: str = Field(min_length=1, max_length=100)
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    slot_id: Optional[int] = Field(default=None, ge=1)
    special_requests: Optional[str] = None
    appointment_type: Optional[str] = Field(default=None, max_length=100)

    @field_validator("slot_id", mode="before")
    @classmethod
    def _blank_slot_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def to_request(self) -> BookingRequest:
        return BookingRequest(
            full_name=self.full_name,
            email=self.email,
            phone=self.phone,
            shirt_type=self.shirt_type,
            price=self.price,
            slot_id=self.slot_id,
            special_requests=self.special_requests,
            appointment_type=self.appointment_type,
        )


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class CustomerSummary(BaseModel):
    user_id: int
    name: str
    email: str

    @classmethod
    def from_db(cls, *, user: User) -> "CustomerSummary":
        return cls(user_id=user.id, name=user.name, email=user.email)


class BookingRead(BaseModel):
    booking_id: int
    user_id: Optional[int]
    slot_id: Optional[int]
    full_name: str
    email: str
    phone: str
    shirt_type: str
    price: Decimal
    special_requests: Optional[str]
    appointment_type: Optional[str]
    status: BookingStatus
    created_at: dt.datetime
    updated_at: dt.datetime

    @field_serializer("price")
    def _ser_price(self, price: Decimal) -> str:
        return f"{price:.2f}"

    @classmethod
    def from_db(cls, *, booking: Booking) -> "BookingRead":
        return cls(
            booking_id=booking.id,
            user_id=booking.user_id,
            slot_id=booking.slot_id,
            full_name=booking.full_name,
            email=booking.email,
            phone=booking.phone,
            shirt_type=booking.shirt_type,
            price=booking.price,
            special_requests=booking.special_requests,
            appointment_type=booking.appointment_type,
            status=booking.status,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )


class BookingDetail(BookingRead):
    customer: Optional[CustomerSummary] = None
    slot: Optional[SlotRead] = None

    @classmethod
    def from_loaded(cls, *, booking: Booking) -> "BookingDetail":
        base = dict(BookingRead.from_db(booking=booking))
        return cls(
            **base,
            customer=CustomerSummary.from_db(user=booking.user) if booking.user is not None else None,
            slot=SlotRead.from_db(slot=booking.slot) if booking.slot is not None else None,
        )


class SlotDetail(SlotRead):
    bookings: List[BookingRead] = Field(default_factory=list)


class CustomerBookings(BaseModel):
    user_id: int
    name: str
    email: str
    mobile: str
    bookings: List[BookingDetail]
