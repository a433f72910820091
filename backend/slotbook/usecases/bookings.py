from typing import Callable

from ..domain.errors import (
    BookingNotFoundError,
    CustomerNotFoundError,
    InvalidBookingRequestError,
    SlotUnavailableError,
)
from ..domain.repositories import BookingRepository, SlotRepository, UserRepository
from ..domain.services import (
    BookingRequest,
    SlotEffect,
    ensure_can_reserve,
    transition_effect,
    validate_transition,
)
from ..models import Booking, BookingStatus, User
from ..utils.passwords import provision_credential
from . import slots as slot_usecase
from .customers import resolve_customer

# Bookings are confirmed instantly; there is no approval step.
INITIAL_STATUS = BookingStatus.CONFIRMED


async def create_booking(
    slot_repo: SlotRepository,
    booking_repo: BookingRepository,
    user_repo: UserRepository,
    *,
    request: BookingRequest,
    credential_factory: Callable[[], str] = provision_credential,
) -> Booking:
    """
    Resolve the customer, store the booking and take one unit of its slot.
    Must run inside a single transaction: a SlotUnavailableError leaves the
    inserted booking (and any customer created for it) to be rolled back.
    """
    slot_id = request.slot_id
    if slot_id is not None and (isinstance(slot_id, bool) or not isinstance(slot_id, int)):
        raise InvalidBookingRequestError("slot_id must be an integer")

    if slot_id is not None:
        # Lock the row so the capacity check below cannot interleave with another booking.
        slot = await slot_repo.get_for_update(slot_id)
        if slot is None:
            raise SlotUnavailableError("slot not found")

    user = await resolve_customer(
        user_repo,
        email=request.email,
        phone=request.phone,
        name=request.full_name,
        credential_factory=credential_factory,
    )
    booking = await booking_repo.create(
        user_id=user.id,
        slot_id=slot_id,
        full_name=request.full_name,
        email=request.email,
        phone=request.phone,
        shirt_type=request.shirt_type,
        price=request.price,
        special_requests=request.special_requests,
        appointment_type=request.appointment_type,
        status=INITIAL_STATUS,
    )

    if slot_id is not None:
        await slot_usecase.reserve_unit(slot_repo, slot_id=slot_id)
    return booking


async def update_booking_status(
    slot_repo: SlotRepository,
    booking_repo: BookingRepository,
    *,
    booking_id: int,
    status: BookingStatus,
) -> tuple[Booking, BookingStatus, SlotEffect]:
    """Change a booking's status and move its slot unit accordingly. Returns (booking, previous status, effect)."""
    booking = await booking_repo.get_for_update(booking_id)
    if booking is None:
        raise BookingNotFoundError("booking not found")

    previous = booking.status
    validate_transition(previous, status)
    effect = transition_effect(previous, status, has_slot=booking.slot_id is not None)

    if effect == SlotEffect.RESERVE:
        slot = await slot_repo.get_for_update(booking.slot_id)
        if slot is None:
            raise SlotUnavailableError("slot not found")
        ensure_can_reserve(slot_usecase.snapshot_of(slot))

    updated = await booking_repo.update_status(booking, status)

    if effect == SlotEffect.RESERVE:
        await slot_usecase.reserve_unit(slot_repo, slot_id=booking.slot_id)
    elif effect == SlotEffect.RELEASE:
        await slot_usecase.release_unit(slot_repo, slot_id=booking.slot_id)
    return updated, previous, effect


async def get_booking(booking_repo: BookingRepository, *, booking_id: int) -> Booking:
    booking = await booking_repo.get(booking_id)
    if booking is None:
        raise BookingNotFoundError("booking not found")
    return booking


async def list_customer_bookings(
    user_repo: UserRepository,
    booking_repo: BookingRepository,
    *,
    user_id: int,
) -> tuple[User, list[Booking]]:
    user = await user_repo.get(user_id)
    if user is None:
        raise CustomerNotFoundError("user not found")
    return user, list(await booking_repo.list_by_user(user_id))
