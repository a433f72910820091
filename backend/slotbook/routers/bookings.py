from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_session, require_admin
from ..domain.errors import (
    BookingNotFoundError,
    CustomerNotFoundError,
    IdentityConflictError,
    InvalidBookingRequestError,
    InvalidStatusTransitionError,
    SlotNotFoundError,
    SlotUnavailableError,
)
from ..infrastructure.repositories import (
    SqlAlchemyBookingRepository,
    SqlAlchemySlotRepository,
    SqlAlchemyUserRepository,
)
from ..schemas import BookingCreate, BookingDetail, BookingRead, BookingStatusUpdate, CustomerBookings
from ..usecases import bookings as booking_usecase
from ..utils.audit_log import emit_audit_log

router = APIRouter(prefix="/bookings", tags=["bookings"])

SLOT_UNAVAILABLE_DETAIL = "this time is no longer available"


def _audit(**kwargs: Any) -> None:
    try:
        emit_audit_log(**kwargs)
    except RuntimeError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed")


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    session: AsyncSession = Depends(get_session),
) -> BookingRead:
    slot_repo = SqlAlchemySlotRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    user_repo = SqlAlchemyUserRepository(session)
    async with session.begin():
        try:
            booking = await booking_usecase.create_booking(
                slot_repo,
                booking_repo,
                user_repo,
                request=payload.to_request(),
            )
        except SlotUnavailableError:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=SLOT_UNAVAILABLE_DETAIL)
        except InvalidBookingRequestError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
        except IdentityConflictError:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="customer record is being created by another request, retry",
                headers={"Retry-After": "1"},
            )

    _audit(
        action="booking.created",
        initiator="customer",
        booking_id=booking.id,
        slot_id=booking.slot_id,
        user_id=booking.user_id,
        status_to=booking.status,
    )
    return BookingRead.from_db(booking=booking)


@router.get("/user/{user_id}", response_model=CustomerBookings, dependencies=[Depends(require_admin)])
async def list_customer_bookings(
    user_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> CustomerBookings:
    try:
        user, bookings = await booking_usecase.list_customer_bookings(
            SqlAlchemyUserRepository(session),
            SqlAlchemyBookingRepository(session),
            user_id=user_id,
        )
    except CustomerNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")
    return CustomerBookings(
        user_id=user.id,
        name=user.name,
        email=user.email,
        mobile=user.mobile,
        bookings=[BookingDetail.from_loaded(booking=booking) for booking in bookings],
    )


@router.get("/{booking_id}", response_model=BookingDetail, dependencies=[Depends(require_admin)])
async def get_booking(
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> BookingDetail:
    booking_repo = SqlAlchemyBookingRepository(session)
    try:
        booking = await booking_usecase.get_booking(booking_repo, booking_id=booking_id)
    except BookingNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="booking not found")
    return BookingDetail.from_loaded(booking=booking)


@router.patch("/{booking_id}/status", response_model=BookingRead)
async def update_booking_status(
    payload: BookingStatusUpdate,
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    admin_id: int = Depends(require_admin),
) -> BookingRead:
    slot_repo = SqlAlchemySlotRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    async with session.begin():
        try:
            booking, previous, effect = await booking_usecase.update_booking_status(
                slot_repo,
                booking_repo,
                booking_id=booking_id,
                status=payload.status,
            )
        except BookingNotFoundError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="booking not found")
        except SlotNotFoundError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="slot not found")
        except SlotUnavailableError:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=SLOT_UNAVAILABLE_DETAIL)
        except InvalidStatusTransitionError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

    _audit(
        action="booking.status_changed",
        initiator="admin",
        booking_id=booking.id,
        slot_id=booking.slot_id,
        user_id=booking.user_id,
        status_from=previous,
        status_to=booking.status,
        actor_id=admin_id,
        slot_effect=effect,
    )
    return BookingRead.from_db(booking=booking)
