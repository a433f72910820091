import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_session, require_admin
from ..domain.errors import DuplicateSlotError, SlotNotFoundError
from ..infrastructure.repositories import SqlAlchemySlotRepository
from ..schemas import BookingRead, SlotBatchCreate, SlotBatchCreated, SlotDetail, SlotRead
from ..usecases import slots as slot_usecase
from ..utils.audit_log import emit_audit_log
from ..utils.time import slot_zone, utc_now

router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("", response_model=List[SlotRead])
async def list_slots(
    on_date: Optional[dt.date] = Query(default=None, alias="date"),
    available: bool = Query(default=False, description="only bookable, upcoming slots"),
    session: AsyncSession = Depends(get_session),
) -> list[SlotRead]:
    slot_repo = SqlAlchemySlotRepository(session)
    rows = await slot_usecase.list_slots_with_status(
        slot_repo,
        on_date=on_date,
        available_only=available,
        now=utc_now(),
        tz=slot_zone(get_settings().slot_timezone),
    )
    return [SlotRead.from_db(slot=slot, status=slot_status) for slot, slot_status in rows]


@router.post(
    "",
    response_model=SlotBatchCreated,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_slots(
    payload: SlotBatchCreate,
    session: AsyncSession = Depends(get_session),
) -> SlotBatchCreated:
    slot_repo = SqlAlchemySlotRepository(session)
    try:
        async with session.begin():
            created = await slot_usecase.create_slots(
                slot_repo,
                on_date=payload.date,
                times=payload.times,
                capacity=payload.capacity,
            )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except DuplicateSlotError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except IntegrityError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="slot already exists")

    try:
        for slot in created:
            emit_audit_log(action="slot.created", initiator="admin", slot_id=slot.id)
    except RuntimeError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed")
    return SlotBatchCreated(count=len(created), slot_ids=[slot.id for slot in created])


@router.get("/{slot_id}", response_model=SlotDetail, dependencies=[Depends(require_admin)])
async def get_slot(
    slot_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> SlotDetail:
    slot_repo = SqlAlchemySlotRepository(session)
    try:
        slot = await slot_usecase.get_slot(slot_repo, slot_id=slot_id)
    except SlotNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="slot not found")

    summary = SlotRead.from_db(
        slot=slot,
        status=slot_usecase.slot_status(slot, now=utc_now(), tz=slot_zone(get_settings().slot_timezone)),
    )
    return SlotDetail(
        **dict(summary),
        bookings=[BookingRead.from_db(booking=booking) for booking in slot.bookings],
    )


@router.delete("/{slot_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(require_admin)])
async def delete_slot(
    slot_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> None:
    slot_repo = SqlAlchemySlotRepository(session)
    async with session.begin():
        try:
            await slot_usecase.delete_slot(slot_repo, slot_id=slot_id)
        except SlotNotFoundError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="slot not found")

    try:
        emit_audit_log(action="slot.deleted", initiator="admin", slot_id=slot_id)
    except RuntimeError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed")
