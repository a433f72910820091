import logging
from datetime import date, datetime, tzinfo
from typing import Iterator, List, Sequence, Tuple

from ..domain.errors import DuplicateSlotError, SlotNotFoundError, SlotUnavailableError
from ..domain.repositories import SlotRepository
from ..domain.services import SlotAvailability, SlotSnapshot, compute_slot_status, parse_time_label
from ..models import Slot

logger = logging.getLogger(__name__)


def snapshot_of(slot: Slot) -> SlotSnapshot:
    return SlotSnapshot(capacity=slot.capacity, booked_count=slot.booked_count, is_booked=slot.is_booked)


def slot_status(slot: Slot, *, now: datetime, tz: tzinfo) -> SlotAvailability:
    return compute_slot_status(slot_date=slot.date, label=slot.time, snapshot=snapshot_of(slot), now=now, tz=tz)


async def list_slots_with_status(
    slot_repo: SlotRepository,
    *,
    on_date: date | None,
    available_only: bool,
    now: datetime,
    tz: tzinfo,
) -> Iterator[Tuple[Slot, SlotAvailability]]:
    """
    Slots ordered by date and start time, each paired with its computed status.
    Statuses are derived on each iteration and never written back.
    """
    rows = await slot_repo.list_slots(on_date)
    ordered = sorted(rows, key=lambda slot: (slot.date, parse_time_label(slot.time), slot.id))

    def _annotated() -> Iterator[Tuple[Slot, SlotAvailability]]:
        for slot in ordered:
            status = slot_status(slot, now=now, tz=tz)
            if available_only and status != SlotAvailability.AVAILABLE:
                continue
            yield slot, status

    return _annotated()


async def create_slots(
    slot_repo: SlotRepository,
    *,
    on_date: date,
    times: Sequence[str],
    capacity: int,
) -> List[Slot]:
    if not times:
        raise ValueError("at least one time slot is required")
    if capacity < 1:
        raise ValueError("capacity must be >= 1")
    labels = [label.strip() for label in times]
    for label in labels:
        parse_time_label(label)

    repeated = sorted({label for label in labels if labels.count(label) > 1})
    if repeated:
        raise DuplicateSlotError(repeated)
    existing = await slot_repo.existing_times(on_date, labels)
    if existing:
        raise DuplicateSlotError(sorted(existing))

    return await slot_repo.create_many(on_date=on_date, times=labels, capacity=capacity)


async def get_slot(slot_repo: SlotRepository, *, slot_id: int) -> Slot:
    slot = await slot_repo.get_with_bookings(slot_id)
    if slot is None:
        raise SlotNotFoundError("slot not found")
    return slot


async def delete_slot(slot_repo: SlotRepository, *, slot_id: int) -> Slot:
    slot = await slot_repo.get(slot_id)
    if slot is None:
        raise SlotNotFoundError("slot not found")
    await slot_repo.delete(slot)
    return slot


async def reserve_unit(slot_repo: SlotRepository, *, slot_id: int) -> Slot:
    slot = await slot_repo.reserve_unit(slot_id)
    if slot is None:
        raise SlotUnavailableError("slot is fully booked or not found")
    return slot


async def release_unit(slot_repo: SlotRepository, *, slot_id: int) -> Slot:
    current = await slot_repo.get_for_update(slot_id)
    if current is None:
        raise SlotNotFoundError("slot not found")
    if current.booked_count <= 0:
        logger.warning("releasing a unit of slot %s which has no units booked", slot_id)
    slot = await slot_repo.release_unit(slot_id)
    if slot is None:
        raise SlotNotFoundError("slot not found")
    return slot
