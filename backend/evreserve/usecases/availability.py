from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from ..domain.availability import SlotSnapshot, snapshot_at
from ..domain.calendar import DEFAULT_CALENDAR, TimeSlot, TimeSlotCalendar
from ..domain.errors import InvalidReservationTimeError, StationNotFoundError
from ..domain.repositories import UnitOfWork
from ..utils.time import to_utc_naive


@dataclass(frozen=True)
class Availability:
    station_id: int
    slot: TimeSlot
    total: int
    available: int
    is_available: bool


def _availability(station_id: int, is_active: bool, slot: TimeSlot, snap: SlotSnapshot) -> Availability:
    return Availability(
        station_id=station_id,
        slot=slot,
        total=snap.total,
        available=snap.available,
        is_available=is_active and snap.available > 0,
    )


async def get_availability(
    uow: UnitOfWork,
    *,
    station_id: int,
    reservation_time: datetime,
    calendar: TimeSlotCalendar = DEFAULT_CALENDAR,
) -> Availability:
    reservation_time = to_utc_naive(reservation_time)
    if not calendar.is_bookable(reservation_time):
        raise InvalidReservationTimeError("reservation time is not a bookable slot start")
    async with uow.transaction() as tx:
        station = await tx.stations.get(station_id)
        if station is None:
            raise StationNotFoundError("station not found")
        snap = await snapshot_at(tx.bookings, station, reservation_time)
    slot = TimeSlot(
        start_time=reservation_time,
        duration=calendar.duration,
        display_name=calendar.display_name(reservation_time),
    )
    return _availability(station.id, station.is_active, slot, snap)


async def get_availability_for_date(
    uow: UnitOfWork,
    *,
    station_id: int,
    day: date,
    calendar: TimeSlotCalendar = DEFAULT_CALENDAR,
) -> list[Availability]:
    midnight = datetime.combine(day, time())
    async with uow.transaction() as tx:
        station = await tx.stations.get(station_id)
        if station is None:
            raise StationNotFoundError("station not found")
        outstanding = await tx.bookings.outstanding_by_time(
            station.id, midnight, midnight + timedelta(days=1)
        )
    return [
        _availability(
            station.id,
            station.is_active,
            slot,
            SlotSnapshot(total=station.total_slots, outstanding=outstanding.get(slot.start_time, 0)),
        )
        for slot in calendar.slots_for_date(day)
    ]
