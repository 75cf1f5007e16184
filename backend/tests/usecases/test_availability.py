from datetime import date, timedelta

import pytest
from evreserve.domain.errors import InvalidReservationTimeError, StationNotFoundError
from evreserve.models import BookingStatus
from evreserve.usecases import availability as uc

from fakes import SLOT, FakeUnitOfWork, InMemoryStore


@pytest.mark.asyncio
async def test_availability_for_date_lists_every_slot(store: InMemoryStore, uow: FakeUnitOfWork) -> None:
    station = store.add_station(total_slots=2)
    store.add_booking(station_id=station.id, status=BookingStatus.CONFIRMED, slots_requested=2)
    store.add_booking(station_id=station.id, status=BookingStatus.PENDING, reservation_time=SLOT + timedelta(hours=2))
    store.add_booking(station_id=station.id, status=BookingStatus.CANCELLED, reservation_time=SLOT + timedelta(hours=4))

    slots = await uc.get_availability_for_date(uow, station_id=station.id, day=date(2024, 1, 15))

    assert len(slots) == 9
    by_start = {a.slot.start_time: a for a in slots}
    assert by_start[SLOT].available == 0
    assert not by_start[SLOT].is_available
    assert by_start[SLOT + timedelta(hours=2)].available == 1
    assert by_start[SLOT + timedelta(hours=4)].available == 2
    assert by_start[SLOT].slot.display_name == "10:00 AM - 12:00 PM"


@pytest.mark.asyncio
async def test_inactive_station_is_never_available(store: InMemoryStore, uow: FakeUnitOfWork) -> None:
    station = store.add_station(total_slots=2, is_active=False)

    view = await uc.get_availability(uow, station_id=station.id, reservation_time=SLOT)

    assert view.available == 2
    assert not view.is_available


@pytest.mark.asyncio
async def test_availability_rejects_bad_input(store: InMemoryStore, uow: FakeUnitOfWork) -> None:
    station = store.add_station(total_slots=2)
    with pytest.raises(InvalidReservationTimeError):
        await uc.get_availability(uow, station_id=station.id, reservation_time=SLOT.replace(minute=15))
    with pytest.raises(StationNotFoundError):
        await uc.get_availability(uow, station_id=42, reservation_time=SLOT)
    with pytest.raises(StationNotFoundError):
        await uc.get_availability_for_date(uow, station_id=42, day=date(2024, 1, 15))
