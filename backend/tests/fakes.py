import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, Iterable, Optional, Set

from evreserve.domain.errors import ConcurrentUpdateConflictError
from evreserve.domain.repositories import BookingFilter
from evreserve.domain.status import FREEING_STATUSES, RESERVING_STATUSES
from evreserve.models import Booking, BookingStatus, Station

# 26 hours before the 2024-01-15 10:00 slot used throughout the tests
NOW = datetime(2024, 1, 14, 8, 0)
SLOT = datetime(2024, 1, 15, 10, 0)


def _copy_station(station: Station) -> Station:
    return Station(
        id=station.id,
        name=station.name,
        total_slots=station.total_slots,
        available_slots=station.available_slots,
        is_active=station.is_active,
        version=station.version,
        created_at=station.created_at,
        updated_at=station.updated_at,
    )


def _copy_booking(booking: Booking) -> Booking:
    return Booking(
        id=booking.id,
        owner_identifier=booking.owner_identifier,
        station_id=booking.station_id,
        reservation_time=booking.reservation_time,
        slots_requested=booking.slots_requested,
        status=booking.status,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
    )


class InMemoryStore:
    """Committed state shared by every fake transaction."""

    def __init__(self) -> None:
        self.stations: Dict[int, Station] = {}
        self.bookings: Dict[int, Booking] = {}
        self._next_station_id = 1
        self._next_booking_id = 1
        self.commits = 0
        self.rollbacks = 0

    def add_station(
        self,
        *,
        total_slots: int,
        available_slots: Optional[int] = None,
        is_active: bool = True,
    ) -> Station:
        station = Station(
            id=self._next_station_id,
            name=f"station-{self._next_station_id}",
            total_slots=total_slots,
            available_slots=total_slots if available_slots is None else available_slots,
            is_active=is_active,
            version=1,
            created_at=NOW,
            updated_at=NOW,
        )
        self._next_station_id += 1
        self.stations[station.id] = station
        return station

    def add_booking(
        self,
        *,
        station_id: int,
        status: BookingStatus,
        reservation_time: datetime = SLOT,
        slots_requested: int = 1,
        owner_identifier: str = "1",
    ) -> Booking:
        booking = Booking(
            id=self.allocate_booking_id(),
            owner_identifier=owner_identifier,
            station_id=station_id,
            reservation_time=reservation_time,
            slots_requested=slots_requested,
            status=status,
            created_at=NOW,
            updated_at=NOW,
        )
        self.bookings[booking.id] = booking
        return booking

    def allocate_booking_id(self) -> int:
        booking_id = self._next_booking_id
        self._next_booking_id += 1
        return booking_id

    def reserving_sum(self, station_id: int) -> int:
        return sum(
            b.slots_requested
            for b in self.bookings.values()
            if b.station_id == station_id and b.status in RESERVING_STATUSES
        )


class FakeTransaction:
    """
    Repeatable-read transaction over an ``InMemoryStore``.

    Reads come from the committed state as of ``begin``. Station writes are
    conditional on the latest committed version, both when issued and again at
    commit. Booking updates merge only the columns they touched onto the latest
    committed row, the way an ORM flush of dirty attributes does.
    """

    def __init__(self, store: InMemoryStore) -> None:
        self.store = store
        self.station_snapshot: Dict[int, Station] = dict(store.stations)
        self.booking_snapshot: Dict[int, Booking] = dict(store.bookings)
        self.station_cache: Dict[int, Station] = {}
        self.expected_versions: Dict[int, int] = {}
        self.booking_cache: Dict[int, Booking] = {}
        self.new_bookings: Set[int] = set()
        self.dirty_columns: Dict[int, Set[str]] = {}
        self.stations = FakeStationRepo(self)
        self.bookings = FakeBookingRepo(self)

    def touch(self, booking: Booking, *columns: str) -> None:
        self.dirty_columns.setdefault(booking.id, set()).update(columns)

    def commit(self) -> None:
        for station_id, expected in self.expected_versions.items():
            if self.store.stations[station_id].version != expected:
                raise ConcurrentUpdateConflictError(f"station {station_id} changed concurrently")
        for station_id in self.expected_versions:
            self.store.stations[station_id] = _copy_station(self.station_cache[station_id])
        for booking_id in self.new_bookings:
            self.store.bookings[booking_id] = _copy_booking(self.booking_cache[booking_id])
        for booking_id, columns in self.dirty_columns.items():
            if booking_id in self.new_bookings:
                continue
            merged = _copy_booking(self.store.bookings[booking_id])
            for column in columns:
                setattr(merged, column, getattr(self.booking_cache[booking_id], column))
            self.store.bookings[booking_id] = merged


class FakeStationRepo:
    def __init__(self, tx: FakeTransaction) -> None:
        self.tx = tx

    async def get(self, station_id: int) -> Station | None:
        await asyncio.sleep(0)
        if station_id not in self.tx.station_cache:
            committed = self.tx.station_snapshot.get(station_id)
            if committed is None:
                return None
            self.tx.station_cache[station_id] = _copy_station(committed)
        return self.tx.station_cache[station_id]

    async def list_ids(self) -> list[int]:
        await asyncio.sleep(0)
        return sorted(self.tx.station_snapshot)

    async def update_capacity(self, station: Station, *, available_slots: int) -> Station:
        await asyncio.sleep(0)
        if self.tx.store.stations[station.id].version != self.tx.expected_versions.get(station.id, station.version):
            raise ConcurrentUpdateConflictError(f"station {station.id} changed concurrently")
        self.tx.expected_versions.setdefault(station.id, station.version)
        station.available_slots = available_slots
        station.version += 1
        station.updated_at = NOW
        return station


class FakeBookingRepo:
    def __init__(self, tx: FakeTransaction) -> None:
        self.tx = tx

    def _visible(self) -> Iterable[Booking]:
        merged = dict(self.tx.booking_snapshot)
        merged.update(self.tx.booking_cache)
        return merged.values()

    async def get(self, booking_id: int) -> Booking | None:
        await asyncio.sleep(0)
        if booking_id not in self.tx.booking_cache:
            committed = self.tx.booking_snapshot.get(booking_id)
            if committed is None:
                return None
            self.tx.booking_cache[booking_id] = _copy_booking(committed)
        return self.tx.booking_cache[booking_id]

    async def insert(
        self,
        *,
        owner_identifier: str,
        station_id: int,
        reservation_time: datetime,
        slots_requested: int,
        status: BookingStatus,
    ) -> Booking:
        await asyncio.sleep(0)
        booking = Booking(
            id=self.tx.store.allocate_booking_id(),
            owner_identifier=owner_identifier,
            station_id=station_id,
            reservation_time=reservation_time,
            slots_requested=slots_requested,
            status=status,
            created_at=NOW,
            updated_at=NOW,
        )
        self.tx.booking_cache[booking.id] = booking
        self.tx.new_bookings.add(booking.id)
        return booking

    async def update_status(self, booking: Booking, status: BookingStatus) -> Booking:
        await asyncio.sleep(0)
        booking.status = status
        self.tx.touch(booking, "status", "updated_at")
        return booking

    async def reschedule(self, booking: Booking, *, station_id: int, reservation_time: datetime) -> Booking:
        await asyncio.sleep(0)
        booking.station_id = station_id
        booking.reservation_time = reservation_time
        self.tx.touch(booking, "station_id", "reservation_time", "updated_at")
        return booking

    async def sum_outstanding_at(
        self,
        station_id: int,
        reservation_time: datetime,
        exclude_booking_id: int | None = None,
    ) -> int:
        await asyncio.sleep(0)
        return sum(
            b.slots_requested
            for b in self._visible()
            if b.station_id == station_id
            and b.reservation_time == reservation_time
            and b.status not in FREEING_STATUSES
            and b.id != exclude_booking_id
        )

    async def outstanding_by_time(self, station_id: int, start: datetime, end: datetime) -> dict[datetime, int]:
        await asyncio.sleep(0)
        totals: dict[datetime, int] = {}
        for b in self._visible():
            if b.station_id == station_id and start <= b.reservation_time < end and b.status not in FREEING_STATUSES:
                totals[b.reservation_time] = totals.get(b.reservation_time, 0) + b.slots_requested
        return totals

    async def sum_reserving(self, station_id: int) -> int:
        await asyncio.sleep(0)
        return sum(
            b.slots_requested
            for b in self._visible()
            if b.station_id == station_id and b.status in RESERVING_STATUSES
        )

    async def list_by_owner(self, owner_identifier: str) -> list[Booking]:
        await asyncio.sleep(0)
        return sorted(
            (b for b in self._visible() if b.owner_identifier == owner_identifier),
            key=lambda b: b.reservation_time,
            reverse=True,
        )

    async def search(self, criteria: BookingFilter) -> list[Booking]:
        await asyncio.sleep(0)
        found = [
            b
            for b in self._visible()
            if (criteria.owner_identifier is None or b.owner_identifier == criteria.owner_identifier)
            and (criteria.station_id is None or b.station_id == criteria.station_id)
            and (criteria.status is None or b.status == criteria.status)
            and (criteria.from_time is None or b.reservation_time >= criteria.from_time)
            and (criteria.to_time is None or b.reservation_time <= criteria.to_time)
        ]
        return sorted(found, key=lambda b: (b.created_at, b.id), reverse=True)


class FakeUnitOfWork:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[FakeTransaction]:
        tx = FakeTransaction(self.store)
        try:
            yield tx
        except BaseException:
            self.store.rollbacks += 1
            raise
        tx.commit()
        self.store.commits += 1
