from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import AsyncContextManager, Optional, Protocol

from ..models import Booking, BookingStatus, Station


@dataclass(frozen=True)
class BookingFilter:
    """Conjunctive booking search; ``None`` fields do not constrain. Time bounds are inclusive."""

    owner_identifier: Optional[str] = None
    station_id: Optional[int] = None
    status: Optional[BookingStatus] = None
    from_time: Optional[datetime] = None
    to_time: Optional[datetime] = None


class StationRepository(Protocol):
    async def get(self, station_id: int) -> Station | None: ...

    async def list_ids(self) -> list[int]: ...

    async def update_capacity(
        self,
        station: Station,
        *,
        available_slots: int,
    ) -> Station:
        """Conditional write keyed on ``station.version``; raises ConcurrentUpdateConflictError on a miss."""
        ...


class BookingRepository(Protocol):
    async def get(self, booking_id: int) -> Booking | None: ...

    async def insert(
        self,
        *,
        owner_identifier: str,
        station_id: int,
        reservation_time: datetime,
        slots_requested: int,
        status: BookingStatus,
    ) -> Booking: ...

    async def update_status(self, booking: Booking, status: BookingStatus) -> Booking: ...

    async def reschedule(
        self,
        booking: Booking,
        *,
        station_id: int,
        reservation_time: datetime,
    ) -> Booking: ...

    async def sum_outstanding_at(
        self,
        station_id: int,
        reservation_time: datetime,
        exclude_booking_id: int | None = None,
    ) -> int: ...

    async def outstanding_by_time(
        self,
        station_id: int,
        start: datetime,
        end: datetime,
    ) -> dict[datetime, int]: ...

    async def sum_reserving(self, station_id: int) -> int: ...

    async def list_by_owner(self, owner_identifier: str) -> list[Booking]: ...

    async def search(self, criteria: BookingFilter) -> list[Booking]:
        """Newest first by creation time."""
        ...


class Transaction(Protocol):
    stations: StationRepository
    bookings: BookingRepository


class UnitOfWork(Protocol):
    def transaction(self) -> AsyncContextManager[Transaction]:
        """Open a transaction; commit on clean exit, roll back on exception."""
        ...
