from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Tuple

from sqlalchemy import Select, func, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain.errors import ConcurrentUpdateConflictError
from ..domain.repositories import BookingFilter, BookingRepository, StationRepository
from ..domain.status import FREEING_STATUSES, RESERVING_STATUSES
from ..models import Booking, BookingStatus, Station
from ..utils.time import utc_now_naive

# MySQL deadlock / lock wait timeout
_RETRYABLE_MYSQL_ERRORS = frozenset({1205, 1213})


class SqlAlchemyStationRepository(StationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, station_id: int) -> Station | None:
        result = await self.session.scalar(select(Station).where(Station.id == station_id))
        return result if isinstance(result, Station) else None

    async def list_ids(self) -> list[int]:
        rows = await self.session.scalars(select(Station.id).order_by(Station.id))
        return list(rows.all())

    async def update_capacity(self, station: Station, *, available_slots: int) -> Station:
        stmt = (
            update(Station)
            .where(Station.id == station.id, Station.version == station.version)
            .values(
                available_slots=available_slots,
                version=Station.version + 1,
                updated_at=utc_now_naive(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            raise ConcurrentUpdateConflictError(f"station {station.id} changed concurrently")
        await self.session.refresh(station)
        return station


class SqlAlchemyBookingRepository(BookingRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, booking_id: int) -> Booking | None:
        result = await self.session.scalar(select(Booking).where(Booking.id == booking_id))
        return result if isinstance(result, Booking) else None

    async def insert(
        self,
        *,
        owner_identifier: str,
        station_id: int,
        reservation_time: datetime,
        slots_requested: int,
        status: BookingStatus,
    ) -> Booking:
        now = utc_now_naive()
        booking = Booking(
            owner_identifier=owner_identifier,
            station_id=station_id,
            reservation_time=reservation_time,
            slots_requested=slots_requested,
            status=status,
            created_at=now,
            updated_at=now,
        )
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def update_status(self, booking: Booking, status: BookingStatus) -> Booking:
        booking.status = status
        booking.updated_at = utc_now_naive()
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def reschedule(
        self,
        booking: Booking,
        *,
        station_id: int,
        reservation_time: datetime,
    ) -> Booking:
        booking.station_id = station_id
        booking.reservation_time = reservation_time
        booking.updated_at = utc_now_naive()
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def sum_outstanding_at(
        self,
        station_id: int,
        reservation_time: datetime,
        exclude_booking_id: int | None = None,
    ) -> int:
        stmt = select(func.coalesce(func.sum(Booking.slots_requested), 0)).where(
            Booking.station_id == station_id,
            Booking.reservation_time == reservation_time,
            Booking.status.not_in(list(FREEING_STATUSES)),
        )
        if exclude_booking_id is not None:
            stmt = stmt.where(Booking.id != exclude_booking_id)
        return int(await self.session.scalar(stmt) or 0)

    async def outstanding_by_time(
        self,
        station_id: int,
        start: datetime,
        end: datetime,
    ) -> dict[datetime, int]:
        stmt: Select[Tuple[datetime, Any]] = (
            select(
                Booking.reservation_time,
                func.coalesce(func.sum(Booking.slots_requested), 0).label("outstanding"),
            )
            .where(
                Booking.station_id == station_id,
                Booking.reservation_time >= start,
                Booking.reservation_time < end,
                Booking.status.not_in(list(FREEING_STATUSES)),
            )
            .group_by(Booking.reservation_time)
        )
        rows = await self.session.execute(stmt)
        return {reservation_time: int(outstanding) for reservation_time, outstanding in rows.all()}

    async def sum_reserving(self, station_id: int) -> int:
        stmt = select(func.coalesce(func.sum(Booking.slots_requested), 0)).where(
            Booking.station_id == station_id,
            Booking.status.in_(list(RESERVING_STATUSES)),
        )
        return int(await self.session.scalar(stmt) or 0)

    async def list_by_owner(self, owner_identifier: str) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.owner_identifier == owner_identifier)
            .order_by(Booking.reservation_time.desc())
        )
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def search(self, criteria: BookingFilter) -> list[Booking]:
        stmt = select(Booking)
        if criteria.owner_identifier is not None:
            stmt = stmt.where(Booking.owner_identifier == criteria.owner_identifier)
        if criteria.station_id is not None:
            stmt = stmt.where(Booking.station_id == criteria.station_id)
        if criteria.status is not None:
            stmt = stmt.where(Booking.status == criteria.status)
        if criteria.from_time is not None:
            stmt = stmt.where(Booking.reservation_time >= criteria.from_time)
        if criteria.to_time is not None:
            stmt = stmt.where(Booking.reservation_time <= criteria.to_time)
        rows = await self.session.scalars(stmt.order_by(Booking.created_at.desc(), Booking.id.desc()))
        return list(rows.all())


class SqlAlchemyTransaction:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.stations = SqlAlchemyStationRepository(session)
        self.bookings = SqlAlchemyBookingRepository(session)


class SqlAlchemyUnitOfWork:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlAlchemyTransaction]:
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    yield SqlAlchemyTransaction(session)
            except OperationalError as exc:
                code = exc.orig.args[0] if exc.orig is not None and exc.orig.args else None
                if code in _RETRYABLE_MYSQL_ERRORS:
                    raise ConcurrentUpdateConflictError("transaction aborted by lock contention") from exc
                raise
