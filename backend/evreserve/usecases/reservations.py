from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar

from ..domain import ledger
from ..domain.availability import available_at, has_capacity
from ..domain.calendar import DEFAULT_CALENDAR, TimeSlotCalendar
from ..domain.errors import (
    AccessDeniedError,
    BookingNotFoundError,
    ConcurrentUpdateConflictError,
    InvalidReservationTimeError,
    InvalidTransitionError,
    SlotUnavailableError,
    StationInactiveError,
    StationNotFoundError,
)
from ..domain.policy import Actor, BookingPolicy, Role, TimeWindowPolicy
from ..domain.repositories import BookingFilter, BookingRepository, StationRepository, Transaction, UnitOfWork
from ..domain.status import (
    can_transition,
    capacity_delta,
    describe_delta,
    is_reopen,
    is_reserving,
    is_terminal,
)
from ..models import Booking, BookingStatus, Station
from ..utils.time import to_utc_naive, utc_now_naive

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_POLICY = TimeWindowPolicy()
DEFAULT_MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class ReservationResult:
    booking: Booking
    available_at_time: int


@dataclass(frozen=True)
class StatusChangeResult:
    booking: Booking
    previous_status: BookingStatus
    delta: int
    station_available_slots: int

    @property
    def slots_freed(self) -> int:
        return max(self.delta, 0)

    @property
    def slots_reserved(self) -> int:
        return max(-self.delta, 0)

    @property
    def message(self) -> str:
        return f"Booking status updated to {self.booking.status}. {describe_delta(self.delta)}"


@dataclass(frozen=True)
class RescheduleResult:
    booking: Booking
    previous_station_id: int
    previous_reservation_time: datetime
    available_at_time: int


async def run_with_retries(
    uow: UnitOfWork,
    operation: Callable[[Transaction], Awaitable[T]],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> T:
    """Run ``operation`` in a fresh transaction, retrying on station-version conflicts."""
    attempt = 0
    while True:
        attempt += 1
        try:
            async with uow.transaction() as tx:
                return await operation(tx)
        except ConcurrentUpdateConflictError:
            if attempt >= max_attempts:
                logger.warning("capacity conflict persisted after %d attempts", attempt)
                raise
            logger.warning("capacity conflict, retrying (attempt %d/%d)", attempt, max_attempts)


def _check_slot(calendar: TimeSlotCalendar, reservation_time: datetime) -> None:
    if not calendar.is_valid_slot_start(reservation_time):
        raise InvalidReservationTimeError("reservation time is not a valid slot start")
    if not calendar.is_within_operating_hours(reservation_time):
        raise InvalidReservationTimeError("reservation time is outside station operating hours")


async def _get_station(stations: StationRepository, station_id: int) -> Station:
    station = await stations.get(station_id)
    if station is None:
        raise StationNotFoundError("station not found")
    return station


async def _get_active_station(stations: StationRepository, station_id: int) -> Station:
    station = await _get_station(stations, station_id)
    if not station.is_active:
        raise StationInactiveError("station is inactive")
    return station


async def _get_booking(bookings: BookingRepository, booking_id: int) -> Booking:
    booking = await bookings.get(booking_id)
    if booking is None:
        raise BookingNotFoundError("booking not found")
    return booking


async def _admit(
    bookings: BookingRepository,
    station: Station,
    reservation_time: datetime,
    slots_requested: int,
    *,
    exclude_booking_id: Optional[int] = None,
    message: str = "no available slots at the requested time",
) -> None:
    if not await has_capacity(
        bookings, station, reservation_time, slots_requested, exclude_booking_id=exclude_booking_id
    ):
        available = await available_at(bookings, station, reservation_time, exclude_booking_id=exclude_booking_id)
        raise SlotUnavailableError(message, available=available)


async def create_reservation(
    uow: UnitOfWork,
    *,
    station_id: int,
    owner_identifier: str,
    reservation_time: datetime,
    slots_requested: int = 1,
    policy: BookingPolicy = DEFAULT_POLICY,
    calendar: TimeSlotCalendar = DEFAULT_CALENDAR,
    now: Optional[datetime] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> ReservationResult:
    if slots_requested < 1:
        raise ValueError("slots_requested must be >= 1")
    reservation_time = to_utc_naive(reservation_time)
    _check_slot(calendar, reservation_time)
    policy.check_reservation_time(reservation_time, now=now or utc_now_naive())

    async def attempt(tx: Transaction) -> ReservationResult:
        station = await _get_active_station(tx.stations, station_id)
        await _admit(tx.bookings, station, reservation_time, slots_requested)
        booking = await tx.bookings.insert(
            owner_identifier=owner_identifier,
            station_id=station.id,
            reservation_time=reservation_time,
            slots_requested=slots_requested,
            status=BookingStatus.PENDING,
        )
        # pending is neutral; the claim only serialises admissions on this station
        delta = capacity_delta(None, booking.status, slots_requested)
        await ledger.apply_delta(tx.stations, station, delta, claim=True)
        return ReservationResult(
            booking=booking,
            available_at_time=await available_at(tx.bookings, station, reservation_time),
        )

    return await run_with_retries(uow, attempt, max_attempts=max_attempts)


async def _transition(
    uow: UnitOfWork,
    *,
    booking_id: int,
    new_status: BookingStatus,
    actor: Optional[Actor],
    policy: BookingPolicy,
    now: datetime,
    cancellation: bool,
    max_attempts: int,
) -> StatusChangeResult:
    async def attempt(tx: Transaction) -> StatusChangeResult:
        booking = await _get_booking(tx.bookings, booking_id)
        if actor is not None:
            policy.authorize(actor, booking, manage=not cancellation)
        old_status = booking.status
        if cancellation:
            policy.check_cancellation(booking, now=now)
        if is_terminal(old_status):
            raise InvalidTransitionError(f"booking is {old_status} and can no longer change status")
        if not can_transition(old_status, new_status):
            raise InvalidTransitionError(f"cannot change status from {old_status} to {new_status}")
        if not cancellation:
            policy.check_status_change(booking, new_status, now=now)

        station = await _get_station(tx.stations, booking.station_id)
        if is_reopen(old_status, new_status):
            await _admit(
                tx.bookings,
                station,
                booking.reservation_time,
                booking.slots_requested,
                exclude_booking_id=booking.id,
                message="no available slots to reopen this booking",
            )

        delta = capacity_delta(old_status, new_status, booking.slots_requested)
        # always claim so concurrent changes to one booking cannot both commit
        available = await ledger.apply_delta(tx.stations, station, delta, claim=True)
        updated = await tx.bookings.update_status(booking, new_status)
        return StatusChangeResult(
            booking=updated,
            previous_status=old_status,
            delta=delta,
            station_available_slots=available,
        )

    return await run_with_retries(uow, attempt, max_attempts=max_attempts)


async def change_status(
    uow: UnitOfWork,
    *,
    booking_id: int,
    new_status: BookingStatus,
    actor: Optional[Actor] = None,
    policy: BookingPolicy = DEFAULT_POLICY,
    now: Optional[datetime] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> StatusChangeResult:
    return await _transition(
        uow,
        booking_id=booking_id,
        new_status=new_status,
        actor=actor,
        policy=policy,
        now=now or utc_now_naive(),
        cancellation=False,
        max_attempts=max_attempts,
    )


async def cancel_reservation(
    uow: UnitOfWork,
    *,
    booking_id: int,
    actor: Optional[Actor] = None,
    policy: BookingPolicy = DEFAULT_POLICY,
    now: Optional[datetime] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> StatusChangeResult:
    return await _transition(
        uow,
        booking_id=booking_id,
        new_status=BookingStatus.CANCELLED,
        actor=actor,
        policy=policy,
        now=now or utc_now_naive(),
        cancellation=True,
        max_attempts=max_attempts,
    )


async def update_reservation(
    uow: UnitOfWork,
    *,
    booking_id: int,
    reservation_time: Optional[datetime] = None,
    station_id: Optional[int] = None,
    actor: Optional[Actor] = None,
    policy: BookingPolicy = DEFAULT_POLICY,
    calendar: TimeSlotCalendar = DEFAULT_CALENDAR,
    now: Optional[datetime] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> RescheduleResult:
    """
    Move a booking to another slot and/or station.

    The admission check runs against the target, excluding the booking itself.
    A reserving booking that changes station releases its slots on the old
    station and consumes them on the new one within the same transaction.
    """
    if reservation_time is None and station_id is None:
        raise ValueError("reservation_time or station_id is required")
    now = now or utc_now_naive()
    new_time: Optional[datetime] = None
    if reservation_time is not None:
        new_time = to_utc_naive(reservation_time)
        _check_slot(calendar, new_time)
        policy.check_reservation_time(new_time, now=now)

    async def attempt(tx: Transaction) -> RescheduleResult:
        booking = await _get_booking(tx.bookings, booking_id)
        if actor is not None:
            policy.authorize(actor, booking)
        policy.check_modification(booking, now=now)

        previous_station_id = booking.station_id
        previous_time = booking.reservation_time
        target_time = new_time or previous_time
        target = await _get_active_station(tx.stations, station_id or previous_station_id)

        await _admit(tx.bookings, target, target_time, booking.slots_requested, exclude_booking_id=booking.id)

        if target.id == previous_station_id:
            await ledger.apply_delta(tx.stations, target, 0, claim=True)
        else:
            # both stations are claimed whatever the status, so a concurrent
            # status change on the source station cannot commit alongside the move
            source = await _get_station(tx.stations, previous_station_id)
            moved = booking.slots_requested if is_reserving(booking.status) else 0
            for station, delta in sorted([(source, moved), (target, -moved)], key=lambda move: move[0].id):
                await ledger.apply_delta(tx.stations, station, delta, claim=True)

        updated = await tx.bookings.reschedule(booking, station_id=target.id, reservation_time=target_time)
        return RescheduleResult(
            booking=updated,
            previous_station_id=previous_station_id,
            previous_reservation_time=previous_time,
            available_at_time=await available_at(tx.bookings, target, target_time),
        )

    return await run_with_retries(uow, attempt, max_attempts=max_attempts)


async def get_booking(
    uow: UnitOfWork,
    *,
    booking_id: int,
    actor: Optional[Actor] = None,
    policy: BookingPolicy = DEFAULT_POLICY,
) -> Booking:
    async with uow.transaction() as tx:
        booking = await _get_booking(tx.bookings, booking_id)
    if actor is not None:
        policy.authorize(actor, booking)
    return booking


async def list_owner_bookings(uow: UnitOfWork, *, owner_identifier: str) -> list[Booking]:
    async with uow.transaction() as tx:
        return await tx.bookings.list_by_owner(owner_identifier)


async def list_bookings(
    uow: UnitOfWork,
    *,
    actor: Actor,
    status: Optional[BookingStatus] = None,
    station_id: Optional[int] = None,
    from_time: Optional[datetime] = None,
    to_time: Optional[datetime] = None,
) -> list[Booking]:
    """
    Search bookings visible to ``actor``.

    Admins see every booking, operators only their own station's and owners
    only their own. An operator asking for another station is denied rather
    than silently given an empty list.
    """
    owner_identifier: Optional[str] = None
    if actor.role == Role.OWNER:
        owner_identifier = actor.identifier
    elif actor.role == Role.OPERATOR:
        if actor.station_id is None:
            raise AccessDeniedError("operator is not assigned to a station")
        if station_id is not None and station_id != actor.station_id:
            raise AccessDeniedError("booking belongs to another station")
        station_id = actor.station_id

    criteria = BookingFilter(
        owner_identifier=owner_identifier,
        station_id=station_id,
        status=status,
        from_time=to_utc_naive(from_time) if from_time is not None else None,
        to_time=to_utc_naive(to_time) if to_time is not None else None,
    )
    async with uow.transaction() as tx:
        return await tx.bookings.search(criteria)
