from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from ..config import Settings, get_settings
from ..deps import get_current_actor, get_policy, get_unit_of_work
from ..domain.errors import ReservationError
from ..domain.policy import Actor, Role, TimeWindowPolicy
from ..domain.repositories import UnitOfWork
from ..models import BookingStatus
from ..schemas import (
    BookingCreate,
    BookingCreated,
    BookingRead,
    BookingRescheduled,
    BookingStatusUpdate,
    BookingUpdate,
    StatusChangeRead,
)
from ..usecases import reservations as reservation_usecase
from ..utils.audit_log import emit_audit_log
from .errors import to_http_exception

router = APIRouter(prefix="", tags=["bookings"])


def _audit(**kwargs: Any) -> None:
    try:
        emit_audit_log(**kwargs)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc


def _owner_for(actor: Actor, requested: str | None) -> str:
    if actor.role == Role.OWNER:
        return actor.identifier
    if actor.role == Role.ADMIN:
        if not requested:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="owner_identifier is required for admin bookings",
            )
        return requested
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="only admins and owners can create bookings")


@router.post("/bookings", response_model=BookingCreated, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    uow: UnitOfWork = Depends(get_unit_of_work),
    actor: Actor = Depends(get_current_actor),
    policy: TimeWindowPolicy = Depends(get_policy),
    settings: Settings = Depends(get_settings),
) -> BookingCreated:
    owner_identifier = _owner_for(actor, payload.owner_identifier)
    try:
        result = await reservation_usecase.create_reservation(
            uow,
            station_id=payload.station_id,
            owner_identifier=owner_identifier,
            reservation_time=payload.reservation_time,
            slots_requested=payload.slots_requested,
            policy=policy,
            max_attempts=settings.conflict_retry_limit,
        )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc

    booking = result.booking
    _audit(
        action="booking.created",
        initiator=actor.role.value,
        booking_id=booking.id,
        station_id=booking.station_id,
        actor_id=actor.user_id,
        owner_identifier=booking.owner_identifier,
        slots_requested=booking.slots_requested,
        status_to=booking.status,
    )
    return BookingCreated(
        booking=BookingRead.from_db(booking=booking),
        available_slots_at_time=result.available_at_time,
    )


@router.get("/me/bookings", response_model=List[BookingRead])
async def list_my_bookings(
    uow: UnitOfWork = Depends(get_unit_of_work),
    actor: Actor = Depends(get_current_actor),
) -> list[BookingRead]:
    bookings = await reservation_usecase.list_owner_bookings(uow, owner_identifier=actor.identifier)
    return [BookingRead.from_db(booking=booking) for booking in bookings]


@router.get("/bookings", response_model=List[BookingRead])
async def list_bookings(
    status_filter: Optional[BookingStatus] = Query(default=None, alias="status"),
    station_id: Optional[int] = Query(default=None, ge=1),
    from_date: Optional[datetime] = Query(default=None),
    to_date: Optional[datetime] = Query(default=None),
    uow: UnitOfWork = Depends(get_unit_of_work),
    actor: Actor = Depends(get_current_actor),
) -> list[BookingRead]:
    try:
        bookings = await reservation_usecase.list_bookings(
            uow,
            actor=actor,
            status=status_filter,
            station_id=station_id,
            from_time=from_date,
            to_time=to_date,
        )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    return [BookingRead.from_db(booking=booking) for booking in bookings]


@router.get("/bookings/{booking_id}", response_model=BookingRead)
async def get_booking(
    booking_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_unit_of_work),
    actor: Actor = Depends(get_current_actor),
    policy: TimeWindowPolicy = Depends(get_policy),
) -> BookingRead:
    try:
        booking = await reservation_usecase.get_booking(uow, booking_id=booking_id, actor=actor, policy=policy)
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    return BookingRead.from_db(booking=booking)


@router.patch("/bookings/{booking_id}", response_model=BookingRescheduled)
async def update_booking(
    payload: BookingUpdate,
    booking_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_unit_of_work),
    actor: Actor = Depends(get_current_actor),
    policy: TimeWindowPolicy = Depends(get_policy),
    settings: Settings = Depends(get_settings),
) -> BookingRescheduled:
    try:
        result = await reservation_usecase.update_reservation(
            uow,
            booking_id=booking_id,
            reservation_time=payload.reservation_time,
            station_id=payload.station_id,
            actor=actor,
            policy=policy,
            max_attempts=settings.conflict_retry_limit,
        )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc

    booking = result.booking
    _audit(
        action="booking.rescheduled",
        initiator=actor.role.value,
        booking_id=booking.id,
        station_id=booking.station_id,
        actor_id=actor.user_id,
        owner_identifier=booking.owner_identifier,
        slots_requested=booking.slots_requested,
        extra={
            "station_id_from": result.previous_station_id,
            "reservation_time_from": result.previous_reservation_time.isoformat(),
            "reservation_time_to": booking.reservation_time.isoformat(),
        },
    )
    return BookingRescheduled(
        booking=BookingRead.from_db(booking=booking),
        available_slots_at_time=result.available_at_time,
    )


@router.post("/bookings/{booking_id}/status", response_model=StatusChangeRead)
async def change_booking_status(
    payload: BookingStatusUpdate,
    booking_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_unit_of_work),
    actor: Actor = Depends(get_current_actor),
    policy: TimeWindowPolicy = Depends(get_policy),
    settings: Settings = Depends(get_settings),
) -> StatusChangeRead:
    try:
        result = await reservation_usecase.change_status(
            uow,
            booking_id=booking_id,
            new_status=payload.status,
            actor=actor,
            policy=policy,
            max_attempts=settings.conflict_retry_limit,
        )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc

    _audit(
        action="booking.status_changed",
        initiator=actor.role.value,
        booking_id=result.booking.id,
        station_id=result.booking.station_id,
        actor_id=actor.user_id,
        slots_requested=result.booking.slots_requested,
        status_from=result.previous_status,
        status_to=result.booking.status,
        capacity_delta=result.delta,
    )
    return StatusChangeRead.from_result(result)


@router.post("/bookings/{booking_id}/cancel", response_model=StatusChangeRead)
async def cancel_booking(
    booking_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_unit_of_work),
    actor: Actor = Depends(get_current_actor),
    policy: TimeWindowPolicy = Depends(get_policy),
    settings: Settings = Depends(get_settings),
) -> StatusChangeRead:
    try:
        result = await reservation_usecase.cancel_reservation(
            uow,
            booking_id=booking_id,
            actor=actor,
            policy=policy,
            max_attempts=settings.conflict_retry_limit,
        )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc

    _audit(
        action="booking.cancelled",
        initiator=actor.role.value,
        booking_id=result.booking.id,
        station_id=result.booking.station_id,
        actor_id=actor.user_id,
        slots_requested=result.booking.slots_requested,
        status_from=result.previous_status,
        status_to=result.booking.status,
        capacity_delta=result.delta,
    )
    return StatusChangeRead.from_result(result)
