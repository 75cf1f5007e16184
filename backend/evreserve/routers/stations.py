from datetime import date, datetime
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..config import Settings, get_settings
from ..deps import get_current_actor, get_unit_of_work, require_admin
from ..domain.calendar import DEFAULT_CALENDAR
from ..domain.errors import ReservationError
from ..domain.policy import Actor
from ..domain.repositories import UnitOfWork
from ..schemas import AvailabilityRead, CapacityRead, DriftRead, TimeSlotRead
from ..usecases import availability as availability_usecase
from ..usecases import consistency as consistency_usecase
from ..utils.audit_log import emit_audit_log
from .errors import to_http_exception

router = APIRouter(prefix="", tags=["stations"], dependencies=[Depends(get_current_actor)])


@router.get("/time-slots", response_model=List[TimeSlotRead])
async def list_time_slots(day: date = Query(..., alias="date")) -> list[TimeSlotRead]:
    return [TimeSlotRead.from_slot(slot) for slot in DEFAULT_CALENDAR.slots_for_date(day)]


@router.get("/stations/{station_id}/availability", response_model=AvailabilityRead)
async def get_availability(
    station_id: int,
    reservation_time: datetime = Query(..., description="Slot start (ISO 8601, UTC when naive)"),
    uow: UnitOfWork = Depends(get_unit_of_work),
) -> AvailabilityRead:
    try:
        result = await availability_usecase.get_availability(
            uow,
            station_id=station_id,
            reservation_time=reservation_time,
        )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    return AvailabilityRead.from_result(result)


@router.get("/stations/{station_id}/slots", response_model=List[AvailabilityRead])
async def get_availability_for_date(
    station_id: int,
    day: date = Query(..., alias="date"),
    uow: UnitOfWork = Depends(get_unit_of_work),
) -> list[AvailabilityRead]:
    try:
        rows = await availability_usecase.get_availability_for_date(uow, station_id=station_id, day=day)
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    return [AvailabilityRead.from_result(row) for row in rows]


@router.post("/stations/{station_id}/capacity/recompute", response_model=CapacityRead)
async def recompute_capacity(
    station_id: int,
    uow: UnitOfWork = Depends(get_unit_of_work),
    actor: Actor = Depends(require_admin),
    settings: Settings = Depends(get_settings),
) -> CapacityRead:
    try:
        snapshot = await consistency_usecase.recompute_station_capacity(
            uow,
            station_id=station_id,
            max_attempts=settings.conflict_retry_limit,
        )
    except ReservationError as exc:
        raise to_http_exception(exc) from exc

    try:
        emit_audit_log(
            action="station.capacity_recomputed",
            initiator="admin",
            station_id=snapshot.station_id,
            actor_id=actor.user_id,
            capacity_delta=snapshot.available - snapshot.previous_available,
            extra={"available": snapshot.available, "total": snapshot.total},
        )
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc
    return CapacityRead.from_snapshot(snapshot)


@router.get(
    "/stations/{station_id}/capacity/drift",
    response_model=DriftRead,
    dependencies=[Depends(require_admin)],
)
async def get_capacity_drift(
    station_id: int,
    uow: UnitOfWork = Depends(get_unit_of_work),
) -> DriftRead:
    try:
        report = await consistency_usecase.detect_drift(uow, station_id=station_id)
    except ReservationError as exc:
        raise to_http_exception(exc) from exc
    return DriftRead.from_report(report)
