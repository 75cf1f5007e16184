"""Recompute station capacity from reserving bookings to detect and repair drift."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..domain import ledger
from ..domain.errors import StationNotFoundError
from ..domain.repositories import Transaction, UnitOfWork
from ..models import Station
from .reservations import DEFAULT_MAX_ATTEMPTS, run_with_retries

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapacitySnapshot:
    station_id: int
    available: int
    total: int
    previous_available: int

    @property
    def drift(self) -> int:
        return self.previous_available - self.available


@dataclass(frozen=True)
class DriftReport:
    station_id: int
    cached_available: int
    expected_available: int
    total: int

    @property
    def drift(self) -> int:
        return self.cached_available - self.expected_available

    @property
    def consistent(self) -> bool:
        return self.drift == 0


async def _load(tx: Transaction, station_id: int) -> Station:
    station = await tx.stations.get(station_id)
    if station is None:
        raise StationNotFoundError("station not found")
    return station


async def recompute_station_capacity(
    uow: UnitOfWork,
    *,
    station_id: int,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> CapacitySnapshot:
    async def attempt(tx: Transaction) -> CapacitySnapshot:
        station = await _load(tx, station_id)
        previous = station.available_slots
        reserved = await tx.bookings.sum_reserving(station.id)
        available = await ledger.recompute(tx.stations, station, reserved)
        return CapacitySnapshot(
            station_id=station.id,
            available=available,
            total=station.total_slots,
            previous_available=previous,
        )

    snapshot = await run_with_retries(uow, attempt, max_attempts=max_attempts)
    if snapshot.drift:
        logger.warning(
            "station %s capacity drift repaired: %d -> %d",
            snapshot.station_id,
            snapshot.previous_available,
            snapshot.available,
        )
    return snapshot


async def detect_drift(uow: UnitOfWork, *, station_id: int) -> DriftReport:
    async with uow.transaction() as tx:
        station = await _load(tx, station_id)
        reserved = await tx.bookings.sum_reserving(station.id)
    return DriftReport(
        station_id=station.id,
        cached_available=station.available_slots,
        expected_available=ledger.clamp_available(station.total_slots, station.total_slots, -reserved),
        total=station.total_slots,
    )


async def repair_all_stations(
    uow: UnitOfWork,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> list[CapacitySnapshot]:
    async with uow.transaction() as tx:
        station_ids = await tx.stations.list_ids()
    return [
        await recompute_station_capacity(uow, station_id=station_id, max_attempts=max_attempts)
        for station_id in station_ids
    ]
