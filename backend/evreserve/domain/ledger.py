from ..models import Station
from .repositories import StationRepository


def clamp_available(total: int, available: int, delta: int) -> int:
    return max(0, min(total, available + delta))


async def apply_delta(
    stations: StationRepository,
    station: Station,
    delta: int,
    *,
    claim: bool = False,
) -> int:
    """
    Apply a signed capacity delta through a conditional write on the station version.

    A zero delta writes nothing unless ``claim`` is set; claiming still bumps the
    version so that concurrent admissions on the same station cannot both commit.
    """
    if delta == 0 and not claim:
        return station.available_slots
    new_available = clamp_available(station.total_slots, station.available_slots, delta)
    updated = await stations.update_capacity(station, available_slots=new_available)
    return updated.available_slots


async def recompute(stations: StationRepository, station: Station, reserved: int) -> int:
    new_available = clamp_available(station.total_slots, station.total_slots, -reserved)
    updated = await stations.update_capacity(station, available_slots=new_available)
    return updated.available_slots
