from dataclasses import dataclass
from datetime import datetime

from ..models import Station
from .repositories import BookingRepository


@dataclass(frozen=True)
class SlotSnapshot:
    total: int
    outstanding: int

    @property
    def available(self) -> int:
        return max(self.total - self.outstanding, 0)

    def has_capacity(self, slots_requested: int) -> bool:
        return self.total - self.outstanding >= slots_requested


async def snapshot_at(
    bookings: BookingRepository,
    station: Station,
    reservation_time: datetime,
    *,
    exclude_booking_id: int | None = None,
) -> SlotSnapshot:
    outstanding = await bookings.sum_outstanding_at(station.id, reservation_time, exclude_booking_id)
    return SlotSnapshot(total=station.total_slots, outstanding=outstanding)


async def available_at(
    bookings: BookingRepository,
    station: Station,
    reservation_time: datetime,
    *,
    exclude_booking_id: int | None = None,
) -> int:
    """Slots left at an exact slot start, counting every booking not in a freeing status."""
    snap = await snapshot_at(bookings, station, reservation_time, exclude_booking_id=exclude_booking_id)
    return snap.available


async def has_capacity(
    bookings: BookingRepository,
    station: Station,
    reservation_time: datetime,
    slots_requested: int,
    *,
    exclude_booking_id: int | None = None,
) -> bool:
    snap = await snapshot_at(bookings, station, reservation_time, exclude_booking_id=exclude_booking_id)
    return snap.has_capacity(slots_requested)
