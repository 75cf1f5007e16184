from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_serializer, model_validator

from .domain.calendar import DEFAULT_CALENDAR, TimeSlot
from .models import Booking, BookingStatus
from .usecases.availability import Availability
from .usecases.consistency import CapacitySnapshot, DriftReport
from .usecases.reservations import StatusChangeResult
from .utils.time import utc_naive_to_aware


class BookingCreate(BaseModel):
    station_id: int
    reservation_time: datetime
    slots_requested: int = Field(default=1, ge=1)
    owner_identifier: Optional[str] = Field(default=None, min_length=1, max_length=255)


class BookingUpdate(BaseModel):
    station_id: Optional[int] = None
    reservation_time: Optional[datetime] = None

    @model_validator(mode="after")
    def _require_change(self) -> "BookingUpdate":
        if self.station_id is None and self.reservation_time is None:
            raise ValueError("station_id or reservation_time is required")
        return self


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class BookingRead(BaseModel):
    booking_id: int
    owner_identifier: str
    station_id: int
    reservation_time: datetime
    slot_end_time: datetime
    time_slot_display: str
    slots_requested: int
    status: BookingStatus
    created_at: datetime
    updated_at: datetime

    @field_serializer("reservation_time", "slot_end_time", "created_at", "updated_at")
    def _ser_datetime(self, dt: datetime) -> str:
        return utc_naive_to_aware(dt).isoformat()

    @classmethod
    def from_db(cls, *, booking: Booking) -> "BookingRead":
        return cls(
            booking_id=booking.id,
            owner_identifier=booking.owner_identifier,
            station_id=booking.station_id,
            reservation_time=booking.reservation_time,
            slot_end_time=DEFAULT_CALENDAR.end_time(booking.reservation_time),
            time_slot_display=DEFAULT_CALENDAR.display_name(booking.reservation_time),
            slots_requested=booking.slots_requested,
            status=booking.status,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )


class BookingCreated(BaseModel):
    message: str = "Booking created successfully."
    booking: BookingRead
    available_slots_at_time: int


class BookingRescheduled(BaseModel):
    message: str = "Booking updated successfully."
    booking: BookingRead
    available_slots_at_time: int


class StatusChangeRead(BaseModel):
    booking_id: int
    status: BookingStatus
    previous_status: BookingStatus
    slots_freed: int
    slots_reserved: int
    station_available_slots: int
    message: str

    @classmethod
    def from_result(cls, result: StatusChangeResult) -> "StatusChangeRead":
        return cls(
            booking_id=result.booking.id,
            status=result.booking.status,
            previous_status=result.previous_status,
            slots_freed=result.slots_freed,
            slots_reserved=result.slots_reserved,
            station_available_slots=result.station_available_slots,
            message=result.message,
        )


class TimeSlotRead(BaseModel):
    start_time: datetime
    end_time: datetime
    display_name: str

    @field_serializer("start_time", "end_time")
    def _ser_datetime(self, dt: datetime) -> str:
        return utc_naive_to_aware(dt).isoformat()

    @classmethod
    def from_slot(cls, slot: TimeSlot) -> "TimeSlotRead":
        return cls(start_time=slot.start_time, end_time=slot.end_time, display_name=slot.display_name)


class AvailabilityRead(BaseModel):
    station_id: int
    slot: TimeSlotRead
    total: int
    available: int
    is_available: bool

    @classmethod
    def from_result(cls, result: Availability) -> "AvailabilityRead":
        return cls(
            station_id=result.station_id,
            slot=TimeSlotRead.from_slot(result.slot),
            total=result.total,
            available=result.available,
            is_available=result.is_available,
        )


class CapacityRead(BaseModel):
    station_id: int
    available: int
    total: int
    previous_available: int

    @classmethod
    def from_snapshot(cls, snapshot: CapacitySnapshot) -> "CapacityRead":
        return cls(
            station_id=snapshot.station_id,
            available=snapshot.available,
            total=snapshot.total,
            previous_available=snapshot.previous_available,
        )


class DriftRead(BaseModel):
    station_id: int
    cached_available: int
    expected_available: int
    total: int
    drift: int
    consistent: bool

    @classmethod
    def from_report(cls, report: DriftReport) -> "DriftRead":
        return cls(
            station_id=report.station_id,
            cached_available=report.cached_available,
            expected_available=report.expected_available,
            total=report.total,
            drift=report.drift,
            consistent=report.consistent,
        )
