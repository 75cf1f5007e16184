"""
Business-time-window and access rules for bookings.

The reservation use cases do not derive these rules themselves; they ask a
``BookingPolicy`` for a verdict and act on it. ``TimeWindowPolicy`` is the
default implementation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Optional, Protocol

from ..models import Booking, BookingStatus
from .errors import AccessDeniedError, InvalidReservationTimeError, InvalidTransitionError
from .status import is_freeing

NEAR_TIME_ALLOWED_STATUSES = frozenset(
    {BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED, BookingStatus.NO_SHOW}
)


class Role(StrEnum):
    ADMIN = "admin"
    OPERATOR = "operator"
    OWNER = "owner"


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: Role
    station_id: Optional[int] = None

    @property
    def identifier(self) -> str:
        return str(self.user_id)


class BookingPolicy(Protocol):
    def check_reservation_time(self, reservation_time: datetime, *, now: datetime) -> None: ...

    def check_modification(self, booking: Booking, *, now: datetime) -> None: ...

    def check_cancellation(self, booking: Booking, *, now: datetime) -> None: ...

    def check_status_change(self, booking: Booking, new_status: BookingStatus, *, now: datetime) -> None: ...

    def authorize(self, actor: Actor, booking: Booking, *, manage: bool = False) -> None: ...


def _hours_until(reservation_time: datetime, now: datetime) -> float:
    return (reservation_time - now) / timedelta(hours=1)


@dataclass(frozen=True)
class TimeWindowPolicy:
    max_advance_days: int = 7
    min_cancellation_hours: int = 12
    min_modification_hours: int = 12

    def check_reservation_time(self, reservation_time: datetime, *, now: datetime) -> None:
        days_ahead = (reservation_time.date() - now.date()).days
        if days_ahead < 0 or reservation_time < now:
            raise InvalidReservationTimeError("cannot make reservations in the past")
        if days_ahead > self.max_advance_days:
            raise InvalidReservationTimeError(
                f"reservations can only be made up to {self.max_advance_days} days in advance"
            )

    def check_modification(self, booking: Booking, *, now: datetime) -> None:
        if is_freeing(booking.status):
            raise InvalidTransitionError(f"cannot modify a {booking.status} booking")
        if _hours_until(booking.reservation_time, now) < self.min_modification_hours:
            raise InvalidTransitionError(
                f"cannot modify booking less than {self.min_modification_hours} hours before reservation time"
            )

    def check_cancellation(self, booking: Booking, *, now: datetime) -> None:
        if booking.status == BookingStatus.CANCELLED:
            raise InvalidTransitionError("booking is already cancelled")
        if booking.status == BookingStatus.COMPLETED:
            raise InvalidTransitionError("cannot cancel a completed booking")
        if _hours_until(booking.reservation_time, now) < self.min_cancellation_hours:
            raise InvalidTransitionError(
                f"cannot cancel booking less than {self.min_cancellation_hours} hours before reservation time"
            )

    def check_status_change(self, booking: Booking, new_status: BookingStatus, *, now: datetime) -> None:
        near_time = _hours_until(booking.reservation_time, now) < self.min_modification_hours
        if near_time and new_status not in NEAR_TIME_ALLOWED_STATUSES:
            raise InvalidTransitionError(
                f"within {self.min_modification_hours} hours of the reservation only "
                "in_progress, completed or no_show may be set"
            )

    def authorize(self, actor: Actor, booking: Booking, *, manage: bool = False) -> None:
        """``manage`` covers operational status changes, which owners may not make."""
        if actor.role == Role.ADMIN:
            return
        if actor.role == Role.OPERATOR:
            if actor.station_id is not None and actor.station_id == booking.station_id:
                return
            raise AccessDeniedError("booking belongs to another station")
        if not manage and booking.owner_identifier == actor.identifier:
            return
        raise AccessDeniedError("access denied")
