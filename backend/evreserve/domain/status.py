"""Booking lifecycle: status classification, legal transitions and capacity deltas.

``capacity_delta`` is the single source of truth for how a status change
moves a station's available-slot counter. Positive values free capacity,
negative values consume it.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Mapping, Optional

from ..models import BookingStatus


class StatusClass(StrEnum):
    NEUTRAL = "neutral"
    RESERVING = "reserving"
    FREEING = "freeing"


STATUS_CLASSES: Mapping[BookingStatus, StatusClass] = {
    BookingStatus.PENDING: StatusClass.NEUTRAL,
    BookingStatus.CONFIRMED: StatusClass.RESERVING,
    BookingStatus.IN_PROGRESS: StatusClass.RESERVING,
    BookingStatus.COMPLETED: StatusClass.FREEING,
    BookingStatus.CANCELLED: StatusClass.FREEING,
    BookingStatus.NO_SHOW: StatusClass.FREEING,
}

RESERVING_STATUSES = frozenset(s for s, c in STATUS_CLASSES.items() if c is StatusClass.RESERVING)
FREEING_STATUSES = frozenset(s for s, c in STATUS_CLASSES.items() if c is StatusClass.FREEING)
OUTSTANDING_STATUSES = frozenset(BookingStatus) - FREEING_STATUSES

ALLOWED_TRANSITIONS: Mapping[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED}
    ),
    BookingStatus.CONFIRMED: frozenset(
        {
            BookingStatus.IN_PROGRESS,
            BookingStatus.COMPLETED,
            BookingStatus.CANCELLED,
            BookingStatus.NO_SHOW,
        }
    ),
    BookingStatus.IN_PROGRESS: frozenset(
        {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
    ),
    # reopening a no-show is legal but unusual; it re-consumes capacity
    BookingStatus.NO_SHOW: frozenset({BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


def classify(status: BookingStatus) -> StatusClass:
    return STATUS_CLASSES[status]


def is_reserving(status: BookingStatus) -> bool:
    return classify(status) is StatusClass.RESERVING


def is_freeing(status: BookingStatus) -> bool:
    return classify(status) is StatusClass.FREEING


def is_terminal(status: BookingStatus) -> bool:
    return not ALLOWED_TRANSITIONS[status]


def can_transition(old: BookingStatus, new: BookingStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[old]


def is_reopen(old: BookingStatus, new: BookingStatus) -> bool:
    return is_freeing(old) and is_reserving(new)


def capacity_delta(old: Optional[BookingStatus], new: BookingStatus, slots_requested: int) -> int:
    """
    Signed change to a station's available slots for ``old -> new``.

    ``old=None`` is booking creation, which never touches capacity.
    Defined for every pair, legal or not.
    """
    if old is None:
        return 0
    old_class = classify(old)
    new_class = classify(new)
    if old_class is StatusClass.RESERVING and new_class is StatusClass.FREEING:
        return slots_requested
    if new_class is StatusClass.RESERVING and old_class in (StatusClass.NEUTRAL, StatusClass.FREEING):
        return -slots_requested
    return 0


def describe_delta(delta: int) -> str:
    if delta > 0:
        return f"Freed {delta} slot(s)."
    if delta < 0:
        return f"Reserved {-delta} slot(s)."
    return "No slot change required."
