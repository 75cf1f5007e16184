from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

DAY = timedelta(hours=24)


def time_of_day(dt: datetime) -> timedelta:
    return timedelta(
        hours=dt.hour,
        minutes=dt.minute,
        seconds=dt.second,
        microseconds=dt.microsecond,
    )


def _clock_label(offset: timedelta) -> str:
    minutes = int(offset.total_seconds() // 60) % (24 * 60)
    hour, minute = divmod(minutes, 60)
    suffix = "AM" if hour < 12 else "PM"
    return f"{hour % 12 or 12}:{minute:02d} {suffix}"


@dataclass(frozen=True)
class OperatingHours:
    """Daily window as offsets from midnight; ``close`` may be 24:00."""

    open: timedelta = timedelta(hours=6)
    close: timedelta = DAY


@dataclass(frozen=True)
class TimeSlot:
    start_time: datetime
    duration: timedelta
    display_name: str

    @property
    def end_time(self) -> datetime:
        return self.start_time + self.duration


@dataclass(frozen=True)
class TimeSlotCalendar:
    hours: OperatingHours = field(default_factory=OperatingHours)
    duration: timedelta = timedelta(hours=2)
    # static configuration so irregular grids stay expressible
    grid: tuple[timedelta, ...] = tuple(timedelta(hours=h) for h in range(6, 24, 2))

    def is_valid_slot_start(self, dt: datetime) -> bool:
        return time_of_day(dt) in self.grid

    def is_within_operating_hours(self, slot_start: datetime) -> bool:
        start = time_of_day(slot_start)
        end = start + self.duration
        if end > DAY:
            return False
        # an end exactly on midnight reads as 24:00, never as 00:00
        return start >= self.hours.open and end <= self.hours.close

    def is_bookable(self, dt: datetime) -> bool:
        return self.is_valid_slot_start(dt) and self.is_within_operating_hours(dt)

    def end_time(self, slot_start: datetime) -> datetime:
        return slot_start + self.duration

    def display_name(self, slot_start: datetime) -> str:
        start = time_of_day(slot_start)
        if start in self.grid:
            return f"{_clock_label(start)} - {_clock_label(start + self.duration)}"
        return f"{slot_start:%H:%M} - {self.end_time(slot_start):%H:%M}"

    def slots_for_date(self, day: date) -> tuple[TimeSlot, ...]:
        midnight = datetime.combine(day, time())
        starts = (midnight + offset for offset in self.grid)
        return tuple(
            TimeSlot(start_time=start, duration=self.duration, display_name=self.display_name(start))
            for start in starts
            if self.is_within_operating_hours(start)
        )


DEFAULT_CALENDAR = TimeSlotCalendar()
