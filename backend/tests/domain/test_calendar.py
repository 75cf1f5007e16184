from datetime import date, datetime, timedelta

from evreserve.domain.calendar import DEFAULT_CALENDAR, OperatingHours, TimeSlotCalendar


def test_reference_grid_has_nine_slots_ending_at_midnight() -> None:
    slots = DEFAULT_CALENDAR.slots_for_date(date(2024, 1, 15))
    assert len(slots) == 9
    assert slots[0].start_time == datetime(2024, 1, 15, 6, 0)
    assert slots[-1].start_time == datetime(2024, 1, 15, 22, 0)
    assert slots[-1].end_time == datetime(2024, 1, 16, 0, 0)
    assert DEFAULT_CALENDAR.end_time(slots[-1].start_time) == datetime(2024, 1, 16, 0, 0)


def test_slots_for_date_is_restartable() -> None:
    day = date(2024, 1, 15)
    assert DEFAULT_CALENDAR.slots_for_date(day) == DEFAULT_CALENDAR.slots_for_date(day)


def test_valid_slot_start_requires_exact_match() -> None:
    assert DEFAULT_CALENDAR.is_valid_slot_start(datetime(2024, 1, 15, 10, 0))
    assert not DEFAULT_CALENDAR.is_valid_slot_start(datetime(2024, 1, 15, 11, 0))
    assert not DEFAULT_CALENDAR.is_valid_slot_start(datetime(2024, 1, 15, 10, 0, 1))
    assert not DEFAULT_CALENDAR.is_valid_slot_start(datetime(2024, 1, 15, 4, 0))


def test_operating_hours_bounds() -> None:
    assert DEFAULT_CALENDAR.is_within_operating_hours(datetime(2024, 1, 15, 6, 0))
    assert DEFAULT_CALENDAR.is_within_operating_hours(datetime(2024, 1, 15, 22, 0))
    assert not DEFAULT_CALENDAR.is_within_operating_hours(datetime(2024, 1, 15, 23, 0))
    assert not DEFAULT_CALENDAR.is_within_operating_hours(datetime(2024, 1, 15, 5, 0))
    # midnight start would "end" at 02:00, but it is below opening time
    assert not DEFAULT_CALENDAR.is_within_operating_hours(datetime(2024, 1, 15, 0, 0))


def test_display_names() -> None:
    assert DEFAULT_CALENDAR.display_name(datetime(2024, 1, 15, 6, 0)) == "6:00 AM - 8:00 AM"
    assert DEFAULT_CALENDAR.display_name(datetime(2024, 1, 15, 12, 0)) == "12:00 PM - 2:00 PM"
    assert DEFAULT_CALENDAR.display_name(datetime(2024, 1, 15, 22, 0)) == "10:00 PM - 12:00 AM"
    assert DEFAULT_CALENDAR.display_name(datetime(2024, 1, 15, 9, 30)) == "09:30 - 11:30"


def test_irregular_grid_filters_slots_outside_hours() -> None:
    calendar = TimeSlotCalendar(
        hours=OperatingHours(open=timedelta(hours=8), close=timedelta(hours=20)),
        duration=timedelta(hours=3),
        grid=(timedelta(hours=7), timedelta(hours=8), timedelta(hours=13, minutes=30), timedelta(hours=18)),
    )
    starts = [slot.start_time.time() for slot in calendar.slots_for_date(date(2024, 3, 1))]
    assert [t.strftime("%H:%M") for t in starts] == ["08:00", "13:30"]
    assert calendar.is_valid_slot_start(datetime(2024, 3, 1, 18, 0))
    assert not calendar.is_bookable(datetime(2024, 3, 1, 18, 0))
