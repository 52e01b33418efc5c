"""
Tests for slot calculator.
"""

import pendulum
import pytest
from datetime import date

from salonbooking.domain.models import TimeRange, WorkingHours
from salonbooking.domain.slot_calculator import SlotCalculator

TZ = "America/Sao_Paulo"
MONDAY = date(2024, 1, 1)


def _at(text):
    return pendulum.parse(text, tz=TZ)


def _hours(*slots, day="monday"):
    return WorkingHours.from_dict(
        {day: {"isOpen": True, "slots": [{"start": s, "end": e} for s, e in slots]}}
    )


class TestSlotCalculator:
    """Tests for SlotCalculator."""

    def test_full_day_without_bookings(self):
        """Test that an open day yields every start whose appointment still fits."""
        calculator = SlotCalculator(timezone=TZ)

        slots = calculator.find_bookable_slots(
            professional_id="pro-1",
            day=MONDAY,
            working_hours=_hours(("09:00", "18:00")),
            busy_ranges=[],
            duration_minutes=60,
            interval_minutes=30,
        )

        starts = [slot.start.format("HH:mm") for slot in slots]
        assert starts[0] == "09:00"
        assert starts[-1] == "17:00"
        assert len(starts) == 17
        assert all(slot.time_range.duration_minutes() == 60 for slot in slots)
        assert all(slot.professional_id == "pro-1" for slot in slots)

    def test_busy_time_is_subtracted(self):
        """Test that no slot overlaps an existing appointment."""
        calculator = SlotCalculator(timezone=TZ)
        busy = TimeRange(start=_at("2024-01-01 10:00"), end=_at("2024-01-01 11:00"))

        slots = calculator.find_bookable_slots(
            professional_id="pro-1",
            day=MONDAY,
            working_hours=_hours(("09:00", "18:00")),
            busy_ranges=[busy],
            duration_minutes=60,
            interval_minutes=30,
        )

        starts = [slot.start.format("HH:mm") for slot in slots]
        assert "09:00" in starts
        assert "09:30" not in starts
        assert "10:00" not in starts
        assert "10:30" not in starts
        # Back-to-back with the existing booking is fine
        assert "11:00" in starts
        assert not any(slot.time_range.overlaps(busy) for slot in slots)

    def test_free_range_shorter_than_duration_yields_nothing(self):
        """Test that a gap smaller than the service duration is skipped."""
        calculator = SlotCalculator(timezone=TZ)
        busy = [
            TimeRange(start=_at("2024-01-01 09:00"), end=_at("2024-01-01 10:00")),
            TimeRange(start=_at("2024-01-01 10:45"), end=_at("2024-01-01 12:00")),
        ]

        slots = calculator.find_bookable_slots(
            professional_id="pro-1",
            day=MONDAY,
            working_hours=_hours(("09:00", "12:00")),
            busy_ranges=busy,
            duration_minutes=60,
            interval_minutes=15,
        )

        assert slots == []

    def test_slots_step_from_start_of_free_range(self):
        """Test that stepping restarts at the end of a booking, not on a fixed grid."""
        calculator = SlotCalculator(timezone=TZ)
        busy = [TimeRange(start=_at("2024-01-01 09:00"), end=_at("2024-01-01 09:45"))]

        slots = calculator.find_bookable_slots(
            professional_id="pro-1",
            day=MONDAY,
            working_hours=_hours(("09:00", "12:00")),
            busy_ranges=busy,
            duration_minutes=60,
            interval_minutes=30,
        )

        assert [slot.start.format("HH:mm") for slot in slots] == ["09:45", "10:15", "10:45"]

    def test_split_working_slots(self):
        """Test that a lunch break between working slots never yields a slot."""
        calculator = SlotCalculator(timezone=TZ)

        slots = calculator.find_bookable_slots(
            professional_id="pro-1",
            day=MONDAY,
            working_hours=_hours(("09:00", "12:00"), ("13:00", "15:00")),
            busy_ranges=[],
            duration_minutes=60,
            interval_minutes=60,
        )

        assert [slot.start.format("HH:mm") for slot in slots] == ["09:00", "10:00", "11:00", "13:00", "14:00"]

    def test_closed_day_yields_nothing(self):
        """Test that a weekday without hours is closed."""
        calculator = SlotCalculator(timezone=TZ)

        slots = calculator.find_bookable_slots(
            professional_id="pro-1",
            day=date(2024, 1, 2),  # Tuesday, only Monday configured
            working_hours=_hours(("09:00", "18:00")),
            busy_ranges=[],
            duration_minutes=30,
            interval_minutes=30,
        )

        assert slots == []

    def test_not_before_drops_early_slots(self):
        """Test that slots before the earliest allowed start are dropped."""
        calculator = SlotCalculator(timezone=TZ)

        slots = calculator.find_bookable_slots(
            professional_id="pro-1",
            day=MONDAY,
            working_hours=_hours(("09:00", "12:00")),
            busy_ranges=[],
            duration_minutes=60,
            interval_minutes=60,
            not_before=_at("2024-01-01 09:30"),
        )

        assert [slot.start.format("HH:mm") for slot in slots] == ["10:00", "11:00"]

    @pytest.mark.parametrize("duration, interval", [(0, 30), (60, 0), (-15, 30)])
    def test_non_positive_values_rejected(self, duration, interval):
        """Test that duration and interval must be positive."""
        calculator = SlotCalculator(timezone=TZ)

        with pytest.raises(ValueError):
            calculator.find_bookable_slots(
                professional_id="pro-1",
                day=MONDAY,
                working_hours=_hours(("09:00", "18:00")),
                busy_ranges=[],
                duration_minutes=duration,
                interval_minutes=interval,
            )


class TestFreeRanges:
    """Tests for busy time subtraction."""

    def test_overlapping_busy_ranges_are_merged(self):
        """Test that overlapping and adjacent busy times act as one block."""
        calculator = SlotCalculator(timezone=TZ)
        block = TimeRange(start=_at("2024-01-01 09:00"), end=_at("2024-01-01 18:00"))
        busy = [
            TimeRange(start=_at("2024-01-01 10:00"), end=_at("2024-01-01 11:00")),
            TimeRange(start=_at("2024-01-01 10:30"), end=_at("2024-01-01 12:00")),
            TimeRange(start=_at("2024-01-01 12:00"), end=_at("2024-01-01 13:00")),
        ]

        free = calculator.find_free_ranges([block], busy)

        assert free == [
            TimeRange(start=_at("2024-01-01 09:00"), end=_at("2024-01-01 10:00")),
            TimeRange(start=_at("2024-01-01 13:00"), end=_at("2024-01-01 18:00")),
        ]

    def test_busy_range_outside_working_hours_is_clipped(self):
        """Test that bookings spilling past working hours only remove the covered part."""
        calculator = SlotCalculator(timezone=TZ)
        block = TimeRange(start=_at("2024-01-01 09:00"), end=_at("2024-01-01 12:00"))
        busy = [TimeRange(start=_at("2024-01-01 08:00"), end=_at("2024-01-01 09:30"))]

        free = calculator.find_free_ranges([block], busy)

        assert free == [TimeRange(start=_at("2024-01-01 09:30"), end=_at("2024-01-01 12:00"))]
