"""
Core business logic for calculating bookable appointment slots.

Pure domain logic without any external dependencies (no database, no I/O).
"""

from datetime import date as Date
from typing import List, Optional, Sequence

from pendulum import DateTime

from .models import BookableSlot, TimeRange, WorkingHours


class SlotCalculator:
    """
    Calculates bookable start times for one professional on one day.

    Algorithm:
    1. Get the working hour blocks for the day
    2. Subtract the union of busy times to get free ranges
    3. Walk each free range from its start in steps of the interval
    4. Keep every start whose appointment still ends inside the free range
    """

    def __init__(self, timezone: str):
        self.timezone = timezone

    def find_bookable_slots(
        self,
        *,
        professional_id: str,
        day: Date,
        working_hours: WorkingHours,
        busy_ranges: Sequence[TimeRange],
        duration_minutes: int,
        interval_minutes: int,
        not_before: Optional[DateTime] = None,
    ) -> List[BookableSlot]:
        """
        Find all bookable slots for a professional on ``day``.

        Args:
            professional_id: Professional the slots belong to
            day: Calendar day in the salon timezone
            working_hours: Weekly hours that apply to the professional
            busy_ranges: Intervals already taken by active appointments
            duration_minutes: Length of the appointment to fit
            interval_minutes: Step between consecutive candidate start times
            not_before: Optional earliest allowed start time

        Returns:
            List of BookableSlot objects ordered by start time
        """
        if duration_minutes <= 0:
            raise ValueError(f"duration_minutes must be positive, got {duration_minutes}")
        if interval_minutes <= 0:
            raise ValueError(f"interval_minutes must be positive, got {interval_minutes}")

        working_blocks = working_hours.get_working_blocks(day, self.timezone)

        if not working_blocks:
            return []

        free_ranges = self.find_free_ranges(working_blocks, busy_ranges)

        slots: List[BookableSlot] = []
        for free in free_ranges:
            for time_range in self._generate_slots(free, duration_minutes, interval_minutes):
                if not_before is not None and time_range.start < not_before:
                    continue
                slots.append(BookableSlot(professional_id=professional_id, time_range=time_range))

        return slots

    def find_free_ranges(
        self,
        working_blocks: Sequence[TimeRange],
        busy_ranges: Sequence[TimeRange],
    ) -> List[TimeRange]:
        """
        Convert busy times to free times within working hours.

        - Start with working hour blocks (the "universe" of possible time)
        - Subtract the union of all busy times
        - What remains is free time
        """
        free_times: List[TimeRange] = []
        merged_busy = self._merge_adjacent_ranges(list(busy_ranges))

        for working_block in working_blocks:
            overlapping_busy = [
                busy for busy in merged_busy
                if working_block.overlaps(busy)
            ]

            if not overlapping_busy:
                free_times.append(working_block)
                continue

            free_times.extend(
                self._subtract_busy_from_block(working_block, overlapping_busy)
            )

        return free_times

    def _generate_slots(
        self,
        free_range: TimeRange,
        duration_minutes: int,
        interval_minutes: int,
    ) -> List[TimeRange]:
        """
        Step through a free range and yield every appointment that fits.

        Example (60 min duration, 30 min interval):
        Free: 09:00 - 11:00
        Result: [09:00-10:00, 09:30-10:30, 10:00-11:00]
        """
        slots: List[TimeRange] = []
        start = free_range.start

        while True:
            end = start.add(minutes=duration_minutes)
            if end > free_range.end:
                break
            slots.append(TimeRange(start=start, end=end))
            start = start.add(minutes=interval_minutes)

        return slots

    def _subtract_busy_from_block(
        self,
        working_block: TimeRange,
        busy_ranges: List[TimeRange]
    ) -> List[TimeRange]:
        """
        Subtract busy times from a working block, yielding free time ranges.

        Example:
        Working: 09:00 - 18:00
        Busy: [10:00-11:00, 14:00-15:00]
        Result: [09:00-10:00, 11:00-14:00, 15:00-18:00]
        """
        free_ranges: List[TimeRange] = []
        current_start = working_block.start

        sorted_busy = sorted(busy_ranges, key=lambda r: r.start)

        for busy in sorted_busy:
            # Clip busy range to working block
            clipped_busy_start = max(busy.start, working_block.start)
            clipped_busy_end = min(busy.end, working_block.end)

            if current_start < clipped_busy_start:
                free_ranges.append(
                    TimeRange(start=current_start, end=clipped_busy_start)
                )

            current_start = max(current_start, clipped_busy_end)

        if current_start < working_block.end:
            free_ranges.append(
                TimeRange(start=current_start, end=working_block.end)
            )

        return free_ranges

    def _merge_adjacent_ranges(
        self,
        ranges: List[TimeRange]
    ) -> List[TimeRange]:
        """
        Merge overlapping or adjacent time ranges.

        Example: [09:00-10:00, 10:00-11:00] -> [09:00-11:00]
        """
        if not ranges:
            return []

        sorted_ranges = sorted(ranges, key=lambda r: r.start)
        merged: List[TimeRange] = [sorted_ranges[0]]

        for current in sorted_ranges[1:]:
            last = merged[-1]

            if current.start <= last.end:
                merged[-1] = TimeRange(
                    start=last.start,
                    end=max(last.end, current.end)
                )
            else:
                merged.append(current)

        return merged
