"""
Domain models for time ranges, weekly working hours and bookable slots.
"""

from dataclasses import dataclass, field
from datetime import date as Date, datetime, time
from typing import Any, Dict, List, Mapping, Tuple

import pendulum
from pendulum import DateTime


WEEKDAY_NAMES = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def localize(value: datetime, timezone: str) -> DateTime:
    """
    Bring a datetime into the salon timezone.

    Naive values are read as wall-clock time in ``timezone``; aware values
    are converted.
    """
    if value.tzinfo is None:
        return pendulum.instance(value, tz=timezone)
    return pendulum.instance(value).in_timezone(timezone)


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open time range [start, end).

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another. Touching endpoints do not overlap."""
        return self.start < other.end and self.end > other.start

    def contains(self, other: "TimeRange") -> bool:
        return self.start <= other.start and other.end <= self.end

    def intersect(self, other: "TimeRange") -> "TimeRange | None":
        """
        Calculate the intersection of two time ranges.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None

        start = max(self.start, other.start)
        end = min(self.end, other.end)

        return TimeRange(start=start, end=end)

    def __str__(self) -> str:
        return f"{self.start.format('DD.MM.YYYY HH:mm')} - {self.end.format('HH:mm')}"


def _parse_clock(value: Any) -> time:
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(str(value))
    except ValueError as exc:
        raise ValueError(f"Invalid wall-clock time: {value!r}") from exc


@dataclass(frozen=True)
class DaySchedule:
    """
    Open/closed flag and ordered working slots for one weekday.

    Invariants: slots are ordered and non-overlapping, every slot opens
    before it closes, and a closed day has no slots.
    """
    is_open: bool
    slots: Tuple[Tuple[time, time], ...] = ()

    def __post_init__(self):
        if not self.is_open and self.slots:
            raise ValueError("A closed day cannot have working slots")

        previous_end = None
        for start, end in self.slots:
            if start >= end:
                raise ValueError(f"Slot start {start} must be before slot end {end}")
            if previous_end is not None and start < previous_end:
                raise ValueError("Working slots must be ordered and must not overlap")
            previous_end = end

    @classmethod
    def closed(cls) -> "DaySchedule":
        return cls(is_open=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DaySchedule":
        """
        Build a day from its stored JSON shape.

        Salons store ``isOpen`` while professionals store ``isWorking``;
        both are accepted.
        """
        if "isOpen" in data:
            is_open = bool(data["isOpen"])
        else:
            is_open = bool(data.get("isWorking", False))

        if not is_open:
            return cls.closed()

        slots = tuple(
            (_parse_clock(slot["start"]), _parse_clock(slot["end"]))
            for slot in data.get("slots") or []
        )
        return cls(is_open=bool(slots), slots=slots)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isOpen": self.is_open,
            "slots": [
                {"start": start.strftime("%H:%M"), "end": end.strftime("%H:%M")}
                for start, end in self.slots
            ],
        }

    def ranges_on(self, day: Date, timezone: str) -> List[TimeRange]:
        """Materialize the slots as concrete time ranges on ``day``."""
        if not self.is_open:
            return []

        ranges: List[TimeRange] = []
        for start, end in self.slots:
            ranges.append(
                TimeRange(
                    start=pendulum.datetime(
                        day.year, day.month, day.day, start.hour, start.minute, tz=timezone
                    ),
                    end=pendulum.datetime(
                        day.year, day.month, day.day, end.hour, end.minute, tz=timezone
                    ),
                )
            )
        return ranges


@dataclass
class WorkingHours:
    """
    Weekly working hours of a salon or a professional.

    Keys are weekdays (0=Monday, 6=Sunday). A weekday without an entry is
    treated as closed.
    """
    days: Dict[int, DaySchedule] = field(default_factory=dict)

    def for_weekday(self, weekday: int) -> DaySchedule:
        return self.days.get(weekday, DaySchedule.closed())

    def is_working_day(self, day: Date) -> bool:
        """Check if a given date falls on an open day."""
        return self.for_weekday(day.weekday()).is_open

    def get_working_blocks(self, day: Date, timezone: str) -> List[TimeRange]:
        """
        Get the working hour ranges for a specific day.
        Returns an empty list if it's not a working day.
        """
        return self.for_weekday(day.weekday()).ranges_on(day, timezone)

    def is_empty(self) -> bool:
        return not self.days

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "WorkingHours":
        """Parse the stored ``{"monday": {...}, ...}`` mapping."""
        if not data:
            return cls()

        days: Dict[int, DaySchedule] = {}
        for name, value in data.items():
            key = str(name).lower()
            if key not in WEEKDAY_NAMES:
                raise ValueError(f"Unknown weekday in working hours: {name!r}")
            days[WEEKDAY_NAMES.index(key)] = DaySchedule.from_dict(value or {})
        return cls(days=days)

    def to_dict(self) -> Dict[str, Any]:
        return {
            WEEKDAY_NAMES[weekday]: schedule.to_dict()
            for weekday, schedule in sorted(self.days.items())
        }


@dataclass
class BookableSlot:
    """
    A discrete start time a professional can be booked at.
    """
    professional_id: str
    time_range: TimeRange

    @property
    def start(self) -> DateTime:
        return self.time_range.start

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: Weekday, DD.MM.YYYY | HH:MM – HH:MM
        """
        start = self.time_range.start
        end = self.time_range.end
        weekday = WEEKDAY_NAMES[start.weekday()].capitalize()
        date_str = start.format("DD.MM.YYYY")
        time_str = f"{start.format('HH:mm')} – {end.format('HH:mm')}"
        return f"{weekday}, {date_str} | {time_str}"
