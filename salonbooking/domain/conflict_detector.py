"""
Detection of overlapping bookings for a professional.

The overlap rule is half-open: an appointment ending at 11:00 and another
starting at 11:00 do not conflict. Cancelled appointments never conflict.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Protocol, Sequence

from pendulum import DateTime

from .booking import Appointment


class ActiveBookingReader(Protocol):
    """Read access to non-cancelled appointments of one professional."""

    def list_active_for_professional(
        self,
        professional_id: str,
        start: Optional[DateTime] = None,
        end: Optional[DateTime] = None,
    ) -> Sequence[Appointment]:
        """Return non-cancelled appointments, optionally narrowed to a window."""


def find_overlapping(
    start_time: DateTime,
    end_time: DateTime,
    appointments: Iterable[Appointment],
    exclude_appointment_id: Optional[str] = None,
) -> List[Appointment]:
    """Return the active appointments overlapping [start_time, end_time)."""
    if end_time <= start_time:
        return []

    return [
        existing
        for existing in appointments
        if existing.is_active
        and existing.id != exclude_appointment_id
        and existing.start_time < end_time
        and existing.end_time > start_time
    ]


class ConflictDetector:
    """
    Checks a candidate interval against a professional's existing bookings.

    Holds no locks: callers that write after checking must run both steps
    inside one atomic unit.
    """

    def __init__(self, reader: ActiveBookingReader):
        self._reader = reader

    def find_conflicts(
        self,
        professional_id: str,
        start_time: DateTime,
        end_time: DateTime,
        exclude_appointment_id: Optional[str] = None,
    ) -> List[Appointment]:
        if end_time <= start_time:
            return []

        existing = self._reader.list_active_for_professional(
            professional_id, start=start_time, end=end_time
        )
        return find_overlapping(start_time, end_time, existing, exclude_appointment_id)

    def has_conflict(
        self,
        professional_id: str,
        start_time: DateTime,
        end_time: DateTime,
        exclude_appointment_id: Optional[str] = None,
    ) -> bool:
        return bool(
            self.find_conflicts(professional_id, start_time, end_time, exclude_appointment_id)
        )
