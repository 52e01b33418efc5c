"""
Availability queries: free bookable slots per professional for one day.

The service gathers working hours and existing bookings from the store and
delegates the interval arithmetic to the domain-level ``SlotCalculator``.
Reads only, so a slightly stale view is acceptable; a slot taken in the
meantime is caught by the conflict check at booking time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date as Date
from typing import Dict, List, Optional, Protocol, Union

import pendulum
from pendulum import DateTime

from ..adapters.database import Database
from ..adapters.repositories import AppointmentRepository, SqlCatalog
from ..config import SchedulingConfig
from ..domain.booking import Professional, Salon, Service
from ..domain.exceptions import ValidationError
from ..domain.models import BookableSlot, DaySchedule, TimeRange, WorkingHours
from ..domain.slot_calculator import SlotCalculator

logger = logging.getLogger(__name__)


class CatalogProtocol(Protocol):
    """Protocol describing the catalog lookups availability depends on."""

    def get_salon(self, salon_id: str) -> Salon:
        """Return the salon or raise NotFoundError."""

    def get_service(self, service_id: str) -> Service:
        """Return the service or raise NotFoundError."""

    def get_professional(self, professional_id: str) -> Professional:
        """Return the professional or raise NotFoundError."""

    def list_professionals(
        self,
        salon_id: str,
        service_id: Optional[str] = None,
        active_only: bool = True,
    ) -> List[Professional]:
        """Professionals of a salon, optionally only those qualified for a service."""

    def working_hours_for(self, professional: Professional) -> WorkingHours:
        """Weekly hours that apply to the professional."""

    def get_working_hours(self, owner_id: str, weekday: int) -> DaySchedule:
        """One weekday of a professional's or a salon's hours."""


@dataclass
class Availability:
    """Bookable slots grouped by professional."""
    salon_id: str
    day: Date
    duration_minutes: int
    interval_minutes: int
    by_professional: Dict[str, List[BookableSlot]] = field(default_factory=dict)

    def slots_for(self, professional_id: str) -> List[BookableSlot]:
        return self.by_professional.get(professional_id, [])

    def flatten(self) -> List[DateTime]:
        """Distinct start times across all professionals, in order."""
        starts = {
            slot.start
            for slots in self.by_professional.values()
            for slot in slots
        }
        return sorted(starts)

    def is_empty(self) -> bool:
        return not any(self.by_professional.values())


class AvailabilityService:
    """
    Computes availability by intersecting working hours, service duration and bookings.
    """

    def __init__(self, database: Database, scheduling: SchedulingConfig, timezone: str) -> None:
        self._database = database
        self._scheduling = scheduling
        self.timezone = timezone
        self._calculator = SlotCalculator(timezone=timezone)

    def get_availability(
        self,
        salon_id: str,
        day: Union[Date, str],
        professional_id: Optional[str] = None,
        service_id: Optional[str] = None,
        *,
        scheduling: Optional[SchedulingConfig] = None,
        now: Optional[DateTime] = None,
    ) -> Availability:
        """
        Find bookable slots for a salon on one day.

        Args:
            salon_id: Salon to search in
            day: Calendar day (date or YYYY-MM-DD)
            professional_id: Restrict to one professional
            service_id: Service to fit; without it the step interval is used as duration
            scheduling: Rules to apply instead of the service defaults
            now: When given, slots earlier than now plus the booking lead time are dropped

        Returns:
            Availability grouped by professional

        Raises:
            NotFoundError: If the salon, professional or service does not exist
            ValidationError: If the day or the stored salon settings are malformed
        """
        rules = scheduling or self._scheduling
        day = self._parse_day(day)

        with self._database.session_scope() as session:
            catalog: CatalogProtocol = SqlCatalog(session, self.timezone)
            appointments = AppointmentRepository(session, self.timezone)

            salon = catalog.get_salon(salon_id)
            interval = rules.interval_for(salon.appointment_interval)

            if service_id is not None:
                duration = catalog.get_service(service_id).duration_minutes
            else:
                duration = interval

            if professional_id is not None:
                professional = catalog.get_professional(professional_id)
                if professional.salon_id != salon.id:
                    raise ValidationError(
                        f"Professional {professional_id} does not belong to salon {salon_id}"
                    )
                candidates = [professional]
            else:
                candidates = catalog.list_professionals(salon.id, service_id=service_id)

            not_before = None
            if now is not None:
                not_before = now.add(hours=rules.booking_lead_time_hours)

            day_start = pendulum.datetime(day.year, day.month, day.day, tz=self.timezone)
            day_end = day_start.add(days=1)

            result = Availability(
                salon_id=salon.id,
                day=day,
                duration_minutes=duration,
                interval_minutes=interval,
            )
            for professional in candidates:
                busy: List[TimeRange] = [
                    appointment.time_range
                    for appointment in appointments.list_active_for_professional(
                        professional.id, start=day_start, end=day_end
                    )
                ]
                try:
                    slots = self._calculator.find_bookable_slots(
                        professional_id=professional.id,
                        day=day,
                        working_hours=catalog.working_hours_for(professional),
                        busy_ranges=busy,
                        duration_minutes=duration,
                        interval_minutes=interval,
                        not_before=not_before,
                    )
                except ValueError as exc:
                    raise ValidationError(
                        f"Cannot compute availability for professional {professional.id}: {exc}"
                    ) from exc
                result.by_professional[professional.id] = slots

        logger.debug(
            "Availability for salon %s on %s: %d professional(s), %d slot(s)",
            salon_id,
            day,
            len(result.by_professional),
            sum(len(slots) for slots in result.by_professional.values()),
        )
        return result

    @staticmethod
    def _parse_day(day: Union[Date, str]) -> Date:
        if isinstance(day, Date):
            return day
        try:
            return pendulum.from_format(day, "YYYY-MM-DD").date()
        except ValueError as exc:
            raise ValidationError(f"Invalid date {day!r}, expected YYYY-MM-DD") from exc
