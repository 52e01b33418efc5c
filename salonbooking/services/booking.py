"""
Booking lifecycle: create, reschedule, change status, cancel and delete appointments.

Every write that can introduce an overlap runs check-then-write as one
atomic unit per professional: the in-process professional lock, a row lock
on the professional inside the transaction and, on PostgreSQL, the
exclusion constraint behind both.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

import pendulum
from pendulum import DateTime
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..adapters.database import Database
from ..adapters.repositories import AppointmentRepository, SqlCatalog
from ..config import SchedulingConfig
from ..domain.booking import Appointment, AppointmentStatus, NotificationType
from ..domain.conflict_detector import ConflictDetector
from ..domain.exceptions import (
    BookingError,
    ConflictError,
    InvalidTransitionError,
    ValidationError,
)
from ..domain.models import localize
from .notifications import NotificationPlan, NotificationSchedulerProtocol

logger = logging.getLogger(__name__)


@dataclass
class AppointmentInput:
    salon_id: str
    client_id: str
    professional_id: str
    service_id: str
    start_time: datetime
    end_time: Optional[datetime] = None  # defaults to start + service duration
    notes: Optional[str] = None


@dataclass
class AppointmentPatch:
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: Optional[AppointmentStatus] = None
    notes: Optional[str] = None

    def changes_time(self) -> bool:
        return self.start_time is not None or self.end_time is not None


@dataclass
class BookingResult:
    """
    Outcome of a booking operation.

    ``warnings`` lists notification problems; they never undo the booking.
    """
    appointment: Appointment
    notification_ids: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class BookingService:
    """
    Orchestrates the appointment lifecycle.

    Depends on the notification scheduler through a protocol; the scheduler
    never calls back into this service.
    """

    def __init__(
        self,
        database: Database,
        notifications: NotificationSchedulerProtocol,
        scheduling: SchedulingConfig,
        timezone: str,
        clock: Optional[Callable[[], DateTime]] = None,
    ) -> None:
        self._database = database
        self._notifications = notifications
        self._scheduling = scheduling
        self.timezone = timezone
        self._clock = clock or (lambda: pendulum.now(timezone))

    # Queries

    def get_appointment(self, appointment_id: str) -> Appointment:
        with self._database.session_scope() as session:
            return AppointmentRepository(session, self.timezone).get(appointment_id)

    def list_appointments(
        self,
        *,
        salon_id: Optional[str] = None,
        professional_id: Optional[str] = None,
        client_id: Optional[str] = None,
        status: Optional[AppointmentStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Appointment]:
        with self._database.session_scope() as session:
            return AppointmentRepository(session, self.timezone).search(
                salon_id=salon_id,
                professional_id=professional_id,
                client_id=client_id,
                status=status,
                start=localize(start, self.timezone) if start else None,
                end=localize(end, self.timezone) if end else None,
            )

    # Commands

    def create_appointment(self, data: AppointmentInput) -> BookingResult:
        """
        Book a new appointment in status PENDING.

        Raises:
            NotFoundError: If the salon, client, professional or service is missing
            ValidationError: If the interval or the referenced entities are invalid
            ConflictError: If the professional is already booked in the interval
        """
        with self._database.locks.hold(data.professional_id):
            with self._database.session_scope() as session:
                catalog = SqlCatalog(session, self.timezone)
                salon = catalog.get_salon(data.salon_id)
                client = catalog.get_client(data.client_id)
                professional = catalog.get_professional(data.professional_id)
                service = catalog.get_service(data.service_id)

                for entity, label in ((client, "Client"), (professional, "Professional"), (service, "Service")):
                    if entity.salon_id != salon.id:
                        raise ValidationError(f"{label} {entity.id} does not belong to salon {salon.id}")
                if not professional.active:
                    raise ValidationError(f"Professional {professional.id} is not active")
                if not service.active:
                    raise ValidationError(f"Service {service.id} is not active")

                start_time = localize(data.start_time, self.timezone)
                if data.end_time is not None:
                    end_time = localize(data.end_time, self.timezone)
                else:
                    end_time = start_time.add(minutes=service.duration_minutes)
                self._validate_interval(start_time, end_time)
                self._check_lead_time(start_time)

                appointments = AppointmentRepository(session, self.timezone)
                appointments.lock_professional(professional.id)
                self._ensure_free(appointments, professional.id, start_time, end_time)

                appointment = appointments.add(
                    salon_id=salon.id,
                    client_id=client.id,
                    professional_id=professional.id,
                    service_id=service.id,
                    start_time=start_time,
                    end_time=end_time,
                    price=service.price,
                    notes=data.notes,
                )
                appointments.add_history(appointment.id, None, AppointmentStatus.PENDING, "created")
                logger.info(
                    "Appointment %s booked for professional %s at %s",
                    appointment.id,
                    professional.id,
                    appointment.time_range,
                )

                result = BookingResult(appointment=appointment)
                self._run_plan(session, result, self._notifications.booking_plan(start_time))

        return result

    def update_appointment(self, appointment_id: str, patch: AppointmentPatch) -> BookingResult:
        """
        Change times, status or notes of a non-terminal appointment.

        Raises:
            NotFoundError: If the appointment does not exist
            InvalidTransitionError: If the appointment is terminal or the status change is not allowed
            ValidationError: If a cancellation breaks the same rules ``cancel_appointment`` applies
            ConflictError: If the new interval overlaps another booking (nothing is changed)
        """
        professional_id = self.get_appointment(appointment_id).professional_id

        with self._database.locks.hold(professional_id):
            with self._database.session_scope() as session:
                appointments = AppointmentRepository(session, self.timezone)
                current = appointments.get(appointment_id)
                self._ensure_mutable(current)

                start_time = current.start_time
                end_time = current.end_time
                times_changed = False
                if patch.changes_time():
                    if patch.start_time is not None:
                        start_time = localize(patch.start_time, self.timezone)
                    if patch.end_time is not None:
                        end_time = localize(patch.end_time, self.timezone)
                    self._validate_interval(start_time, end_time)
                    times_changed = (start_time, end_time) != (current.start_time, current.end_time)

                new_status = None
                if patch.status is not None and AppointmentStatus(patch.status) != current.status:
                    new_status = AppointmentStatus(patch.status)
                    self._ensure_transition(current, new_status)
                    if new_status == AppointmentStatus.CANCELLED:
                        self._ensure_cancellable(current)

                if times_changed:
                    appointments.lock_professional(current.professional_id)
                    self._ensure_free(
                        appointments, current.professional_id, start_time, end_time, exclude=current.id
                    )

                updated = appointments.update(
                    appointment_id,
                    start_time=start_time if times_changed else None,
                    end_time=end_time if times_changed else None,
                    status=new_status,
                    notes=patch.notes,
                )
                if times_changed:
                    appointments.add_history(
                        appointment_id,
                        current.status,
                        current.status,
                        f"rescheduled to {updated.time_range}",
                    )
                if new_status is not None:
                    appointments.add_history(appointment_id, current.status, new_status)

                logger.info("Appointment %s updated", appointment_id)
                result = BookingResult(appointment=updated)

                if new_status == AppointmentStatus.CANCELLED:
                    self._after_cancel(session, result)
                elif new_status is not None and new_status.is_terminal:
                    # Finished or missed appointments get no further reminders
                    self._notifications.drop_pending_reminders_in(session, appointment_id)
                elif times_changed:
                    self._notifications.drop_pending_reminders_in(session, appointment_id)
                    self._run_plan(session, result, self._notifications.reminder_plan(start_time))

        return result

    def cancel_appointment(self, appointment_id: str, reason: Optional[str] = None) -> BookingResult:
        """
        Cancel an appointment, keeping the row.

        Raises:
            NotFoundError: If the appointment does not exist
            InvalidTransitionError: If it is already cancelled or otherwise terminal
            ValidationError: If it already ended or is inside the cancellation limit
        """
        with self._database.session_scope() as session:
            appointments = AppointmentRepository(session, self.timezone)
            current = appointments.get(appointment_id)
            self._ensure_transition(current, AppointmentStatus.CANCELLED)
            self._ensure_cancellable(current)

            updated = appointments.update(appointment_id, status=AppointmentStatus.CANCELLED)
            appointments.add_history(
                appointment_id, current.status, AppointmentStatus.CANCELLED, reason or "cancelled"
            )
            logger.info("Appointment %s cancelled", appointment_id)

            result = BookingResult(appointment=updated)
            self._after_cancel(session, result)

        return result

    def delete_appointment(self, appointment_id: str) -> None:
        """
        Hard delete an appointment with its history and notifications.

        All rows go in one transaction; a storage failure leaves everything in
        place and surfaces as InfrastructureError.
        """
        with self._database.session_scope() as session:
            AppointmentRepository(session, self.timezone).delete(appointment_id)
        logger.info("Appointment %s deleted", appointment_id)

    # Helpers

    def _after_cancel(self, session: Session, result: BookingResult) -> None:
        appointment_id = result.appointment.id
        self._notifications.drop_pending_reminders_in(session, appointment_id)
        self._run_plan(session, result, [(NotificationType.CANCELLATION, None)])

    def _run_plan(self, session: Session, result: BookingResult, plan: NotificationPlan) -> None:
        """Schedule each notification in its own savepoint; failures become warnings."""
        for notification_type, scheduled_for in plan:
            try:
                with session.begin_nested():
                    notification_id = self._notifications.schedule_in(
                        session, result.appointment.id, notification_type, scheduled_for
                    )
            except (BookingError, SQLAlchemyError) as exc:
                message = (
                    f"Could not schedule {notification_type.value} notification "
                    f"for appointment {result.appointment.id}: {exc}"
                )
                logger.warning(message)
                result.warnings.append(message)
            else:
                result.notification_ids.append(notification_id)

    def _ensure_free(
        self,
        appointments: AppointmentRepository,
        professional_id: str,
        start_time: DateTime,
        end_time: DateTime,
        exclude: Optional[str] = None,
    ) -> None:
        conflicts = ConflictDetector(appointments).find_conflicts(
            professional_id, start_time, end_time, exclude_appointment_id=exclude
        )
        if conflicts:
            logger.info(
                "Rejected booking for professional %s at %s - %s: overlaps %s",
                professional_id,
                start_time,
                end_time,
                ", ".join(c.id for c in conflicts),
            )
            raise ConflictError(
                "Professional already has an appointment in this interval",
                conflicting_ids=tuple(c.id for c in conflicts),
            )

    @staticmethod
    def _validate_interval(start_time: DateTime, end_time: DateTime) -> None:
        if end_time <= start_time:
            raise ValidationError(f"End time {end_time} must be after start time {start_time}")

    def _check_lead_time(self, start_time: DateTime) -> None:
        lead_hours = self._scheduling.booking_lead_time_hours
        if lead_hours and start_time < self._clock().add(hours=lead_hours):
            raise ValidationError(f"Appointments must be booked at least {lead_hours} hour(s) ahead")

    def _ensure_cancellable(self, appointment: Appointment) -> None:
        now = self._clock()
        if appointment.end_time < now:
            raise ValidationError("Appointments that already took place cannot be cancelled")
        limit = self._scheduling.booking_cancel_limit_hours
        if limit and appointment.start_time.subtract(hours=limit) < now:
            raise ValidationError(
                f"Appointments can only be cancelled up to {limit} hour(s) before they start"
            )

    @staticmethod
    def _ensure_mutable(appointment: Appointment) -> None:
        if appointment.status.is_terminal:
            raise InvalidTransitionError(
                f"Appointment {appointment.id} is {appointment.status.value} and can no longer change"
            )

    @staticmethod
    def _ensure_transition(appointment: Appointment, target: AppointmentStatus) -> None:
        if appointment.status.is_terminal:
            raise InvalidTransitionError(
                f"Appointment {appointment.id} is already {appointment.status.value}"
            )
        if not appointment.status.can_transition_to(target):
            raise InvalidTransitionError(
                f"Cannot change appointment {appointment.id} from "
                f"{appointment.status.value} to {target.value}"
            )
