"""
Notification scheduling: persist confirmation, reminder and cancellation intents.

Delivery is not done here. A dispatcher polls rows whose ``scheduled_for``
has passed; the persisted row is the only authoritative record of when a
message should go out.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Tuple

import pendulum
from pendulum import DateTime
from sqlalchemy.orm import Session

from ..adapters.database import Database
from ..adapters.orm import AppointmentRecord
from ..adapters.repositories import AppointmentRepository, NotificationRepository
from ..config import NotificationConfig, SchedulingConfig
from ..domain.booking import (
    Notification,
    NotificationPayload,
    NotificationStatus,
    NotificationType,
)
from ..domain.exceptions import NotFoundError, ValidationError
from ..domain.models import localize

logger = logging.getLogger(__name__)


NotificationPlan = List[Tuple[NotificationType, Optional[DateTime]]]


class NotificationSchedulerProtocol(Protocol):
    """What the booking lifecycle needs from the scheduler."""

    def booking_plan(self, start_time: DateTime) -> NotificationPlan:
        """Notifications to create for a new booking."""

    def reminder_plan(self, start_time: DateTime) -> NotificationPlan:
        """Reminders to create for a (re)scheduled start time."""

    def schedule_in(
        self,
        session: Session,
        appointment_id: str,
        notification_type: NotificationType,
        scheduled_for: Optional[DateTime] = None,
    ) -> str:
        """Persist one notification inside the caller's transaction."""

    def drop_pending_reminders_in(self, session: Session, appointment_id: str) -> int:
        """Delete reminders that have not been delivered yet."""


def build_payload(record: AppointmentRecord, timezone: str) -> NotificationPayload:
    """Snapshot the names shown in the message at scheduling time."""
    if record.client is None:
        raise NotFoundError(f"Client not found for appointment {record.id}")

    professional_name = record.professional.name if record.professional else "Professional"
    return NotificationPayload(
        appointment_id=record.id,
        start_time=localize(record.start_time, timezone).to_iso8601_string(),
        client_name=record.client.name,
        client_phone=record.client.phone,
        professional_name=professional_name,
        service_name=record.service.name,
        salon_name=record.salon.name,
    )


class NotificationScheduler:
    """
    Creates notification rows with a payload snapshot and a fire time.

    Never calls back into booking logic.
    """

    def __init__(
        self,
        database: Database,
        scheduling: SchedulingConfig,
        notifications: NotificationConfig,
        timezone: str,
    ) -> None:
        self._database = database
        self._scheduling = scheduling
        self._notifications = notifications
        self.timezone = timezone

    def plan_reminders(self, start_time: DateTime) -> List[DateTime]:
        """Fire times for reminders, earliest first."""
        return [
            start_time.subtract(minutes=offset)
            for offset in self._scheduling.reminder_offsets_minutes
        ]

    def reminder_plan(self, start_time: DateTime) -> NotificationPlan:
        if not self._notifications.send_reminders:
            return []
        return [(NotificationType.REMINDER, fire_at) for fire_at in self.plan_reminders(start_time)]

    def booking_plan(self, start_time: DateTime) -> NotificationPlan:
        plan: NotificationPlan = []
        if self._notifications.send_confirmation:
            plan.append((NotificationType.CONFIRMATION, None))
        plan.extend(self.reminder_plan(start_time))
        return plan

    def schedule(
        self,
        appointment_id: str,
        notification_type: NotificationType,
        scheduled_for: Optional[DateTime] = None,
    ) -> str:
        """
        Persist a notification for an appointment.

        Args:
            appointment_id: Appointment the message is about
            notification_type: CONFIRMATION, REMINDER or CANCELLATION
            scheduled_for: Fire time; None means as soon as possible

        Returns:
            The id of the new notification

        Raises:
            NotFoundError: If the appointment does not exist
        """
        with self._database.session_scope() as session:
            return self.schedule_in(session, appointment_id, notification_type, scheduled_for)

    def schedule_in(
        self,
        session: Session,
        appointment_id: str,
        notification_type: NotificationType,
        scheduled_for: Optional[DateTime] = None,
    ) -> str:
        notification_type = NotificationType(notification_type)
        appointment = AppointmentRepository(session, self.timezone).get_with_relations(appointment_id)
        payload = build_payload(appointment, self.timezone)

        notification = NotificationRepository(session, self.timezone).add(
            appointment=appointment,
            notification_type=notification_type,
            payload=payload,
            scheduled_for=scheduled_for,
        )
        logger.info(
            "Notification %s (%s) scheduled for appointment %s at %s",
            notification.id,
            notification_type.value,
            appointment_id,
            scheduled_for.to_iso8601_string() if scheduled_for else "once possible",
        )
        return notification.id

    def drop_pending_reminders_in(self, session: Session, appointment_id: str) -> int:
        removed = NotificationRepository(session, self.timezone).delete_pending(
            appointment_id, [NotificationType.REMINDER]
        )
        if removed:
            logger.info("Dropped %d pending reminder(s) of appointment %s", removed, appointment_id)
        return removed

    def list_for_appointment(self, appointment_id: str) -> List[Notification]:
        with self._database.session_scope() as session:
            AppointmentRepository(session, self.timezone).get_record(appointment_id)
            return NotificationRepository(session, self.timezone).list_for_appointment(appointment_id)

    def due_notifications(
        self,
        now: Optional[DateTime] = None,
        limit: Optional[int] = None,
    ) -> List[Notification]:
        """Pending notifications whose fire time has come, oldest first."""
        now = now or pendulum.now(self.timezone)
        limit = limit or self._notifications.dispatch_batch_size
        with self._database.session_scope() as session:
            return NotificationRepository(session, self.timezone).list_due(now, limit)

    def mark_sent(self, notification_id: str, sent_at: Optional[DateTime] = None) -> Notification:
        sent_at = sent_at or pendulum.now(self.timezone)
        return self._report(notification_id, NotificationStatus.SENT, sent_at=sent_at)

    def mark_failed(self, notification_id: str, error: str) -> Notification:
        return self._report(notification_id, NotificationStatus.FAILED, error=error)

    def _report(
        self,
        notification_id: str,
        status: NotificationStatus,
        *,
        sent_at: Optional[DateTime] = None,
        error: Optional[str] = None,
    ) -> Notification:
        with self._database.session_scope() as session:
            repository = NotificationRepository(session, self.timezone)
            current = repository.get(notification_id)
            if current.status != NotificationStatus.PENDING:
                raise ValidationError(
                    f"Notification {notification_id} was already reported as {current.status.value}"
                )
            notification = repository.set_status(notification_id, status, sent_at=sent_at, error=error)

        if status == NotificationStatus.FAILED:
            logger.warning("Notification %s failed: %s", notification_id, error)
        else:
            logger.info("Notification %s sent", notification_id)
        return notification
