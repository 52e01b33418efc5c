"""
Session-bound repositories translating between ORM records and domain types.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

import pendulum
from pendulum import DateTime
from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..domain.booking import (
    Appointment,
    AppointmentStatus,
    Client,
    Notification,
    NotificationPayload,
    NotificationStatus,
    NotificationType,
    Professional,
    Salon,
    Service,
)
from ..domain.exceptions import ConflictError, NotFoundError, ValidationError
from ..domain.models import DaySchedule, WorkingHours, localize
from .orm import (
    OVERLAP_CONSTRAINT_NAME,
    AppointmentHistoryRecord,
    AppointmentRecord,
    ClientRecord,
    NotificationRecord,
    ProfessionalRecord,
    SalonRecord,
    ServiceRecord,
)

logger = logging.getLogger(__name__)


def _parse_hours(data, owner_id: str) -> WorkingHours:
    try:
        return WorkingHours.from_dict(data)
    except ValueError as exc:
        raise ValidationError(f"Invalid working hours stored for {owner_id}: {exc}") from exc


class _Repository:
    def __init__(self, session: Session, timezone: str):
        self.session = session
        self.timezone = timezone

    def _to_db(self, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        return localize(value, self.timezone).naive()

    def _from_db(self, value: Optional[datetime]) -> Optional[DateTime]:
        if value is None:
            return None
        return localize(value, self.timezone)

    def _now(self) -> datetime:
        return pendulum.now(self.timezone).naive()


class SqlCatalog(_Repository):
    """
    Read access to salons, clients, professionals and services.
    """

    def get_salon(self, salon_id: str) -> Salon:
        record = self.session.get(SalonRecord, salon_id)
        if record is None:
            raise NotFoundError(f"Salon {salon_id} not found")
        return Salon(
            id=record.id,
            name=record.name,
            business_hours=_parse_hours(record.business_hours, record.id),
            appointment_interval=record.appointment_interval,
        )

    def get_client(self, client_id: str) -> Client:
        record = self.session.get(ClientRecord, client_id)
        if record is None:
            raise NotFoundError(f"Client {client_id} not found")
        return Client(id=record.id, salon_id=record.salon_id, name=record.name, phone=record.phone)

    def get_professional(self, professional_id: str) -> Professional:
        record = self.session.get(ProfessionalRecord, professional_id)
        if record is None:
            raise NotFoundError(f"Professional {professional_id} not found")
        return self._professional_from_record(record)

    def get_service(self, service_id: str) -> Service:
        record = self.session.get(ServiceRecord, service_id)
        if record is None:
            raise NotFoundError(f"Service {service_id} not found")
        return Service(
            id=record.id,
            salon_id=record.salon_id,
            name=record.name,
            duration_minutes=record.duration_minutes,
            price=Decimal(record.price),
            active=record.active,
        )

    def list_professionals(
        self,
        salon_id: str,
        service_id: Optional[str] = None,
        active_only: bool = True,
    ) -> List[Professional]:
        stmt = (
            select(ProfessionalRecord)
            .where(ProfessionalRecord.salon_id == salon_id)
            .options(joinedload(ProfessionalRecord.services))
            .order_by(ProfessionalRecord.name)
        )
        if active_only:
            stmt = stmt.where(ProfessionalRecord.active.is_(True))
        if service_id is not None:
            stmt = stmt.where(ProfessionalRecord.services.any(ServiceRecord.id == service_id))

        records = self.session.scalars(stmt).unique().all()
        return [self._professional_from_record(record) for record in records]

    def working_hours_for(self, professional: Professional) -> WorkingHours:
        """A professional's own hours override the salon's business hours."""
        if professional.working_hours is not None and not professional.working_hours.is_empty():
            return professional.working_hours
        return self.get_salon(professional.salon_id).business_hours

    def get_working_hours(self, owner_id: str, weekday: int) -> DaySchedule:
        """Day schedule of a professional or, failing that, of a salon."""
        professional = self.session.get(ProfessionalRecord, owner_id)
        if professional is not None:
            hours = self.working_hours_for(self._professional_from_record(professional))
            return hours.for_weekday(weekday)

        return self.get_salon(owner_id).business_hours.for_weekday(weekday)

    @staticmethod
    def _professional_from_record(record: ProfessionalRecord) -> Professional:
        working_hours = (
            _parse_hours(record.working_hours, record.id) if record.working_hours else None
        )
        return Professional(
            id=record.id,
            salon_id=record.salon_id,
            name=record.name,
            active=record.active,
            service_ids=frozenset(service.id for service in record.services),
            working_hours=working_hours,
        )


class AppointmentRepository(_Repository):
    """
    Booking store: appointments and their status history.
    """

    def get(self, appointment_id: str) -> Appointment:
        return self._to_domain(self.get_record(appointment_id))

    def get_record(self, appointment_id: str) -> AppointmentRecord:
        record = self.session.get(AppointmentRecord, appointment_id)
        if record is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return record

    def get_with_relations(self, appointment_id: str) -> AppointmentRecord:
        stmt = (
            select(AppointmentRecord)
            .where(AppointmentRecord.id == appointment_id)
            .options(
                joinedload(AppointmentRecord.client),
                joinedload(AppointmentRecord.professional),
                joinedload(AppointmentRecord.service),
                joinedload(AppointmentRecord.salon),
            )
        )
        record = self.session.scalars(stmt).first()
        if record is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return record

    def lock_professional(self, professional_id: str) -> None:
        """Row-lock the professional so concurrent writers queue up (no-op on SQLite)."""
        self.session.execute(
            select(ProfessionalRecord.id)
            .where(ProfessionalRecord.id == professional_id)
            .with_for_update()
        )

    def list_active_for_professional(
        self,
        professional_id: str,
        start: Optional[DateTime] = None,
        end: Optional[DateTime] = None,
    ) -> List[Appointment]:
        stmt = select(AppointmentRecord).where(
            AppointmentRecord.professional_id == professional_id,
            AppointmentRecord.status != AppointmentStatus.CANCELLED,
        )
        if end is not None:
            stmt = stmt.where(AppointmentRecord.start_time < self._to_db(end))
        if start is not None:
            stmt = stmt.where(AppointmentRecord.end_time > self._to_db(start))

        stmt = stmt.order_by(AppointmentRecord.start_time)
        return [self._to_domain(record) for record in self.session.scalars(stmt)]

    def search(
        self,
        *,
        salon_id: Optional[str] = None,
        professional_id: Optional[str] = None,
        client_id: Optional[str] = None,
        status: Optional[AppointmentStatus] = None,
        start: Optional[DateTime] = None,
        end: Optional[DateTime] = None,
    ) -> List[Appointment]:
        stmt = select(AppointmentRecord)
        if salon_id:
            stmt = stmt.where(AppointmentRecord.salon_id == salon_id)
        if professional_id:
            stmt = stmt.where(AppointmentRecord.professional_id == professional_id)
        if client_id:
            stmt = stmt.where(AppointmentRecord.client_id == client_id)
        if status:
            stmt = stmt.where(AppointmentRecord.status == status)
        if start is not None:
            stmt = stmt.where(AppointmentRecord.start_time >= self._to_db(start))
        if end is not None:
            stmt = stmt.where(AppointmentRecord.start_time <= self._to_db(end))

        stmt = stmt.order_by(AppointmentRecord.start_time)
        return [self._to_domain(record) for record in self.session.scalars(stmt)]

    def add(
        self,
        *,
        salon_id: str,
        client_id: str,
        professional_id: str,
        service_id: str,
        start_time: DateTime,
        end_time: DateTime,
        price: Decimal,
        notes: Optional[str] = None,
    ) -> Appointment:
        now = self._now()
        record = AppointmentRecord(
            salon_id=salon_id,
            client_id=client_id,
            professional_id=professional_id,
            service_id=service_id,
            start_time=self._to_db(start_time),
            end_time=self._to_db(end_time),
            status=AppointmentStatus.PENDING,
            price=price,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        self.session.add(record)
        self._flush_checking_overlap()
        return self._to_domain(record)

    def update(
        self,
        appointment_id: str,
        *,
        start_time: Optional[DateTime] = None,
        end_time: Optional[DateTime] = None,
        status: Optional[AppointmentStatus] = None,
        notes: Optional[str] = None,
    ) -> Appointment:
        record = self.get_record(appointment_id)
        if start_time is not None:
            record.start_time = self._to_db(start_time)
        if end_time is not None:
            record.end_time = self._to_db(end_time)
        if status is not None:
            record.status = status
        if notes is not None:
            record.notes = notes
        record.updated_at = self._now()
        self._flush_checking_overlap()
        return self._to_domain(record)

    def add_history(
        self,
        appointment_id: str,
        from_status: Optional[AppointmentStatus],
        to_status: AppointmentStatus,
        note: Optional[str] = None,
    ) -> None:
        self.session.add(
            AppointmentHistoryRecord(
                appointment_id=appointment_id,
                from_status=from_status,
                to_status=to_status,
                changed_at=self._now(),
                note=note,
            )
        )

    def list_history(self, appointment_id: str) -> List[AppointmentHistoryRecord]:
        stmt = (
            select(AppointmentHistoryRecord)
            .where(AppointmentHistoryRecord.appointment_id == appointment_id)
            .order_by(AppointmentHistoryRecord.changed_at)
        )
        return list(self.session.scalars(stmt))

    def delete(self, appointment_id: str) -> None:
        """Remove the appointment together with its history and notifications."""
        record = self.get_record(appointment_id)
        self.session.execute(
            delete(NotificationRecord).where(NotificationRecord.appointment_id == appointment_id)
        )
        self.session.execute(
            delete(AppointmentHistoryRecord).where(
                AppointmentHistoryRecord.appointment_id == appointment_id
            )
        )
        self.session.delete(record)
        self.session.flush()

    def _flush_checking_overlap(self) -> None:
        try:
            with self.session.begin_nested():
                self.session.flush()
        except IntegrityError as exc:
            if OVERLAP_CONSTRAINT_NAME in str(exc.orig):
                logger.info("Overlap constraint rejected appointment write: %s", exc.orig)
                raise ConflictError("Professional already has an appointment in this interval") from exc
            raise

    def _to_domain(self, record: AppointmentRecord) -> Appointment:
        return Appointment(
            id=record.id,
            salon_id=record.salon_id,
            client_id=record.client_id,
            professional_id=record.professional_id,
            service_id=record.service_id,
            start_time=self._from_db(record.start_time),
            end_time=self._from_db(record.end_time),
            status=AppointmentStatus(record.status),
            price=Decimal(record.price),
            notes=record.notes,
            created_at=self._from_db(record.created_at),
            updated_at=self._from_db(record.updated_at),
        )


class NotificationRepository(_Repository):
    """
    Persisted notification intents.
    """

    def add(
        self,
        *,
        appointment: AppointmentRecord,
        notification_type: NotificationType,
        payload: NotificationPayload,
        scheduled_for: Optional[DateTime] = None,
    ) -> Notification:
        record = NotificationRecord(
            salon_id=appointment.salon_id,
            appointment_id=appointment.id,
            client_id=appointment.client_id,
            professional_id=appointment.professional_id,
            type=notification_type,
            status=NotificationStatus.PENDING,
            scheduled_for=self._to_db(scheduled_for),
            payload=payload.to_dict(),
            created_at=self._now(),
        )
        self.session.add(record)
        self.session.flush()
        return self._to_domain(record)

    def get_record(self, notification_id: str) -> NotificationRecord:
        record = self.session.get(NotificationRecord, notification_id)
        if record is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        return record

    def get(self, notification_id: str) -> Notification:
        return self._to_domain(self.get_record(notification_id))

    def list_for_appointment(self, appointment_id: str) -> List[Notification]:
        stmt = (
            select(NotificationRecord)
            .where(NotificationRecord.appointment_id == appointment_id)
            .order_by(NotificationRecord.created_at, NotificationRecord.scheduled_for)
        )
        return [self._to_domain(record) for record in self.session.scalars(stmt)]

    def list_due(self, now: DateTime, limit: int) -> List[Notification]:
        stmt = (
            select(NotificationRecord)
            .where(
                NotificationRecord.status == NotificationStatus.PENDING,
                or_(
                    NotificationRecord.scheduled_for.is_(None),
                    NotificationRecord.scheduled_for <= self._to_db(now),
                ),
            )
            .order_by(NotificationRecord.created_at)
            .limit(limit)
        )
        return [self._to_domain(record) for record in self.session.scalars(stmt)]

    def delete_pending(
        self,
        appointment_id: str,
        types: Sequence[NotificationType],
    ) -> int:
        result = self.session.execute(
            delete(NotificationRecord).where(
                NotificationRecord.appointment_id == appointment_id,
                NotificationRecord.status == NotificationStatus.PENDING,
                NotificationRecord.type.in_(list(types)),
            )
        )
        return result.rowcount or 0

    def set_status(
        self,
        notification_id: str,
        status: NotificationStatus,
        *,
        sent_at: Optional[DateTime] = None,
        error: Optional[str] = None,
    ) -> Notification:
        record = self.get_record(notification_id)
        record.status = status
        if sent_at is not None:
            record.sent_at = self._to_db(sent_at)
        record.last_error = error
        self.session.flush()
        return self._to_domain(record)

    def _to_domain(self, record: NotificationRecord) -> Notification:
        return Notification(
            id=record.id,
            salon_id=record.salon_id,
            appointment_id=record.appointment_id,
            type=NotificationType(record.type),
            status=NotificationStatus(record.status),
            payload=NotificationPayload.from_dict(record.payload),
            scheduled_for=self._from_db(record.scheduled_for),
            sent_at=self._from_db(record.sent_at),
            last_error=record.last_error,
        )
