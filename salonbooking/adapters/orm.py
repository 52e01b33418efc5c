"""
SQLAlchemy table mappings for the booking core.

Appointment times are stored as salon-local wall-clock timestamps.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    DDL,
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..domain.booking import AppointmentStatus, NotificationStatus, NotificationType
from .database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


professional_services = Table(
    "professional_services",
    Base.metadata,
    Column("professional_id", ForeignKey("professionals.id", ondelete="CASCADE"), primary_key=True),
    Column("service_id", ForeignKey("services.id", ondelete="CASCADE"), primary_key=True),
)


class SalonRecord(Base):
    __tablename__ = "salons"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    business_hours: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    appointment_interval: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class ClientRecord(Base):
    __tablename__ = "clients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    salon_id: Mapped[str] = mapped_column(ForeignKey("salons.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)


class ServiceRecord(Base):
    __tablename__ = "services"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    salon_id: Mapped[str] = mapped_column(ForeignKey("salons.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class ProfessionalRecord(Base):
    __tablename__ = "professionals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    salon_id: Mapped[str] = mapped_column(ForeignKey("salons.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    working_hours: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    services: Mapped[List[ServiceRecord]] = relationship(secondary=professional_services)


class AppointmentRecord(Base):
    __tablename__ = "appointments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    salon_id: Mapped[str] = mapped_column(ForeignKey("salons.id"), nullable=False, index=True)
    client_id: Mapped[str] = mapped_column(ForeignKey("clients.id"), nullable=False, index=True)
    professional_id: Mapped[str] = mapped_column(ForeignKey("professionals.id"), nullable=False)
    service_id: Mapped[str] = mapped_column(ForeignKey("services.id"), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[AppointmentStatus] = mapped_column(
        SAEnum(AppointmentStatus, native_enum=False, length=16),
        default=AppointmentStatus.PENDING,
        nullable=False,
    )
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    salon: Mapped[SalonRecord] = relationship()
    client: Mapped[ClientRecord] = relationship()
    professional: Mapped[ProfessionalRecord] = relationship()
    service: Mapped[ServiceRecord] = relationship()
    history: Mapped[List["AppointmentHistoryRecord"]] = relationship(
        back_populates="appointment",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="AppointmentHistoryRecord.changed_at",
    )
    notifications: Mapped[List["NotificationRecord"]] = relationship(
        back_populates="appointment",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_appointments_professional_window", "professional_id", "start_time", "end_time"),
    )


class AppointmentHistoryRecord(Base):
    __tablename__ = "appointment_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    appointment_id: Mapped[str] = mapped_column(
        ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_status: Mapped[Optional[AppointmentStatus]] = mapped_column(
        SAEnum(AppointmentStatus, native_enum=False, length=16), nullable=True
    )
    to_status: Mapped[AppointmentStatus] = mapped_column(
        SAEnum(AppointmentStatus, native_enum=False, length=16), nullable=False
    )
    changed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    appointment: Mapped[AppointmentRecord] = relationship(back_populates="history")


class NotificationRecord(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    salon_id: Mapped[str] = mapped_column(ForeignKey("salons.id"), nullable=False, index=True)
    appointment_id: Mapped[str] = mapped_column(
        ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    client_id: Mapped[str] = mapped_column(ForeignKey("clients.id"), nullable=False)
    professional_id: Mapped[str] = mapped_column(ForeignKey("professionals.id"), nullable=False)
    type: Mapped[NotificationType] = mapped_column(
        SAEnum(NotificationType, native_enum=False, length=16), nullable=False
    )
    status: Mapped[NotificationStatus] = mapped_column(
        SAEnum(NotificationStatus, native_enum=False, length=16),
        default=NotificationStatus.PENDING,
        nullable=False,
    )
    scheduled_for: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    appointment: Mapped[AppointmentRecord] = relationship(back_populates="notifications")


# Storage-level backstop against double booking on PostgreSQL: two
# non-cancelled rows of one professional may not share any instant.
event.listen(
    AppointmentRecord.__table__,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    AppointmentRecord.__table__,
    "after_create",
    DDL(
        "ALTER TABLE appointments ADD CONSTRAINT ex_appointments_professional_overlap "
        "EXCLUDE USING gist (professional_id WITH =, tsrange(start_time, end_time, '[)') WITH &&) "
        "WHERE (status <> 'CANCELLED')"
    ).execute_if(dialect="postgresql"),
)

OVERLAP_CONSTRAINT_NAME = "ex_appointments_professional_overlap"
