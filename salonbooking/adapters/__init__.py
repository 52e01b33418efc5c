"""
Adapters layer - Storage (SQLAlchemy) and the notification relay webhook.
"""

from .database import Base, Database, ProfessionalLocks
from .repositories import AppointmentRepository, NotificationRepository, SqlCatalog
from .webhook_client import WebhookClient

__all__ = [
    "AppointmentRepository",
    "Base",
    "Database",
    "NotificationRepository",
    "ProfessionalLocks",
    "SqlCatalog",
    "WebhookClient",
]
