"""
Dispatch of due notifications to the message relay.

Runs from a cron job or the ``dispatch`` CLI command; each run picks up
pending rows whose fire time has passed and reports SENT or FAILED for each.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import pendulum
from pendulum import DateTime

from ..adapters.webhook_client import WebhookClient
from ..domain.booking import Notification, NotificationType
from ..domain.exceptions import BookingError, DeliveryError
from .notifications import NotificationScheduler

logger = logging.getLogger(__name__)


@dataclass
class DispatchReport:
    sent: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    unreported: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.sent) + len(self.failed)


class NotificationDispatcher:
    """
    Sends due notifications through the webhook client.

    A failure is recorded on the notification and never stops the batch.
    """

    def __init__(
        self,
        scheduler: NotificationScheduler,
        client: Optional[WebhookClient],
        instance_name: Optional[str],
    ) -> None:
        self._scheduler = scheduler
        self._client = client
        self._instance_name = instance_name

    def dispatch_due(self, now: Optional[DateTime] = None, limit: Optional[int] = None) -> DispatchReport:
        now = now or pendulum.now(self._scheduler.timezone)
        report = DispatchReport()

        for notification in self._scheduler.due_notifications(now=now, limit=limit):
            error = self._deliver(notification, now)
            try:
                if error is None:
                    self._scheduler.mark_sent(notification.id, sent_at=now)
                else:
                    self._scheduler.mark_failed(notification.id, error)
            except BookingError as exc:
                # Row deleted or already reported by another dispatcher
                logger.warning("Could not record outcome of notification %s: %s", notification.id, exc)
                report.unreported.append(notification.id)
                continue

            if error is None:
                report.sent.append(notification.id)
            else:
                report.failed.append(notification.id)

        if report.total:
            logger.info("Dispatched %d notification(s): %d sent, %d failed",
                        report.total, len(report.sent), len(report.failed))
        return report

    def _deliver(self, notification: Notification, now: DateTime) -> Optional[str]:
        """Return an error message, or None when the relay accepted the notification."""
        if notification.type == NotificationType.REMINDER and notification.payload.start <= now:
            return "expired: appointment already started"
        if self._client is None:
            return "Notification webhook URL is not configured"
        if not self._instance_name:
            return "WhatsApp instance name is not configured"

        try:
            self._client.send(notification, self._instance_name)
        except DeliveryError as exc:
            return str(exc)
        return None
