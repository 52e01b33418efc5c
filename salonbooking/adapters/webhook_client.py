"""
HTTP client for the n8n webhook that relays notifications to WhatsApp.
"""

from typing import Any, Dict

import requests

from ..domain.booking import Notification
from ..domain.exceptions import DeliveryError


class WebhookClient:
    """
    Posts notification payloads to the relay webhook.

    The relay owns message templates and the WhatsApp session; this client
    only hands over the persisted intent.
    """

    def __init__(self, webhook_url: str, timeout: int = 30):
        """
        Initialize the webhook client.

        Args:
            webhook_url: Full URL of the n8n notification webhook
            timeout: Request timeout in seconds
        """
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json"}

    def build_body(self, notification: Notification, instance_name: str) -> Dict[str, Any]:
        return {
            "notificationId": notification.id,
            "type": notification.type.value,
            "payload": notification.payload.to_dict(),
            "salon": {"instance": instance_name},
        }

    def send(self, notification: Notification, instance_name: str) -> None:
        """
        Deliver one notification to the relay.

        Raises:
            DeliveryError: If the request fails or the relay answers with an error status
        """
        try:
            response = requests.post(
                self.webhook_url,
                headers=self.headers,
                json=self.build_body(notification, instance_name),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise DeliveryError(f"Failed to deliver notification {notification.id}: {e}") from e
