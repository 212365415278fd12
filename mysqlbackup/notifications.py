"""
Failure notifications via chat webhooks (Slack or Discord).

Delivery is best effort: errors are logged at debug level and never raised.
"""

import logging
from typing import Optional

import httpx


logger = logging.getLogger(__name__)

NOTIFY_TYPES = ('slack', 'discord')


def build_payload(message: str, notify_type: str = 'slack') -> dict:
    """JSON body for the webhook flavour."""
    if notify_type == 'discord':
        return {'content': message}
    return {'text': message}


class WebhookNotifier:
    """
    Posts a single JSON message to a webhook URL.
    """

    def __init__(self, url: Optional[str], notify_type: str = 'slack', timeout: float = 10.0):
        self.url = url or None
        self.notify_type = notify_type
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return self.url is not None

    def notify(self, message: str):
        if not self.enabled:
            return

        payload = build_payload(message, self.notify_type)
        try:
            response = httpx.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug(f"Notification delivery failed: {e}")
