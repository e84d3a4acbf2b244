# vigil/services/notification_service.py
"""
Outbound alert notifications. Currently one channel: a JSON webhook
(ALERT_WEBHOOK_URL). Delivery is retried with a linear backoff and
never raises into the caller.
"""

import asyncio
from typing import Optional

import httpx

from vigil.config import settings
from vigil.utils.logger import get_logger

logger = get_logger(__name__)

WEBHOOK_TIMEOUT = 5.0
RETRY_BACKOFF_SECONDS = 1.0


def alert_payload(alert) -> dict:
    return {
        "id": alert.id,
        "camera_id": alert.camera_id,
        "event_id": alert.event_id,
        "rule_id": alert.rule_id,
        "severity": alert.severity,
        "title": alert.title,
        "description": alert.description,
        "status": alert.status,
        "source": alert.source,
        "triggered_at": alert.triggered_at.isoformat() if alert.triggered_at else None,
    }


class NotificationService:
    def __init__(self, webhook_url: Optional[str] = None, attempts: int = settings.ALERT_WEBHOOK_ATTEMPTS,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 backoff: float = RETRY_BACKOFF_SECONDS):
        self.webhook_url = webhook_url
        self.attempts = max(1, attempts)
        self.backoff = backoff
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def notify(self, payload: dict) -> bool:
        """POST the alert to the webhook. Returns True when delivered."""
        if not self.enabled:
            return False

        for attempt in range(1, self.attempts + 1):
            try:
                async with httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT, transport=self._transport) as client:
                    response = await client.post(self.webhook_url, json=payload)
                if response.status_code < 400:
                    logger.info(f"[NOTIFY] Alert {payload.get('id')} delivered (attempt {attempt})")
                    return True
                logger.warning(f"[NOTIFY] Webhook returned HTTP {response.status_code} (attempt {attempt})")
                if response.status_code < 500:
                    return False
            except httpx.HTTPError as e:
                logger.warning(f"[NOTIFY] Webhook error on attempt {attempt}: {e}")
            if attempt < self.attempts:
                await asyncio.sleep(self.backoff * attempt)

        logger.error(f"[NOTIFY] Giving up on alert {payload.get('id')} after {self.attempts} attempts")
        return False


notifier = NotificationService(settings.ALERT_WEBHOOK_URL)
