from __future__ import annotations

import logging
from typing import Protocol

import requests

from app.config import (
    NOTIFICATION_API_KEY,
    NOTIFICATION_API_URL,
    NOTIFICATION_CHANNELS,
    NOTIFICATION_TIMEOUT_SECONDS,
)


logger = logging.getLogger(__name__)


class NotificationGateway(Protocol):
    def send(self, trigger: str, recipient_phone: str, template_data: dict) -> dict[str, bool]:
        """Returns the outcome per channel, e.g. {"SMS": True, "WHATSAPP": False}."""
        ...


class HttpNotificationGateway:
    """
    Posts one message per channel to the messaging provider. Channels are
    attempted independently: a failing SMS call never prevents WhatsApp.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        channels=NOTIFICATION_CHANNELS,
        timeout: float = NOTIFICATION_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ):
        self.url = base_url.rstrip("/") + "/messages"
        self.api_key = api_key
        self.channels = tuple(channels)
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def send(self, trigger: str, recipient_phone: str, template_data: dict) -> dict[str, bool]:
        results: dict[str, bool] = {}
        for channel in self.channels:
            body = {
                "channel": channel,
                "trigger": trigger,
                "to": recipient_phone,
                "data": {k: str(v) for k, v in (template_data or {}).items() if v is not None},
            }
            try:
                response = self.session.post(self.url, json=body, headers=self._headers(), timeout=self.timeout)
                response.raise_for_status()
                results[channel] = True
            except requests.RequestException as e:
                logger.warning(
                    "notification channel failed",
                    extra={"channel": channel, "trigger": trigger, "error": str(e)},
                )
                results[channel] = False
        return results


class DisabledNotificationGateway:
    def __init__(self, channels=NOTIFICATION_CHANNELS):
        self.channels = tuple(channels)

    def send(self, trigger: str, recipient_phone: str, template_data: dict) -> dict[str, bool]:
        logger.warning(
            "notification gateway not configured; message not sent",
            extra={"trigger": trigger},
        )
        return {channel: False for channel in self.channels}


def get_notification_gateway() -> NotificationGateway:
    if not NOTIFICATION_API_URL:
        return DisabledNotificationGateway()
    return HttpNotificationGateway(NOTIFICATION_API_URL, api_key=NOTIFICATION_API_KEY)
