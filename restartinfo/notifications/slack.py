"""Slack incoming-webhook notification channel for restartinfo.

Posts a legacy attachment message: the title as ``pretext``, the diagnostics
body as ``text`` and the footer below it.  The target channel and sender
name are set per message, so one webhook can serve every per-pod channel
override.
"""

from __future__ import annotations

import time

import httpx
import structlog

from restartinfo.models.notifications import Notification
from restartinfo.notifications.manager import NotificationChannel

_log = structlog.get_logger(component="notifications.slack")

_ATTACHMENT_COLOR = "#4599DF"
_ICON_EMOJI = ":kubernetes:"


class SlackNotificationChannel(NotificationChannel):
    """Delivers notifications to a Slack incoming webhook.

    Args:
        webhook_url: Slack incoming-webhook URL.
        username:    Sender name shown in Slack.
        timeout:     HTTP request timeout in seconds. Defaults to 10.
        transport:   Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        webhook_url: str,
        username: str = "k8s-pod-restart-info-collector",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not webhook_url:
            raise ValueError("Slack webhook_url must not be empty")
        self._webhook_url = webhook_url
        self._username = username
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def channel_name(self) -> str:
        return "slack"

    async def send(self, notification: Notification) -> bool:
        """POST *notification* to the webhook.  Returns True on a 2xx response."""
        payload = self.build_payload(notification)
        try:
            response = await self._client.post(self._webhook_url, json=payload)
        except httpx.TimeoutException:
            _log.warning("slack_request_timeout", notification_id=notification.notification_id)
            return False
        except httpx.HTTPError as exc:
            _log.warning("slack_http_error", error=str(exc), notification_id=notification.notification_id)
            return False

        if response.is_success:
            return True
        _log.warning(
            "slack_non_2xx_response",
            status_code=response.status_code,
            body=response.text[:200],
            notification_id=notification.notification_id,
        )
        return False

    def build_payload(self, notification: Notification) -> dict[str, object]:
        """Serialise *notification* to a Slack webhook message."""
        message: dict[str, object] = {
            "username": self._username,
            "icon_emoji": _ICON_EMOJI,
            "attachments": [
                {
                    "pretext": notification.title,
                    "text": notification.body,
                    "footer": notification.footer,
                    "mrkdwn_in": ["text", "pretext"],
                    "color": _ATTACHMENT_COLOR,
                    "ts": int(time.time()),
                }
            ],
        }
        if notification.channel:
            message["channel"] = notification.channel
        return message

    async def close(self) -> None:
        await self._client.aclose()
