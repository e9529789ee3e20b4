"""Notification system for restartinfo.

Exports:
    NotificationChannel       -- Abstract base for channel implementations.
    NotificationDispatcher    -- Sends a notification and raises on failure.
    NotificationDeliveryError -- Raised when the channel reports failure.
    SlackNotificationChannel  -- Slack incoming-webhook channel.
    build_notification_dispatcher -- Factory used by the application bootstrap.
"""

from __future__ import annotations

import structlog

from restartinfo.models.config import SlackConfig
from restartinfo.notifications.manager import (
    NotificationChannel,
    NotificationDeliveryError,
    NotificationDispatcher,
)
from restartinfo.notifications.slack import SlackNotificationChannel

_log = structlog.get_logger(component="notifications")

__all__ = [
    "NotificationChannel",
    "NotificationDeliveryError",
    "NotificationDispatcher",
    "SlackNotificationChannel",
    "build_notification_dispatcher",
]


def build_notification_dispatcher(config: SlackConfig) -> NotificationDispatcher:
    """Build the Slack-backed dispatcher.

    Raises:
        ValueError: the webhook URL is empty.
    """
    channel = SlackNotificationChannel(webhook_url=config.webhook_url, username=config.username)
    _log.info("slack_channel_enabled", default_channel=config.channel, username=config.username)
    return NotificationDispatcher(channel, default_channel=config.channel)
