"""Notification dispatcher for restartinfo.

NotificationChannel    -- ABC every chat transport must implement.
NotificationDispatcher -- Resolves the target channel and delivers one
                          notification, raising on failure so the caller's
                          retry policy can decide what happens next.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import structlog

from restartinfo.models.notifications import Notification

_log = structlog.get_logger(component="notifications.manager")


class NotificationDeliveryError(Exception):
    """Raised when a channel reports that a notification was not delivered."""

    def __init__(self, channel: str, notification: Notification) -> None:
        super().__init__(f"notification {notification.notification_id} was not delivered via {channel}")
        self.channel = channel
        self.notification = notification


class NotificationChannel(ABC):
    """Abstract base class for all notification channels.

    Every concrete channel must implement ``send``, which should not raise
    on transport errors -- return ``False`` instead.
    """

    @property
    @abstractmethod
    def channel_name(self) -> str:
        """Human-readable channel identifier used in logs."""

    @abstractmethod
    async def send(self, notification: Notification) -> bool:
        """Deliver *notification* via this channel.

        Returns:
            True  -- message accepted by the remote endpoint.
            False -- delivery failed (already logged inside implementation).
        """

    async def close(self) -> None:  # noqa: B027
        """Release transport resources.  Optional."""


class NotificationDispatcher:
    """Sends a notification to the single configured channel.

    Args:
        channel:         Transport used for every notification.
        default_channel: Chat channel used when the notification names none.
    """

    def __init__(self, channel: NotificationChannel, default_channel: str = "") -> None:
        self._channel = channel
        self._default_channel = default_channel

    @property
    def default_channel(self) -> str:
        return self._default_channel

    def resolve_channel(self, override: str) -> str:
        return override or self._default_channel

    async def dispatch(self, notification: Notification) -> Notification:
        """Deliver *notification*, filling in the default chat channel.

        Returns the notification as sent.

        Raises:
            NotificationDeliveryError: the channel reported failure.
        """
        if not notification.channel:
            notification = Notification(
                title=notification.title,
                body=notification.body,
                footer=notification.footer,
                channel=self._default_channel,
                notification_id=notification.notification_id,
            )

        try:
            success = await self._channel.send(notification)
        except Exception as exc:
            _log.error(
                "notification_channel_unexpected_error",
                channel=self._channel.channel_name,
                notification_id=notification.notification_id,
                error=str(exc),
            )
            raise

        if not success:
            _log.warning(
                "notification_failed",
                channel=self._channel.channel_name,
                notification_id=notification.notification_id,
                target=notification.channel,
            )
            raise NotificationDeliveryError(self._channel.channel_name, notification)

        _log.info(
            "notification_sent",
            channel=self._channel.channel_name,
            notification_id=notification.notification_id,
            target=notification.channel,
            title=notification.title.replace("\n", " "),
        )
        return notification

    async def stop(self) -> None:
        await self._channel.close()
