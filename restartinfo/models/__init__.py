"""Core data structures for restartinfo."""

from restartinfo.models.config import (
    ControllerConfig,
    FilterConfig,
    KubeConfig,
    LogConfig,
    RestartInfoConfig,
    SlackConfig,
)
from restartinfo.models.notifications import DiagnosticBundle, Notification

__all__ = [
    "ControllerConfig",
    "DiagnosticBundle",
    "FilterConfig",
    "KubeConfig",
    "LogConfig",
    "Notification",
    "RestartInfoConfig",
    "SlackConfig",
]
