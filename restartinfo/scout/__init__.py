"""Scout package -- restart detection on pod update pairs."""

from restartinfo.scout.restart_filter import (
    RestartFilter,
    ignored_error,
    is_clean_exit,
    is_eligible,
    restart_key,
)

__all__ = [
    "RestartFilter",
    "ignored_error",
    "is_clean_exit",
    "is_eligible",
    "restart_key",
]
