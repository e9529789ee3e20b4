"""Mute ledger -- per-pod last-alert timestamps.

A pod is alerted at most once per mute window.  Entries older than the
retention window are swept so a long-running process with high pod churn
does not grow without bound.  State is in-process; restarting resets it.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta

import structlog

_log = structlog.get_logger(component="ledger.mute")

_RETENTION = timedelta(hours=1)


class MuteLedger:
    """Thread-safe map of pod key -> last alert time.

    Args:
        mute_window: Minimum interval between two alerts for the same pod.
        retention:   Age after which ``sweep`` drops an entry.
    """

    def __init__(self, mute_window: timedelta, retention: timedelta = _RETENTION) -> None:
        self._mute_window = mute_window
        self._retention = retention
        self._last_sent: dict[str, datetime] = {}
        self._lock = threading.Lock()

    @property
    def mute_window(self) -> timedelta:
        return self._mute_window

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_sent)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._last_sent

    def last_sent(self, key: str) -> datetime | None:
        with self._lock:
            return self._last_sent.get(key)

    def should_alert(self, key: str, now: datetime) -> bool:
        """Return True if *key* was never alerted or its mute window elapsed."""
        with self._lock:
            last = self._last_sent.get(key)
        if last is None:
            return True
        elapsed = now - last
        if elapsed >= self._mute_window:
            return True
        _log.info(
            "alert_muted",
            key=key,
            sent_seconds_ago=int(elapsed.total_seconds()),
            mute_seconds=int(self._mute_window.total_seconds()),
        )
        return False

    def record(self, key: str, now: datetime) -> None:
        """Record an alert for *key*.  Entries never move backwards in time."""
        with self._lock:
            last = self._last_sent.get(key)
            if last is None or now > last:
                self._last_sent[key] = now

    def sweep(self, now: datetime) -> int:
        """Drop entries older than the retention window.  Returns the count removed."""
        with self._lock:
            stale = [key for key, sent in self._last_sent.items() if now - sent > self._retention]
            for key in stale:
                del self._last_sent[key]
        if stale:
            _log.debug("mute_entries_swept", removed=len(stale))
        return len(stale)
