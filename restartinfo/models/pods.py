"""Accessors for raw Kubernetes pod objects.

Pod snapshots travel through the pipeline as the raw JSON dicts delivered by
the watch stream (camelCase keys).  These helpers give the rest of the code a
single place that knows the object layout.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

SLACK_CHANNEL_KEY = "alert-slack-channel"


def pod_key(pod: dict[str, Any]) -> str:
    """Return the ``namespace/name`` key for *pod*."""
    metadata = pod.get("metadata") or {}
    namespace = metadata.get("namespace") or ""
    name = metadata.get("name") or ""
    return f"{namespace}/{name}" if namespace else name


def pod_namespace(pod: dict[str, Any]) -> str:
    return str((pod.get("metadata") or {}).get("namespace") or "")


def pod_name(pod: dict[str, Any]) -> str:
    return str((pod.get("metadata") or {}).get("name") or "")


def container_statuses(pod: dict[str, Any]) -> list[dict[str, Any]]:
    return list((pod.get("status") or {}).get("containerStatuses") or [])


def init_container_statuses(pod: dict[str, Any]) -> list[dict[str, Any]]:
    return list((pod.get("status") or {}).get("initContainerStatuses") or [])


def container_specs(pod: dict[str, Any]) -> list[dict[str, Any]]:
    return list((pod.get("spec") or {}).get("containers") or [])


def container_spec(pod: dict[str, Any], name: str) -> dict[str, Any]:
    """Return the spec of container *name*, or an empty dict if absent."""
    for spec in container_specs(pod):
        if spec.get("name") == name:
            return spec
    return {}


def total_restart_count(pod: dict[str, Any] | None) -> int:
    """Sum of restartCount over all (non-init) container statuses."""
    if not pod:
        return 0
    return sum(int(status.get("restartCount") or 0) for status in container_statuses(pod))


def last_terminated(status: dict[str, Any]) -> dict[str, Any] | None:
    """Return ``lastState.terminated`` of a container status, if any."""
    return (status.get("lastState") or {}).get("terminated") or None


def slack_channel_for(pod: dict[str, Any]) -> str:
    """Resolve a per-pod channel override: annotation first, then label."""
    metadata = pod.get("metadata") or {}
    annotations = metadata.get("annotations") or {}
    if SLACK_CHANNEL_KEY in annotations:
        return str(annotations[SLACK_CHANNEL_KEY])
    labels = metadata.get("labels") or {}
    if SLACK_CHANNEL_KEY in labels:
        return str(labels[SLACK_CHANNEL_KEY])
    return ""


def parse_time(value: Any) -> datetime | None:
    """Parse a Kubernetes timestamp (RFC 3339 string or datetime)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
