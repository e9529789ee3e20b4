"""Pod status derivation.

Reproduces the STATUS column logic of ``kubectl get pods``: init containers
are evaluated first and short-circuit with an ``Init:`` reason; otherwise
main containers are walked in reverse, and the most specific waiting or
terminated reason wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from restartinfo.models.pods import (
    container_specs,
    container_statuses,
    init_container_statuses,
    last_terminated,
    parse_time,
)


@dataclass(frozen=True)
class PodStatusSummary:
    """Everything the pod summary line shows."""

    name: str
    ready: int
    total: int
    reason: str
    restarts: int
    last_restart: datetime | None
    created: datetime | None
    initializing: bool = False


def _later(current: datetime | None, candidate: datetime | None) -> datetime | None:
    if candidate is None:
        return current
    if current is None or candidate > current:
        return candidate
    return current


def _has_ready_condition(pod: dict[str, Any]) -> bool:
    for condition in (pod.get("status") or {}).get("conditions") or []:
        if condition.get("type") == "Ready" and condition.get("status") == "True":
            return True
    return False


def _terminated_code_reason(terminated: dict[str, Any], prefix: str = "") -> str:
    signal = int(terminated.get("signal") or 0)
    if signal != 0:
        return f"{prefix}Signal:{signal}"
    return f"{prefix}ExitCode:{int(terminated.get('exitCode') or 0)}"


def derive_pod_status(pod: dict[str, Any]) -> PodStatusSummary:
    metadata = pod.get("metadata") or {}
    status = pod.get("status") or {}
    spec = pod.get("spec") or {}

    restarts = 0
    ready = 0
    last_restart: datetime | None = None
    reason = str(status.get("reason") or status.get("phase") or "")

    initializing = False
    init_total = len(spec.get("initContainers") or [])
    for i, container in enumerate(init_container_statuses(pod)):
        restarts += int(container.get("restartCount") or 0)
        prev = last_terminated(container)
        if prev is not None:
            last_restart = _later(last_restart, parse_time(prev.get("finishedAt")))

        state = container.get("state") or {}
        terminated = state.get("terminated")
        waiting = state.get("waiting")
        if terminated is not None and int(terminated.get("exitCode") or 0) == 0:
            continue
        if terminated is not None:
            # initialization failed
            if terminated.get("reason"):
                reason = f"Init:{terminated['reason']}"
            else:
                reason = _terminated_code_reason(terminated, prefix="Init:")
        elif waiting is not None and waiting.get("reason") and waiting["reason"] != "PodInitializing":
            reason = f"Init:{waiting['reason']}"
        else:
            reason = f"Init:{i}/{init_total}"
        initializing = True
        break

    if not initializing:
        restarts = 0
        has_running = False
        for container in reversed(container_statuses(pod)):
            restarts += int(container.get("restartCount") or 0)
            prev = last_terminated(container)
            if prev is not None:
                last_restart = _later(last_restart, parse_time(prev.get("finishedAt")))

            state = container.get("state") or {}
            waiting = state.get("waiting")
            terminated = state.get("terminated")
            if waiting is not None and waiting.get("reason"):
                reason = str(waiting["reason"])
            elif terminated is not None and terminated.get("reason"):
                reason = str(terminated["reason"])
            elif terminated is not None:
                reason = _terminated_code_reason(terminated)
            elif container.get("ready") and state.get("running") is not None:
                has_running = True
                ready += 1

        # a pod with a still-running container is not "Completed"
        if reason == "Completed" and has_running:
            reason = "Running" if _has_ready_condition(pod) else "NotReady"

    if metadata.get("deletionTimestamp"):
        reason = "Unknown" if status.get("reason") == "NodeLost" else "Terminating"

    return PodStatusSummary(
        name=str(metadata.get("name") or ""),
        ready=ready,
        total=len(container_specs(pod)),
        reason=reason,
        restarts=restarts,
        last_restart=last_restart,
        created=parse_time(metadata.get("creationTimestamp")),
        initializing=initializing,
    )
