"""Diagnostics assembler.

Builds the message body for one restarted container:

    pod summary -> restart reason -> container state + resources
    -> pod warning events -> node status and warning events
    -> previous container logs (tail)

The body is capped at ``max_body_chars``.  Slack truncates attachment text
above 8000 characters, so the default cap leaves headroom below that.  When
the cap would be exceeded the log block loses its earliest lines first; the
event blocks are trimmed the same way only if they alone overflow.  The
status block (summary, reason, container state, resources) is held to half
the cap.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, Protocol

import structlog

from restartinfo.diagnostics.printers import (
    container_resources,
    describe_container_state,
    last_state_reason,
    print_events,
    print_node,
    print_pod,
)
from restartinfo.diagnostics.status import derive_pod_status
from restartinfo.models.notifications import DiagnosticBundle
from restartinfo.models.pods import container_spec, last_terminated, pod_name, pod_namespace

_log = structlog.get_logger(component="diagnostics.assembler")

DEFAULT_MAX_BODY_CHARS = 7500
DEFAULT_LOG_TAIL_LINES = 50

NO_POD_EVENTS = "• No Warning Pod Events\n"
NO_LOGS = "• No Logs Before Restart\n"


class DiagnosticsError(Exception):
    """Raised when diagnostics cannot be gathered for a pod."""


class ClusterReader(Protocol):
    async def list_events(self, namespace: str, field_selector: str = ...) -> list[dict[str, Any]]: ...

    async def list_node_events(self) -> list[dict[str, Any]]: ...

    async def get_node(self, name: str) -> dict[str, Any]: ...

    async def read_previous_log(
        self,
        namespace: str,
        pod: str,
        container: str,
        tail_lines: int = ...,
        timestamps: bool = ...,
    ) -> str: ...


def fenced(title: str, text: str) -> str:
    return f"• {title}\n```\n{text}```\n"


def tail_within(text: str, budget: int) -> str:
    """Return the longest suffix of *text* within *budget* characters.

    The suffix starts at a line boundary whenever that leaves something to
    show, so the earliest (partial) line is dropped rather than cut.
    """
    if budget <= 0:
        return ""
    if len(text) <= budget:
        return text
    cut = len(text) - budget
    tail = text[cut:]
    if text[cut - 1] == "\n":
        return tail
    newline = tail.find("\n")
    if newline == -1 or newline + 1 == len(tail):
        return tail
    return tail[newline + 1 :]


def last_non_empty_line(text: str) -> str:
    for line in reversed(text.split("\n")):
        if line:
            return line
    return ""


class DiagnosticsAssembler:
    """Gathers and renders diagnostics for a restarted container.

    Args:
        cluster:         Event/node/log source.
        max_body_chars:  Hard cap on the rendered body.
        log_tail_lines:  Number of previous-log lines to request.
        clock:           Returns "now" (UTC); injectable for tests.
    """

    def __init__(
        self,
        cluster: ClusterReader,
        max_body_chars: int = DEFAULT_MAX_BODY_CHARS,
        log_tail_lines: int = DEFAULT_LOG_TAIL_LINES,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._cluster = cluster
        self._max_body_chars = max_body_chars
        self._log_tail_lines = log_tail_lines
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    async def assemble(self, pod: dict[str, Any], status: dict[str, Any]) -> DiagnosticBundle:
        """Render diagnostics for container *status* of *pod*.

        Raises:
            DiagnosticsError: the pod has no node assignment.
            kubernetes_asyncio.client.ApiException: a cluster lookup failed.
        """
        now = self._clock()
        namespace = pod_namespace(pod)
        name = pod_name(pod)
        container = str(status.get("name") or "")

        pod_summary = print_pod(derive_pod_status(pod), now)
        restart_reason = last_state_reason(status)
        container_state = describe_container_state(status)
        resources = container_resources(container_spec(pod, container))

        pod_events_text = print_events(await self._cluster.list_events(namespace), name)
        node_text = await self._node_text(pod, now)
        logs = await self._cluster.read_previous_log(
            namespace,
            name,
            container,
            tail_lines=self._log_tail_lines,
            timestamps=True,
        )

        pod_summary, restart_reason, container_state, resources = _fit_status(
            pod_summary, restart_reason, container_state, resources, self._max_body_chars // 2
        )

        bundle = DiagnosticBundle(
            pod_summary=pod_summary,
            restart_reason=restart_reason,
            container_state=container_state,
            resources=resources,
            pod_events="",
            node_block="",
            logs="",
            exit_code=_last_exit_code(status),
            last_log_line=last_non_empty_line(logs),
        )
        pod_events, node_block = self._fit_events(
            pod_events_text, node_text, self._max_body_chars - len(bundle.status_block)
        )
        bundle = replace(bundle, pod_events=pod_events, node_block=node_block)
        bundle = replace(bundle, logs=self._fit_logs(logs, self._max_body_chars - len(bundle.head)))
        _log.debug(
            "diagnostics_assembled",
            namespace=namespace,
            pod=name,
            container=container,
            body_chars=len(bundle.body),
            log_chars=len(logs),
        )
        return bundle

    async def _node_text(self, pod: dict[str, Any], now: datetime) -> str:
        node_name = str((pod.get("spec") or {}).get("nodeName") or "")
        if not node_name:
            raise DiagnosticsError(f"pod {pod_namespace(pod)}/{pod_name(pod)} is not assigned to a node")
        try:
            node = await self._cluster.get_node(node_name)
        except Exception:
            _log.error("node_lookup_failed", node=node_name, hint="node was probably deleted")
            raise
        events = await self._cluster.list_node_events()
        return print_node(node, now) + print_events(events, node_name)

    def _fit_events(self, pod_events_text: str, node_text: str, budget: int) -> tuple[str, str]:
        overhead = max(len(fenced("Pod Events", "")), len(NO_POD_EVENTS)) + len(fenced("Node Status and Events", ""))
        if budget < overhead:
            _log.warning("event_blocks_dropped", budget=budget)
            return "", ""
        available = budget - overhead
        if len(pod_events_text) + len(node_text) > available:
            # Node status stays readable: it gets what pod events leave over
            pod_events_text = tail_within(pod_events_text, available // 2)
            node_text = tail_within(node_text, available - len(pod_events_text))

        pod_events = fenced("Pod Events", pod_events_text) if pod_events_text else NO_POD_EVENTS
        return pod_events, fenced("Node Status and Events", node_text)

    def _fit_logs(self, logs: str, budget: int) -> str:
        if not logs:
            return NO_LOGS if len(NO_LOGS) <= budget else ""
        kept = tail_within(logs, budget - len(fenced("Pod Logs Before Restart", "")))
        if not kept:
            return ""
        if len(kept) < len(logs):
            _log.info("logs_truncated", kept_chars=len(kept), original_chars=len(logs))
        return fenced("Pod Logs Before Restart", kept)


def _fit_status(
    pod_summary: str,
    restart_reason: str,
    container_state: str,
    resources: str,
    budget: int,
) -> tuple[str, str, str, str]:
    """Trim the status block parts, in this order of priority, to fit *budget*.

    Termination reasons and messages are unbounded, and so is the number of
    resource entries; whatever does not fit is cut from the end.
    """
    fixed = len(DiagnosticBundle("", "", "", "", "", "", "").status_block)
    remaining = max(budget - fixed, 0)
    fitted: list[str] = []
    for part in (pod_summary, restart_reason, container_state, resources):
        kept = part[:remaining]
        remaining -= len(kept)
        fitted.append(kept)
    if sum(map(len, fitted)) < len(pod_summary) + len(restart_reason) + len(container_state) + len(resources):
        _log.info("status_block_truncated", budget=budget)
    return fitted[0], fitted[1], fitted[2], fitted[3]


def _last_exit_code(status: dict[str, Any]) -> int | None:
    terminated = last_terminated(status)
    if terminated is None:
        return None
    return int(terminated.get("exitCode") or 0)
