"""Plain-text table printers for pods, nodes, containers and events.

Pure formatting: every decision (status reason, which container, which
events) is made by the caller.  Output follows kubectl's ``get`` / ``describe``
layout so it reads familiarly in a chat message.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from restartinfo.diagnostics.status import PodStatusSummary
from restartinfo.models.pods import last_terminated, parse_time

_PADDING = 2
_INDENT = "  "
_RFC1123Z = "%a, %d %b %Y %H:%M:%S %z"


class TableWriter:
    """Collects tab-separated lines at indentation levels, then aligns them.

    Cells are tab-terminated; the text after the last tab on a line is not
    aligned.  Column widths are computed per block of consecutive lines that
    share the column, as kubectl's tab writer does.
    """

    def __init__(self) -> None:
        self._buf: list[str] = []

    def write(self, level: int, text: str) -> None:
        self._buf.append(_INDENT * level + text)

    def render(self) -> str:
        return tabbed_string("".join(self._buf))


def tabbed_string(text: str) -> str:
    lines = text.split("\n")
    rows = [line.split("\t") for line in lines]
    widths: list[list[int]] = [[0] * (len(row) - 1) for row in rows]

    max_cols = max((len(row) - 1 for row in rows), default=0)
    for col in range(max_cols):
        block: list[int] = []
        for idx, row in enumerate(rows + [[]]):
            if len(row) - 1 > col:
                block.append(idx)
                continue
            if block:
                width = max(len(rows[i][col]) for i in block) + _PADDING
                for i in block:
                    widths[i][col] = width
                block = []

    out: list[str] = []
    for row, row_widths in zip(rows, widths, strict=True):
        cells = [cell.ljust(width) for cell, width in zip(row[:-1], row_widths, strict=True)]
        out.append("".join(cells) + row[-1])
    return "\n".join(out)


def human_duration(seconds: float) -> str:
    """Approximate a duration the way kubectl's AGE column does."""
    secs = int(seconds)
    if secs < -1:
        return "<invalid>"
    if secs < 0:
        return "0s"
    if secs < 60 * 2:
        return f"{secs}s"
    minutes = secs // 60
    if minutes < 10:
        s = secs % 60
        return f"{minutes}m" if s == 0 else f"{minutes}m{s}s"
    if minutes < 60 * 3:
        return f"{minutes}m"
    hours = secs // 3600
    if hours < 8:
        m = minutes % 60
        return f"{hours}h" if m == 0 else f"{hours}h{m}m"
    if hours < 48:
        return f"{hours}h"
    if hours < 24 * 8:
        h = hours % 24
        return f"{hours // 24}d" if h == 0 else f"{hours // 24}d{h}h"
    if hours < 24 * 365 * 2:
        return f"{hours // 24}d"
    if hours < 24 * 365 * 8:
        dy = (hours // 24) % 365
        years = hours // 24 // 365
        return f"{years}y" if dy == 0 else f"{years}y{dy}d"
    return f"{hours // 24 // 365}y"


def translate_timestamp_since(timestamp: datetime | None, now: datetime) -> str:
    if timestamp is None:
        return "<unknown>"
    return human_duration((now - timestamp).total_seconds())


def _rfc1123z(value: Any) -> str:
    ts = parse_time(value)
    if ts is None:
        return ""
    return ts.strftime(_RFC1123Z)


def format_event_time(value: datetime | None) -> str:
    if value is None:
        return "0001-01-01 00:00:00 +0000 UTC"
    return value.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%S +0000 UTC")


def print_pod(summary: PodStatusSummary, now: datetime) -> str:
    restarts = str(summary.restarts)
    if summary.last_restart is not None:
        restarts = f"{summary.restarts} ({translate_timestamp_since(summary.last_restart, now)} ago)"
    w = TableWriter()
    w.write(0, "NAME\tREADY\tSTATUS\tRESTARTS\tAGE\n")
    w.write(
        0,
        f"{summary.name}\t{summary.ready}/{summary.total}\t{summary.reason}\t{restarts}\t"
        f"{translate_timestamp_since(summary.created, now)}\n",
    )
    return w.render()


def print_node(node: dict[str, Any], now: datetime) -> str:
    metadata = node.get("metadata") or {}
    status = node.get("status") or {}
    states: list[str] = []
    for condition in status.get("conditions") or []:
        if condition.get("type") == "Ready":
            states.append("Ready" if condition.get("status") == "True" else "NotReady")
            break
    if not states:
        states.append("Unknown")
    if (node.get("spec") or {}).get("unschedulable"):
        states.append("SchedulingDisabled")

    version = (status.get("nodeInfo") or {}).get("kubeletVersion") or ""
    age = translate_timestamp_since(parse_time(metadata.get("creationTimestamp")), now)
    w = TableWriter()
    w.write(0, "NAME\tSTATUS\tAGE\tVERSION\n")
    w.write(0, f"{metadata.get('name', '')}\t{','.join(states)}\t{age}\t{version}\n")
    return w.render()


def last_state_reason(status: dict[str, Any]) -> str:
    terminated = last_terminated(status) or {}
    return f"{terminated.get('reason') or ''} (ExitCode {int(terminated.get('exitCode') or 0)})"


def describe_container_state(status: dict[str, Any]) -> str:
    w = TableWriter()
    w.write(0, f"{status.get('name', '')}:\n")
    w.write(1, f"Ready:\t{'True' if status.get('ready') else 'False'}\n")
    w.write(1, f"Restart Count:\t{int(status.get('restartCount') or 0)}\n")
    _describe_state(w, "State", status.get("state") or {})
    last_state = status.get("lastState") or {}
    if last_state.get("terminated"):
        _describe_state(w, "Last State", last_state)
    return w.render()


def _describe_state(w: TableWriter, state_name: str, state: dict[str, Any]) -> None:
    running = state.get("running")
    waiting = state.get("waiting")
    terminated = state.get("terminated")
    if running is not None:
        w.write(1, f"{state_name}:\tRunning\n")
        w.write(2, f"Started:\t{_rfc1123z(running.get('startedAt'))}\n")
    elif waiting is not None:
        w.write(1, f"{state_name}:\tWaiting\n")
        if waiting.get("reason"):
            w.write(2, f"Reason:\t{waiting['reason']}\n")
    elif terminated is not None:
        w.write(1, f"{state_name}:\tTerminated\n")
        if terminated.get("reason"):
            w.write(2, f"Reason:\t{terminated['reason']}\n")
        if terminated.get("message"):
            w.write(2, f"Message:\t{terminated['message']}\n")
        w.write(2, f"Exit Code:\t{int(terminated.get('exitCode') or 0)}\n")
        if int(terminated.get("signal") or 0) > 0:
            w.write(2, f"Signal:\t{int(terminated['signal'])}\n")
        w.write(2, f"Started:\t{_rfc1123z(terminated.get('startedAt'))}\n")
        w.write(2, f"Finished:\t{_rfc1123z(terminated.get('finishedAt'))}\n")
    else:
        w.write(1, f"{state_name}:\tWaiting\n")


def container_resources(spec: dict[str, Any]) -> str:
    resources = spec.get("resources") or {}
    w = TableWriter()
    for section, title in (("limits", "Limits"), ("requests", "Requests")):
        values = resources.get(section) or {}
        if values:
            w.write(1, f"{title}:\n")
        for name in sorted(values):
            w.write(2, f"{name}:\t{values[name]}\n")
    return w.render()


def event_time(event: dict[str, Any]) -> datetime | None:
    """Last-seen time of a core/v1 event (falls back to eventTime)."""
    return parse_time(event.get("lastTimestamp")) or parse_time(event.get("eventTime"))


def print_events(events: list[dict[str, Any]], involved_name: str) -> str:
    """One ``<last seen>, <reason>, <message>`` line per event about *involved_name*.

    Events are ordered by last-seen time, ties broken by involved object name.
    """
    epoch = datetime.min.replace(tzinfo=UTC)

    def _sort_key(event: dict[str, Any]) -> tuple[datetime, str]:
        ts = event_time(event) or epoch
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=UTC)
        return ts, str((event.get("involvedObject") or {}).get("name") or "")

    lines = []
    for event in sorted(events, key=_sort_key):
        if (event.get("involvedObject") or {}).get("name") != involved_name:
            continue
        lines.append(
            f"{format_event_time(event_time(event))}, {event.get('reason') or ''}, {event.get('message') or ''}\n"
        )
    return "".join(lines)
