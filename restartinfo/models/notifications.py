"""Notification and diagnostic bundle data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import uuid4


@dataclass(frozen=True)
class Notification:
    """A chat message for one pod restart.  Built once, sent as a whole."""

    title: str
    body: str
    footer: str
    channel: str = ""
    notification_id: str = field(default_factory=lambda: str(uuid4()))


@dataclass(frozen=True)
class DiagnosticBundle:
    """Rendered diagnostics for one restarted container.

    ``body`` is the concatenation sent to the chat transport.  The assembler
    guarantees it never exceeds its configured size cap.
    """

    pod_summary: str
    restart_reason: str
    container_state: str
    resources: str
    pod_events: str
    node_block: str
    logs: str
    exit_code: int | None = None
    last_log_line: str = ""

    @property
    def status_block(self) -> str:
        return (
            f"```{self.pod_summary}```\n"
            f"• Reason: `{self.restart_reason}`\n"
            f"• Pod Status\n```\n{self.container_state}{self.resources}```\n"
        )

    @property
    def head(self) -> str:
        """Everything except the log block."""
        return self.status_block + self.pod_events + self.node_block

    @property
    def body(self) -> str:
        return self.head + self.logs
