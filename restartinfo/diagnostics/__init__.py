"""Diagnostics package -- pod status derivation, table printers and the
size-bounded diagnostics assembler used to build restart alerts."""

from restartinfo.diagnostics.assembler import DiagnosticsAssembler, DiagnosticsError
from restartinfo.diagnostics.status import PodStatusSummary, derive_pod_status

__all__ = [
    "DiagnosticsAssembler",
    "DiagnosticsError",
    "PodStatusSummary",
    "derive_pod_status",
]
