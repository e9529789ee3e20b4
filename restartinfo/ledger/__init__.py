"""Mute ledger for restartinfo.

Holds the per-pod last-alert timestamps that enforce the mute window.

Submodules:
    mute_ledger -- Thread-safe timestamp map with retention sweep.
"""

from restartinfo.ledger.mute_ledger import MuteLedger

__all__ = ["MuteLedger"]
