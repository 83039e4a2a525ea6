"""Position and cash ledger."""

from __future__ import annotations

from fxpilot.ledger.ledger import ExecutionLedger
from fxpilot.ledger.models import (
    EntryAction,
    LedgerEntry,
    LedgerState,
    open_entries,
    replay_cash_balance,
)

__all__ = [
    "EntryAction",
    "ExecutionLedger",
    "LedgerEntry",
    "LedgerState",
    "open_entries",
    "replay_cash_balance",
]
