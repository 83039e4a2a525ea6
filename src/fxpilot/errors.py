"""
Error taxonomy for the trading loop.

Only ledger errors are user-visible: the scheduler surfaces them as its
``last_error``. Advisory and publish failures are absorbed by the
collaborator that raised them (PASS decision, failed PublishResult).
None of these stop the loop.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class FxPilotError(Exception):
    """Base class for all fxpilot errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context = context or {}


class LedgerError(FxPilotError):
    """A decision could not be applied; the ledger is unchanged."""

    reason = "ledger_error"


class InsufficientFundsError(LedgerError):
    """BUY attempted with less cash than cost plus fee."""

    reason = "insufficient_funds"

    def __init__(self, units: int, required: Decimal, available: Decimal) -> None:
        super().__init__(
            f"Cannot BUY {units} units. Insufficient funds.",
            context={"units": units, "required": str(required), "available": str(available)},
        )
        self.units = units
        self.required = required
        self.available = available


class NoPositionToCloseError(LedgerError):
    """SELL attempted while flat."""

    reason = "no_position"

    def __init__(self) -> None:
        super().__init__("Cannot SELL, no current long position to close.")


class DecisionSourceUnavailable(FxPilotError):
    """Advisory call failed, timed out or returned an unusable response."""


class PublishFailure(FxPilotError):
    """Signal sink rejected the write or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message, context={"status_code": status_code})
        self.status_code = status_code
