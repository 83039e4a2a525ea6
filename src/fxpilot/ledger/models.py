"""Ledger entries and state snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime  # noqa: TC003 - used at runtime in dataclass fields
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


class EntryAction(str, Enum):
    """What a ledger entry records."""

    BUY = "BUY"
    CLOSE_LONG = "CLOSE_LONG"


@dataclass(frozen=True)
class LedgerEntry:
    """One applied decision.

    ``pnl`` is ``-fee`` for a BUY (entry cost, nothing realized yet) and the
    realized net profit for a CLOSE_LONG.
    """

    timestamp: datetime
    minute_index: int
    action: EntryAction
    units: int
    price: Decimal
    fee: Decimal
    pnl: Decimal
    rationale: str = ""

    @property
    def notional(self) -> Decimal:
        return self.price * self.units

    @property
    def cash_delta(self) -> Decimal:
        """Signed change this entry made to the cash balance."""
        if self.action is EntryAction.BUY:
            return -(self.notional + self.fee)
        return self.notional - self.fee

    @property
    def cost_basis(self) -> Decimal:
        """Cash paid for a BUY including its fee; zero for closes."""
        if self.action is EntryAction.BUY:
            return self.notional + self.fee
        return Decimal("0")


@dataclass(frozen=True)
class LedgerState:
    """Immutable view of the ledger. ``history`` is newest first."""

    cash_balance: Decimal
    position_units: int
    history: tuple[LedgerEntry, ...] = ()


def replay_cash_balance(starting_cash: Decimal, history: Iterable[LedgerEntry]) -> Decimal:
    """Cash balance obtained by applying every entry's cash delta."""
    return starting_cash + sum((entry.cash_delta for entry in history), Decimal("0"))


def open_entries(history: Iterable[LedgerEntry]) -> list[LedgerEntry]:
    """BUY entries since the most recent CLOSE_LONG (newest first)."""
    entries: list[LedgerEntry] = []
    for entry in history:
        if entry.action is EntryAction.CLOSE_LONG:
            break
        entries.append(entry)
    return entries
