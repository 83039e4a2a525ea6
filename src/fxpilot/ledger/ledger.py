"""
Execution ledger: cash, position and trade history for one instrument.

The ledger is the only owner of this state. ``apply`` is the single
transition; everything else is a read-only view. A rejected decision
raises and leaves the ledger exactly as it was.

Accounting:
- BUY debits price * trade_size + fee and records pnl = -fee
- SELL closes the whole lot; realized pnl = net proceeds minus the cost
  (including fees) of the BUYs since the previous close
- cash always equals starting cash plus the sum of entry cash deltas
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from fxpilot.errors import InsufficientFundsError, NoPositionToCloseError
from fxpilot.ledger.models import (
    EntryAction,
    LedgerEntry,
    LedgerState,
    open_entries,
    replay_cash_balance,
)
from fxpilot.policy.base import Action

if TYPE_CHECKING:
    from fxpilot.config import LoopConfig
    from fxpilot.policy.base import Decision

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class ExecutionLedger:
    """Long-only position and cash ledger."""

    def __init__(
        self,
        starting_cash: Decimal = Decimal("10000.00"),
        trade_size: int = 10_000,
        fee_rate: Decimal = Decimal("0.00002"),
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if trade_size <= 0:
            raise ValueError(f"trade_size must be positive, got {trade_size}")
        if fee_rate < 0:
            raise ValueError(f"fee_rate must be >= 0, got {fee_rate}")
        self.starting_cash = starting_cash
        self.trade_size = trade_size
        self.fee_rate = fee_rate
        self._clock = clock
        self._state = LedgerState(cash_balance=starting_cash, position_units=0)

    @classmethod
    def from_config(
        cls, config: LoopConfig, clock: Callable[[], datetime] = _utc_now
    ) -> ExecutionLedger:
        return cls(
            starting_cash=config.starting_cash,
            trade_size=config.trade_size,
            fee_rate=config.fee_rate,
            clock=clock,
        )

    @property
    def state(self) -> LedgerState:
        return self._state

    @property
    def cash_balance(self) -> Decimal:
        return self._state.cash_balance

    @property
    def position_units(self) -> int:
        return self._state.position_units

    @property
    def history(self) -> tuple[LedgerEntry, ...]:
        return self._state.history

    def apply(self, decision: Decision, price: Decimal, minute_index: int) -> LedgerEntry | None:
        """Apply a decision at ``price``.

        Returns:
            The appended entry, or None for PASS.

        Raises:
            InsufficientFundsError: BUY costs more than the cash balance.
            NoPositionToCloseError: SELL while flat.
        """
        if decision.action is Action.BUY:
            entry = self._buy(price, minute_index, decision.rationale)
        elif decision.action is Action.SELL:
            entry = self._close_long(price, minute_index, decision.rationale)
        else:
            return None

        logger.info(
            "Trade executed",
            extra={
                "action": entry.action.value,
                "minute": minute_index,
                "units": entry.units,
                "price": str(price),
                "pnl": str(entry.pnl),
                "position": self._state.position_units,
                "cash": str(self._state.cash_balance),
            },
        )
        return entry

    def _buy(self, price: Decimal, minute_index: int, rationale: str) -> LedgerEntry:
        units = self.trade_size
        fee = units * self.fee_rate
        required = price * units + fee
        cash = self._state.cash_balance
        if cash < required:
            raise InsufficientFundsError(units=units, required=required, available=cash)

        entry = LedgerEntry(
            timestamp=self._clock(),
            minute_index=minute_index,
            action=EntryAction.BUY,
            units=units,
            price=price,
            fee=fee,
            pnl=-fee,
            rationale=rationale,
        )
        self._commit(entry, cash - required, self._state.position_units + units)
        return entry

    def _close_long(self, price: Decimal, minute_index: int, rationale: str) -> LedgerEntry:
        units = self._state.position_units
        if units == 0:
            raise NoPositionToCloseError()

        fee = units * self.fee_rate
        net_proceeds = price * units - fee
        realized = net_proceeds - self.open_cost()

        close_note = f"Closed long position. Net P&L (incl. fees): ${realized:.2f}"
        entry = LedgerEntry(
            timestamp=self._clock(),
            minute_index=minute_index,
            action=EntryAction.CLOSE_LONG,
            units=units,
            price=price,
            fee=fee,
            pnl=realized,
            rationale=f"{close_note}. {rationale}" if rationale else close_note,
        )
        self._commit(entry, self._state.cash_balance + net_proceeds, 0)
        return entry

    def _commit(self, entry: LedgerEntry, cash_balance: Decimal, position_units: int) -> None:
        self._state = LedgerState(
            cash_balance=cash_balance,
            position_units=position_units,
            history=(entry, *self._state.history),
        )

    # Derived views, never stored

    def open_cost(self) -> Decimal:
        """Cost (price * units + fee) of BUYs since the last close."""
        return sum(
            (entry.cost_basis for entry in open_entries(self._state.history)), Decimal("0")
        )

    def realized_pnl(self) -> Decimal:
        return sum(
            (e.pnl for e in self._state.history if e.action is EntryAction.CLOSE_LONG),
            Decimal("0"),
        )

    def unrealized_pnl(self, price: Decimal) -> Decimal:
        """Mark-to-market value of the open lot minus its cost."""
        if self._state.position_units == 0:
            return Decimal("0")
        return self._state.position_units * price - self.open_cost()

    def total_pnl(self, price: Decimal) -> Decimal:
        return self.realized_pnl() + self.unrealized_pnl(price)

    def is_consistent(self) -> bool:
        """Replaying the history reproduces the cash balance and position."""
        open_units = sum(e.units for e in open_entries(self._state.history))
        return (
            replay_cash_balance(self.starting_cash, self._state.history)
            == self._state.cash_balance
            and open_units == self._state.position_units
        )
