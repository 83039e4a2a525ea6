"""RSI threshold policy.

Buys an oversold market when flat, sells an overbought one when long and
passes otherwise. Deterministic given the same snapshot sequence.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from fxpilot.policy.base import Action, Decision

if TYPE_CHECKING:
    from fxpilot.market.models import MarketSnapshot


@dataclass(frozen=True)
class ThresholdPolicyConfig:
    """RSI thresholds for ThresholdPolicy."""

    oversold: float = 30.0
    overbought: float = 70.0

    def __post_init__(self) -> None:
        if self.oversold >= self.overbought:
            raise ValueError(
                f"oversold ({self.oversold}) must be below overbought ({self.overbought})"
            )


class ThresholdPolicy:
    """Deterministic RSI rule."""

    def __init__(self, config: ThresholdPolicyConfig | None = None) -> None:
        self.config = config or ThresholdPolicyConfig()

    def evaluate(self, snapshot: MarketSnapshot, position_units: int) -> Decision:
        """Synchronous form of ``decide``."""
        rsi = snapshot.rsi
        oversold = self.config.oversold
        overbought = self.config.overbought

        if rsi < oversold and position_units == 0:
            return Decision(
                Action.BUY,
                f"RSI {rsi:.2f} is below {oversold:g} (oversold) with no open position.",
            )
        if rsi > overbought and position_units > 0:
            return Decision(
                Action.SELL,
                f"RSI {rsi:.2f} is above {overbought:g} (overbought); closing the long position.",
            )
        if position_units > 0:
            reason = (
                f"RSI {rsi:.2f} has not reached {overbought:g}; "
                f"holding {position_units} units."
            )
        else:
            reason = f"RSI {rsi:.2f} is not below {oversold:g}; staying flat."
        return Decision.pass_(reason)

    async def decide(self, snapshot: MarketSnapshot, position_units: int) -> Decision:
        return self.evaluate(snapshot, position_units)

    async def close(self) -> None:
        return None
