"""Decision policy interface.

A policy maps the current snapshot and position to a Decision. Variants are
chosen at configuration time (see ``fxpilot.policy.build_policy``), never
by inspecting an object at runtime.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from fxpilot.market.models import MarketSnapshot


class Action(str, Enum):
    """Decision action."""

    BUY = "BUY"
    SELL = "SELL"
    PASS = "PASS"


@dataclass(frozen=True)
class Decision:
    """Action plus a one-sentence rationale."""

    action: Action
    rationale: str = ""

    @classmethod
    def pass_(cls, rationale: str) -> Decision:
        return cls(Action.PASS, rationale)

    @property
    def is_pass(self) -> bool:
        return self.action is Action.PASS


class DecisionPolicy(Protocol):
    """Protocol every decision source implements.

    Implementations must be total: failures are turned into a PASS
    decision, never raised into the scheduler.

    Example:
        class AlwaysPass:
            async def decide(self, snapshot, position_units):
                return Decision.pass_("waiting")

            async def close(self):
                pass
    """

    async def decide(self, snapshot: MarketSnapshot, position_units: int) -> Decision:
        """Decide what to do this tick.

        Args:
            snapshot: Market data for the current minute.
            position_units: Current long position (0 when flat).

        Returns:
            Decision for this tick.
        """
        ...

    async def close(self) -> None:
        """Release any resources held by the policy."""
        ...
