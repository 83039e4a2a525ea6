"""fxpilot: single-instrument simulated trading loop.

Synthesizes one minute of market data per tick, asks a decision policy
for BUY/SELL/PASS, publishes non-PASS decisions as signals and applies
them to a long-only cash/position ledger.
"""

from __future__ import annotations

from fxpilot.config import AdvisoryConfig, IdentityConfig, LoopConfig, PolicyKind, PublisherConfig
from fxpilot.errors import (
    DecisionSourceUnavailable,
    FxPilotError,
    InsufficientFundsError,
    LedgerError,
    NoPositionToCloseError,
    PublishFailure,
)
from fxpilot.ledger import ExecutionLedger, LedgerEntry, LedgerState
from fxpilot.market import MarketSnapshot, MarketSynthesizer
from fxpilot.policy import Action, AdvisoryPolicy, Decision, ThresholdPolicy
from fxpilot.scheduler import SchedulerState, TickResult, TickScheduler

__version__ = "0.1.0"

__all__ = [
    "Action",
    "AdvisoryConfig",
    "AdvisoryPolicy",
    "Decision",
    "DecisionSourceUnavailable",
    "ExecutionLedger",
    "FxPilotError",
    "IdentityConfig",
    "InsufficientFundsError",
    "LedgerEntry",
    "LedgerError",
    "LedgerState",
    "LoopConfig",
    "MarketSnapshot",
    "MarketSynthesizer",
    "NoPositionToCloseError",
    "PolicyKind",
    "PublishFailure",
    "PublisherConfig",
    "SchedulerState",
    "ThresholdPolicy",
    "TickResult",
    "TickScheduler",
    "__version__",
]
