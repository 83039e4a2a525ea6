"""
Prometheus metrics for the trading loop.

Labels are low-cardinality only: action names and rejection reasons. The
symbol and the caller identity are never used as labels.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge
from prometheus_client.registry import CollectorRegistry

if TYPE_CHECKING:
    from decimal import Decimal

    from fxpilot.ledger import ExecutionLedger

FORBIDDEN_LABELS = frozenset({"symbol", "ticker", "identity", "user_id", "url"})


class LoopMetrics:
    """
    Counters and gauges updated by the scheduler and the advisory policy.

    Usage:
        registry = CollectorRegistry()
        metrics = LoopMetrics(registry=registry)
        # generate_latest(registry) -> bytes for a /metrics endpoint
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

        self._ticks = Counter(
            "fxpilot_ticks",
            "Completed ticks",
            registry=self._registry,
        )
        self._ticks_skipped = Counter(
            "fxpilot_ticks_skipped",
            "Timer firings skipped because a tick was still in flight",
            registry=self._registry,
        )
        self._tick_errors = Counter(
            "fxpilot_tick_errors",
            "Ticks that ended with an unexpected error",
            registry=self._registry,
        )
        self._decisions = Counter(
            "fxpilot_decisions",
            "Decisions produced by the policy",
            ["action"],
            registry=self._registry,
        )
        self._ledger_rejections = Counter(
            "fxpilot_ledger_rejections",
            "Decisions rejected by the ledger",
            ["reason"],
            registry=self._registry,
        )
        self._advisory_fallbacks = Counter(
            "fxpilot_advisory_fallbacks",
            "Advisory calls that degraded to PASS",
            registry=self._registry,
        )
        self._signals_published = Counter(
            "fxpilot_signals_published",
            "Signals accepted by the publisher",
            registry=self._registry,
        )
        self._signal_publish_failures = Counter(
            "fxpilot_signal_publish_failures",
            "Signals the publisher failed to store",
            registry=self._registry,
        )
        self._cash_balance = Gauge(
            "fxpilot_cash_balance",
            "Current cash balance",
            registry=self._registry,
        )
        self._position_units = Gauge(
            "fxpilot_position_units",
            "Current long position in units",
            registry=self._registry,
        )
        self._unrealized_pnl = Gauge(
            "fxpilot_unrealized_pnl",
            "Unrealized P&L of the open position at the last price",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_tick(self) -> None:
        self._ticks.inc()

    def record_skipped_tick(self) -> None:
        self._ticks_skipped.inc()

    def record_tick_error(self) -> None:
        self._tick_errors.inc()

    def record_decision(self, action: str) -> None:
        self._decisions.labels(action=action).inc()

    def record_rejection(self, reason: str) -> None:
        self._ledger_rejections.labels(reason=reason).inc()

    def record_advisory_fallback(self) -> None:
        self._advisory_fallbacks.inc()

    def record_publish(self, success: bool) -> None:
        if success:
            self._signals_published.inc()
        else:
            self._signal_publish_failures.inc()

    def update_ledger(self, ledger: ExecutionLedger, price: Decimal) -> None:
        """Sync gauges from the ledger's current state."""
        self._cash_balance.set(float(ledger.cash_balance))
        self._position_units.set(ledger.position_units)
        self._unrealized_pnl.set(float(ledger.unrealized_pnl(price)))
