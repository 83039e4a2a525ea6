"""Tests for Prometheus loop metrics."""

from __future__ import annotations

from decimal import Decimal

from prometheus_client import generate_latest
from prometheus_client.registry import CollectorRegistry

from fxpilot.ledger import ExecutionLedger
from fxpilot.metrics import FORBIDDEN_LABELS, LoopMetrics
from fxpilot.policy.base import Action, Decision


class TestLoopMetrics:
    """Counters and gauges on an isolated registry."""

    def test_uses_injected_registry(self) -> None:
        registry = CollectorRegistry()
        metrics = LoopMetrics(registry=registry)
        assert metrics.registry is registry

    def test_independent_instances(self) -> None:
        a = LoopMetrics()
        b = LoopMetrics()
        a.record_tick()
        assert a.registry.get_sample_value("fxpilot_ticks_total") == 1.0
        assert b.registry.get_sample_value("fxpilot_ticks_total") == 0.0

    def test_counters(self) -> None:
        metrics = LoopMetrics()
        metrics.record_tick()
        metrics.record_skipped_tick()
        metrics.record_tick_error()
        metrics.record_decision("BUY")
        metrics.record_decision("PASS")
        metrics.record_decision("PASS")
        metrics.record_rejection("no_position")
        metrics.record_advisory_fallback()
        metrics.record_publish(True)
        metrics.record_publish(False)

        value = metrics.registry.get_sample_value
        assert value("fxpilot_ticks_total") == 1.0
        assert value("fxpilot_ticks_skipped_total") == 1.0
        assert value("fxpilot_tick_errors_total") == 1.0
        assert value("fxpilot_decisions_total", {"action": "BUY"}) == 1.0
        assert value("fxpilot_decisions_total", {"action": "PASS"}) == 2.0
        assert value("fxpilot_ledger_rejections_total", {"reason": "no_position"}) == 1.0
        assert value("fxpilot_advisory_fallbacks_total") == 1.0
        assert value("fxpilot_signals_published_total") == 1.0
        assert value("fxpilot_signal_publish_failures_total") == 1.0

    def test_ledger_gauges(self) -> None:
        metrics = LoopMetrics()
        ledger = ExecutionLedger(starting_cash=Decimal("20000.00"))
        ledger.apply(Decision(Action.BUY), Decimal("1.10000"), 1)

        metrics.update_ledger(ledger, Decimal("1.10500"))

        value = metrics.registry.get_sample_value
        assert value("fxpilot_cash_balance") == 8999.80
        assert value("fxpilot_position_units") == 10_000
        assert value("fxpilot_unrealized_pnl") == 49.80

    def test_no_forbidden_labels(self) -> None:
        metrics = LoopMetrics()
        metrics.record_decision("SELL")
        metrics.record_rejection("insufficient_funds")

        for family in metrics.registry.collect():
            for sample in family.samples:
                assert not FORBIDDEN_LABELS & set(sample.labels)

    def test_exposition(self) -> None:
        metrics = LoopMetrics()
        metrics.record_tick()
        output = generate_latest(metrics.registry).decode()
        assert "fxpilot_ticks_total 1.0" in output
