#!/usr/bin/env python3
"""Run the simulated trading loop.

Usage:
    python scripts/run_loop.py --ticks 50 --interval 0.1 --seed 42
    python scripts/run_loop.py --policy advisory --duration 60

The advisory policy reads FXPILOT_ADVISORY_URL / FXPILOT_ADVISORY_API_KEY.
Signals go to an in-memory store unless FXPILOT_SIGNAL_URL is set.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import random
import sys
from decimal import Decimal

from fxpilot.config import AdvisoryConfig, IdentityConfig, LoopConfig, PolicyKind, PublisherConfig
from fxpilot.formatting import format_pnl, format_price
from fxpilot.logging_config import setup_logging
from fxpilot.metrics import LoopMetrics
from fxpilot.scheduler import TickScheduler
from fxpilot.signals import IdentityBootstrap, MemorySignalStore, WebhookSignalPublisher
from fxpilot.signals.base import SignalPublisher


def _build_publisher(app_id: str) -> SignalPublisher:
    if os.environ.get("FXPILOT_SIGNAL_URL"):
        return WebhookSignalPublisher(PublisherConfig(enabled=True), app_id=app_id)
    return MemorySignalStore()


async def _run(args: argparse.Namespace) -> int:
    config = LoopConfig.from_env(
        symbol=args.symbol,
        tick_interval_s=args.interval,
        starting_cash=args.starting_cash,
        policy=args.policy,
    )
    identity = IdentityBootstrap(IdentityConfig())
    publisher = _build_publisher(identity.app_id)
    metrics = LoopMetrics()
    rng = random.Random(args.seed) if args.seed is not None else None

    scheduler = TickScheduler.from_config(
        config,
        advisory=AdvisoryConfig(wire_format=args.wire_format),
        publisher=publisher,
        identity=identity,
        metrics=metrics,
        rng=rng,
    )

    print(
        f"Running {config.symbol} loop "
        f"({config.policy.value} policy, every {config.tick_interval_s}s)..."
    )
    scheduler.start()
    try:
        if args.ticks is not None:
            while scheduler.ticks_attempted < args.ticks:
                await asyncio.sleep(config.tick_interval_s / 2)
        else:
            await asyncio.sleep(args.duration)
    finally:
        await scheduler.close()

    _print_summary(scheduler)
    return 0


def _print_summary(scheduler: TickScheduler) -> None:
    ledger = scheduler.ledger
    snapshot = scheduler.snapshot
    price = snapshot.price if snapshot is not None else Decimal("0")

    print()
    print("=" * 60)
    print("LOOP SUMMARY")
    print("=" * 60)
    print(
        f"Ticks:            {scheduler.ticks_completed} "
        f"(skipped {scheduler.ticks_skipped}, failed {scheduler.ticks_failed})"
    )
    print(f"Last price:       {format_price(price)}")
    print(f"Cash balance:     {format_pnl(ledger.cash_balance)}")
    print(f"Position units:   {ledger.position_units}")
    print(f"Realized P&L:     {format_pnl(ledger.realized_pnl())}")
    print(f"Unrealized P&L:   {format_pnl(ledger.unrealized_pnl(price))}")
    print(f"Total P&L:        {format_pnl(ledger.total_pnl(price))}")
    if scheduler.last_error:
        print(f"Last error:       {scheduler.last_error}")
    print(f"Ledger consistent: {ledger.is_consistent()}")

    if ledger.history:
        print()
        print(f"{'MIN':>5}  {'ACTION':<10}  {'UNITS':>7}  {'PRICE':>8}  {'FEE':>8}  {'P&L':>10}")
        for entry in ledger.history:
            print(
                f"{entry.minute_index:>5}  {entry.action.value:<10}  {entry.units:>7}  "
                f"{format_price(entry.price):>8}  {format_pnl(entry.fee):>8}  "
                f"{format_pnl(entry.pnl):>10}"
            )


def main() -> int:
    """Run the loop."""
    parser = argparse.ArgumentParser(description="Run the simulated trading loop")
    parser.add_argument(
        "--symbol", type=str, default=None, help="Instrument symbol (default: EUR/USD)"
    )
    parser.add_argument(
        "--policy",
        type=str,
        choices=[k.value for k in PolicyKind],
        default=None,
        help="Decision policy (default: threshold)",
    )
    parser.add_argument(
        "--wire-format",
        type=str,
        choices=["json", "gemini"],
        default="json",
        help="Advisory service wire format (default: json)",
    )
    parser.add_argument(
        "--interval", type=float, default=None, help="Seconds between ticks (default: 3)"
    )
    parser.add_argument(
        "--starting-cash", type=str, default=None, help="Starting cash (default: 10000.00)"
    )
    run_length = parser.add_mutually_exclusive_group()
    run_length.add_argument("--ticks", type=int, default=None, help="Stop after N ticks")
    run_length.add_argument(
        "--duration", type=float, default=30.0, help="Run for N seconds (default: 30)"
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for the market synthesizer")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = parser.parse_args()

    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        json_format=args.json_logs,
    )

    if args.ticks is not None and args.ticks <= 0:
        print("ERROR: --ticks must be positive")
        return 1

    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        print("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
