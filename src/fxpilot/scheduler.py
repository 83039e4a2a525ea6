"""
Tick scheduler: drives the synthesize -> decide -> publish -> execute loop.

States:
- STOPPED: no timer, no new ticks
- RUNNING: a timer fires every ``interval_s``; each firing starts one tick

Invariants:
- At most one tick runs at a time. A firing that finds a tick still in
  flight is skipped, not queued.
- ``stop()`` cancels the timer only; a tick already running completes.
- Ledger rejections are recorded as ``last_error`` and never stop the loop.
- The snapshot survives stop/start: a new run continues from the last one.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from fxpilot.errors import LedgerError
from fxpilot.ledger import ExecutionLedger
from fxpilot.market import MarketSynthesizer
from fxpilot.policy import build_policy
from fxpilot.policy.base import Action, Decision
from fxpilot.signals.base import Signal

if TYPE_CHECKING:
    import random

    from fxpilot.config import AdvisoryConfig, LoopConfig
    from fxpilot.ledger import LedgerEntry
    from fxpilot.market import MarketSnapshot
    from fxpilot.metrics import LoopMetrics
    from fxpilot.policy import DecisionPolicy
    from fxpilot.signals import IdentityProvider, SignalPublisher

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class SchedulerState(str, Enum):
    """Scheduler state machine states."""

    STOPPED = "STOPPED"
    RUNNING = "RUNNING"


@dataclass(frozen=True)
class TickResult:
    """Outcome of one tick."""

    snapshot: MarketSnapshot
    decision: Decision
    entry: LedgerEntry | None = None
    error: str | None = None
    published: bool = False

    @property
    def minute_index(self) -> int:
        return self.snapshot.minute_index


class TickScheduler:
    """Owns the snapshot and ledger and runs one pipeline per interval."""

    def __init__(
        self,
        synthesizer: MarketSynthesizer,
        policy: DecisionPolicy,
        ledger: ExecutionLedger,
        *,
        symbol: str = "EUR/USD",
        interval_s: float = 3.0,
        publisher: SignalPublisher | None = None,
        identity: IdentityProvider | None = None,
        metrics: LoopMetrics | None = None,
        time_fn: Callable[[], int] = _now_ms,
    ) -> None:
        if interval_s <= 0:
            raise ValueError(f"interval_s must be > 0, got {interval_s}")
        self.symbol = symbol
        self.interval_s = interval_s
        self._synthesizer = synthesizer
        self._policy = policy
        self._ledger = ledger
        self._publisher = publisher
        self._identity = identity
        self._metrics = metrics
        self._time_fn = time_fn

        self._state = SchedulerState.STOPPED
        self._snapshot: MarketSnapshot | None = None
        self._lock = asyncio.Lock()
        self._timer_task: asyncio.Task[None] | None = None
        self._tick_task: asyncio.Task[None] | None = None

        self.last_error: str | None = None
        self.last_result: TickResult | None = None
        self.ticks_completed = 0
        self.ticks_skipped = 0
        self.ticks_failed = 0

    @classmethod
    def from_config(
        cls,
        config: LoopConfig,
        *,
        policy: DecisionPolicy | None = None,
        advisory: AdvisoryConfig | None = None,
        publisher: SignalPublisher | None = None,
        identity: IdentityProvider | None = None,
        metrics: LoopMetrics | None = None,
        rng: random.Random | None = None,
    ) -> TickScheduler:
        """Wire synthesizer, policy and ledger from a LoopConfig."""
        return cls(
            MarketSynthesizer.from_config(config, rng=rng),
            policy or build_policy(config, advisory, metrics),
            ExecutionLedger.from_config(config),
            symbol=config.symbol,
            interval_s=config.tick_interval_s,
            publisher=publisher,
            identity=identity,
            metrics=metrics,
        )

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SchedulerState.RUNNING

    @property
    def snapshot(self) -> MarketSnapshot | None:
        return self._snapshot

    @property
    def ledger(self) -> ExecutionLedger:
        return self._ledger

    @property
    def ticks_attempted(self) -> int:
        """Ticks that ran to completion or failed with an unexpected error."""
        return self.ticks_completed + self.ticks_failed

    @property
    def tick_in_flight(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    def start(self) -> None:
        """STOPPED -> RUNNING. Must be called from a running event loop."""
        if self._state is SchedulerState.RUNNING:
            return
        loop = asyncio.get_running_loop()
        if self._snapshot is None:
            self._snapshot = self._synthesizer.seed()
        if self._identity is not None:
            self._identity.start()

        self._state = SchedulerState.RUNNING
        self._timer_task = loop.create_task(self._timer_loop())
        logger.info(
            "Scheduler started",
            extra={"interval_s": self.interval_s, "minute": self._snapshot.minute_index},
        )

    def stop(self) -> None:
        """RUNNING -> STOPPED. Cancels the pending firing; an in-flight tick finishes."""
        if self._state is SchedulerState.STOPPED:
            return
        self._state = SchedulerState.STOPPED
        if self._timer_task is not None:
            self._timer_task.cancel()
            self._timer_task = None
        logger.info("Scheduler stopped", extra={"ticks": self.ticks_completed})

    async def wait_idle(self) -> None:
        """Wait for the in-flight tick, if any, to finish."""
        task = self._tick_task
        if task is not None and not task.done():
            await asyncio.shield(task)

    async def close(self) -> None:
        """Stop, let the in-flight tick finish and close the collaborators."""
        timer = self._timer_task
        self.stop()
        if timer is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await timer
        await self.wait_idle()
        await self._policy.close()
        if self._publisher is not None:
            await self._publisher.close()
        if self._identity is not None:
            await self._identity.close()

    async def _timer_loop(self) -> None:
        while self._state is SchedulerState.RUNNING:
            await asyncio.sleep(self.interval_s)
            if self._state is not SchedulerState.RUNNING:
                break
            if self.tick_in_flight:
                self.ticks_skipped += 1
                if self._metrics is not None:
                    self._metrics.record_skipped_tick()
                logger.warning("Previous tick still in flight, skipping")
                continue
            self._tick_task = asyncio.create_task(self._guarded_tick())

    async def _guarded_tick(self) -> None:
        try:
            await self.run_tick()
        except Exception as e:
            self.last_error = f"Simulation step error: {e}"
            self.ticks_failed += 1
            if self._metrics is not None:
                self._metrics.record_tick_error()
            logger.exception("Tick failed", extra={"error_type": type(e).__name__})

    async def run_tick(self) -> TickResult:
        """Run one full pipeline. Serialized with manual trades."""
        async with self._lock:
            return await self._run_pipeline()

    async def _run_pipeline(self) -> TickResult:
        prev = self._snapshot or self._synthesizer.seed()
        snapshot = self._synthesizer.next(prev)
        self._snapshot = snapshot

        decision = await self._policy.decide(snapshot, self._ledger.position_units)
        if self._metrics is not None:
            self._metrics.record_decision(decision.action.value)

        published = await self._publish(decision, snapshot)

        entry: LedgerEntry | None = None
        error: str | None = None
        try:
            entry = self._ledger.apply(decision, snapshot.price, snapshot.minute_index)
        except LedgerError as e:
            error = str(e)
            if self._metrics is not None:
                self._metrics.record_rejection(e.reason)
            logger.warning(
                "Decision rejected by ledger",
                extra={
                    "minute": snapshot.minute_index,
                    "action": decision.action.value,
                    "error": error,
                },
            )
        self.last_error = error

        self.ticks_completed += 1
        if self._metrics is not None:
            self._metrics.record_tick()
            self._metrics.update_ledger(self._ledger, snapshot.price)

        result = TickResult(
            snapshot=snapshot,
            decision=decision,
            entry=entry,
            error=error,
            published=published,
        )
        self.last_result = result
        return result

    async def _publish(self, decision: Decision, snapshot: MarketSnapshot) -> bool:
        if decision.is_pass or self._publisher is None:
            return False

        identity_key = self._identity.current if self._identity is not None else None
        if identity_key is None:
            logger.debug(
                "No identity yet, signal not published",
                extra={"minute": snapshot.minute_index},
            )
            return False

        signal = Signal.from_decision(
            decision,
            ticker=self.symbol,
            price=snapshot.price,
            trade_size=self._ledger.trade_size,
            timestamp_ms=self._time_fn(),
        )
        try:
            result = await self._publisher.publish(signal, identity_key)
        except Exception:
            # Publishers report failures in PublishResult; this is a broken sink
            logger.exception("Signal publisher raised", extra={"publisher": self._publisher.name})
            success = False
        else:
            success = result.success

        if self._metrics is not None:
            self._metrics.record_publish(success)
        return success

    async def execute_manual(
        self, action: Action, rationale: str = "Manual trade"
    ) -> LedgerEntry | None:
        """Apply a manual BUY/SELL at the current price.

        Raises:
            LedgerError: the ledger rejected the trade (also stored as last_error).
        """
        async with self._lock:
            if self._snapshot is None:
                self._snapshot = self._synthesizer.seed()
            snapshot = self._snapshot
            try:
                entry = self._ledger.apply(
                    Decision(action, rationale), snapshot.price, snapshot.minute_index
                )
            except LedgerError as e:
                self.last_error = str(e)
                if self._metrics is not None:
                    self._metrics.record_rejection(e.reason)
                raise
            self.last_error = None
            if self._metrics is not None:
                self._metrics.update_ledger(self._ledger, snapshot.price)
            return entry
