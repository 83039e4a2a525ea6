"""In-process signal store with last-write-wins semantics."""

from __future__ import annotations

import logging

from fxpilot.signals.base import PublishResult, Signal, SignalPublisher

logger = logging.getLogger(__name__)


class MemorySignalStore(SignalPublisher):
    """Keeps the latest signal per identity in a dict.

    Used for local runs and tests; ``latest`` is what a polling consumer
    would read.
    """

    def __init__(self) -> None:
        self._signals: dict[str, Signal] = {}
        self.write_count = 0

    @property
    def name(self) -> str:
        return "memory"

    async def publish(self, signal: Signal, identity_key: str) -> PublishResult:
        self._signals[identity_key] = signal
        self.write_count += 1
        logger.info(
            "Signal stored",
            extra={
                "publisher": self.name,
                "action": signal.action.value,
                "price": str(signal.price),
            },
        )
        return PublishResult(success=True, publisher_name=self.name, identity_key=identity_key)

    def latest(self, identity_key: str) -> Signal | None:
        return self._signals.get(identity_key)

    def __len__(self) -> int:
        return len(self._signals)
