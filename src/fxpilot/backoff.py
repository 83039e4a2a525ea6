"""
Exponential backoff for the HTTP collaborators.

- HTTP 429 is the only status worth retrying; everything else falls back
- Delay doubles per attempt from a base, plus additive jitter, capped
- A server-provided Retry-After is respected when it is longer
- Jitter can come from a seeded RNG so tests are deterministic
"""

from __future__ import annotations

import random
from dataclasses import dataclass


class RateLimitError(Exception):
    """Raised when a collaborator answers HTTP 429."""

    def __init__(self, message: str, retry_after_ms: int | None = None) -> None:
        super().__init__(message)
        self.retry_after_ms = retry_after_ms


@dataclass
class BackoffConfig:
    """Configuration for exponential backoff."""

    base_delay_ms: int = 1000
    max_delay_ms: int = 8000
    multiplier: float = 2.0
    jitter_ms: int = 500  # Uniform [0, jitter_ms] added to each delay
    max_retries: int = 3

    @classmethod
    def from_seconds(
        cls,
        base_delay_s: float,
        max_delay_s: float,
        jitter_s: float,
        max_retries: int,
    ) -> BackoffConfig:
        """Build from the second-based fields used by collaborator configs."""
        return cls(
            base_delay_ms=int(base_delay_s * 1000),
            max_delay_ms=int(max_delay_s * 1000),
            jitter_ms=int(jitter_s * 1000),
            max_retries=max_retries,
        )


@dataclass
class BackoffState:
    """Mutable state for backoff tracking."""

    attempt: int = 0

    def record_error(self) -> None:
        """Record a retryable failure."""
        self.attempt += 1

    def exhausted(self, config: BackoffConfig) -> bool:
        """True once ``max_retries`` retries have been used."""
        return self.attempt > config.max_retries


def compute_backoff_delay(
    config: BackoffConfig,
    state: BackoffState,
    retry_after_ms: int | None = None,
    *,
    rng: random.Random | None = None,
) -> int:
    """
    Delay in milliseconds before the next retry.

    attempt 1 -> base, attempt 2 -> base * multiplier, ... capped at
    ``max_delay_ms`` before jitter is added.

    Args:
        config: Backoff configuration.
        state: Current backoff state.
        retry_after_ms: Server-provided retry delay (Retry-After header).
        rng: Optional seeded Random instance for deterministic jitter.
    """
    if state.attempt == 0:
        return 0

    delay = config.base_delay_ms * (config.multiplier ** (state.attempt - 1))
    delay = min(delay, config.max_delay_ms)

    if config.jitter_ms > 0:
        source = rng if rng is not None else random
        delay += source.uniform(0, config.jitter_ms)

    if retry_after_ms is not None and retry_after_ms > 0:
        delay = max(delay, retry_after_ms)

    return int(delay)


def parse_retry_after(value: str | None) -> int | None:
    """Retry-After header (seconds) to milliseconds; None if absent or not numeric."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return int(seconds * 1000) if seconds > 0 else None
