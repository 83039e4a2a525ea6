"""
Synthetic one-minute market data.

Each call to ``next`` draws a small random drift for the price, moves the
RSI in the direction of the price change, nudges the daily volume and
rebuilds a three-level order book around the new price. The shape is
deterministic; values come from the injected ``random.Random``, so a
seeded RNG reproduces a run exactly.
"""

from __future__ import annotations

import logging
import random
from decimal import Decimal
from typing import TYPE_CHECKING

from fxpilot.market.models import (
    RSI_MAX,
    RSI_MIN,
    MarketSnapshot,
    OrderBook,
    PriceLevel,
    quantize_price,
)

if TYPE_CHECKING:
    from fxpilot.config import LoopConfig

logger = logging.getLogger(__name__)

INITIAL_PRICE = Decimal("1.10550")
INITIAL_RSI = 50.0
INITIAL_DAILY_VOLUME = 500_000_000

MAX_DRIFT = 0.00015  # Full width of the per-minute price drift
MAX_RSI_STEP = 2.0
VOLUME_DELTA_MIN = -200_000
VOLUME_DELTA_MAX = 299_999

BASE_SPREAD = 0.00015
SPREAD_JITTER = 0.000025
BASE_LEVEL_VOLUME = 500_000
LEVEL_OFFSETS = (Decimal("0.00005"), Decimal("0.00010"))


class MarketSynthesizer:
    """Produces the next minute's snapshot from the previous one."""

    def __init__(
        self,
        price_floor: Decimal = Decimal("1.09000"),
        price_ceiling: Decimal = Decimal("1.12000"),
        initial_price: Decimal = INITIAL_PRICE,
        initial_rsi: float = INITIAL_RSI,
        rng: random.Random | None = None,
    ) -> None:
        if price_floor >= price_ceiling:
            raise ValueError(
                f"price_floor {price_floor} must be below price_ceiling {price_ceiling}"
            )
        self.price_floor = quantize_price(price_floor)
        self.price_ceiling = quantize_price(price_ceiling)
        self.initial_price = quantize_price(initial_price)
        self.initial_rsi = initial_rsi
        self._rng = rng or random.Random()

    @classmethod
    def from_config(cls, config: LoopConfig, rng: random.Random | None = None) -> MarketSynthesizer:
        return cls(
            price_floor=config.price_floor,
            price_ceiling=config.price_ceiling,
            initial_price=config.initial_price,
            initial_rsi=config.initial_rsi,
            rng=rng,
        )

    def seed(self, initial_price: Decimal | None = None) -> MarketSnapshot:
        """Minute 0: fixed starting price and RSI, fresh order book."""
        if initial_price is None:
            price = self.initial_price
        else:
            price = self._clamp(quantize_price(initial_price))
        return MarketSnapshot(
            price=price,
            rsi=round(self.initial_rsi, 2),
            daily_volume=INITIAL_DAILY_VOLUME,
            minute_index=0,
            order_book=self.order_book(price),
        )

    def next(self, prev: MarketSnapshot) -> MarketSnapshot:
        """Synthesize the minute after ``prev``."""
        drift = (self._rng.random() - 0.5) * MAX_DRIFT
        price = quantize_price(self._clamp(prev.price + Decimal(str(drift))))

        direction = 1.0 if price > prev.price else -1.0
        rsi = prev.rsi + direction * self._rng.random() * MAX_RSI_STEP
        rsi = round(min(max(rsi, RSI_MIN), RSI_MAX), 2)

        volume_delta = self._rng.randint(VOLUME_DELTA_MIN, VOLUME_DELTA_MAX)
        daily_volume = max(prev.daily_volume + volume_delta, 0)

        snapshot = MarketSnapshot(
            price=price,
            rsi=rsi,
            daily_volume=daily_volume,
            minute_index=prev.minute_index + 1,
            order_book=self.order_book(price),
        )
        logger.debug(
            "Synthesized minute",
            extra={"minute": snapshot.minute_index, "price": str(price), "rsi": rsi},
        )
        return snapshot

    def order_book(self, price: Decimal) -> OrderBook:
        """Three levels a side around ``price`` with a randomized spread.

        The volume factor skews touch sizes inversely: a heavy bid comes
        with a light ask and vice versa.
        """
        spread = BASE_SPREAD + self._rng.uniform(-SPREAD_JITTER, SPREAD_JITTER)
        half_spread = Decimal(str(spread / 2))
        bid = quantize_price(price - half_spread)
        ask = quantize_price(price + half_spread)

        volume_factor = self._rng.uniform(0.8, 1.2)

        bids = (
            PriceLevel(bid, int(BASE_LEVEL_VOLUME * volume_factor * 1.5)),
            PriceLevel(bid - LEVEL_OFFSETS[0], int(BASE_LEVEL_VOLUME * 1.2)),
            PriceLevel(bid - LEVEL_OFFSETS[1], int(BASE_LEVEL_VOLUME * 0.8)),
        )
        asks = (
            PriceLevel(ask, int(BASE_LEVEL_VOLUME * (2 - volume_factor) * 1.5)),
            PriceLevel(ask + LEVEL_OFFSETS[0], int(BASE_LEVEL_VOLUME * 1.1)),
            PriceLevel(ask + LEVEL_OFFSETS[1], int(BASE_LEVEL_VOLUME * 0.7)),
        )
        return OrderBook(bids=bids, asks=asks)

    def _clamp(self, price: Decimal) -> Decimal:
        return min(max(price, self.price_floor), self.price_ceiling)
