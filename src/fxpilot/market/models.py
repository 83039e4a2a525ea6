"""Market data types produced by the synthesizer.

All types are frozen: a snapshot is handed to the scheduler for one tick
and then superseded, never modified.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

RSI_MIN = 20.0
RSI_MAX = 80.0

_PRICE_QUANTUM = Decimal("0.00001")


def quantize_price(value: Decimal | float) -> Decimal:
    """Round a price to 5 decimal places."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(_PRICE_QUANTUM, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PriceLevel:
    """One order book level."""

    price: Decimal
    size: int

    def __post_init__(self) -> None:
        if self.size <= 0:
            raise ValueError(f"size must be positive, got {self.size}")
        if self.price <= 0:
            raise ValueError(f"price must be positive, got {self.price}")


@dataclass(frozen=True)
class OrderBook:
    """Three levels a side: bids descending, asks ascending."""

    bids: tuple[PriceLevel, ...]
    asks: tuple[PriceLevel, ...]

    def __post_init__(self) -> None:
        if not self.bids or not self.asks:
            raise ValueError("order book needs at least one level per side")
        if any(a.price < b.price for a, b in zip(self.bids, self.bids[1:])):
            raise ValueError("bids must be sorted by descending price")
        if any(a.price > b.price for a, b in zip(self.asks, self.asks[1:])):
            raise ValueError("asks must be sorted by ascending price")
        if self.best_bid.price >= self.best_ask.price:
            raise ValueError(
                f"crossed book: best bid {self.best_bid.price} >= best ask {self.best_ask.price}"
            )

    @property
    def best_bid(self) -> PriceLevel:
        return self.bids[0]

    @property
    def best_ask(self) -> PriceLevel:
        return self.asks[0]

    @property
    def spread(self) -> Decimal:
        return self.best_ask.price - self.best_bid.price

    @property
    def mid(self) -> Decimal:
        return (self.best_bid.price + self.best_ask.price) / 2


@dataclass(frozen=True)
class MarketSnapshot:
    """One minute of synthetic market data."""

    price: Decimal
    rsi: float
    daily_volume: int
    minute_index: int
    order_book: OrderBook

    def __post_init__(self) -> None:
        if not RSI_MIN <= self.rsi <= RSI_MAX:
            raise ValueError(f"rsi must be within [{RSI_MIN}, {RSI_MAX}], got {self.rsi}")
        if self.minute_index < 0:
            raise ValueError(f"minute_index must be >= 0, got {self.minute_index}")
        if self.daily_volume < 0:
            raise ValueError(f"daily_volume must be >= 0, got {self.daily_volume}")
        if self.price <= 0:
            raise ValueError(f"price must be positive, got {self.price}")
