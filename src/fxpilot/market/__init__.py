"""Synthetic market data: snapshots, order books and the synthesizer."""

from __future__ import annotations

from fxpilot.market.models import (
    RSI_MAX,
    RSI_MIN,
    MarketSnapshot,
    OrderBook,
    PriceLevel,
    quantize_price,
)
from fxpilot.market.synthesizer import MarketSynthesizer

__all__ = [
    "RSI_MAX",
    "RSI_MIN",
    "MarketSnapshot",
    "MarketSynthesizer",
    "OrderBook",
    "PriceLevel",
    "quantize_price",
]
