"""Shared fixtures for fxpilot tests."""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from fxpilot.market import MarketSnapshot, OrderBook, PriceLevel

SnapshotFactory = Callable[..., MarketSnapshot]


def _book_around(price: Decimal) -> OrderBook:
    half = Decimal("0.00007")
    step = Decimal("0.00005")
    bid = price - half
    ask = price + half
    return OrderBook(
        bids=(
            PriceLevel(bid, 750_000),
            PriceLevel(bid - step, 600_000),
            PriceLevel(bid - 2 * step, 400_000),
        ),
        asks=(
            PriceLevel(ask, 750_000),
            PriceLevel(ask + step, 550_000),
            PriceLevel(ask + 2 * step, 350_000),
        ),
    )


@pytest.fixture
def make_snapshot() -> SnapshotFactory:
    """Build a hand-specified snapshot with a valid order book."""

    def _make(
        price: str | Decimal = "1.10000",
        rsi: float = 50.0,
        minute_index: int = 1,
        daily_volume: int = 500_000_000,
    ) -> MarketSnapshot:
        p = Decimal(price)
        return MarketSnapshot(
            price=p,
            rsi=rsi,
            daily_volume=daily_volume,
            minute_index=minute_index,
            order_book=_book_around(p),
        )

    return _make


def mock_response(
    status: int = 200,
    body: bytes = b"",
    text: str = "",
    headers: dict[str, str] | None = None,
) -> AsyncMock:
    """aiohttp response usable as ``async with session.post(...) as resp``."""
    response = AsyncMock()
    response.status = status
    response.headers = headers or {}
    response.read = AsyncMock(return_value=body)
    response.text = AsyncMock(return_value=text)
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


def mock_session(*responses: Any, method: str = "post") -> AsyncMock:
    """aiohttp session whose ``method`` returns ``responses`` in order.

    An exception instance among the responses is raised by that call.
    """
    session = AsyncMock()
    setattr(session, method, MagicMock(side_effect=list(responses)))
    session.closed = False
    return session


@pytest.fixture
def sleeps() -> list[float]:
    """Collects delays passed to an injected sleep."""
    return []


@pytest.fixture
def fake_sleep(sleeps: list[float]) -> Callable[[float], Any]:
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep


@pytest.fixture
def make_response() -> Callable[..., AsyncMock]:
    return mock_response


@pytest.fixture
def make_session() -> Callable[..., AsyncMock]:
    return mock_session
