"""Tests for the market synthesizer."""

from __future__ import annotations

import random
from decimal import Decimal

import pytest

from fxpilot.config import LoopConfig
from fxpilot.market import MarketSnapshot, MarketSynthesizer, OrderBook, PriceLevel
from fxpilot.market.models import RSI_MAX, RSI_MIN, quantize_price


def _run(synth: MarketSynthesizer, steps: int) -> list[MarketSnapshot]:
    snapshots = [synth.seed()]
    for _ in range(steps):
        snapshots.append(synth.next(snapshots[-1]))
    return snapshots


class TestSeed:
    """Minute zero."""

    def test_seed_defaults(self) -> None:
        snap = MarketSynthesizer(rng=random.Random(1)).seed()

        assert snap.price == Decimal("1.10550")
        assert snap.rsi == 50.0
        assert snap.minute_index == 0
        assert snap.daily_volume == 500_000_000
        assert len(snap.order_book.bids) == 3
        assert len(snap.order_book.asks) == 3

    def test_seed_with_initial_price_is_clamped(self) -> None:
        synth = MarketSynthesizer(rng=random.Random(1))
        snap = synth.seed(Decimal("1.50000"))
        assert snap.price == Decimal("1.12000")

    def test_from_config(self) -> None:
        config = LoopConfig(
            price_floor="1.20000", price_ceiling="1.30000", initial_price="1.25000"
        )
        synth = MarketSynthesizer.from_config(config, rng=random.Random(3))
        assert synth.seed().price == Decimal("1.25000")

    def test_rejects_empty_band(self) -> None:
        with pytest.raises(ValueError, match="price_floor"):
            MarketSynthesizer(price_floor=Decimal("1.2"), price_ceiling=Decimal("1.1"))


class TestNext:
    """Snapshot-to-snapshot evolution."""

    def test_minute_index_increments_by_one(self) -> None:
        snapshots = _run(MarketSynthesizer(rng=random.Random(7)), 50)
        for prev, cur in zip(snapshots, snapshots[1:]):
            assert cur.minute_index == prev.minute_index + 1

    def test_values_stay_in_bounds(self) -> None:
        """Price, RSI and volume stay within their ranges over a long run."""
        synth = MarketSynthesizer(rng=random.Random(42))
        for snap in _run(synth, 2000):
            assert synth.price_floor <= snap.price <= synth.price_ceiling
            assert RSI_MIN <= snap.rsi <= RSI_MAX
            assert snap.daily_volume >= 0

    def test_price_has_five_decimals(self) -> None:
        for snap in _run(MarketSynthesizer(rng=random.Random(5)), 100):
            assert snap.price == quantize_price(snap.price)
            assert snap.price.as_tuple().exponent == -5

    def test_rsi_has_two_decimals(self) -> None:
        for snap in _run(MarketSynthesizer(rng=random.Random(5)), 100):
            assert round(snap.rsi, 2) == snap.rsi

    def test_rsi_follows_price_direction(self) -> None:
        snapshots = _run(MarketSynthesizer(rng=random.Random(11)), 300)
        for prev, cur in zip(snapshots, snapshots[1:]):
            if cur.price > prev.price:
                assert cur.rsi >= prev.rsi
            else:
                assert cur.rsi <= prev.rsi

    def test_price_step_is_small(self) -> None:
        snapshots = _run(MarketSynthesizer(rng=random.Random(13)), 300)
        for prev, cur in zip(snapshots, snapshots[1:]):
            assert abs(cur.price - prev.price) <= Decimal("0.00008")

    def test_volume_step_range(self) -> None:
        snapshots = _run(MarketSynthesizer(rng=random.Random(17)), 300)
        for prev, cur in zip(snapshots, snapshots[1:]):
            assert -200_000 <= cur.daily_volume - prev.daily_volume < 300_000

    def test_volume_floored_at_zero(self, make_snapshot) -> None:
        synth = MarketSynthesizer(rng=random.Random(19))
        snap = make_snapshot(daily_volume=0)
        for _ in range(50):
            snap = synth.next(snap)
            assert snap.daily_volume >= 0

    def test_price_clamped_at_ceiling(self, make_snapshot) -> None:
        synth = MarketSynthesizer(rng=random.Random(23))
        snap = make_snapshot(price="1.12000", rsi=80.0)
        for _ in range(100):
            snap = synth.next(snap)
            assert snap.price <= Decimal("1.12000")
            assert snap.rsi <= RSI_MAX

    def test_seeded_runs_are_reproducible(self) -> None:
        a = _run(MarketSynthesizer(rng=random.Random(99)), 100)
        b = _run(MarketSynthesizer(rng=random.Random(99)), 100)
        assert a == b

    def test_different_seeds_diverge(self) -> None:
        a = _run(MarketSynthesizer(rng=random.Random(1)), 20)
        b = _run(MarketSynthesizer(rng=random.Random(2)), 20)
        assert [s.price for s in a] != [s.price for s in b]


class TestOrderBook:
    """Order book shape around the synthesized price."""

    def test_book_is_sorted_and_uncrossed(self) -> None:
        for snap in _run(MarketSynthesizer(rng=random.Random(31)), 500):
            book = snap.order_book
            bid_prices = [level.price for level in book.bids]
            ask_prices = [level.price for level in book.asks]
            assert bid_prices == sorted(bid_prices, reverse=True)
            assert ask_prices == sorted(ask_prices)
            assert book.best_bid.price < book.best_ask.price
            assert all(level.size > 0 for level in (*book.bids, *book.asks))

    def test_book_brackets_price(self) -> None:
        for snap in _run(MarketSynthesizer(rng=random.Random(37)), 200):
            assert snap.order_book.best_bid.price < snap.price < snap.order_book.best_ask.price

    def test_level_offsets(self) -> None:
        book = MarketSynthesizer(rng=random.Random(41)).order_book(Decimal("1.10000"))
        assert book.bids[0].price - book.bids[1].price == Decimal("0.00005")
        assert book.bids[0].price - book.bids[2].price == Decimal("0.00010")
        assert book.asks[1].price - book.asks[0].price == Decimal("0.00005")
        assert book.asks[2].price - book.asks[0].price == Decimal("0.00010")

    def test_deeper_level_sizes_fixed(self) -> None:
        book = MarketSynthesizer(rng=random.Random(43)).order_book(Decimal("1.10000"))
        assert [level.size for level in book.bids[1:]] == [600_000, 400_000]
        assert [level.size for level in book.asks[1:]] == [550_000, 350_000]

    def test_touch_sizes_skew_inversely(self) -> None:
        """A heavy best bid comes with a light best ask."""
        synth = MarketSynthesizer(rng=random.Random(47))
        for _ in range(100):
            book = synth.order_book(Decimal("1.10000"))
            total = book.best_bid.size + book.best_ask.size
            assert 1_499_999 <= total <= 1_500_000
            assert 600_000 <= book.best_bid.size <= 900_000

    def test_spread_within_jitter(self) -> None:
        synth = MarketSynthesizer(rng=random.Random(53))
        for _ in range(100):
            spread = synth.order_book(Decimal("1.10000")).spread
            assert Decimal("0.00011") <= spread <= Decimal("0.00019")


class TestModels:
    """Validation on the frozen market types."""

    def test_crossed_book_rejected(self) -> None:
        with pytest.raises(ValueError, match="crossed"):
            OrderBook(
                bids=(PriceLevel(Decimal("1.10010"), 1),),
                asks=(PriceLevel(Decimal("1.10000"), 1),),
            )

    def test_unsorted_bids_rejected(self) -> None:
        with pytest.raises(ValueError, match="descending"):
            OrderBook(
                bids=(PriceLevel(Decimal("1.09990"), 1), PriceLevel(Decimal("1.09995"), 1)),
                asks=(PriceLevel(Decimal("1.10010"), 1),),
            )

    def test_rsi_out_of_range_rejected(self, make_snapshot) -> None:
        with pytest.raises(ValueError, match="rsi"):
            make_snapshot(rsi=85.0)

    def test_negative_size_rejected(self) -> None:
        with pytest.raises(ValueError, match="size"):
            PriceLevel(Decimal("1.1"), 0)

    def test_mid(self, make_snapshot) -> None:
        snap = make_snapshot(price="1.10000")
        assert snap.order_book.mid == Decimal("1.10000")
