"""Tests for price / open interest divergence detection."""

from decimal import Decimal

import pytest
from factories import make_candles, make_oi

from oitrader.exceptions import SeriesAlignmentError, SeriesOrderError
from oitrader.signals.divergence import detect_divergences, latest_divergence
from oitrader.signals.models import DivergenceType


def _falling_price_rising_oi(n: int = 30) -> tuple[list, list]:
    prices = make_candles([str(50000 - i * 100) for i in range(n)])
    oi = make_oi([str(100000 + i * 5000) for i in range(n)])
    return prices, oi


class TestDetectDivergences:
    """Tests for the sliding-window divergence scan."""

    def test_bearish_trap_on_falling_price_rising_oi(self) -> None:
        prices, oi = _falling_price_rising_oi()
        signals = detect_divergences(prices, oi, window=20)

        assert len(signals) > 0
        assert signals[0].type == DivergenceType.BEARISH_TRAP

    def test_first_signal_at_window_index(self) -> None:
        prices, oi = _falling_price_rising_oi()
        signals = detect_divergences(prices, oi, window=20)

        assert len(signals) == 10
        assert signals[0].timestamp == prices[20].timestamp
        assert signals[0].price_change_percent == Decimal("-4")
        assert signals[0].oi_change_percent == Decimal("100")
        assert signals[0].strength == Decimal("104")

    def test_empty_series_returns_empty(self) -> None:
        assert detect_divergences([], [], window=20) == []
        assert detect_divergences(make_candles(["1", "2"]), [], window=1) == []

    def test_short_series_returns_empty(self) -> None:
        prices, oi = _falling_price_rising_oi(10)
        assert detect_divergences(prices, oi, window=20) == []

    def test_bullish_trap(self) -> None:
        prices = make_candles([str(100 + i) for i in range(6)])
        oi = make_oi([str(1000 - i * 20) for i in range(6)])
        signals = detect_divergences(prices, oi, window=5)
        assert [s.type for s in signals] == [DivergenceType.BULLISH_TRAP]

    def test_bullish_continuation(self) -> None:
        prices = make_candles(["100", "101", "105"])
        oi = make_oi(["1000", "1010", "1100"])
        signals = detect_divergences(prices, oi, window=2)
        assert [s.type for s in signals] == [DivergenceType.BULLISH_CONTINUATION]

    def test_bearish_continuation(self) -> None:
        prices = make_candles(["100", "99", "95"])
        oi = make_oi(["1000", "990", "900"])
        signals = detect_divergences(prices, oi, window=2)
        assert [s.type for s in signals] == [DivergenceType.BEARISH_CONTINUATION]

    def test_small_moves_filtered(self) -> None:
        """Price must move at least 2% and OI at least 3%."""
        prices = make_candles(["100", "101.9"])
        oi = make_oi(["1000", "1500"])
        assert detect_divergences(prices, oi, window=1) == []

        prices = make_candles(["100", "110"])
        oi = make_oi(["1000", "1029"])
        assert detect_divergences(prices, oi, window=1) == []

    def test_zero_start_value_skipped(self) -> None:
        prices = make_candles(["100", "50"])
        oi = make_oi(["0", "500"])
        assert detect_divergences(prices, oi, window=1) == []

    def test_invalid_window_raises(self) -> None:
        prices, oi = _falling_price_rising_oi()
        with pytest.raises(ValueError):
            detect_divergences(prices, oi, window=0)

    def test_misaligned_series_raises(self) -> None:
        prices, oi = _falling_price_rising_oi()
        with pytest.raises(SeriesAlignmentError):
            detect_divergences(prices, oi[:-1], window=5)

    def test_unordered_series_raises(self) -> None:
        prices, oi = _falling_price_rising_oi()
        with pytest.raises(SeriesOrderError):
            detect_divergences(list(reversed(prices)), oi, window=5)

    def test_description_attached(self) -> None:
        prices, oi = _falling_price_rising_oi()
        signals = detect_divergences(prices, oi, window=20)
        assert signals[0].description


class TestLatestDivergence:
    def test_none_when_empty(self) -> None:
        assert latest_divergence([]) is None

    def test_returns_last(self) -> None:
        prices, oi = _falling_price_rising_oi()
        signals = detect_divergences(prices, oi, window=20)
        assert latest_divergence(signals) == signals[-1]
