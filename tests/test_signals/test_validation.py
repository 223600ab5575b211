"""Tests for series ordering and alignment checks."""

import pytest
from factories import make_candles, make_oi

from oitrader.exceptions import SeriesAlignmentError, SeriesOrderError
from oitrader.signals.validation import ensure_aligned, ensure_ascending


class TestEnsureAscending:
    def test_ascending_passes(self) -> None:
        ensure_ascending(make_oi(["1", "2", "3"]))

    def test_equal_timestamps_allowed(self) -> None:
        ensure_ascending(make_oi(["1", "2"], step=0))

    def test_descending_raises(self) -> None:
        with pytest.raises(SeriesOrderError, match="prices"):
            ensure_ascending(list(reversed(make_candles(["1", "2"]))), "prices")

    def test_empty_passes(self) -> None:
        ensure_ascending([])


class TestEnsureAligned:
    def test_equal_lengths_pass(self) -> None:
        ensure_aligned(make_candles(["1", "2"]), make_oi(["1", "2"]))

    def test_mismatch_raises(self) -> None:
        with pytest.raises(SeriesAlignmentError):
            ensure_aligned(make_candles(["1", "2"]), make_oi(["1"]))
