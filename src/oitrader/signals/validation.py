"""Caller-contract checks for time-ordered input series.

The analytics functions assume ascending, index-aligned series. Violations
are programmer errors and fail fast instead of producing a wrong signal.
"""

from collections.abc import Sequence
from typing import Any

from oitrader.exceptions import SeriesAlignmentError, SeriesOrderError


def ensure_ascending(series: Sequence[Any], name: str = "series") -> None:
    """Raise SeriesOrderError if any timestamp is lower than its predecessor.

    Equal consecutive timestamps are allowed (non-decreasing order).
    """
    for i in range(1, len(series)):
        if series[i].timestamp < series[i - 1].timestamp:
            raise SeriesOrderError(
                f"{name} is not ascending at index {i}: "
                f"{series[i].timestamp} < {series[i - 1].timestamp}"
            )


def ensure_aligned(first: Sequence[Any], second: Sequence[Any]) -> None:
    """Raise SeriesAlignmentError if two index-aligned series differ in length."""
    if len(first) != len(second):
        raise SeriesAlignmentError(
            f"series lengths differ: {len(first)} != {len(second)}"
        )
