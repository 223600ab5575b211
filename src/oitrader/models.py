"""Market data records shared by the exchange client and the analytics core.

CRITICAL: All prices, quantities, rates and ratios use Decimal. Never use float.
Timestamps are Unix milliseconds. Every record is immutable.
"""

from collections.abc import Sequence
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import TypeVar


class LiquidationSide(str, Enum):
    """Position type being force-closed."""

    LONG = "LONG"
    SHORT = "SHORT"


@dataclass(frozen=True)
class Candle:
    """A single OHLCV candle."""

    timestamp: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal


@dataclass(frozen=True)
class OpenInterestPoint:
    """Open interest sample for one symbol.

    ``delta`` and ``change_percent`` are relative to the preceding point of the
    same series; see ``with_deltas``.
    """

    timestamp: int
    value: Decimal
    symbol: str
    delta: Decimal = Decimal("0")
    change_percent: Decimal = Decimal("0")


@dataclass(frozen=True)
class LiquidationEvent:
    """A single forced position closure."""

    id: str
    symbol: str
    side: LiquidationSide
    price: Decimal
    quantity: Decimal
    timestamp: int

    @property
    def notional(self) -> Decimal:
        return self.quantity * self.price


@dataclass(frozen=True)
class FundingRate:
    """Funding rate settlement (raw fraction, not percent)."""

    symbol: str
    funding_rate: Decimal
    funding_time: int
    mark_price: Decimal = Decimal("0")


@dataclass(frozen=True)
class LongShortRatio:
    """Global long/short account ratio sample."""

    symbol: str
    long_account: Decimal
    short_account: Decimal
    long_short_ratio: Decimal
    timestamp: int


@dataclass(frozen=True)
class TakerVolume:
    """Taker buy/sell volume sample."""

    symbol: str
    buy_sell_ratio: Decimal
    buy_volume: Decimal
    sell_volume: Decimal
    timestamp: int


def with_deltas(points: Sequence[OpenInterestPoint]) -> list[OpenInterestPoint]:
    """Return a copy of an OI series with ``delta``/``change_percent`` filled in.

    Both are computed against index-1. The first point gets zero for both,
    and ``change_percent`` is zero whenever the previous value is zero.

    Args:
        points: OI samples ordered oldest-first.

    Returns:
        New list of OpenInterestPoint records, same length as input.
    """
    result: list[OpenInterestPoint] = []
    for i, point in enumerate(points):
        if i == 0:
            result.append(replace(point, delta=Decimal("0"), change_percent=Decimal("0")))
            continue

        previous = points[i - 1].value
        delta = point.value - previous
        change = delta / previous * Decimal("100") if previous != 0 else Decimal("0")
        result.append(replace(point, delta=delta, change_percent=change))
    return result


A = TypeVar("A")
B = TypeVar("B")


def align_tail(first: Sequence[A], second: Sequence[B]) -> tuple[list[A], list[B]]:
    """Trim two series to their common trailing length.

    Exchange endpoints may return a different number of points for the same
    ``limit``; the most recent samples are the ones that line up.
    """
    n = min(len(first), len(second))
    if n == 0:
        return [], []
    return list(first[-n:]), list(second[-n:])
