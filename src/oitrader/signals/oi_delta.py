"""Open interest change mapped onto price levels.

Each candle-to-candle move is paired with the OI samples taken at both
candles and credited to the bucket of the closing price, which shows where
positions were opened or closed:

- OI up, price up: longs building
- OI up, price flat or down: shorts building
- OI down, price up: shorts covering
- OI down, price flat or down: longs unwinding

CRITICAL: All computations use Decimal. Never use float.
"""

import bisect
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from oitrader.logging import get_logger
from oitrader.models import Candle, OpenInterestPoint
from oitrader.signals.liquidation import bucket_floor
from oitrader.signals.models import (
    OIDeltaAnalysis,
    OIDeltaBucket,
    OIDeltaSignal,
    OIDeltaSignalType,
    OIDeltaType,
    SignalStrength,
)
from oitrader.signals.validation import ensure_ascending

logger = get_logger(__name__)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")

# OI samples further than this from a candle are not paired with it
MATCH_TOLERANCE_MS = 60_000


@dataclass
class _BucketTotals:
    oi_delta: Decimal = _ZERO
    oi_change: Decimal = _ZERO
    volume: Decimal = _ZERO
    type: OIDeltaType = OIDeltaType.NEUTRAL


def _oi_at(oi_series: Sequence[OpenInterestPoint], timestamps: Sequence[int], ts: int) -> OpenInterestPoint | None:
    """OI sample nearest to ``ts`` within the tolerance; ties go to the earlier sample."""
    i = bisect.bisect_left(timestamps, ts)
    candidates = [oi_series[j] for j in (i - 1, i) if 0 <= j < len(oi_series)]
    if not candidates:
        return None
    nearest = min(candidates, key=lambda p: (abs(p.timestamp - ts), p.timestamp))
    return nearest if abs(nearest.timestamp - ts) < MATCH_TOLERANCE_MS else None


def _move_type(oi_delta: Decimal, price_change: Decimal) -> OIDeltaType | None:
    if oi_delta > 0:
        return OIDeltaType.BUILD_LONG if price_change > 0 else OIDeltaType.BUILD_SHORT
    if oi_delta < 0:
        return OIDeltaType.UNWIND_SHORT if price_change > 0 else OIDeltaType.UNWIND_LONG
    return None


def calculate_oi_delta_by_price(
    candles: Sequence[Candle],
    oi_series: Sequence[OpenInterestPoint],
    bucket_size: Decimal = Decimal("10"),
) -> OIDeltaAnalysis:
    """Accumulate OI deltas per closing-price bucket.

    Only buckets reached by at least one paired move are returned, ordered
    by price. Max, min and average are taken over those buckets. Totals are
    magnitudes per bucket type.

    Raises:
        ValueError: If bucket_size is not positive.
        SeriesOrderError: If either series is not ascending by timestamp.
    """
    if bucket_size <= 0:
        raise ValueError("bucket_size must be positive")
    ensure_ascending(candles, "candles")
    ensure_ascending(oi_series, "open_interest")

    oi_timestamps = [p.timestamp for p in oi_series]
    buckets: dict[Decimal, _BucketTotals] = {}
    for prev, candle in zip(candles, candles[1:]):
        current_oi = _oi_at(oi_series, oi_timestamps, candle.timestamp)
        prev_oi = _oi_at(oi_series, oi_timestamps, prev.timestamp)
        if current_oi is None or prev_oi is None or prev_oi.value == 0 or prev.close == 0:
            continue

        oi_delta = current_oi.value - prev_oi.value
        acc = buckets.setdefault(bucket_floor(candle.close, bucket_size), _BucketTotals())
        acc.oi_delta += oi_delta
        acc.oi_change = oi_delta / prev_oi.value * _HUNDRED
        acc.volume += candle.volume
        move_type = _move_type(oi_delta, (candle.close - prev.close) / prev.close)
        if move_type is not None:
            acc.type = move_type

    if not buckets:
        return OIDeltaAnalysis(
            buckets=(),
            max_oi_delta=_ZERO,
            min_oi_delta=_ZERO,
            avg_oi_delta=_ZERO,
            total_build_long=_ZERO,
            total_build_short=_ZERO,
            total_unwind_long=_ZERO,
            total_unwind_short=_ZERO,
        )

    max_abs = max(abs(acc.oi_delta) for acc in buckets.values())
    result = tuple(
        OIDeltaBucket(
            price=price,
            oi_delta=acc.oi_delta,
            oi_change=acc.oi_change,
            volume=acc.volume,
            type=acc.type,
            intensity=abs(acc.oi_delta) / max_abs * _HUNDRED if max_abs > 0 else _ZERO,
        )
        for price, acc in sorted(buckets.items())
    )

    def total(kind: OIDeltaType) -> Decimal:
        return sum((abs(b.oi_delta) for b in result if b.type == kind), _ZERO)

    deltas = [b.oi_delta for b in result]
    logger.debug("oi_delta_by_price", candles=len(candles), buckets=len(result))
    return OIDeltaAnalysis(
        buckets=result,
        max_oi_delta=max(deltas),
        min_oi_delta=min(deltas),
        avg_oi_delta=sum(deltas, _ZERO) / len(deltas),
        total_build_long=total(OIDeltaType.BUILD_LONG),
        total_build_short=total(OIDeltaType.BUILD_SHORT),
        total_unwind_long=total(OIDeltaType.UNWIND_LONG),
        total_unwind_short=total(OIDeltaType.UNWIND_SHORT),
    )


_STRONG_SIGNALS: dict[OIDeltaType, tuple[OIDeltaSignalType, str]] = {
    OIDeltaType.BUILD_LONG: (
        OIDeltaSignalType.BULLISH_BUILD,
        "Strong long position building - Bullish pressure",
    ),
    OIDeltaType.BUILD_SHORT: (
        OIDeltaSignalType.BEARISH_BUILD,
        "Strong short position building - Bearish pressure (or potential squeeze)",
    ),
    OIDeltaType.UNWIND_LONG: (
        OIDeltaSignalType.BEARISH_UNWIND,
        "Long positions unwinding - Bearish continuation",
    ),
    OIDeltaType.UNWIND_SHORT: (
        OIDeltaSignalType.BULLISH_UNWIND,
        "Short positions covering - Bullish continuation",
    ),
}


def classify_oi_delta_signal(bucket: OIDeltaBucket) -> OIDeltaSignal:
    """Grade a bucket by intensity.

    Above 70 a bucket carries a directional signal; above 40 it is a moderate
    reading with no direction.
    """
    if bucket.intensity > 70 and bucket.type in _STRONG_SIGNALS:
        signal, description = _STRONG_SIGNALS[bucket.type]
        return OIDeltaSignal(signal=signal, strength=SignalStrength.STRONG, description=description)
    if bucket.intensity > 40:
        label = bucket.type.value.lower().replace("_", " ")
        return OIDeltaSignal(
            signal=OIDeltaSignalType.NEUTRAL,
            strength=SignalStrength.MODERATE,
            description=f"Moderate {label}",
        )
    return OIDeltaSignal(
        signal=OIDeltaSignalType.NEUTRAL,
        strength=SignalStrength.WEAK,
        description="No significant OI change",
    )
