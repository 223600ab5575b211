"""Price / open interest divergence detection over a sliding window.

For each index ``i >= window`` the close-to-close price change and the OI
change between ``i - window`` and ``i`` are compared. Opposite-signed moves
are traps, same-signed moves are continuations:

    price down, OI up    -> BEARISH_TRAP
    price up,   OI down  -> BULLISH_TRAP
    price up,   OI up    -> BULLISH_CONTINUATION
    price down, OI down  -> BEARISH_CONTINUATION

A signal is only emitted when both moves clear their minimum magnitude.
Strength is ``|price %| + |OI %|``.

CRITICAL: All computations use Decimal. Never use float.
"""

from collections.abc import Sequence
from decimal import Decimal

from oitrader.logging import get_logger
from oitrader.models import Candle, OpenInterestPoint
from oitrader.signals.models import DivergenceSignal, DivergenceType
from oitrader.signals.validation import ensure_aligned, ensure_ascending

logger = get_logger(__name__)

_HUNDRED = Decimal("100")

_DESCRIPTIONS: dict[DivergenceType, str] = {
    DivergenceType.BEARISH_TRAP: (
        "OI increasing while price falling - new positions building into the drop, squeeze risk"
    ),
    DivergenceType.BULLISH_TRAP: (
        "Price rising while OI decreasing - rally driven by short covering, not new buying"
    ),
    DivergenceType.BULLISH_CONTINUATION: (
        "Price and OI rising together - uptrend confirmed by new participation"
    ),
    DivergenceType.BEARISH_CONTINUATION: (
        "Price and OI falling together - downtrend confirmed by de-risking"
    ),
}


def _percent_change(start: Decimal, end: Decimal) -> Decimal | None:
    if start == 0:
        return None
    return (end - start) / start * _HUNDRED


def _classify(price_change: Decimal, oi_change: Decimal) -> DivergenceType:
    if price_change < 0:
        return DivergenceType.BEARISH_TRAP if oi_change > 0 else DivergenceType.BEARISH_CONTINUATION
    return DivergenceType.BULLISH_CONTINUATION if oi_change > 0 else DivergenceType.BULLISH_TRAP


def detect_divergences(
    prices: Sequence[Candle],
    open_interest: Sequence[OpenInterestPoint],
    window: int = 20,
    min_price_change_pct: Decimal = Decimal("2"),
    min_oi_change_pct: Decimal = Decimal("3"),
) -> list[DivergenceSignal]:
    """Scan index-aligned price and OI series for divergence signals.

    Callers align the two series by index beforehand (see
    ``oitrader.models.align_tail``); timestamps are not matched here.

    Args:
        prices: Candles ordered oldest-first.
        open_interest: OI samples at the same cadence, ordered oldest-first.
        window: Number of points between the compared samples.
        min_price_change_pct: Minimum |price change| in percent.
        min_oi_change_pct: Minimum |OI change| in percent.

    Returns:
        One signal per qualifying index, ascending by timestamp. Empty when
        either series is empty or shorter than ``window + 1`` points.

    Raises:
        ValueError: If ``window`` is not positive.
        SeriesOrderError: If either series is not ascending.
        SeriesAlignmentError: If the series lengths differ.
    """
    if window < 1:
        raise ValueError("window must be positive")
    if not prices or not open_interest:
        return []

    ensure_ascending(prices, "prices")
    ensure_ascending(open_interest, "open_interest")
    ensure_aligned(prices, open_interest)

    signals: list[DivergenceSignal] = []
    for i in range(window, len(prices)):
        price_change = _percent_change(prices[i - window].close, prices[i].close)
        oi_change = _percent_change(open_interest[i - window].value, open_interest[i].value)
        if price_change is None or oi_change is None:
            continue
        if abs(price_change) < min_price_change_pct or abs(oi_change) < min_oi_change_pct:
            continue

        signal_type = _classify(price_change, oi_change)
        signals.append(
            DivergenceSignal(
                timestamp=prices[i].timestamp,
                type=signal_type,
                strength=abs(price_change) + abs(oi_change),
                price_change_percent=price_change,
                oi_change_percent=oi_change,
                description=_DESCRIPTIONS[signal_type],
            )
        )

    logger.debug("divergence_scan_complete", points=len(prices), window=window, signals=len(signals))
    return signals


def latest_divergence(signals: Sequence[DivergenceSignal]) -> DivergenceSignal | None:
    """Return the most recent signal, or None if there are none."""
    if not signals:
        return None
    return signals[-1]
