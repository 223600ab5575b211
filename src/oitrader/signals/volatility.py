"""Volatility regime classification and OI signal filtering.

The regime comes from ATR as a percentage of price and from where the
current historical volatility ranks against rolling windows of the same
series. Each regime carries a strategy, a position-size multiplier and a
trust level for OI momentum signals.

Volatility is reported per day in percent and assumes 5-minute candles.

CRITICAL: All computations use Decimal. Never use float.
"""

from collections.abc import Sequence
from decimal import Decimal

from oitrader.logging import get_logger
from oitrader.models import Candle
from oitrader.signals.models import (
    FilteredOISignal,
    OIScenario,
    SignalStrength,
    TrustLevel,
    VolatilityMode,
    VolatilityRegime,
    VolStrategy,
)

logger = get_logger(__name__)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")

ATR_PERIOD = 14
VOLATILITY_PERIOD = 20
PERCENTILE_LOOKBACK = 30
MIN_CANDLES = 50

#: 5-minute candles per day
PERIODS_PER_DAY = 288

#: (percentile above, ATR% above, mode, strategy, size multiplier, trust, reasoning, warnings, label)
#: Evaluated top to bottom; the last row is the fallback.
VOLATILITY_RULES: tuple[
    tuple[Decimal, Decimal, VolatilityMode, VolStrategy, Decimal, TrustLevel, str, tuple[str, ...], str], ...
] = (
    (
        Decimal("85"),
        Decimal("5"),
        VolatilityMode.EXTREME,
        VolStrategy.STAY_OUT,
        Decimal("0.3"),
        TrustLevel.LOW,
        "Extreme volatility - OI signals unreliable due to rapid liquidations and stop hunts",
        (
            "High risk of fake-outs and liquidation cascades",
            "OI expansion may be forced liquidations, not real accumulation",
            "Reduce size to 30% or stay flat",
        ),
        "EXTREME VOL ({atr}% ATR) - Market is chaotic, avoid trading or use minimal size",
    ),
    (
        Decimal("60"),
        Decimal("3"),
        VolatilityMode.HIGH,
        VolStrategy.BREAKOUT,
        Decimal("0.7"),
        TrustLevel.MEDIUM,
        "High volatility - Favor breakout trades, OI signals need confirmation with volume",
        (
            "OI + Volume spike = Real breakout",
            "OI alone without volume = Potential trap",
            "Use wider stops due to noise",
        ),
        "HIGH VOL ({atr}% ATR) - Breakout mode, confirm OI signals with volume spikes",
    ),
    (
        Decimal("30"),
        Decimal("1.5"),
        VolatilityMode.MEDIUM,
        VolStrategy.TREND_FOLLOW,
        Decimal("1.0"),
        TrustLevel.HIGH,
        "Medium volatility - Best environment for OI momentum signals, trend following works well",
        (),
        "MEDIUM VOL ({atr}% ATR) - Ideal for OI momentum, trust directional signals",
    ),
    (
        Decimal("-1"),
        Decimal("-1"),
        VolatilityMode.LOW,
        VolStrategy.MEAN_REVERSION,
        Decimal("0.8"),
        TrustLevel.MEDIUM,
        "Low volatility - OI expansion often signals position building before breakout",
        (
            "OI spike in low vol = Potential breakout setup (coiling)",
            "OI decline = Distribution before breakdown",
            "Wait for volatility expansion to confirm direction",
        ),
        "LOW VOL ({atr}% ATR) - Compression phase, OI buildup = future breakout",
    ),
)


def calculate_atr(candles: Sequence[Candle], period: int = ATR_PERIOD) -> Decimal:
    """Simple average of the last ``period`` true ranges; 0 with fewer than period + 1 candles."""
    if len(candles) < period + 1:
        return _ZERO

    true_ranges = [
        max(
            candle.high - candle.low,
            abs(candle.high - prev.close),
            abs(candle.low - prev.close),
        )
        for prev, candle in zip(candles, candles[1:])
    ]
    recent = true_ranges[-period:]
    return sum(recent, _ZERO) / len(recent)


def calculate_historical_volatility(candles: Sequence[Candle], period: int = VOLATILITY_PERIOD) -> Decimal:
    """Daily volatility in percent from the last ``period`` log returns.

    Uses the population standard deviation scaled by sqrt(288). Returns 0
    with fewer than period + 1 candles or any non-positive close.
    """
    if len(candles) < period + 1:
        return _ZERO

    window = candles[-(period + 1):]
    if any(c.close <= 0 for c in window):
        return _ZERO

    returns = [(candle.close / prev.close).ln() for prev, candle in zip(window, window[1:])]
    mean = sum(returns, _ZERO) / len(returns)
    variance = sum(((r - mean) ** 2 for r in returns), _ZERO) / len(returns)
    return variance.sqrt() * Decimal(PERIODS_PER_DAY).sqrt() * _HUNDRED


def volatility_percentile(
    current: Decimal,
    candles: Sequence[Candle],
    lookback: int = PERCENTILE_LOOKBACK,
    period: int = VOLATILITY_PERIOD,
) -> Decimal:
    """Percent of rolling-window volatilities strictly below ``current``.

    Every run of period + 1 consecutive candles is one window. Returns 50
    when the series is shorter than lookback + period.
    """
    if len(candles) < lookback + period:
        return Decimal("50")

    history = [
        calculate_historical_volatility(candles[end - period - 1:end], period)
        for end in range(period + 1, len(candles) + 1)
    ]
    rank = sum(1 for v in history if v < current)
    return Decimal(rank) / Decimal(len(history)) * _HUNDRED


def classify_volatility_regime(candles: Sequence[Candle]) -> VolatilityRegime:
    """Classify the volatility regime of an ascending candle series.

    Needs at least 50 candles; shorter series get a MEDIUM placeholder with a
    zero size multiplier and LOW trust.
    """
    timestamp = candles[-1].timestamp if candles else 0
    if len(candles) < MIN_CANDLES:
        return VolatilityRegime(
            mode=VolatilityMode.MEDIUM,
            atr=_ZERO,
            atr_percent=_ZERO,
            volatility=_ZERO,
            historical_percentile=Decimal("50"),
            strategy=VolStrategy.STAY_OUT,
            position_size_multiplier=_ZERO,
            trust_level=TrustLevel.LOW,
            reasoning="Insufficient data for volatility analysis",
            description="Insufficient data",
            timestamp=timestamp,
            warnings=(f"Need at least {MIN_CANDLES} candles for accurate regime detection",),
        )

    current_price = candles[-1].close
    atr = calculate_atr(candles)
    atr_percent = atr / current_price * _HUNDRED if current_price > 0 else _ZERO
    volatility = calculate_historical_volatility(candles)
    percentile = volatility_percentile(volatility, candles)

    for pct_above, atr_above, mode, strategy, multiplier, trust, reasoning, warnings, label in VOLATILITY_RULES:
        if percentile > pct_above or atr_percent > atr_above:
            break

    logger.debug(
        "volatility_classified",
        mode=mode.value,
        atr_percent=f"{atr_percent:.4f}",
        percentile=f"{percentile:.1f}",
    )
    return VolatilityRegime(
        mode=mode,
        atr=atr,
        atr_percent=atr_percent,
        volatility=volatility,
        historical_percentile=percentile,
        strategy=strategy,
        position_size_multiplier=multiplier,
        trust_level=trust,
        reasoning=reasoning,
        description=label.format(atr=f"{atr_percent:.2f}"),
        timestamp=timestamp,
        warnings=warnings,
    )


def filter_oi_signal_by_vol_regime(
    scenario: OIScenario,
    strength: SignalStrength,
    regime: VolatilityRegime,
) -> FilteredOISignal:
    """Reinterpret an OI momentum scenario for the volatility regime.

    Extreme volatility discards every signal. High volatility only upgrades
    strong trend continuation and forced unwinds. Medium volatility trusts
    the signal as is. Low volatility reads OI growth as positioning ahead of
    a breakout and OI decline as distribution.
    """
    signal = scenario.value
    if regime.mode == VolatilityMode.EXTREME:
        return FilteredOISignal(
            adjusted_signal="STAY_OUT",
            confidence=TrustLevel.LOW,
            action="Extreme volatility makes OI signals unreliable - Stay flat or use minimal scalp size",
        )

    if regime.mode == VolatilityMode.HIGH:
        if scenario == OIScenario.TREND_CONTINUATION and strength in (SignalStrength.STRONG, SignalStrength.EXTREME):
            return FilteredOISignal(
                adjusted_signal="BREAKOUT_CONFIRMED",
                confidence=TrustLevel.HIGH,
                action="High vol + Strong OI expansion = Real breakout. Enter on pullback or initial momentum",
            )
        if scenario == OIScenario.FORCED_UNWIND:
            return FilteredOISignal(
                adjusted_signal="LIQUIDATION_CASCADE",
                confidence=TrustLevel.HIGH,
                action="High vol + Forced unwind = Liquidation cascade. Wait for exhaustion before counter-trade",
            )
        return FilteredOISignal(
            adjusted_signal=signal,
            confidence=TrustLevel.MEDIUM,
            action="High vol environment - Confirm OI signals with volume spikes before entry",
        )

    if regime.mode == VolatilityMode.MEDIUM:
        return FilteredOISignal(
            adjusted_signal=signal,
            confidence=TrustLevel.HIGH,
            action=f"Medium vol is ideal for OI signals - {signal.replace('_', ' ')} can be trusted",
        )

    if scenario in (OIScenario.ACCUMULATION, OIScenario.TREND_CONTINUATION):
        return FilteredOISignal(
            adjusted_signal="POSITION_BUILDING",
            confidence=TrustLevel.HIGH,
            action="Low vol + OI expansion = Smart money positioning before breakout. Accumulate here",
        )
    if scenario == OIScenario.DISTRIBUTION:
        return FilteredOISignal(
            adjusted_signal="PRE_BREAKDOWN_DISTRIBUTION",
            confidence=TrustLevel.HIGH,
            action="Low vol + OI decline = Distribution before breakdown. Consider shorting or exit longs",
        )
    return FilteredOISignal(
        adjusted_signal=signal,
        confidence=TrustLevel.MEDIUM,
        action="Low vol - Wait for volatility expansion to confirm OI signal direction",
    )


def _size_label(multiplier: Decimal) -> str:
    if multiplier >= Decimal("1.2"):
        return "Boosted size (1.2-1.5R)"
    if multiplier >= Decimal("1.0"):
        return "Normal size (1R)"
    if multiplier >= Decimal("0.7"):
        return "Reduced size (0.7R)"
    if multiplier >= Decimal("0.5"):
        return "Half size (0.5R)"
    return "Minimal/Flat (0-0.3R)"


def combined_recommendation(
    scenario: OIScenario,
    strength: SignalStrength,
    regime: VolatilityRegime,
) -> str:
    """One-line recommendation joining the filtered OI action, size and confidence."""
    filtered = filter_oi_signal_by_vol_regime(scenario, strength, regime)
    size = _size_label(regime.position_size_multiplier)
    return f"{filtered.action} | Position: {size} | Confidence: {filtered.confidence.value}"
