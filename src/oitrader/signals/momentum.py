"""Open interest momentum and acceleration analysis.

Separates sustained ("real") OI moves from single-point noise ("fake") and
tags the scenario driving each point.

    rate[i]         = delta[i] / value[i-1] * 100, normalized to one hour
    momentum[i]     = mean of rate over the trailing ``window`` points
    acceleration[i] = momentum[i] - momentum[i-1]

The first point has zero rate, momentum and acceleration. Momentum is in
percent of open interest per hour, so thresholds are comparable across
sampling periods.

A point is "real" when momentum has stayed at or above ``materiality_pct``
with the same sign for ``persistence_points`` consecutive points.

Scenarios are checked in order, first match wins:

1. FORCED_UNWIND: OI falling, momentum and acceleration at or below
   -unwind_threshold, after a prior average momentum of at least
   +materiality (deleveraging out of an uptrend).
2. POST_LIQ_BOUNCE: positive momentum and acceleration within
   ``bounce_lookback`` points of a forced unwind.
3. SWING_REVERSAL: momentum sign opposite to a material prior trend, with
   acceleration pushing the same way as the new momentum.
4. TREND_CONTINUATION: momentum and acceleration share a sign and both
   clear their thresholds.
5. FAKE_BUILDUP: OI rising on positive momentum that is not real.
6. ACCUMULATION / 7. DISTRIBUTION: steady positive / negative momentum
   with acceleration below threshold.
8. NEUTRAL.

CRITICAL: All computations use Decimal. Never use float.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from oitrader.logging import get_logger
from oitrader.models import OpenInterestPoint
from oitrader.signals.models import (
    Alert,
    AlertLevel,
    FlowRegime,
    MomentumStatistics,
    OIMomentumAnalysis,
    OIMomentumPoint,
    OIScenario,
    RiskLevel,
    RiskMode,
    SignalStrength,
    SignalSummary,
    TradingInterpretation,
    TrendBias,
)
from oitrader.signals.validation import ensure_ascending

logger = get_logger(__name__)

#: Precision limit for derivative results (12 decimal places).
_QUANTIZE = Decimal("0.000000000001")
_HOUR_MS = Decimal("3600000")
_HUNDRED = Decimal("100")
_ZERO = Decimal("0")

#: Points considered by momentum_statistics.
STATISTICS_LOOKBACK = 30


def _mean(values: Sequence[Decimal]) -> Decimal:
    if not values:
        return _ZERO
    return sum(values, _ZERO) / len(values)


def _sign(value: Decimal) -> int:
    return (value > 0) - (value < 0)


def compute_hourly_rates(points: Sequence[OpenInterestPoint]) -> list[Decimal]:
    """Per-point OI change in percent per hour, from each point's ``delta``.

    Zero for the first point, for a zero previous value, and for
    non-increasing timestamps.
    """
    rates: list[Decimal] = []
    for i, point in enumerate(points):
        if i == 0:
            rates.append(_ZERO)
            continue
        previous = points[i - 1]
        elapsed = point.timestamp - previous.timestamp
        if previous.value == 0 or elapsed <= 0:
            rates.append(_ZERO)
            continue
        rate = point.delta / previous.value * _HUNDRED * (_HOUR_MS / Decimal(elapsed))
        rates.append(rate.quantize(_QUANTIZE))
    return rates


def compute_momentum(rates: Sequence[Decimal], window: int = 3) -> list[Decimal]:
    """Trailing mean of hourly rates (first derivative of OI).

    The first point's rate is excluded from every window since it has no
    predecessor.
    """
    if window < 1:
        raise ValueError("window must be positive")

    momentum: list[Decimal] = []
    for i in range(len(rates)):
        if i == 0:
            momentum.append(_ZERO)
            continue
        trailing = rates[max(1, i - window + 1) : i + 1]
        momentum.append(_mean(trailing).quantize(_QUANTIZE))
    return momentum


def compute_acceleration(momentum: Sequence[Decimal]) -> list[Decimal]:
    """Point-to-point change of momentum (second derivative of OI)."""
    return [
        _ZERO if i == 0 else (momentum[i] - momentum[i - 1]).quantize(_QUANTIZE)
        for i in range(len(momentum))
    ]


@dataclass(frozen=True)
class _PointContext:
    delta: Decimal
    momentum: Decimal
    acceleration: Decimal
    prior_trend: Decimal
    is_real: bool
    recent_unwind: bool


@dataclass(frozen=True)
class _Thresholds:
    materiality: Decimal
    acceleration: Decimal
    unwind: Decimal


ScenarioRule = Callable[[_PointContext, _Thresholds], bool]

SCENARIO_RULES: tuple[tuple[OIScenario, ScenarioRule], ...] = (
    (
        OIScenario.FORCED_UNWIND,
        lambda c, t: c.delta < 0
        and c.momentum <= -t.unwind
        and c.acceleration <= -t.unwind
        and c.prior_trend >= t.materiality,
    ),
    (
        OIScenario.POST_LIQ_BOUNCE,
        lambda c, t: c.recent_unwind and c.momentum > 0 and c.acceleration > 0,
    ),
    (
        OIScenario.SWING_REVERSAL,
        lambda c, t: abs(c.prior_trend) >= t.materiality
        and _sign(c.momentum) == -_sign(c.prior_trend)
        and _sign(c.acceleration) == _sign(c.momentum)
        and abs(c.acceleration) >= t.acceleration,
    ),
    (
        OIScenario.TREND_CONTINUATION,
        lambda c, t: _sign(c.momentum) != 0
        and _sign(c.momentum) == _sign(c.acceleration)
        and abs(c.momentum) >= t.materiality
        and abs(c.acceleration) >= t.acceleration,
    ),
    (
        OIScenario.FAKE_BUILDUP,
        lambda c, t: c.delta > 0 and c.momentum > 0 and not c.is_real,
    ),
    (
        OIScenario.ACCUMULATION,
        lambda c, t: c.momentum > 0 and abs(c.acceleration) < t.acceleration,
    ),
    (
        OIScenario.DISTRIBUTION,
        lambda c, t: c.momentum < 0 and abs(c.acceleration) < t.acceleration,
    ),
)


def _classify(context: _PointContext, thresholds: _Thresholds) -> OIScenario:
    for scenario, rule in SCENARIO_RULES:
        if rule(context, thresholds):
            return scenario
    return OIScenario.NEUTRAL


def _strength(momentum: Decimal, materiality: Decimal) -> SignalStrength:
    ratio = abs(momentum) / materiality
    if ratio >= 5:
        return SignalStrength.EXTREME
    if ratio >= 3:
        return SignalStrength.STRONG
    if ratio >= 1:
        return SignalStrength.MODERATE
    return SignalStrength.WEAK


def classify_momentum(
    points: Sequence[OpenInterestPoint],
    window: int = 3,
    materiality_pct: Decimal = Decimal("1.0"),
    acceleration_threshold: Decimal = Decimal("0.5"),
    unwind_threshold: Decimal = Decimal("2.0"),
    persistence_points: int = 3,
    trend_lookback: int = 10,
    bounce_lookback: int = 5,
    min_points: int = 3,
) -> list[OIMomentumPoint]:
    """Classify every point of an OI series by momentum scenario.

    Args:
        points: OI samples ordered oldest-first with ``delta`` populated
            (see ``oitrader.models.with_deltas``).
        window: Trailing points averaged into momentum.
        materiality_pct: Momentum (%/h) separating material moves from noise.
        acceleration_threshold: Minimum |acceleration| for accelerating scenarios.
        unwind_threshold: Momentum and acceleration floor for a forced unwind.
        persistence_points: Consecutive material points required for "real" OI.
        trend_lookback: Points averaged into the prior trend.
        bounce_lookback: Points after a forced unwind that may be a bounce.
        min_points: Series shorter than this yield an empty result.

    Returns:
        One OIMomentumPoint per input point, or an empty list for short series.
    """
    if materiality_pct <= 0:
        raise ValueError("materiality_pct must be positive")
    if len(points) < max(min_points, 1):
        return []

    ensure_ascending(points, "open_interest")

    rates = compute_hourly_rates(points)
    momentum = compute_momentum(rates, window)
    acceleration = compute_acceleration(momentum)
    thresholds = _Thresholds(
        materiality=materiality_pct,
        acceleration=acceleration_threshold,
        unwind=unwind_threshold,
    )

    results: list[OIMomentumPoint] = []
    streak = 0
    last_unwind: int | None = None
    for i, point in enumerate(points):
        m = momentum[i]
        if abs(m) >= materiality_pct and (streak == 0 or _sign(m) == _sign(momentum[i - 1])):
            streak += 1
        elif abs(m) >= materiality_pct:
            streak = 1
        else:
            streak = 0

        context = _PointContext(
            delta=point.delta,
            momentum=m,
            acceleration=acceleration[i],
            prior_trend=_mean(momentum[max(0, i - trend_lookback) : i]),
            is_real=streak >= persistence_points,
            recent_unwind=last_unwind is not None and i - last_unwind <= bounce_lookback,
        )
        scenario = _classify(context, thresholds)
        if scenario == OIScenario.FORCED_UNWIND:
            last_unwind = i

        results.append(
            OIMomentumPoint(
                timestamp=point.timestamp,
                oi=point.value,
                momentum=m,
                acceleration=acceleration[i],
                scenario=scenario,
                strength=_strength(m, materiality_pct),
                is_real=context.is_real,
            )
        )

    return results


def _generate_alerts(current: OIMomentumPoint) -> list[Alert]:
    alerts: list[Alert] = []
    strong = current.strength in (SignalStrength.STRONG, SignalStrength.EXTREME)

    if current.scenario == OIScenario.FORCED_UNWIND and current.strength == SignalStrength.EXTREME:
        alerts.append(Alert(AlertLevel.CRITICAL, "EXTREME FORCED UNWIND - Large positions being closed rapidly", 95))
    if current.scenario == OIScenario.SWING_REVERSAL and strong:
        alerts.append(
            Alert(AlertLevel.CRITICAL, "SWING REVERSAL DETECTED - Momentum turning against the prior trend", 85)
        )
    if current.scenario == OIScenario.POST_LIQ_BOUNCE:
        alerts.append(Alert(AlertLevel.WARNING, "POST-LIQ BOUNCE - Recovery after liquidation cascade", 75))
    if current.scenario == OIScenario.FAKE_BUILDUP:
        alerts.append(Alert(AlertLevel.WARNING, "FAKE OI BUILDUP - Likely arbitrage activity, not directional", 70))
    if current.scenario == OIScenario.TREND_CONTINUATION and strong:
        alerts.append(Alert(AlertLevel.INFO, "STRONG TREND CONTINUATION - OI expanding with momentum", 80))
    if current.scenario == OIScenario.ACCUMULATION:
        alerts.append(Alert(AlertLevel.INFO, "ACCUMULATION PHASE - Steady OI buildup", 65))

    return alerts


def analyze_oi_momentum(
    points: Sequence[OpenInterestPoint],
    window: int = 3,
    materiality_pct: Decimal = Decimal("1.0"),
    acceleration_threshold: Decimal = Decimal("0.5"),
    unwind_threshold: Decimal = Decimal("2.0"),
    persistence_points: int = 3,
    trend_lookback: int = 10,
    bounce_lookback: int = 5,
    min_points: int = 3,
) -> OIMomentumAnalysis:
    """Classify an OI series and summarize its latest state.

    Parameters are those of ``classify_momentum``. The overall trend is the
    mean momentum of the last ``trend_lookback`` points compared against
    +/- ``materiality_pct``.

    Returns:
        OIMomentumAnalysis. Too-short series yield no points, no current
        point, a NEUTRAL trend and no alerts.
    """
    classified = classify_momentum(
        points,
        window=window,
        materiality_pct=materiality_pct,
        acceleration_threshold=acceleration_threshold,
        unwind_threshold=unwind_threshold,
        persistence_points=persistence_points,
        trend_lookback=trend_lookback,
        bounce_lookback=bounce_lookback,
        min_points=min_points,
    )
    if not classified:
        return OIMomentumAnalysis(current=None, trend=TrendBias.NEUTRAL)

    recent = _mean([p.momentum for p in classified[-trend_lookback:]])
    if recent > materiality_pct:
        trend = TrendBias.BULLISH
    elif recent < -materiality_pct:
        trend = TrendBias.BEARISH
    else:
        trend = TrendBias.NEUTRAL

    current = classified[-1]
    summary = SignalSummary(
        trend_continuation=current.scenario == OIScenario.TREND_CONTINUATION,
        swing_reversal=current.scenario == OIScenario.SWING_REVERSAL,
        forced_unwind=current.scenario == OIScenario.FORCED_UNWIND,
        post_liq_bounce=current.scenario == OIScenario.POST_LIQ_BOUNCE,
        fake_oi=current.scenario == OIScenario.FAKE_BUILDUP,
    )
    alerts = _generate_alerts(current)

    logger.debug(
        "oi_momentum_analyzed",
        points=len(classified),
        scenario=current.scenario.value,
        trend=trend.value,
        alerts=len(alerts),
    )
    return OIMomentumAnalysis(
        current=current,
        trend=trend,
        points=tuple(classified),
        signals=summary,
        alerts=tuple(alerts),
    )


_BASE_SCORES: dict[OIScenario, int] = {
    OIScenario.TREND_CONTINUATION: 70,
    OIScenario.SWING_REVERSAL: 80,
    OIScenario.FORCED_UNWIND: 90,
    OIScenario.POST_LIQ_BOUNCE: 75,
    OIScenario.ACCUMULATION: 60,
    OIScenario.DISTRIBUTION: 55,
    OIScenario.FAKE_BUILDUP: 30,
    OIScenario.NEUTRAL: 0,
}

_STRENGTH_MULTIPLIERS: dict[SignalStrength, Decimal] = {
    SignalStrength.EXTREME: Decimal("1.2"),
    SignalStrength.STRONG: Decimal("1.1"),
    SignalStrength.MODERATE: Decimal("1.0"),
    SignalStrength.WEAK: Decimal("0.8"),
}


def signal_score(point: OIMomentumPoint) -> int:
    """Score a classified point from 0 to 100.

    Formula: min(round(base * strength_multiplier + bonus), 100) where the
    bonus is min((|momentum| + |acceleration|) / 2, 10).
    """
    base = Decimal(_BASE_SCORES[point.scenario])
    bonus = min((abs(point.momentum) + abs(point.acceleration)) / 2, Decimal("10"))
    score = base * _STRENGTH_MULTIPLIERS[point.strength] + bonus
    return min(int(score.to_integral_value()), 100)


def momentum_statistics(points: Sequence[OIMomentumPoint]) -> MomentumStatistics:
    """Summarize the last 30 classified points into a flow regime.

    Trend bars are continuation or accumulation points; distribution bars are
    distribution or swing-reversal points. More than 60% trend bars is
    TRENDING, fewer than 30% RANGING, anything else MIXED.
    """
    recent = list(points[-STATISTICS_LOOKBACK:])
    if not recent:
        return MomentumStatistics(
            trend_bars=0,
            distribution_bars=0,
            neutral_bars=0,
            avg_momentum=_ZERO,
            avg_acceleration=_ZERO,
            trend_ratio=_ZERO,
            regime=FlowRegime.MIXED,
            total=0,
        )

    def count(*scenarios: OIScenario) -> int:
        return sum(1 for p in recent if p.scenario in scenarios)

    trend_bars = count(OIScenario.TREND_CONTINUATION, OIScenario.ACCUMULATION)
    trend_ratio = Decimal(trend_bars) / len(recent) * _HUNDRED
    if trend_ratio > 60:
        regime = FlowRegime.TRENDING
    elif trend_ratio < 30:
        regime = FlowRegime.RANGING
    else:
        regime = FlowRegime.MIXED

    return MomentumStatistics(
        trend_bars=trend_bars,
        distribution_bars=count(OIScenario.DISTRIBUTION, OIScenario.SWING_REVERSAL),
        neutral_bars=count(OIScenario.NEUTRAL),
        avg_momentum=_mean([p.momentum for p in recent]),
        avg_acceleration=_mean([p.acceleration for p in recent]),
        trend_ratio=trend_ratio,
        regime=regime,
        total=len(recent),
    )


_INTERPRETATIONS: dict[OIScenario, TradingInterpretation] = {
    OIScenario.SWING_REVERSAL: TradingInterpretation(
        "OI momentum is turning against the prior trend. Watch for mean-reversion and fake breakouts.",
        "Position builders are slowing down. Trend exhaustion likely. Prepare for consolidation or reversal.",
        RiskLevel.HIGH,
    ),
    OIScenario.POST_LIQ_BOUNCE: TradingInterpretation(
        "Recovery phase after liquidation cascade. Short-term bounce likely, but confirm with price action.",
        "OI stabilizing after sharp decline. Weak hands flushed. Potential mean-reversion setup.",
        RiskLevel.MEDIUM,
    ),
    OIScenario.ACCUMULATION: TradingInterpretation(
        "Steady OI buildup indicates smart money accumulation. Good for position building over time.",
        "Slow, steady OI increase without volatility suggests professional accumulation, not retail FOMO.",
        RiskLevel.LOW,
    ),
    OIScenario.DISTRIBUTION: TradingInterpretation(
        "OI declining steadily. Smart money may be exiting. Avoid new longs.",
        "Gradual OI reduction suggests distribution phase. Trend losing steam.",
        RiskLevel.MEDIUM,
    ),
    OIScenario.FAKE_BUILDUP: TradingInterpretation(
        "OI increasing but momentum not sustained. Likely arbitrage activity, not directional. Do not chase.",
        "OI expansion without persistence indicates non-directional flow (funding arb, spread trades). Not tradeable.",
        RiskLevel.HIGH,
    ),
    OIScenario.NEUTRAL: TradingInterpretation(
        "OI flow is weak and choppy. Better to reduce size or wait for clearer signal.",
        "No clear directional conviction in OI. Market in consolidation. Low probability setups.",
        RiskLevel.MEDIUM,
    ),
}


def trading_interpretation(point: OIMomentumPoint) -> TradingInterpretation:
    """Describe what a classified point means for a trader.

    Trend continuation and forced unwinds read differently depending on
    strength; every other scenario has a single reading.
    """
    if point.scenario == OIScenario.TREND_CONTINUATION:
        if point.strength in (SignalStrength.STRONG, SignalStrength.EXTREME):
            return TradingInterpretation(
                "New positions are building with OI momentum. Breakouts have higher probability to continue.",
                "Strong directional OI expansion indicates real money flow, not arbitrage. "
                "This supports trend continuation.",
                RiskLevel.LOW,
            )
        return TradingInterpretation(
            "Moderate OI expansion detected. Consider adding to positions on pullbacks.",
            "OI momentum is positive but not extreme. Wait for confirmation before aggressive entries.",
            RiskLevel.MEDIUM,
        )

    if point.scenario == OIScenario.FORCED_UNWIND:
        if point.strength == SignalStrength.EXTREME:
            return TradingInterpretation(
                "CRITICAL: Massive position unwinding in progress. Close longs immediately or prepare for sharp move.",
                "Extreme OI decline indicates forced liquidations. Price volatility will spike. "
                "Risk management critical.",
                RiskLevel.HIGH,
            )
        return TradingInterpretation(
            "Position unwinding detected. Reduce exposure and wait for stabilization.",
            "OI contraction suggests players exiting. Low conviction environment. Better to stay flat.",
            RiskLevel.MEDIUM,
        )

    return _INTERPRETATIONS[point.scenario]


def strategy_recommendation(scenario: OIScenario, regime: FlowRegime) -> str:
    """Trading style suited to a scenario within the current flow regime."""
    if scenario == OIScenario.TREND_CONTINUATION and regime == FlowRegime.TRENDING:
        return "Best suited for: Breakout entries / Trend following"
    if scenario in (OIScenario.SWING_REVERSAL, OIScenario.DISTRIBUTION):
        return "Best suited for: Mean-reversion / Counter-trend scalps"
    if scenario == OIScenario.FORCED_UNWIND:
        return "Best suited for: Wait for stabilization / Avoid new entries"
    if scenario == OIScenario.POST_LIQ_BOUNCE:
        return "Best suited for: Quick bounce scalps / Reduced size"
    if scenario == OIScenario.ACCUMULATION and regime == FlowRegime.RANGING:
        return "Best suited for: Pullback entries in range / Position building"
    if scenario == OIScenario.FAKE_BUILDUP:
        return "Best suited for: Stay out / Wait for real directional flow"
    if regime == FlowRegime.RANGING:
        return "Best suited for: Range trading / Avoid trend strategies"
    return "Best suited for: Wait for clearer signal / Reduce position size"


_RISK_BOOSTED = RiskMode(
    Decimal("1.5"), "1.5R (Boosted)", "Extreme OI expansion with strong trend - High conviction setup"
)
_RISK_INCREASED = RiskMode(
    Decimal("1.2"), "1.2R (Increased)", "Strong directional OI flow - Above normal size appropriate"
)
_RISK_ACCUMULATION = RiskMode(Decimal("1.0"), "1R (Normal)", "Steady accumulation in trend - Standard position size")
_RISK_BOUNCE = RiskMode(
    Decimal("0.6"), "0.6R (Reduced)", "Bounce trade after liquidation - Take profit quickly with smaller size"
)
_RISK_REVERSAL = RiskMode(Decimal("0.5"), "0.5R (Reduced)", "OI momentum fading - Reduce size for mean-reversion play")
_RISK_UNWIND = RiskMode(Decimal("0"), "0R (Flat)", "Forced liquidation in progress - Stay flat and wait")
_RISK_FAKE = RiskMode(Decimal("0"), "0R (Flat)", "Fake OI (arbitrage) - No directional edge, stay out")
_RISK_RANGING = RiskMode(Decimal("0.5"), "0.5R (Reduced)", "Market in range - Reduce size, avoid trend strategies")
_RISK_CAUTIOUS = RiskMode(
    Decimal("0.7"), "0.7R (Cautious)", "Mixed signals or weak momentum - Trade cautiously with reduced size"
)
_RISK_DISTRIBUTION = RiskMode(Decimal("0.5"), "0.5R (Reduced)", "OI declining steadily - Avoid longs, reduce exposure")
_RISK_NORMAL = RiskMode(Decimal("1.0"), "1R (Normal)", "Standard market conditions - Normal position size")


def risk_mode_suggestion(
    point: OIMomentumPoint,
    regime: FlowRegime,
    materiality_pct: Decimal = Decimal("1.0"),
) -> RiskMode:
    """Suggest a position size multiplier from scenario, strength and regime.

    Rules are checked in order; the first match wins. Boosted sizes need
    strong continuation, flat (0R) is advised during forced unwinds and
    fake buildups.
    """
    scenario, strength = point.scenario, point.strength
    strong = strength in (SignalStrength.STRONG, SignalStrength.EXTREME)

    if scenario == OIScenario.TREND_CONTINUATION:
        if strength == SignalStrength.EXTREME and regime == FlowRegime.TRENDING:
            return _RISK_BOOSTED
        if strong:
            return _RISK_INCREASED
    if scenario == OIScenario.ACCUMULATION and regime == FlowRegime.TRENDING and point.momentum > materiality_pct:
        return _RISK_ACCUMULATION
    if scenario == OIScenario.POST_LIQ_BOUNCE:
        return _RISK_BOUNCE
    if scenario == OIScenario.SWING_REVERSAL:
        return _RISK_REVERSAL
    if scenario == OIScenario.FORCED_UNWIND:
        return _RISK_UNWIND
    if scenario == OIScenario.FAKE_BUILDUP:
        return _RISK_FAKE
    if regime == FlowRegime.RANGING:
        return _RISK_RANGING
    if regime == FlowRegime.MIXED or not strong:
        return _RISK_CAUTIOUS
    if scenario == OIScenario.DISTRIBUTION:
        return _RISK_DISTRIBUTION
    return _RISK_NORMAL
