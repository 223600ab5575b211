"""Rule-cascade classification of market and funding regimes.

Each classifier is an ordered list of (predicate, outcome) rules evaluated
top to bottom; the first matching rule wins. Rule order is the tie-break, so
reordering the lists changes results.

Description strings are rendered verbatim by the dashboard and must not be
reworded.

CRITICAL: All computations use Decimal. Never use float.
"""

from collections.abc import Callable, Sequence
from decimal import Decimal

from oitrader.models import FundingRate
from oitrader.signals.models import (
    Bias,
    FundingRegime,
    FundingRegimeType,
    MarketRegime,
    MarketRegimeType,
    RiskLevel,
)

_HUNDRED = Decimal("100")

#: Number of most-recent settlements averaged into FundingRegime.average.
FUNDING_AVERAGE_PERIODS = 10

MarketPredicate = Callable[[Decimal, Decimal, Decimal], bool]

#: (predicate(funding_rate, long_short_ratio, oi_change), regime, risk, description)
MARKET_REGIME_RULES: tuple[tuple[MarketPredicate, MarketRegimeType, RiskLevel, str], ...] = (
    (
        lambda fr, ls, oi: fr > Decimal("0.01") and oi > Decimal("0.1") and ls > Decimal("1.5"),
        MarketRegimeType.BULLISH_OVERHEATED,
        RiskLevel.HIGH,
        "Overleveraged longs, potential for long squeeze",
    ),
    (
        lambda fr, ls, oi: fr < Decimal("-0.01") and oi > Decimal("0.1") and ls < Decimal("0.7"),
        MarketRegimeType.BEARISH_OVERHEATED,
        RiskLevel.HIGH,
        "Overleveraged shorts, potential for short squeeze",
    ),
    (
        lambda fr, ls, oi: Decimal("0") < fr <= Decimal("0.01")
        and Decimal("1.2") <= ls <= Decimal("1.5"),
        MarketRegimeType.BULLISH_HEALTHY,
        RiskLevel.LOW,
        "Healthy bullish conditions, sustainable uptrend",
    ),
    (
        lambda fr, ls, oi: Decimal("-0.01") <= fr < Decimal("0")
        and Decimal("0.7") <= ls < Decimal("0.9"),
        MarketRegimeType.BEARISH_HEALTHY,
        RiskLevel.LOW,
        "Healthy bearish conditions, sustainable downtrend",
    ),
)

_NEUTRAL_MARKET = (
    MarketRegimeType.NEUTRAL,
    RiskLevel.MEDIUM,
    "Balanced market conditions, no clear directional bias",
)


def classify_market_regime(
    funding_rate: Decimal,
    long_short_ratio: Decimal,
    oi_change: Decimal,
) -> MarketRegime:
    """Classify the composite market regime from funding, positioning and OI growth.

    Args:
        funding_rate: Current funding rate (raw fraction).
        long_short_ratio: Long/short account ratio.
        oi_change: Open interest change (fraction).

    Returns:
        MarketRegime of the first matching rule, NEUTRAL/MEDIUM otherwise.
        The three inputs are echoed back on the result.
    """
    regime, risk, description = _NEUTRAL_MARKET
    for predicate, rule_regime, rule_risk, rule_description in MARKET_REGIME_RULES:
        if predicate(funding_rate, long_short_ratio, oi_change):
            regime, risk, description = rule_regime, rule_risk, rule_description
            break

    return MarketRegime(
        regime=regime,
        risk=risk,
        description=description,
        funding_rate=funding_rate,
        long_short_ratio=long_short_ratio,
        oi_change=oi_change,
    )


FundingPredicate = Callable[[Decimal], bool]

#: (predicate(value_pct), regime, bias, description template)
FUNDING_REGIME_RULES: tuple[tuple[FundingPredicate, FundingRegimeType, Bias, str], ...] = (
    (
        lambda v: abs(v) > Decimal("0.1") and v > 0,
        FundingRegimeType.EXTREME,
        Bias.SHORT,
        "Extreme positive funding ({value}%). Longs paying shorts - potential long squeeze risk.",
    ),
    (
        lambda v: abs(v) > Decimal("0.1"),
        FundingRegimeType.EXTREME,
        Bias.LONG,
        "Extreme negative funding ({value}%). Shorts paying longs - potential short squeeze risk.",
    ),
    (
        lambda v: v > Decimal("0.03"),
        FundingRegimeType.POSITIVE,
        Bias.SHORT,
        "Positive funding ({value}%). Longs paying shorts - bullish sentiment, watch for overheating.",
    ),
    (
        lambda v: v < Decimal("-0.03"),
        FundingRegimeType.NEGATIVE,
        Bias.LONG,
        "Negative funding ({value}%). Shorts paying longs - bearish sentiment, potential reversal setup.",
    ),
)

_NEUTRAL_FUNDING_TEMPLATE = "Neutral funding ({value}%). Balanced market conditions."
NO_FUNDING_DATA_DESCRIPTION = "No funding rate data available"


def classify_funding_regime(funding_rates: Sequence[FundingRate]) -> FundingRegime:
    """Classify the funding regime from a most-recent-first settlement series.

    ``value`` is the latest rate in percent; ``average`` is the mean of up to
    the 10 most recent settlements, also in percent. Only ``value`` drives the
    classification.

    Args:
        funding_rates: Funding settlements ordered NEWEST first.

    Returns:
        FundingRegime. Empty input yields NEUTRAL with value 0.
    """
    if not funding_rates:
        return FundingRegime(
            regime=FundingRegimeType.NEUTRAL,
            value=Decimal("0"),
            bias=Bias.NEUTRAL,
            description=NO_FUNDING_DATA_DESCRIPTION,
        )

    value = funding_rates[0].funding_rate * _HUNDRED
    recent = funding_rates[:FUNDING_AVERAGE_PERIODS]
    average = sum((f.funding_rate for f in recent), Decimal("0")) / len(recent) * _HUNDRED

    regime, bias, template = FundingRegimeType.NEUTRAL, Bias.NEUTRAL, _NEUTRAL_FUNDING_TEMPLATE
    for predicate, rule_regime, rule_bias, rule_template in FUNDING_REGIME_RULES:
        if predicate(value):
            regime, bias, template = rule_regime, rule_bias, rule_template
            break

    return FundingRegime(
        regime=regime,
        value=value,
        bias=bias,
        description=template.format(value=f"{value:.4f}"),
        average=average,
    )


def funding_bias(value_pct: Decimal) -> Bias:
    """Positioning bias implied by a funding percentage.

    Positive funding means longs pay, so the contrarian bias is SHORT.
    """
    if value_pct > Decimal("0.03"):
        return Bias.SHORT
    if value_pct < Decimal("-0.03"):
        return Bias.LONG
    return Bias.NEUTRAL
