"""Tests for market and funding regime classification.

Description strings are checked verbatim since the dashboard renders them
as-is.
"""

from decimal import Decimal

from oitrader.models import FundingRate
from oitrader.signals.models import Bias, FundingRegimeType, MarketRegimeType, RiskLevel
from oitrader.signals.regime import (
    NO_FUNDING_DATA_DESCRIPTION,
    classify_funding_regime,
    classify_market_regime,
    funding_bias,
)


def _rates(*values: str) -> list[FundingRate]:
    """Funding settlements, most recent first."""
    return [
        FundingRate(symbol="BTCUSDT", funding_rate=Decimal(v), funding_time=1_700_000_000_000 - i * 28_800_000)
        for i, v in enumerate(values)
    ]


class TestClassifyMarketRegime:
    """Tests for the composite market regime rule cascade."""

    def test_bullish_overheated(self) -> None:
        result = classify_market_regime(Decimal("0.02"), Decimal("1.6"), Decimal("0.15"))
        assert result.regime == MarketRegimeType.BULLISH_OVERHEATED
        assert result.risk == RiskLevel.HIGH
        assert result.description == "Overleveraged longs, potential for long squeeze"

    def test_bearish_overheated(self) -> None:
        result = classify_market_regime(Decimal("-0.02"), Decimal("0.6"), Decimal("0.15"))
        assert result.regime == MarketRegimeType.BEARISH_OVERHEATED
        assert result.risk == RiskLevel.HIGH
        assert result.description == "Overleveraged shorts, potential for short squeeze"

    def test_bullish_healthy(self) -> None:
        result = classify_market_regime(Decimal("0.005"), Decimal("1.3"), Decimal("0.01"))
        assert result.regime == MarketRegimeType.BULLISH_HEALTHY
        assert result.risk == RiskLevel.LOW

    def test_bullish_healthy_inclusive_bounds(self) -> None:
        result = classify_market_regime(Decimal("0.01"), Decimal("1.5"), Decimal("0"))
        assert result.regime == MarketRegimeType.BULLISH_HEALTHY

    def test_bearish_healthy(self) -> None:
        result = classify_market_regime(Decimal("-0.005"), Decimal("0.8"), Decimal("0"))
        assert result.regime == MarketRegimeType.BEARISH_HEALTHY
        assert result.description == "Healthy bearish conditions, sustainable downtrend"

    def test_overheated_requires_oi_growth(self) -> None:
        """High funding and crowded longs without OI growth fall through to NEUTRAL."""
        result = classify_market_regime(Decimal("0.02"), Decimal("1.6"), Decimal("0.05"))
        assert result.regime == MarketRegimeType.NEUTRAL
        assert result.risk == RiskLevel.MEDIUM
        assert result.description == "Balanced market conditions, no clear directional bias"

    def test_flat_market_is_neutral(self) -> None:
        result = classify_market_regime(Decimal("0"), Decimal("1.0"), Decimal("0"))
        assert result.regime == MarketRegimeType.NEUTRAL
        assert result.risk == RiskLevel.MEDIUM

    def test_inputs_echoed(self) -> None:
        result = classify_market_regime(Decimal("0.001"), Decimal("1"), Decimal("0.2"))
        assert result.funding_rate == Decimal("0.001")
        assert result.long_short_ratio == Decimal("1")
        assert result.oi_change == Decimal("0.2")


class TestClassifyFundingRegime:
    """Tests for funding regime classification (values in percent)."""

    def test_empty_is_neutral(self) -> None:
        result = classify_funding_regime([])
        assert result.regime == FundingRegimeType.NEUTRAL
        assert result.bias == Bias.NEUTRAL
        assert result.value == Decimal("0")
        assert result.description == NO_FUNDING_DATA_DESCRIPTION

    def test_extreme_positive(self) -> None:
        result = classify_funding_regime(_rates("0.0015"))
        assert result.regime == FundingRegimeType.EXTREME
        assert result.bias == Bias.SHORT
        assert result.value == Decimal("0.15")
        assert result.description == (
            "Extreme positive funding (0.1500%). Longs paying shorts - potential long squeeze risk."
        )

    def test_extreme_negative(self) -> None:
        result = classify_funding_regime(_rates("-0.0012"))
        assert result.regime == FundingRegimeType.EXTREME
        assert result.bias == Bias.LONG

    def test_positive(self) -> None:
        result = classify_funding_regime(_rates("0.0005"))
        assert result.regime == FundingRegimeType.POSITIVE
        assert result.bias == Bias.SHORT

    def test_negative(self) -> None:
        result = classify_funding_regime(_rates("-0.0005"))
        assert result.regime == FundingRegimeType.NEGATIVE
        assert result.bias == Bias.LONG

    def test_neutral(self) -> None:
        result = classify_funding_regime(_rates("0.0001"))
        assert result.regime == FundingRegimeType.NEUTRAL
        assert result.description == "Neutral funding (0.0100%). Balanced market conditions."

    def test_latest_value_drives_classification(self) -> None:
        """Only the most recent settlement is classified; history feeds the average."""
        result = classify_funding_regime(_rates("0.0001", "0.0020", "0.0020"))
        assert result.regime == FundingRegimeType.NEUTRAL
        assert Decimal("0.136") < result.average < Decimal("0.137")

    def test_average_uses_ten_most_recent(self) -> None:
        rates = _rates(*(["0.0001"] * 10 + ["0.0100"] * 5))
        result = classify_funding_regime(rates)
        assert result.average == Decimal("0.01")


class TestFundingBias:
    def test_bias_thresholds(self) -> None:
        assert funding_bias(Decimal("0.05")) == Bias.SHORT
        assert funding_bias(Decimal("-0.05")) == Bias.LONG
        assert funding_bias(Decimal("0.03")) == Bias.NEUTRAL
