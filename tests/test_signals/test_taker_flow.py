"""Tests for taker flow analysis."""

from decimal import Decimal

from oitrader.models import TakerVolume
from oitrader.signals.models import FlowType, PressureSignal, SignalStrength, TrendBias
from oitrader.signals.taker_flow import analyze_taker_flow, cumulative_taker_flow, taker_flow_signal


def _volume(buy: str, sell: str, ts: int = 0) -> TakerVolume:
    buy_d, sell_d = Decimal(buy), Decimal(sell)
    return TakerVolume(
        symbol="BTCUSDT",
        buy_sell_ratio=buy_d / sell_d,
        buy_volume=buy_d,
        sell_volume=sell_d,
        timestamp=ts,
    )


class TestAnalyzeTakerFlow:
    """Tests for flow typing, dominance and bias."""

    def test_empty_is_neutral(self) -> None:
        analysis = analyze_taker_flow([])
        assert analysis.flows == ()
        assert analysis.dominant_flow == FlowType.BALANCED
        assert analysis.flow_strength == SignalStrength.WEAK
        assert analysis.current_bias == TrendBias.NEUTRAL

    def test_flow_types_by_ratio(self) -> None:
        analysis = analyze_taker_flow([_volume("130", "100", 1), _volume("70", "100", 2), _volume("100", "100", 3)])
        assert [f.flow_type for f in analysis.flows] == [
            FlowType.AGGRESSIVE_BUY,
            FlowType.AGGRESSIVE_SELL,
            FlowType.NEUTRAL,
        ]

    def test_intensity_relative_to_largest_net_flow(self) -> None:
        analysis = analyze_taker_flow([_volume("200", "100", 1), _volume("150", "100", 2)])
        assert analysis.flows[0].intensity == Decimal("100")
        assert analysis.flows[1].intensity == Decimal("50")

    def test_totals_and_average(self) -> None:
        analysis = analyze_taker_flow([_volume("200", "100", 1), _volume("100", "150", 2)])
        assert analysis.total_buy_volume == Decimal("300")
        assert analysis.total_sell_volume == Decimal("250")
        assert analysis.avg_net_flow == Decimal("25")

    def test_dominant_buy_gives_bullish_bias(self) -> None:
        series = [_volume("150", "100", i) for i in range(4)] + [_volume("80", "100", 9)]
        analysis = analyze_taker_flow(series)
        assert analysis.dominant_flow == FlowType.AGGRESSIVE_BUY
        assert analysis.current_bias == TrendBias.BULLISH

    def test_dominant_sell_gives_bearish_bias(self) -> None:
        series = [_volume("60", "100", i) for i in range(3)]
        analysis = analyze_taker_flow(series)
        assert analysis.dominant_flow == FlowType.AGGRESSIVE_SELL
        assert analysis.current_bias == TrendBias.BEARISH
        assert analysis.flow_strength == SignalStrength.STRONG

    def test_balanced_counts(self) -> None:
        series = [_volume("150", "100", 1), _volume("60", "100", 2)]
        analysis = analyze_taker_flow(series)
        assert analysis.dominant_flow == FlowType.BALANCED
        assert analysis.current_bias == TrendBias.NEUTRAL

    def test_no_net_flow_gives_zero_intensity(self) -> None:
        analysis = analyze_taker_flow([_volume("100", "100", 1)])
        assert analysis.flows[0].intensity == Decimal("0")


class TestTakerFlowSignal:
    """Tests for the per-point pressure reading."""

    def test_strong_buy_pressure(self) -> None:
        flow = analyze_taker_flow([_volume("200", "100", 1)]).flows[0]
        signal = taker_flow_signal(flow)
        assert signal.signal == PressureSignal.BUY_PRESSURE
        assert signal.strength == SignalStrength.STRONG
        assert signal.description == "STRONG aggressive buying - Takers lifting offers (2.00x buy/sell)"

    def test_moderate_sell_pressure(self) -> None:
        # Net flows -50 and -100: the first point sits at intensity 50
        flows = analyze_taker_flow([_volume("50", "100", 1), _volume("100", "200", 2)]).flows
        signal = taker_flow_signal(flows[0])
        assert signal.signal == PressureSignal.SELL_PRESSURE
        assert signal.strength == SignalStrength.MODERATE
        assert "Takers hitting bids (0.50x buy/sell)" in signal.description

    def test_weak_aggression(self) -> None:
        flows = analyze_taker_flow([_volume("130", "100", 1), _volume("500", "100", 2)]).flows
        assert taker_flow_signal(flows[0]).strength == SignalStrength.WEAK

    def test_neutral_flow(self) -> None:
        flow = analyze_taker_flow([_volume("100", "100", 1)]).flows[0]
        signal = taker_flow_signal(flow)
        assert signal.signal == PressureSignal.NEUTRAL
        assert signal.strength == SignalStrength.WEAK
        assert signal.description.startswith("Balanced taker flow")


class TestCumulativeTakerFlow:
    """Tests for the running net flow trend."""

    def test_empty(self) -> None:
        assert cumulative_taker_flow([]) == []

    def test_running_sum_and_trend(self) -> None:
        # Net flows +50, -60, -40: threshold is 15
        flows = analyze_taker_flow([_volume("150", "100", 1), _volume("40", "100", 2), _volume("60", "100", 3)]).flows
        points = cumulative_taker_flow(flows)
        assert [p.cumulative_net_flow for p in points] == [Decimal("50"), Decimal("-10"), Decimal("-50")]
        assert [p.trend for p in points] == [TrendBias.BULLISH, TrendBias.NEUTRAL, TrendBias.BEARISH]
        assert [p.timestamp for p in points] == [1, 2, 3]
