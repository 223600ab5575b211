"""Taker (aggressive order) flow analysis.

Identifies which side is pushing price: takers lifting offers or hitting
bids. A buy/sell ratio above 1.2 is aggressive buying, below 0.8 aggressive
selling.
"""

from collections.abc import Sequence
from decimal import Decimal

from oitrader.logging import get_logger
from oitrader.models import TakerVolume
from oitrader.signals.models import (
    CumulativeFlowPoint,
    FlowType,
    PressureSignal,
    SignalStrength,
    TakerFlowAnalysis,
    TakerFlowPoint,
    TakerFlowSignal,
    TrendBias,
)

logger = get_logger(__name__)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")

AGGRESSIVE_BUY_RATIO = Decimal("1.2")
AGGRESSIVE_SELL_RATIO = Decimal("0.8")
DOMINANCE_FACTOR = Decimal("1.5")
BIAS_LOOKBACK = 10


def _flow_type(ratio: Decimal) -> FlowType:
    if ratio > AGGRESSIVE_BUY_RATIO:
        return FlowType.AGGRESSIVE_BUY
    if ratio < AGGRESSIVE_SELL_RATIO:
        return FlowType.AGGRESSIVE_SELL
    return FlowType.NEUTRAL


def _intensity_strength(intensity: Decimal) -> SignalStrength:
    if intensity > 70:
        return SignalStrength.STRONG
    if intensity > 40:
        return SignalStrength.MODERATE
    return SignalStrength.WEAK


def analyze_taker_flow(series: Sequence[TakerVolume]) -> TakerFlowAnalysis:
    """Summarize a taker buy/sell volume series.

    Intensity is each point's |net flow| as a percentage of the largest
    |net flow| in the series. One side dominates when its aggressive point
    count exceeds 1.5x the other's. The current bias needs both the net flow
    of the last 10 points and the dominant flow to agree.
    """
    if not series:
        return TakerFlowAnalysis(
            flows=(),
            avg_net_flow=_ZERO,
            total_buy_volume=_ZERO,
            total_sell_volume=_ZERO,
            dominant_flow=FlowType.BALANCED,
            flow_strength=SignalStrength.WEAK,
            current_bias=TrendBias.NEUTRAL,
        )

    max_abs_net = max(abs(s.buy_volume - s.sell_volume) for s in series)
    flows: list[TakerFlowPoint] = []
    for sample in series:
        net_flow = sample.buy_volume - sample.sell_volume
        intensity = abs(net_flow) / max_abs_net * _HUNDRED if max_abs_net > 0 else _ZERO
        flows.append(
            TakerFlowPoint(
                timestamp=sample.timestamp,
                buy_volume=sample.buy_volume,
                sell_volume=sample.sell_volume,
                net_flow=net_flow,
                buy_sell_ratio=sample.buy_sell_ratio,
                flow_type=_flow_type(sample.buy_sell_ratio),
                intensity=intensity,
            )
        )

    buy_count = sum(1 for f in flows if f.flow_type == FlowType.AGGRESSIVE_BUY)
    sell_count = sum(1 for f in flows if f.flow_type == FlowType.AGGRESSIVE_SELL)
    if buy_count > sell_count * DOMINANCE_FACTOR:
        dominant = FlowType.AGGRESSIVE_BUY
    elif sell_count > buy_count * DOMINANCE_FACTOR:
        dominant = FlowType.AGGRESSIVE_SELL
    else:
        dominant = FlowType.BALANCED

    avg_intensity = sum((f.intensity for f in flows), _ZERO) / len(flows)
    strength = _intensity_strength(avg_intensity)

    recent_net = sum((f.net_flow for f in flows[-BIAS_LOOKBACK:]), _ZERO)
    if recent_net > 0 and dominant == FlowType.AGGRESSIVE_BUY:
        bias = TrendBias.BULLISH
    elif recent_net < 0 and dominant == FlowType.AGGRESSIVE_SELL:
        bias = TrendBias.BEARISH
    else:
        bias = TrendBias.NEUTRAL

    logger.debug("taker_flow_analyzed", points=len(flows), dominant=dominant.value, bias=bias.value)
    return TakerFlowAnalysis(
        flows=tuple(flows),
        avg_net_flow=sum((f.net_flow for f in flows), _ZERO) / len(flows),
        total_buy_volume=sum((f.buy_volume for f in flows), _ZERO),
        total_sell_volume=sum((f.sell_volume for f in flows), _ZERO),
        dominant_flow=dominant,
        flow_strength=strength,
        current_bias=bias,
    )


def taker_flow_signal(point: TakerFlowPoint) -> TakerFlowSignal:
    """Read pressure from a single flow point, usually the latest."""
    ratio = f"{point.buy_sell_ratio:.2f}x buy/sell"
    if point.flow_type == FlowType.AGGRESSIVE_BUY:
        strength = _intensity_strength(point.intensity)
        return TakerFlowSignal(
            signal=PressureSignal.BUY_PRESSURE,
            strength=strength,
            description=f"{strength.value} aggressive buying - Takers lifting offers ({ratio})",
        )
    if point.flow_type == FlowType.AGGRESSIVE_SELL:
        strength = _intensity_strength(point.intensity)
        return TakerFlowSignal(
            signal=PressureSignal.SELL_PRESSURE,
            strength=strength,
            description=f"{strength.value} aggressive selling - Takers hitting bids ({ratio})",
        )
    return TakerFlowSignal(
        signal=PressureSignal.NEUTRAL,
        strength=SignalStrength.WEAK,
        description=f"Balanced taker flow - No dominant pressure ({ratio})",
    )


def cumulative_taker_flow(flows: Sequence[TakerFlowPoint]) -> list[CumulativeFlowPoint]:
    """Running sum of net flow with a trend label per point.

    The trend turns BULLISH/BEARISH once the running sum passes 10% of the
    total absolute net flow in either direction.
    """
    threshold = sum((abs(f.net_flow) for f in flows), _ZERO) * Decimal("0.1")
    cumulative = _ZERO
    points: list[CumulativeFlowPoint] = []
    for flow in flows:
        cumulative += flow.net_flow
        if cumulative > threshold:
            trend = TrendBias.BULLISH
        elif cumulative < -threshold:
            trend = TrendBias.BEARISH
        else:
            trend = TrendBias.NEUTRAL
        points.append(CumulativeFlowPoint(timestamp=flow.timestamp, cumulative_net_flow=cumulative, trend=trend))
    return points
