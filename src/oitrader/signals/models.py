"""Result records produced by the analytics core.

CRITICAL: All numeric values use Decimal. Never use float for signal computations.
Every record is produced by one analytics call and is immutable.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class Bias(str, Enum):
    """Directional positioning bias."""

    LONG = "LONG"
    SHORT = "SHORT"
    NEUTRAL = "NEUTRAL"


class RiskLevel(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


# ---------------------------------------------------------------------------
# Liquidations
# ---------------------------------------------------------------------------


class ClusterType(str, Enum):
    """Dominant character of a liquidation cluster."""

    LONG_SQUEEZE = "LONG_SQUEEZE"
    SHORT_SQUEEZE = "SHORT_SQUEEZE"
    BALANCED = "BALANCED"
    MINIMAL = "MINIMAL"


class ProximitySignal(str, Enum):
    LONG_SQUEEZE_RISK = "LONG_SQUEEZE_RISK"
    SHORT_SQUEEZE_RISK = "SHORT_SQUEEZE_RISK"
    BALANCED = "BALANCED"
    SAFE = "SAFE"


@dataclass(frozen=True)
class LiquidationCluster:
    """Liquidations accumulated into one price bucket.

    ``price`` is the bucket floor. Long/short fields are summed quantities,
    ``total_value`` is the summed notional (quantity x price).
    """

    price: Decimal
    long_liquidations: Decimal
    short_liquidations: Decimal
    total_value: Decimal
    count: int = 0


@dataclass(frozen=True)
class NetPressure:
    net_long: Decimal
    net_short: Decimal
    bias: Bias


@dataclass(frozen=True)
class ClusterDetail:
    """A cluster with its intensity (0-100 of the largest cluster) and type."""

    cluster: LiquidationCluster
    intensity: Decimal
    cluster_type: ClusterType


@dataclass(frozen=True)
class LiquidationClusterSummary:
    clusters: tuple[ClusterDetail, ...]
    max_value: Decimal
    total_long: Decimal
    total_short: Decimal
    strongest_long_squeeze_price: Decimal | None
    strongest_short_squeeze_price: Decimal | None
    dominant_type: ClusterType


@dataclass(frozen=True)
class ClusterProximity:
    nearest: ClusterDetail | None
    distance: Decimal
    signal: ProximitySignal
    action: str


# ---------------------------------------------------------------------------
# Regimes
# ---------------------------------------------------------------------------


class MarketRegimeType(str, Enum):
    BULLISH_OVERHEATED = "BULLISH_OVERHEATED"
    BEARISH_OVERHEATED = "BEARISH_OVERHEATED"
    BULLISH_HEALTHY = "BULLISH_HEALTHY"
    BEARISH_HEALTHY = "BEARISH_HEALTHY"
    NEUTRAL = "NEUTRAL"


class FundingRegimeType(str, Enum):
    EXTREME = "EXTREME"
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"
    NEUTRAL = "NEUTRAL"


@dataclass(frozen=True)
class MarketRegime:
    """Composite regime classification; the three inputs are echoed back."""

    regime: MarketRegimeType
    risk: RiskLevel
    description: str
    funding_rate: Decimal
    long_short_ratio: Decimal
    oi_change: Decimal


@dataclass(frozen=True)
class FundingRegime:
    """Funding classification. ``value`` and ``average`` are percentages."""

    regime: FundingRegimeType
    value: Decimal
    bias: Bias
    description: str
    average: Decimal = Decimal("0")


# ---------------------------------------------------------------------------
# Divergence
# ---------------------------------------------------------------------------


class DivergenceType(str, Enum):
    BEARISH_TRAP = "BEARISH_TRAP"
    BULLISH_CONTINUATION = "BULLISH_CONTINUATION"
    BEARISH_CONTINUATION = "BEARISH_CONTINUATION"
    BULLISH_TRAP = "BULLISH_TRAP"


@dataclass(frozen=True)
class DivergenceSignal:
    timestamp: int
    type: DivergenceType
    strength: Decimal
    price_change_percent: Decimal
    oi_change_percent: Decimal
    description: str = ""


# ---------------------------------------------------------------------------
# OI momentum
# ---------------------------------------------------------------------------


class OIScenario(str, Enum):
    """Scenario driving the open interest move at one point."""

    TREND_CONTINUATION = "TREND_CONTINUATION"
    SWING_REVERSAL = "SWING_REVERSAL"
    FORCED_UNWIND = "FORCED_UNWIND"
    POST_LIQ_BOUNCE = "POST_LIQ_BOUNCE"
    ACCUMULATION = "ACCUMULATION"
    DISTRIBUTION = "DISTRIBUTION"
    FAKE_BUILDUP = "FAKE_BUILDUP"
    NEUTRAL = "NEUTRAL"


class SignalStrength(str, Enum):
    WEAK = "WEAK"
    MODERATE = "MODERATE"
    STRONG = "STRONG"
    EXTREME = "EXTREME"


class TrendBias(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class AlertLevel(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class FlowRegime(str, Enum):
    TRENDING = "TRENDING"
    RANGING = "RANGING"
    MIXED = "MIXED"


@dataclass(frozen=True)
class OIMomentumPoint:
    """Classified momentum sample.

    ``is_real`` is True when the move has stayed material for enough
    consecutive points; single-point spikes are flagged fake.
    """

    timestamp: int
    oi: Decimal
    momentum: Decimal
    acceleration: Decimal
    scenario: OIScenario
    strength: SignalStrength
    is_real: bool


@dataclass(frozen=True)
class SignalSummary:
    trend_continuation: bool = False
    swing_reversal: bool = False
    forced_unwind: bool = False
    post_liq_bounce: bool = False
    fake_oi: bool = False


@dataclass(frozen=True)
class Alert:
    level: AlertLevel
    message: str
    confidence: int


@dataclass(frozen=True)
class OIMomentumAnalysis:
    current: OIMomentumPoint | None
    trend: TrendBias
    points: tuple[OIMomentumPoint, ...] = ()
    signals: SignalSummary = field(default_factory=SignalSummary)
    alerts: tuple[Alert, ...] = ()


@dataclass(frozen=True)
class MomentumStatistics:
    trend_bars: int
    distribution_bars: int
    neutral_bars: int
    avg_momentum: Decimal
    avg_acceleration: Decimal
    trend_ratio: Decimal
    regime: FlowRegime
    total: int


@dataclass(frozen=True)
class TradingInterpretation:
    """Plain-language reading of a classified momentum point."""

    action: str
    reasoning: str
    risk: RiskLevel


@dataclass(frozen=True)
class RiskMode:
    """Suggested position size as a multiple of the normal risk unit (R)."""

    multiplier: Decimal
    label: str
    reasoning: str


# ---------------------------------------------------------------------------
# Heatmaps
# ---------------------------------------------------------------------------


class ZoneType(str, Enum):
    """What drives a significant combined-heatmap cell."""

    ACCUMULATION = "ACCUMULATION"
    DISTRIBUTION = "DISTRIBUTION"
    LIQUIDATION = "LIQUIDATION"
    NEUTRAL = "NEUTRAL"


@dataclass(frozen=True)
class HeatmapCell:
    """One price x time cell.

    ``price_bucket``/``time_bucket`` are absolute bucket indices
    (floor(price / price_step), floor(timestamp / time_step)); ``price`` and
    ``timestamp`` are the bucket floors they correspond to.

    ``oi_delta`` is the summed OI change of the points in the cell;
    ``long_value``/``short_value`` split liquidation notional by the side
    that was closed. Cells of one kind of grid leave the other fields zero.
    """

    price_bucket: int
    time_bucket: int
    price: Decimal
    timestamp: int
    intensity: Decimal
    contributing_value: Decimal
    oi_delta: Decimal = Decimal("0")
    long_value: Decimal = Decimal("0")
    short_value: Decimal = Decimal("0")


@dataclass(frozen=True)
class Heatmap:
    """Dense price x time grid over half-open bounds.

    Cells are ordered by price bucket, then time bucket. Every bucket inside
    [price_min, price_max) x [time_start, time_end) is present.
    """

    price_min: Decimal
    price_max: Decimal
    time_start: int
    time_end: int
    price_step: Decimal
    time_step: int
    cells: tuple[HeatmapCell, ...]
    normalized: bool = True
    price_path: tuple[tuple[int, int], ...] = ()

    @property
    def rows(self) -> int:
        return int((self.price_max - self.price_min) / self.price_step)

    @property
    def columns(self) -> int:
        return (self.time_end - self.time_start) // self.time_step

    def cell_at(self, price_bucket: int, time_bucket: int) -> HeatmapCell | None:
        """Return the cell for absolute bucket coordinates, or None outside the grid."""
        first_row = int(self.price_min / self.price_step)
        first_col = self.time_start // self.time_step
        row = price_bucket - first_row
        col = time_bucket - first_col
        if not (0 <= row < self.rows and 0 <= col < self.columns):
            return None
        return self.cells[row * self.columns + col]

    def total_contribution(self) -> Decimal:
        return sum((c.contributing_value for c in self.cells), Decimal("0"))


@dataclass(frozen=True)
class HeatmapZone:
    price: Decimal
    timestamp: int
    score: Decimal
    type: ZoneType
    oi_delta: Decimal = Decimal("0")
    liquidation_value: Decimal = Decimal("0")


# ---------------------------------------------------------------------------
# Taker flow
# ---------------------------------------------------------------------------


class FlowType(str, Enum):
    AGGRESSIVE_BUY = "AGGRESSIVE_BUY"
    AGGRESSIVE_SELL = "AGGRESSIVE_SELL"
    NEUTRAL = "NEUTRAL"
    BALANCED = "BALANCED"


@dataclass(frozen=True)
class TakerFlowPoint:
    timestamp: int
    buy_volume: Decimal
    sell_volume: Decimal
    net_flow: Decimal
    buy_sell_ratio: Decimal
    flow_type: FlowType
    intensity: Decimal


@dataclass(frozen=True)
class TakerFlowAnalysis:
    flows: tuple[TakerFlowPoint, ...]
    avg_net_flow: Decimal
    total_buy_volume: Decimal
    total_sell_volume: Decimal
    dominant_flow: FlowType
    flow_strength: SignalStrength
    current_bias: TrendBias




class PressureSignal(str, Enum):
    BUY_PRESSURE = "BUY_PRESSURE"
    SELL_PRESSURE = "SELL_PRESSURE"
    NEUTRAL = "NEUTRAL"


@dataclass(frozen=True)
class TakerFlowSignal:
    signal: PressureSignal
    strength: SignalStrength
    description: str


@dataclass(frozen=True)
class CumulativeFlowPoint:
    timestamp: int
    cumulative_net_flow: Decimal
    trend: TrendBias


# ---------------------------------------------------------------------------
# OI delta by price
# ---------------------------------------------------------------------------


class OIDeltaType(str, Enum):
    """Which side is opening or closing, from the OI and price directions."""

    BUILD_LONG = "BUILD_LONG"
    BUILD_SHORT = "BUILD_SHORT"
    UNWIND_LONG = "UNWIND_LONG"
    UNWIND_SHORT = "UNWIND_SHORT"
    NEUTRAL = "NEUTRAL"


class OIDeltaSignalType(str, Enum):
    BULLISH_BUILD = "BULLISH_BUILD"
    BEARISH_BUILD = "BEARISH_BUILD"
    BEARISH_UNWIND = "BEARISH_UNWIND"
    BULLISH_UNWIND = "BULLISH_UNWIND"
    NEUTRAL = "NEUTRAL"


@dataclass(frozen=True)
class OIDeltaBucket:
    """OI change accumulated at one closing-price bucket.

    ``oi_change`` is the percent change of the last move that landed here;
    ``type`` follows that same move. ``intensity`` is 0-100 of the largest
    |oi_delta| across buckets.
    """

    price: Decimal
    oi_delta: Decimal
    oi_change: Decimal
    volume: Decimal
    type: OIDeltaType
    intensity: Decimal


@dataclass(frozen=True)
class OIDeltaAnalysis:
    buckets: tuple[OIDeltaBucket, ...]
    max_oi_delta: Decimal
    min_oi_delta: Decimal
    avg_oi_delta: Decimal
    total_build_long: Decimal
    total_build_short: Decimal
    total_unwind_long: Decimal
    total_unwind_short: Decimal


@dataclass(frozen=True)
class OIDeltaSignal:
    signal: OIDeltaSignalType
    strength: SignalStrength
    description: str


# ---------------------------------------------------------------------------
# Volatility regime
# ---------------------------------------------------------------------------


class VolatilityMode(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    EXTREME = "EXTREME"


class VolStrategy(str, Enum):
    BREAKOUT = "BREAKOUT"
    MEAN_REVERSION = "MEAN_REVERSION"
    TREND_FOLLOW = "TREND_FOLLOW"
    STAY_OUT = "STAY_OUT"


class TrustLevel(str, Enum):
    """How far OI signals can be trusted in the current regime."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass(frozen=True)
class VolatilityRegime:
    """Volatility classification of a candle series.

    ``atr_percent`` is ATR as a percentage of the last close. ``volatility``
    is daily historical volatility in percent and ``historical_percentile``
    ranks it against rolling windows of the same series (0-100).
    """

    mode: VolatilityMode
    atr: Decimal
    atr_percent: Decimal
    volatility: Decimal
    historical_percentile: Decimal
    strategy: VolStrategy
    position_size_multiplier: Decimal
    trust_level: TrustLevel
    reasoning: str
    description: str
    timestamp: int
    warnings: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class FilteredOISignal:
    """An OI momentum scenario reinterpreted for the volatility regime."""

    adjusted_signal: str
    confidence: TrustLevel
    action: str
