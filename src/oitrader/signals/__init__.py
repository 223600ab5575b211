"""Analytics core: pure functions over ordered market data series.

Includes the liquidation cluster aggregator, market, funding and volatility
regime classifiers, the price/OI divergence detector, the OI momentum
analyzer, OI delta by price, heatmap builders and the taker flow analyzer.
Nothing here performs I/O.
"""

from oitrader.signals.divergence import detect_divergences, latest_divergence
from oitrader.signals.heatmap import (
    build_combined_heatmap,
    build_liquidation_heatmap,
    build_oi_heatmap,
    classify_zone,
    find_heatmap_zones,
)
from oitrader.signals.liquidation import (
    aggregate_liquidations,
    calculate_net_pressure,
    clusters_in_range,
    find_liquidation_zones,
    nearest_cluster_signal,
    resistance_levels,
    summarize_clusters,
    support_levels,
    top_clusters,
)
from oitrader.signals.momentum import (
    analyze_oi_momentum,
    classify_momentum,
    momentum_statistics,
    risk_mode_suggestion,
    signal_score,
    strategy_recommendation,
    trading_interpretation,
)
from oitrader.signals.oi_delta import calculate_oi_delta_by_price, classify_oi_delta_signal
from oitrader.signals.regime import classify_funding_regime, classify_market_regime, funding_bias
from oitrader.signals.taker_flow import analyze_taker_flow, cumulative_taker_flow, taker_flow_signal
from oitrader.signals.volatility import (
    calculate_atr,
    calculate_historical_volatility,
    classify_volatility_regime,
    combined_recommendation,
    filter_oi_signal_by_vol_regime,
)

__all__ = [
    "aggregate_liquidations",
    "analyze_oi_momentum",
    "analyze_taker_flow",
    "build_combined_heatmap",
    "build_liquidation_heatmap",
    "build_oi_heatmap",
    "calculate_atr",
    "calculate_historical_volatility",
    "calculate_net_pressure",
    "calculate_oi_delta_by_price",
    "classify_funding_regime",
    "classify_market_regime",
    "classify_momentum",
    "classify_oi_delta_signal",
    "classify_volatility_regime",
    "classify_zone",
    "clusters_in_range",
    "combined_recommendation",
    "cumulative_taker_flow",
    "detect_divergences",
    "filter_oi_signal_by_vol_regime",
    "find_heatmap_zones",
    "find_liquidation_zones",
    "funding_bias",
    "latest_divergence",
    "momentum_statistics",
    "nearest_cluster_signal",
    "resistance_levels",
    "risk_mode_suggestion",
    "signal_score",
    "strategy_recommendation",
    "summarize_clusters",
    "support_levels",
    "taker_flow_signal",
    "top_clusters",
    "trading_interpretation",
]
