"""Liquidation cluster aggregation by price bucket.

Groups forced closures into fixed-size price buckets, then derives zones
(clusters near the largest one), net long/short pressure, and per-cluster
squeeze classification.

CRITICAL: All computations use Decimal. Never use float.
"""

from collections.abc import Sequence
from decimal import ROUND_FLOOR, Decimal

from oitrader.logging import get_logger
from oitrader.models import LiquidationEvent, LiquidationSide
from oitrader.signals.models import (
    Bias,
    ClusterDetail,
    ClusterProximity,
    ClusterType,
    LiquidationCluster,
    LiquidationClusterSummary,
    NetPressure,
    ProximitySignal,
)

logger = get_logger(__name__)

_HUNDRED = Decimal("100")


def bucket_floor(price: Decimal, bucket_size: Decimal) -> Decimal:
    """Return floor(price / bucket_size) * bucket_size.

    Prices that are exact multiples of ``bucket_size`` map to themselves.
    """
    index = (price / bucket_size).to_integral_value(rounding=ROUND_FLOOR)
    return index * bucket_size


def aggregate_liquidations(
    events: Sequence[LiquidationEvent],
    bucket_size: Decimal = Decimal("10"),
) -> list[LiquidationCluster]:
    """Group liquidation events into price-bucket clusters.

    Args:
        events: Liquidation events in any order.
        bucket_size: Width of each price bucket.

    Returns:
        One cluster per occupied bucket, sorted by total notional descending.
        Empty list if there are no events.
    """
    if bucket_size <= 0:
        raise ValueError("bucket_size must be positive")

    buckets: dict[Decimal, dict] = {}
    for event in events:
        key = bucket_floor(event.price, bucket_size)
        acc = buckets.setdefault(
            key,
            {"long": Decimal("0"), "short": Decimal("0"), "value": Decimal("0"), "count": 0},
        )
        if event.side == LiquidationSide.LONG:
            acc["long"] += event.quantity
        else:
            acc["short"] += event.quantity
        acc["value"] += event.notional
        acc["count"] += 1

    clusters = [
        LiquidationCluster(
            price=price,
            long_liquidations=acc["long"],
            short_liquidations=acc["short"],
            total_value=acc["value"],
            count=acc["count"],
        )
        for price, acc in buckets.items()
    ]
    # Price as secondary key keeps ties deterministic
    clusters.sort(key=lambda c: (-c.total_value, c.price))

    logger.debug("liquidations_aggregated", events=len(events), clusters=len(clusters))
    return clusters


def find_liquidation_zones(
    clusters: Sequence[LiquidationCluster],
    threshold: Decimal = Decimal("0.7"),
) -> list[LiquidationCluster]:
    """Return clusters whose value is at least ``threshold`` x the largest cluster value.

    The threshold is a fraction of the observed maximum, not an absolute value.
    """
    if not clusters:
        return []

    max_value = max(c.total_value for c in clusters)
    cutoff = max_value * threshold
    return [c for c in clusters if c.total_value >= cutoff]


def calculate_net_pressure(clusters: Sequence[LiquidationCluster]) -> NetPressure:
    """Sum long/short liquidated quantity and derive the dominant side.

    The long ratio defaults to 0.5 (NEUTRAL) when nothing was liquidated.
    """
    net_long = sum((c.long_liquidations for c in clusters), Decimal("0"))
    net_short = sum((c.short_liquidations for c in clusters), Decimal("0"))

    total = net_long + net_short
    long_ratio = net_long / total if total > 0 else Decimal("0.5")

    if long_ratio > Decimal("0.6"):
        bias = Bias.LONG
    elif long_ratio < Decimal("0.4"):
        bias = Bias.SHORT
    else:
        bias = Bias.NEUTRAL

    return NetPressure(net_long=net_long, net_short=net_short, bias=bias)


def _classify_cluster(cluster: LiquidationCluster, intensity: Decimal) -> ClusterType:
    if intensity < Decimal("20"):
        return ClusterType.MINIMAL

    quantity = cluster.long_liquidations + cluster.short_liquidations
    if quantity == 0:
        return ClusterType.BALANCED

    long_ratio = cluster.long_liquidations / quantity
    if long_ratio > Decimal("0.7"):
        return ClusterType.LONG_SQUEEZE
    if long_ratio < Decimal("0.3"):
        return ClusterType.SHORT_SQUEEZE
    return ClusterType.BALANCED


def summarize_clusters(clusters: Sequence[LiquidationCluster]) -> LiquidationClusterSummary:
    """Attach intensity and squeeze type to each cluster and compute totals.

    Intensity is 0-100 relative to the largest cluster value. A cluster whose
    long share exceeds 70% is a long squeeze, below 30% a short squeeze;
    anything under intensity 20 is MINIMAL. The dominant type requires one
    side's total to exceed 1.5x the other.
    """
    if not clusters:
        return LiquidationClusterSummary(
            clusters=(),
            max_value=Decimal("0"),
            total_long=Decimal("0"),
            total_short=Decimal("0"),
            strongest_long_squeeze_price=None,
            strongest_short_squeeze_price=None,
            dominant_type=ClusterType.BALANCED,
        )

    max_value = max(c.total_value for c in clusters)
    details: list[ClusterDetail] = []
    for cluster in clusters:
        intensity = cluster.total_value / max_value * _HUNDRED if max_value > 0 else Decimal("0")
        details.append(
            ClusterDetail(
                cluster=cluster,
                intensity=intensity,
                cluster_type=_classify_cluster(cluster, intensity),
            )
        )

    total_long = sum((c.long_liquidations for c in clusters), Decimal("0"))
    total_short = sum((c.short_liquidations for c in clusters), Decimal("0"))

    long_squeezes = [d for d in details if d.cluster_type == ClusterType.LONG_SQUEEZE]
    short_squeezes = [d for d in details if d.cluster_type == ClusterType.SHORT_SQUEEZE]
    strongest_long = max(long_squeezes, key=lambda d: d.cluster.long_liquidations, default=None)
    strongest_short = max(short_squeezes, key=lambda d: d.cluster.short_liquidations, default=None)

    if total_long > total_short * Decimal("1.5"):
        dominant = ClusterType.LONG_SQUEEZE
    elif total_short > total_long * Decimal("1.5"):
        dominant = ClusterType.SHORT_SQUEEZE
    else:
        dominant = ClusterType.BALANCED

    return LiquidationClusterSummary(
        clusters=tuple(details),
        max_value=max_value,
        total_long=total_long,
        total_short=total_short,
        strongest_long_squeeze_price=strongest_long.cluster.price if strongest_long else None,
        strongest_short_squeeze_price=strongest_short.cluster.price if strongest_short else None,
        dominant_type=dominant,
    )


def nearest_cluster_signal(
    current_price: Decimal,
    summary: LiquidationClusterSummary,
    min_intensity: Decimal = Decimal("40"),
) -> ClusterProximity:
    """Warn when price trades close to a significant liquidation cluster.

    Within 1% of a long/short squeeze cluster the matching squeeze risk is
    raised; within 2% of any significant cluster the signal is BALANCED.
    """
    significant = [d for d in summary.clusters if d.intensity > min_intensity]
    if not significant or current_price <= 0:
        return ClusterProximity(
            nearest=None,
            distance=Decimal("0"),
            signal=ProximitySignal.SAFE,
            action="No significant liquidation clusters nearby",
        )

    nearest = min(significant, key=lambda d: abs(d.cluster.price - current_price))
    distance = abs(nearest.cluster.price - current_price)
    distance_pct = distance / current_price * _HUNDRED
    price = nearest.cluster.price

    if distance_pct < 1 and nearest.cluster_type == ClusterType.LONG_SQUEEZE:
        signal = ProximitySignal.LONG_SQUEEZE_RISK
        action = f"Near long liquidation cluster at ${price}. Long positions at risk."
    elif distance_pct < 1 and nearest.cluster_type == ClusterType.SHORT_SQUEEZE:
        signal = ProximitySignal.SHORT_SQUEEZE_RISK
        action = f"Near short liquidation cluster at ${price}. Short positions at risk."
    elif distance_pct < 2:
        signal = ProximitySignal.BALANCED
        action = f"Approaching liquidation cluster at ${price}. Monitor closely."
    else:
        signal = ProximitySignal.SAFE
        action = f"Nearest cluster at ${price} ({distance_pct:.1f}% away)"

    return ClusterProximity(nearest=nearest, distance=distance, signal=signal, action=action)


def top_clusters(clusters: Sequence[LiquidationCluster], limit: int = 10) -> list[LiquidationCluster]:
    """Return the ``limit`` largest clusters by notional."""
    return sorted(clusters, key=lambda c: (-c.total_value, c.price))[:limit]


def clusters_in_range(
    clusters: Sequence[LiquidationCluster],
    current_price: Decimal,
    max_distance_pct: Decimal = Decimal("5"),
) -> list[LiquidationCluster]:
    """Keep clusters within ``max_distance_pct`` percent of the current price, inclusive."""
    if current_price <= 0:
        return []
    return [c for c in clusters if abs(c.price - current_price) / current_price * _HUNDRED <= max_distance_pct]


def _long_dominant(cluster: LiquidationCluster) -> bool:
    return cluster.long_liquidations > cluster.short_liquidations


def support_levels(clusters: Sequence[LiquidationCluster], current_price: Decimal) -> list[LiquidationCluster]:
    """Long-dominant clusters below the current price, nearest first.

    Flushed longs below price mark levels where selling already exhausted.
    """
    below = [c for c in clusters if c.price < current_price and _long_dominant(c)]
    return sorted(below, key=lambda c: c.price, reverse=True)


def resistance_levels(clusters: Sequence[LiquidationCluster], current_price: Decimal) -> list[LiquidationCluster]:
    """Short-dominant clusters above the current price, nearest first."""
    above = [c for c in clusters if c.price > current_price and not _long_dominant(c)]
    return sorted(above, key=lambda c: c.price)
