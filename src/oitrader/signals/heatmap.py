"""Price x time heatmap construction for open interest and liquidations.

Grids are dense and half-open. Bounds are aligned outward to the steps:

    price_min  = floor(lo / price_step) * price_step
    price_max  = (floor(hi / price_step) + 1) * price_step
    time_start = floor(t0 / time_step) * time_step
    time_end   = (floor(t1 / time_step) + 1) * time_step

so the cell count is always rows x columns of those bounds, however sparse
the input. Cell coordinates are absolute bucket indices
(floor(price / price_step), floor(timestamp / time_step)), which makes them
independent of insertion order and lets two grids with the same steps be
merged by coordinate.

Normalized intensities are ``value / max_value`` in [0, 1]; an all-zero grid
keeps all-zero intensities. Every builder accepts ``max_cells`` and refuses
to materialize a larger grid.

CRITICAL: All computations use Decimal. Never use float.
"""

import bisect
from collections import defaultdict
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal

from oitrader.exceptions import HeatmapMismatchError, HeatmapTooLargeError
from oitrader.logging import get_logger
from oitrader.models import Candle, LiquidationEvent, LiquidationSide, OpenInterestPoint
from oitrader.signals.models import Heatmap, HeatmapCell, HeatmapZone, ZoneType
from oitrader.signals.validation import ensure_ascending

logger = get_logger(__name__)

_ZERO = Decimal("0")

DEFAULT_PRICE_STEP = Decimal("10")
DEFAULT_TIME_STEP_MS = 5 * 60 * 1000
DEFAULT_OI_WEIGHT = Decimal("0.6")
DEFAULT_LIQUIDATION_WEIGHT = Decimal("0.4")

# One side's liquidations must exceed twice the other's to mark a liquidation zone
_LIQUIDATION_DOMINANCE = Decimal("2")

CellKey = tuple[int, int]


@dataclass
class _CellTotals:
    value: Decimal = _ZERO
    oi_delta: Decimal = _ZERO
    long_value: Decimal = _ZERO
    short_value: Decimal = _ZERO


def price_bucket(price: Decimal, price_step: Decimal) -> int:
    """Absolute price bucket index: floor(price / price_step)."""
    return int((price / price_step).to_integral_value(rounding=ROUND_FLOOR))


def time_bucket(timestamp: int, time_step: int) -> int:
    """Absolute time bucket index: floor(timestamp / time_step)."""
    return timestamp // time_step


def _check_steps(price_step: Decimal, time_step: int) -> None:
    if price_step <= 0:
        raise ValueError("price_step must be positive")
    if time_step <= 0:
        raise ValueError("time_step must be positive")


def _check_size(price_rows: range, time_columns: range, max_cells: int | None) -> None:
    cells = len(price_rows) * len(time_columns)
    if max_cells is not None and cells > max_cells:
        raise HeatmapTooLargeError(
            f"Heatmap of {len(price_rows)} x {len(time_columns)} = {cells} cells "
            f"exceeds the limit of {max_cells}; use a larger price step"
        )


def _empty_heatmap(price_step: Decimal, time_step: int, normalized: bool) -> Heatmap:
    return Heatmap(
        price_min=_ZERO,
        price_max=_ZERO,
        time_start=0,
        time_end=0,
        price_step=price_step,
        time_step=time_step,
        cells=(),
        normalized=normalized,
    )


def _build_grid(
    price_rows: range,
    time_columns: range,
    price_step: Decimal,
    time_step: int,
    totals: Mapping[CellKey, _CellTotals],
    normalize: bool,
) -> Heatmap:
    """Materialize every (row, column) cell, filling gaps with zero."""
    max_value = max((abs(t.value) for t in totals.values()), default=_ZERO)
    empty = _CellTotals()

    cells: list[HeatmapCell] = []
    for row in price_rows:
        for col in time_columns:
            cell = totals.get((row, col), empty)
            if not normalize:
                intensity = cell.value
            elif max_value > 0:
                intensity = abs(cell.value) / max_value
            else:
                intensity = _ZERO
            cells.append(
                HeatmapCell(
                    price_bucket=row,
                    time_bucket=col,
                    price=row * price_step,
                    timestamp=col * time_step,
                    intensity=intensity,
                    contributing_value=cell.value,
                    oi_delta=cell.oi_delta,
                    long_value=cell.long_value,
                    short_value=cell.short_value,
                )
            )

    return Heatmap(
        price_min=price_rows.start * price_step,
        price_max=price_rows.stop * price_step,
        time_start=time_columns.start * time_step,
        time_end=time_columns.stop * time_step,
        price_step=price_step,
        time_step=time_step,
        cells=tuple(cells),
        normalized=normalize,
    )


def _nearest_candle(candles: Sequence[Candle], timestamps: Sequence[int], ts: int) -> Candle:
    """Candle closest in time to ``ts``; ties go to the earlier candle."""
    i = bisect.bisect_left(timestamps, ts)
    if i == 0:
        return candles[0]
    if i == len(candles):
        return candles[-1]
    before, after = candles[i - 1], candles[i]
    return before if ts - before.timestamp <= after.timestamp - ts else after


def build_oi_heatmap(
    oi_series: Sequence[OpenInterestPoint],
    price_series: Sequence[Candle],
    price_step: Decimal = DEFAULT_PRICE_STEP,
    time_step: int = DEFAULT_TIME_STEP_MS,
    normalize: bool = True,
    max_cells: int | None = None,
) -> Heatmap:
    """Accumulate open interest into a price x time grid.

    Each OI point lands in its own time bucket and in the price bucket of the
    candle nearest to it in time. The price axis spans the candle closes, the
    time axis spans the OI timestamps. Cells also sum the points' ``delta``.

    Args:
        oi_series: OI samples ordered oldest-first.
        price_series: Candles ordered oldest-first.
        price_step: Price bucket size.
        time_step: Time bucket size in milliseconds.
        normalize: Scale intensities to [0, 1] by the grid maximum. When
            False, intensity is the raw accumulated OI.
        max_cells: Largest grid allowed, or None for no limit.

    Returns:
        Dense Heatmap. Empty (no cells) when either series is empty.

    Raises:
        HeatmapTooLargeError: If the grid would exceed ``max_cells``.
    """
    _check_steps(price_step, time_step)
    if not oi_series or not price_series:
        return _empty_heatmap(price_step, time_step, normalize)

    ensure_ascending(oi_series, "open_interest")
    ensure_ascending(price_series, "prices")

    closes = [c.close for c in price_series]
    candle_times = [c.timestamp for c in price_series]
    price_rows = range(price_bucket(min(closes), price_step), price_bucket(max(closes), price_step) + 1)
    time_columns = range(
        time_bucket(oi_series[0].timestamp, time_step),
        time_bucket(oi_series[-1].timestamp, time_step) + 1,
    )
    _check_size(price_rows, time_columns, max_cells)

    totals: dict[CellKey, _CellTotals] = defaultdict(_CellTotals)
    for point in oi_series:
        candle = _nearest_candle(price_series, candle_times, point.timestamp)
        cell = totals[(price_bucket(candle.close, price_step), time_bucket(point.timestamp, time_step))]
        cell.value += point.value
        cell.oi_delta += point.delta

    heatmap = _build_grid(price_rows, time_columns, price_step, time_step, totals, normalize)
    logger.debug(
        "oi_heatmap_built",
        points=len(oi_series),
        rows=heatmap.rows,
        columns=heatmap.columns,
    )
    return heatmap


def build_liquidation_heatmap(
    events: Sequence[LiquidationEvent],
    price_range: tuple[Decimal, Decimal],
    price_step: Decimal = DEFAULT_PRICE_STEP,
    time_step: int = DEFAULT_TIME_STEP_MS,
    time_range: tuple[int, int] | None = None,
    normalize: bool = True,
    max_cells: int | None = None,
) -> Heatmap:
    """Accumulate liquidation notional into a grid over a declared price range.

    Events priced outside ``price_range`` (or timed outside ``time_range``
    when given) are dropped, never clamped into an edge bucket. Each cell
    keeps the long and short notional separately as well as their sum.

    Args:
        events: Liquidation events; order does not matter.
        price_range: Inclusive (min, max) price range of the grid.
        price_step: Price bucket size.
        time_step: Time bucket size in milliseconds.
        time_range: Optional inclusive (start, end) in milliseconds. Defaults
            to the span of the kept events.
        normalize: Scale intensities to [0, 1] by the grid maximum.
        max_cells: Largest grid allowed, or None for no limit.

    Returns:
        Dense Heatmap. Without kept events or ``time_range`` the time axis is
        empty and so is the grid.

    Raises:
        ValueError: If the price range or time range is inverted.
        HeatmapTooLargeError: If the grid would exceed ``max_cells``.
    """
    _check_steps(price_step, time_step)
    low, high = price_range
    if low > high:
        raise ValueError("price_range min must not exceed max")
    if time_range is not None and time_range[0] > time_range[1]:
        raise ValueError("time_range start must not exceed end")

    kept = [e for e in events if low <= e.price <= high]
    if time_range is not None:
        kept = [e for e in kept if time_range[0] <= e.timestamp <= time_range[1]]

    price_rows = range(price_bucket(low, price_step), price_bucket(high, price_step) + 1)
    if time_range is not None:
        start, end = time_range
    elif kept:
        start = min(e.timestamp for e in kept)
        end = max(e.timestamp for e in kept)
    else:
        logger.debug("liquidation_heatmap_built", events=len(events), kept=0, rows=0, columns=0)
        return _empty_heatmap(price_step, time_step, normalize)

    time_columns = range(time_bucket(start, time_step), time_bucket(end, time_step) + 1)
    _check_size(price_rows, time_columns, max_cells)

    totals: dict[CellKey, _CellTotals] = defaultdict(_CellTotals)
    for event in kept:
        cell = totals[(price_bucket(event.price, price_step), time_bucket(event.timestamp, time_step))]
        cell.value += event.notional
        if event.side == LiquidationSide.LONG:
            cell.long_value += event.notional
        else:
            cell.short_value += event.notional

    heatmap = _build_grid(price_rows, time_columns, price_step, time_step, totals, normalize)
    logger.debug(
        "liquidation_heatmap_built",
        events=len(events),
        kept=len(kept),
        rows=heatmap.rows,
        columns=heatmap.columns,
    )
    return heatmap


def _bucket_span(heatmaps: Sequence[Heatmap]) -> tuple[range, range]:
    price_step = heatmaps[0].price_step
    time_step = heatmaps[0].time_step
    row_start = min(price_bucket(h.price_min, price_step) for h in heatmaps)
    row_stop = max(price_bucket(h.price_max, price_step) for h in heatmaps)
    col_start = min(time_bucket(h.time_start, time_step) for h in heatmaps)
    col_stop = max(time_bucket(h.time_end, time_step) for h in heatmaps)
    return range(row_start, row_stop), range(col_start, col_stop)


def _price_path(price_series: Sequence[Candle], price_step: Decimal, time_step: int) -> tuple[tuple[int, int], ...]:
    """(time_bucket, price_bucket) of the last close in each time bucket."""
    path: dict[int, int] = {}
    for candle in price_series:
        path[time_bucket(candle.timestamp, time_step)] = price_bucket(candle.close, price_step)
    return tuple(sorted(path.items()))


def build_combined_heatmap(
    oi_heatmap: Heatmap,
    liquidation_heatmap: Heatmap,
    price_series: Sequence[Candle] = (),
    oi_weight: Decimal = DEFAULT_OI_WEIGHT,
    liquidation_weight: Decimal = DEFAULT_LIQUIDATION_WEIGHT,
    max_cells: int | None = None,
) -> Heatmap:
    """Merge OI and liquidation grids into one weighted-score grid.

    score = oi_weight * oi_intensity + liquidation_weight * liquidation_intensity

    The result covers the union of both grids; a cell missing from one source
    counts as zero there. Combined cells carry the score as both intensity
    and contributing value, plus the OI delta and long/short liquidation
    notional of their sources. ``price_series`` adds a price path overlay.

    Raises:
        HeatmapMismatchError: If the grids use different price or time steps.
        HeatmapTooLargeError: If the union grid would exceed ``max_cells``.
    """
    if (
        oi_heatmap.price_step != liquidation_heatmap.price_step
        or oi_heatmap.time_step != liquidation_heatmap.time_step
    ):
        raise HeatmapMismatchError(
            f"Cannot combine heatmaps with steps "
            f"({oi_heatmap.price_step}, {oi_heatmap.time_step}) and "
            f"({liquidation_heatmap.price_step}, {liquidation_heatmap.time_step})"
        )

    price_step = oi_heatmap.price_step
    time_step = oi_heatmap.time_step
    normalized = oi_heatmap.normalized and liquidation_heatmap.normalized
    path = _price_path(price_series, price_step, time_step)

    sources = [h for h in (oi_heatmap, liquidation_heatmap) if h.cells]
    if not sources:
        return Heatmap(
            price_min=_ZERO,
            price_max=_ZERO,
            time_start=0,
            time_end=0,
            price_step=price_step,
            time_step=time_step,
            cells=(),
            normalized=normalized,
            price_path=path,
        )

    price_rows, time_columns = _bucket_span(sources)
    _check_size(price_rows, time_columns, max_cells)

    cells: list[HeatmapCell] = []
    for row in price_rows:
        for col in time_columns:
            oi_cell = oi_heatmap.cell_at(row, col)
            liq_cell = liquidation_heatmap.cell_at(row, col)
            oi_intensity = oi_cell.intensity if oi_cell else _ZERO
            liq_intensity = liq_cell.intensity if liq_cell else _ZERO
            score = oi_weight * oi_intensity + liquidation_weight * liq_intensity
            cells.append(
                HeatmapCell(
                    price_bucket=row,
                    time_bucket=col,
                    price=row * price_step,
                    timestamp=col * time_step,
                    intensity=score,
                    contributing_value=score,
                    oi_delta=oi_cell.oi_delta if oi_cell else _ZERO,
                    long_value=liq_cell.long_value if liq_cell else _ZERO,
                    short_value=liq_cell.short_value if liq_cell else _ZERO,
                )
            )

    logger.debug(
        "combined_heatmap_built",
        rows=len(price_rows),
        columns=len(time_columns),
        oi_cells=len(oi_heatmap.cells),
        liquidation_cells=len(liquidation_heatmap.cells),
    )
    return Heatmap(
        price_min=price_rows.start * price_step,
        price_max=price_rows.stop * price_step,
        time_start=time_columns.start * time_step,
        time_end=time_columns.stop * time_step,
        price_step=price_step,
        time_step=time_step,
        cells=tuple(cells),
        normalized=normalized,
        price_path=path,
    )


def classify_zone(cell: HeatmapCell) -> ZoneType:
    """Type of a combined cell by what moved there.

    Liquidations dominated by one side (more than twice the other) make a
    LIQUIDATION zone. Otherwise rising OI is ACCUMULATION and falling OI
    DISTRIBUTION.
    """
    if cell.long_value > cell.short_value * _LIQUIDATION_DOMINANCE:
        return ZoneType.LIQUIDATION
    if cell.short_value > cell.long_value * _LIQUIDATION_DOMINANCE:
        return ZoneType.LIQUIDATION
    if cell.oi_delta > 0:
        return ZoneType.ACCUMULATION
    if cell.oi_delta < 0:
        return ZoneType.DISTRIBUTION
    return ZoneType.NEUTRAL


def find_heatmap_zones(combined: Heatmap, threshold: Decimal = Decimal("0.5")) -> list[HeatmapZone]:
    """Cells of a combined grid whose score exceeds ``threshold``.

    Returns:
        Zones typed by ``classify_zone``, sorted by score descending, then
        price and timestamp.
    """
    zones = [
        HeatmapZone(
            price=cell.price,
            timestamp=cell.timestamp,
            score=cell.intensity,
            type=classify_zone(cell),
            oi_delta=cell.oi_delta,
            liquidation_value=cell.long_value + cell.short_value,
        )
        for cell in combined.cells
        if cell.intensity > threshold
    ]
    zones.sort(key=lambda z: (-z.score, z.price, z.timestamp))
    return zones
