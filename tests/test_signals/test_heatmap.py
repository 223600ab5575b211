"""Tests for OI, liquidation and combined heatmap construction."""

from dataclasses import replace
from decimal import ROUND_CEILING, Decimal

import pytest
from factories import BASE_TS, FIVE_MINUTES, make_candles, make_liquidation, make_oi

from oitrader.exceptions import HeatmapMismatchError, HeatmapTooLargeError
from oitrader.models import LiquidationSide, with_deltas
from oitrader.signals.heatmap import (
    build_combined_heatmap,
    build_liquidation_heatmap,
    build_oi_heatmap,
    classify_zone,
    find_heatmap_zones,
    price_bucket,
    time_bucket,
)
from oitrader.signals.models import Heatmap, HeatmapCell, ZoneType

STEP = Decimal("10")


def _expected_cells(heatmap: Heatmap) -> int:
    """ceil((price_max - price_min) / price_step) * ceil((time_end - time_start) / time_step)."""
    rows = ((heatmap.price_max - heatmap.price_min) / heatmap.price_step).to_integral_value(rounding=ROUND_CEILING)
    columns = -((heatmap.time_start - heatmap.time_end) // heatmap.time_step)
    return int(rows) * columns


class TestBuckets:
    """Tests for absolute bucket indices."""

    def test_price_bucket_floors(self) -> None:
        assert price_bucket(Decimal("105.5"), STEP) == 10

    def test_exact_multiple_is_its_own_bucket(self) -> None:
        assert price_bucket(Decimal("110"), STEP) == 11

    def test_time_bucket(self) -> None:
        assert time_bucket(FIVE_MINUTES * 7 + 1, FIVE_MINUTES) == 7


class TestBuildOIHeatmap:
    """Tests for OI accumulation into a price x time grid."""

    def _heatmap(self, values: list[str] | None = None, normalize: bool = True) -> Heatmap:
        candles = make_candles(["100", "105", "112", "118"])
        oi = make_oi(values or ["1000", "1100", "1200", "1300"])
        return build_oi_heatmap(oi, candles, STEP, FIVE_MINUTES, normalize=normalize)

    def test_grid_is_dense(self) -> None:
        heatmap = self._heatmap()
        assert heatmap.rows == 2
        assert heatmap.columns == 4
        assert len(heatmap.cells) == 8
        assert len(heatmap.cells) == _expected_cells(heatmap)

    def test_bounds_are_step_aligned(self) -> None:
        heatmap = self._heatmap()
        assert heatmap.price_min == Decimal("100")
        assert heatmap.price_max == Decimal("120")
        assert heatmap.time_start % FIVE_MINUTES == 0
        assert heatmap.time_start <= BASE_TS < heatmap.time_start + FIVE_MINUTES

    def test_contributions_sum_to_input(self) -> None:
        heatmap = self._heatmap()
        assert heatmap.total_contribution() == Decimal("4600")

    def test_value_lands_in_price_of_concurrent_candle(self) -> None:
        heatmap = self._heatmap()
        col = time_bucket(BASE_TS + 3 * FIVE_MINUTES, FIVE_MINUTES)
        cell = heatmap.cell_at(11, col)
        assert cell is not None
        assert cell.contributing_value == Decimal("1300")
        assert cell.intensity == Decimal("1")

    def test_normalized_intensities_in_unit_range(self) -> None:
        heatmap = self._heatmap()
        assert all(Decimal("0") <= c.intensity <= Decimal("1") for c in heatmap.cells)
        assert max(c.intensity for c in heatmap.cells) == Decimal("1")

    def test_all_zero_input_gives_full_zero_grid(self) -> None:
        heatmap = self._heatmap(["0", "0", "0", "0"])
        assert len(heatmap.cells) == 8
        assert all(c.intensity == Decimal("0") for c in heatmap.cells)

    def test_raw_intensity_when_not_normalized(self) -> None:
        heatmap = self._heatmap(normalize=False)
        assert heatmap.normalized is False
        assert all(c.intensity == c.contributing_value for c in heatmap.cells)

    def test_cells_ordered_by_price_then_time(self) -> None:
        heatmap = self._heatmap()
        keys = [(c.price_bucket, c.time_bucket) for c in heatmap.cells]
        assert keys == sorted(keys)

    def test_nearest_candle_by_time(self) -> None:
        candles = make_candles(["100", "150"])
        oi = make_oi(["5"], start=BASE_TS + FIVE_MINUTES - 1)
        heatmap = build_oi_heatmap(oi, candles, STEP, FIVE_MINUTES)
        hot = [c for c in heatmap.cells if c.contributing_value > 0]
        assert [c.price for c in hot] == [Decimal("150")]

    def test_empty_series_gives_empty_grid(self) -> None:
        assert build_oi_heatmap([], make_candles(["100"]), STEP, FIVE_MINUTES).cells == ()
        assert build_oi_heatmap(make_oi(["1"]), [], STEP, FIVE_MINUTES).cells == ()

    def test_invalid_steps_raise(self) -> None:
        with pytest.raises(ValueError):
            build_oi_heatmap(make_oi(["1"]), make_candles(["1"]), Decimal("0"), FIVE_MINUTES)
        with pytest.raises(ValueError):
            build_oi_heatmap(make_oi(["1"]), make_candles(["1"]), STEP, 0)


class TestBuildLiquidationHeatmap:
    """Tests for liquidation notional accumulation."""

    def test_declared_range_sets_rows(self) -> None:
        events = [make_liquidation("105", "1")]
        heatmap = build_liquidation_heatmap(events, (Decimal("100"), Decimal("130")), STEP, FIVE_MINUTES)
        assert heatmap.price_min == Decimal("100")
        assert heatmap.price_max == Decimal("140")
        assert heatmap.rows == 4
        assert len(heatmap.cells) == _expected_cells(heatmap)

    def test_out_of_range_events_dropped(self) -> None:
        events = [
            make_liquidation("99", "1", event_id="low"),
            make_liquidation("105", "2", event_id="in"),
            make_liquidation("130", "1", LiquidationSide.SHORT, event_id="edge"),
            make_liquidation("131", "5", event_id="high"),
        ]
        heatmap = build_liquidation_heatmap(events, (Decimal("100"), Decimal("130")), STEP, FIVE_MINUTES)
        assert heatmap.total_contribution() == Decimal("210") + Decimal("130")

    def test_exact_multiple_max_lands_in_last_row(self) -> None:
        events = [make_liquidation("130", "1")]
        heatmap = build_liquidation_heatmap(events, (Decimal("100"), Decimal("130")), STEP, FIVE_MINUTES)
        cell = heatmap.cell_at(13, time_bucket(BASE_TS, FIVE_MINUTES))
        assert cell is not None
        assert cell.contributing_value == Decimal("130")

    def test_notional_round_trip(self) -> None:
        events = [
            make_liquidation(str(100 + i), "0.5", timestamp=BASE_TS + i * 60_000, event_id=str(i))
            for i in range(25)
        ]
        heatmap = build_liquidation_heatmap(events, (Decimal("100"), Decimal("124")), STEP, FIVE_MINUTES)
        assert heatmap.total_contribution() == sum((e.notional for e in events), Decimal("0"))

    def test_time_range_widens_grid(self) -> None:
        heatmap = build_liquidation_heatmap(
            [],
            (Decimal("100"), Decimal("110")),
            STEP,
            FIVE_MINUTES,
            time_range=(BASE_TS, BASE_TS + 3 * FIVE_MINUTES),
        )
        assert heatmap.columns == 4
        assert len(heatmap.cells) == 8
        assert all(c.intensity == Decimal("0") for c in heatmap.cells)

    def test_no_events_without_time_range_is_empty(self) -> None:
        heatmap = build_liquidation_heatmap([], (Decimal("100"), Decimal("110")), STEP, FIVE_MINUTES)
        assert heatmap.cells == ()

    def test_inverted_range_raises(self) -> None:
        with pytest.raises(ValueError):
            build_liquidation_heatmap([], (Decimal("110"), Decimal("100")), STEP, FIVE_MINUTES)


class TestBuildCombinedHeatmap:
    """Tests for the weighted OI + liquidation merge."""

    def _sources(self, liquidation_prices: list[str]) -> tuple[Heatmap, Heatmap, list]:
        candles = make_candles(["105"])
        oi_heatmap = build_oi_heatmap(make_oi(["1000"]), candles, STEP, FIVE_MINUTES)
        events = [make_liquidation(p, "1", event_id=p) for p in liquidation_prices]
        liq_heatmap = build_liquidation_heatmap(events, (Decimal("100"), Decimal("110")), STEP, FIVE_MINUTES)
        return oi_heatmap, liq_heatmap, candles

    def test_weighted_sum_over_union(self) -> None:
        oi_heatmap, liq_heatmap, candles = self._sources(["105"])
        combined = build_combined_heatmap(oi_heatmap, liq_heatmap, candles)

        assert combined.rows == 2
        assert len(combined.cells) == 2
        col = time_bucket(BASE_TS, FIVE_MINUTES)
        assert combined.cell_at(10, col).intensity == Decimal("1.0")
        assert combined.cell_at(11, col).intensity == Decimal("0")

    def test_missing_source_counts_as_zero(self) -> None:
        oi_heatmap, _, candles = self._sources([])
        empty_liq = build_liquidation_heatmap([], (Decimal("100"), Decimal("110")), STEP, FIVE_MINUTES)
        combined = build_combined_heatmap(oi_heatmap, empty_liq, candles)
        assert len(combined.cells) == 1
        assert combined.cells[0].intensity == Decimal("0.6")

    def test_price_path_from_candles(self) -> None:
        oi_heatmap, liq_heatmap, candles = self._sources(["105"])
        combined = build_combined_heatmap(oi_heatmap, liq_heatmap, candles)
        assert combined.price_path == ((time_bucket(BASE_TS, FIVE_MINUTES), 10),)

    def test_step_mismatch_raises(self) -> None:
        oi_heatmap, _, _ = self._sources([])
        other = build_liquidation_heatmap(
            [make_liquidation("105", "1")], (Decimal("100"), Decimal("110")), Decimal("5"), FIVE_MINUTES
        )
        with pytest.raises(HeatmapMismatchError):
            build_combined_heatmap(oi_heatmap, other)

    def test_both_empty(self) -> None:
        empty = build_oi_heatmap([], [], STEP, FIVE_MINUTES)
        combined = build_combined_heatmap(empty, empty)
        assert combined.cells == ()


class TestHeatmapCellDetail:
    """Tests for the per-cell OI delta and long/short liquidation split."""

    def test_liquidation_cells_split_by_side(self) -> None:
        events = [
            make_liquidation("105", "2", LiquidationSide.LONG, event_id="a"),
            make_liquidation("106", "1", LiquidationSide.SHORT, event_id="b"),
        ]
        heatmap = build_liquidation_heatmap(events, (Decimal("100"), Decimal("110")), STEP, FIVE_MINUTES)
        cell = heatmap.cell_at(10, time_bucket(BASE_TS, FIVE_MINUTES))
        assert cell.long_value == Decimal("210")
        assert cell.short_value == Decimal("106")
        assert cell.contributing_value == cell.long_value + cell.short_value

    def test_oi_cells_sum_deltas(self) -> None:
        candles = make_candles(["105", "105"])
        oi = with_deltas(make_oi(["1000", "1040"], step=FIVE_MINUTES))
        heatmap = build_oi_heatmap(oi, candles, STEP, FIVE_MINUTES)
        col = time_bucket(BASE_TS + FIVE_MINUTES, FIVE_MINUTES)
        assert heatmap.cell_at(10, col).oi_delta == Decimal("40")

    def test_combined_cells_carry_source_detail(self) -> None:
        candles = make_candles(["105", "105"])
        oi_heatmap = build_oi_heatmap(with_deltas(make_oi(["1000", "990"])), candles, STEP, FIVE_MINUTES)
        liq_heatmap = build_liquidation_heatmap(
            [make_liquidation("105", "1", LiquidationSide.SHORT, timestamp=BASE_TS + FIVE_MINUTES)],
            (Decimal("100"), Decimal("110")),
            STEP,
            FIVE_MINUTES,
        )
        combined = build_combined_heatmap(oi_heatmap, liq_heatmap, candles)
        cell = combined.cell_at(10, time_bucket(BASE_TS + FIVE_MINUTES, FIVE_MINUTES))
        assert cell.oi_delta == Decimal("-10")
        assert cell.short_value == Decimal("105")
        assert cell.long_value == Decimal("0")


class TestGridSizeLimit:
    """Tests for the max_cells guard on every builder."""

    def test_oi_heatmap_over_limit_raises(self) -> None:
        candles = make_candles(["100", "200"])
        oi = make_oi(["1", "2"])
        # 101 rows x 2 columns at a step of 1
        with pytest.raises(HeatmapTooLargeError):
            build_oi_heatmap(oi, candles, Decimal("1"), FIVE_MINUTES, max_cells=200)

    def test_oi_heatmap_at_limit_builds(self) -> None:
        candles = make_candles(["100", "200"])
        heatmap = build_oi_heatmap(make_oi(["1", "2"]), candles, Decimal("1"), FIVE_MINUTES, max_cells=202)
        assert len(heatmap.cells) == 202

    def test_liquidation_heatmap_over_limit_raises(self) -> None:
        with pytest.raises(HeatmapTooLargeError):
            build_liquidation_heatmap(
                [make_liquidation("150", "1")],
                (Decimal("100"), Decimal("200")),
                Decimal("0.01"),
                FIVE_MINUTES,
                max_cells=1000,
            )

    def test_combined_union_over_limit_raises(self) -> None:
        candles = make_candles(["105"])
        oi_heatmap = build_oi_heatmap(make_oi(["1"]), candles, STEP, FIVE_MINUTES)
        liq_heatmap = build_liquidation_heatmap(
            [make_liquidation("500", "1")], (Decimal("100"), Decimal("500")), STEP, FIVE_MINUTES
        )
        with pytest.raises(HeatmapTooLargeError):
            build_combined_heatmap(oi_heatmap, liq_heatmap, candles, max_cells=10)

    def test_no_limit_by_default(self) -> None:
        candles = make_candles(["100", "200"])
        heatmap = build_oi_heatmap(make_oi(["1", "2"]), candles, Decimal("1"), FIVE_MINUTES)
        assert len(heatmap.cells) == 202


class TestClassifyZone:
    """Tests for zone typing of combined cells."""

    def _cell(self, oi_delta: str = "0", long_value: str = "0", short_value: str = "0") -> HeatmapCell:
        return HeatmapCell(
            price_bucket=10,
            time_bucket=1,
            price=Decimal("100"),
            timestamp=FIVE_MINUTES,
            intensity=Decimal("0.9"),
            contributing_value=Decimal("0.9"),
            oi_delta=Decimal(oi_delta),
            long_value=Decimal(long_value),
            short_value=Decimal(short_value),
        )

    def test_one_sided_long_liquidations(self) -> None:
        assert classify_zone(self._cell(oi_delta="50", long_value="300", short_value="100")) == ZoneType.LIQUIDATION

    def test_one_sided_short_liquidations(self) -> None:
        assert classify_zone(self._cell(short_value="201", long_value="100")) == ZoneType.LIQUIDATION

    def test_balanced_liquidations_fall_back_to_oi(self) -> None:
        assert classify_zone(self._cell(oi_delta="5", long_value="150", short_value="100")) == ZoneType.ACCUMULATION

    def test_falling_oi_is_distribution(self) -> None:
        assert classify_zone(self._cell(oi_delta="-5")) == ZoneType.DISTRIBUTION

    def test_flat_cell_is_neutral(self) -> None:
        assert classify_zone(self._cell()) == ZoneType.NEUTRAL


class TestFindHeatmapZones:
    """Tests for significant zone extraction."""

    def test_zone_types_and_order(self) -> None:
        candles = make_candles(["105"])
        oi = [replace(make_oi(["1000"])[0], delta=Decimal("100"))]
        oi_heatmap = build_oi_heatmap(oi, candles, STEP, FIVE_MINUTES)
        events = [make_liquidation("110", "1")]
        liq_heatmap = build_liquidation_heatmap(events, (Decimal("100"), Decimal("110")), STEP, FIVE_MINUTES)
        combined = build_combined_heatmap(oi_heatmap, liq_heatmap, candles)

        zones = find_heatmap_zones(combined, threshold=Decimal("0.3"))

        # OI-only cell at 100 scores 0.6, the liquidation-only cell at 110 scores 0.4
        assert [z.type for z in zones] == [ZoneType.ACCUMULATION, ZoneType.LIQUIDATION]
        assert [z.price for z in zones] == [Decimal("100"), Decimal("110")]
        assert zones[0].oi_delta == Decimal("100")
        assert zones[1].liquidation_value == Decimal("110")

    def test_default_threshold_excludes_weak_cells(self) -> None:
        candles = make_candles(["105"])
        oi_heatmap = build_oi_heatmap(make_oi(["1000"]), candles, STEP, FIVE_MINUTES)
        liq_heatmap = build_liquidation_heatmap(
            [make_liquidation("110", "1")], (Decimal("100"), Decimal("110")), STEP, FIVE_MINUTES
        )
        combined = build_combined_heatmap(oi_heatmap, liq_heatmap, candles)
        zones = find_heatmap_zones(combined)
        assert [z.price for z in zones] == [Decimal("100")]
        assert zones[0].type == ZoneType.NEUTRAL

    def test_empty_grid_has_no_zones(self) -> None:
        empty = build_oi_heatmap([], [], STEP, FIVE_MINUTES)
        assert find_heatmap_zones(build_combined_heatmap(empty, empty)) == []
