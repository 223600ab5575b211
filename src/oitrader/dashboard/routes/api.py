"""JSON API endpoints: raw market data, derived signals and heatmaps.

Every response uses the envelope ``{"success": true, "data": ..., "timestamp": ms}``
or ``{"success": false, "error": ..., "timestamp": ms}``. Unavailable upstream
feeds map to 503, heatmaps over the cell limit to 400, any other failure
to 500. Malformed query parameters are rejected with 422 before a route
runs. Decimal values serialize as strings.
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from collections.abc import Awaitable, Callable
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog
from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from oitrader.cache import make_key
from oitrader.exceptions import HeatmapTooLargeError, UpstreamUnavailableError
from oitrader.models import OpenInterestPoint, align_tail
from oitrader.signals import (
    aggregate_liquidations,
    analyze_oi_momentum,
    analyze_taker_flow,
    build_combined_heatmap,
    build_liquidation_heatmap,
    build_oi_heatmap,
    calculate_net_pressure,
    calculate_oi_delta_by_price,
    classify_funding_regime,
    classify_market_regime,
    classify_oi_delta_signal,
    classify_volatility_regime,
    combined_recommendation,
    cumulative_taker_flow,
    detect_divergences,
    filter_oi_signal_by_vol_regime,
    find_heatmap_zones,
    find_liquidation_zones,
    latest_divergence,
    momentum_statistics,
    nearest_cluster_signal,
    resistance_levels,
    risk_mode_suggestion,
    signal_score,
    strategy_recommendation,
    summarize_clusters,
    support_levels,
    taker_flow_signal,
    top_clusters,
    trading_interpretation,
)
from oitrader.signals.models import Heatmap, OIMomentumAnalysis

log = structlog.get_logger(__name__)

router = APIRouter()

INTERVAL_MS: dict[str, int] = {
    "1m": 60 * 1000,
    "5m": 5 * 60 * 1000,
    "15m": 15 * 60 * 1000,
    "30m": 30 * 60 * 1000,
    "1h": 60 * 60 * 1000,
    "4h": 4 * 60 * 60 * 1000,
    "1d": 24 * 60 * 60 * 1000,
}


def _decimal_to_str(obj: Any) -> Any:
    """Recursively convert Decimal, Enum and dataclass values for JSON serialization."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return _decimal_to_str(dataclasses.asdict(obj))
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {k: _decimal_to_str(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_decimal_to_str(item) for item in obj]
    return obj


def _now_ms() -> int:
    return int(time.time() * 1000)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        content={"success": False, "error": message, "timestamp": _now_ms()},
        status_code=status_code,
    )


def resolve_symbol(symbol: str | None, default: str) -> str:
    """Map ``BTCUSDT`` style ids to unified ``BTC/USDT:USDT`` symbols."""
    if not symbol:
        return default
    symbol = symbol.upper()
    if "/" in symbol:
        return symbol
    if symbol.endswith("USDT"):
        return f"{symbol[:-4]}/USDT:USDT"
    return symbol


def _limit(request: Request, limit: int | None) -> int:
    dashboard = request.app.state.settings.dashboard
    if limit is None:
        return dashboard.default_limit
    return max(1, min(limit, dashboard.max_limit))


def _time_step(request: Request, interval: str) -> int:
    return INTERVAL_MS.get(interval, request.app.state.settings.heatmap.time_step_ms)


async def _respond(
    request: Request,
    route: str,
    params: dict[str, Any],
    producer: Callable[[], Awaitable[Any]],
) -> JSONResponse:
    """Run a route producer through the cache and the response envelope."""
    cache = request.app.state.cache
    key = make_key(route, **params)

    with structlog.contextvars.bound_contextvars(route=route):
        if cache is not None:
            cached = await cache.get(key)
            if cached is not None:
                return JSONResponse(content={"success": True, "data": cached, "timestamp": _now_ms()})

        try:
            data = _decimal_to_str(await producer())
        except UpstreamUnavailableError as e:
            log.warning("upstream_unavailable", error=str(e), **params)
            return _error(str(e), 503)
        except HeatmapTooLargeError as e:
            log.warning("heatmap_too_large", error=str(e), **params)
            return _error(str(e), 400)
        except Exception as e:
            log.error("api_route_error", error=str(e), **params)
            return _error(str(e), 500)

        if cache is not None:
            await cache.set(key, data)
        return JSONResponse(content={"success": True, "data": data, "timestamp": _now_ms()})


def _momentum(settings: Any, oi: list[OpenInterestPoint]) -> OIMomentumAnalysis:
    m = settings.momentum
    return analyze_oi_momentum(
        oi,
        window=m.window,
        materiality_pct=m.materiality_pct,
        acceleration_threshold=m.acceleration_threshold,
        unwind_threshold=m.unwind_threshold,
        persistence_points=m.persistence_points,
        trend_lookback=m.trend_lookback,
        bounce_lookback=m.bounce_lookback,
        min_points=m.min_points,
    )


def _heatmap_payload(heatmap: Heatmap) -> dict[str, Any]:
    return {
        "rows": heatmap.rows,
        "columns": heatmap.columns,
        **dataclasses.asdict(heatmap),
    }


# ---------------------------------------------------------------------------
# Market data
# ---------------------------------------------------------------------------


@router.get("/market/klines")
async def get_klines(
    request: Request, symbol: str | None = None, interval: str = "5m", limit: int | None = None
) -> JSONResponse:
    """OHLCV candles, oldest first."""
    client = request.app.state.market_data
    sym = resolve_symbol(symbol, request.app.state.settings.exchange.default_symbol)
    n = _limit(request, limit)
    return await _respond(
        request,
        "market/klines",
        {"symbol": sym, "interval": interval, "limit": n},
        lambda: client.fetch_candles(sym, interval, n),
    )


@router.get("/market/oi")
async def get_open_interest(
    request: Request, symbol: str | None = None, period: str = "5m", limit: int | None = None
) -> JSONResponse:
    """Open interest history with per-point delta and change percent."""
    client = request.app.state.market_data
    sym = resolve_symbol(symbol, request.app.state.settings.exchange.default_symbol)
    n = _limit(request, limit)
    return await _respond(
        request,
        "market/oi",
        {"symbol": sym, "period": period, "limit": n},
        lambda: client.fetch_open_interest(sym, period, n),
    )


@router.get("/market/funding")
async def get_funding(request: Request, symbol: str | None = None, limit: int | None = None) -> JSONResponse:
    """Funding settlements, most recent first."""
    client = request.app.state.market_data
    sym = resolve_symbol(symbol, request.app.state.settings.exchange.default_symbol)
    n = _limit(request, limit)
    return await _respond(
        request,
        "market/funding",
        {"symbol": sym, "limit": n},
        lambda: client.fetch_funding_rates(sym, n),
    )


@router.get("/market/longshort")
async def get_long_short(
    request: Request, symbol: str | None = None, period: str = "5m", limit: int | None = None
) -> JSONResponse:
    client = request.app.state.market_data
    sym = resolve_symbol(symbol, request.app.state.settings.exchange.default_symbol)
    n = _limit(request, limit)
    return await _respond(
        request,
        "market/longshort",
        {"symbol": sym, "period": period, "limit": n},
        lambda: client.fetch_long_short_ratio(sym, period, n),
    )


@router.get("/market/taker-flow")
async def get_taker_volume(
    request: Request, symbol: str | None = None, period: str = "5m", limit: int | None = None
) -> JSONResponse:
    client = request.app.state.market_data
    sym = resolve_symbol(symbol, request.app.state.settings.exchange.default_symbol)
    n = _limit(request, limit)
    return await _respond(
        request,
        "market/taker-flow",
        {"symbol": sym, "period": period, "limit": n},
        lambda: client.fetch_taker_volume(sym, period, n),
    )


@router.get("/market/liquidations")
async def get_liquidations(request: Request, symbol: str | None = None, limit: int | None = None) -> JSONResponse:
    client = request.app.state.market_data
    sym = resolve_symbol(symbol, request.app.state.settings.exchange.default_symbol)
    n = _limit(request, limit)
    return await _respond(
        request,
        "market/liquidations",
        {"symbol": sym, "limit": n},
        lambda: client.fetch_liquidations(sym, n),
    )


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


@router.get("/analysis/divergence")
async def get_divergence(
    request: Request,
    symbol: str | None = None,
    interval: str = "5m",
    limit: int | None = None,
    window: int | None = Query(None, gt=0),
) -> JSONResponse:
    """Price / OI divergence signals over aligned candle and OI series."""
    client = request.app.state.market_data
    settings = request.app.state.settings
    sym = resolve_symbol(symbol, settings.exchange.default_symbol)
    n = _limit(request, limit)
    win = window if window is not None else settings.divergence.window

    async def produce() -> dict[str, Any]:
        candles, oi = await asyncio.gather(
            client.fetch_candles(sym, interval, n),
            client.fetch_open_interest(sym, interval, n),
        )
        candles, oi = align_tail(candles, oi)
        signals = detect_divergences(
            candles,
            oi,
            window=win,
            min_price_change_pct=settings.divergence.min_price_change_pct,
            min_oi_change_pct=settings.divergence.min_oi_change_pct,
        )
        return {"signals": signals, "latest": latest_divergence(signals), "data_points": len(candles)}

    return await _respond(
        request,
        "analysis/divergence",
        {"symbol": sym, "interval": interval, "limit": n, "window": win},
        produce,
    )


@router.get("/analysis/oi-momentum")
async def get_oi_momentum(
    request: Request, symbol: str | None = None, period: str = "5m", limit: int | None = None
) -> JSONResponse:
    """OI momentum analysis and flow statistics, with the latest point's score and trading reading."""
    client = request.app.state.market_data
    settings = request.app.state.settings
    sym = resolve_symbol(symbol, settings.exchange.default_symbol)
    n = _limit(request, limit)

    async def produce() -> dict[str, Any]:
        oi = await client.fetch_open_interest(sym, period, n)
        analysis = _momentum(settings, oi)
        statistics = momentum_statistics(analysis.points)
        payload: dict[str, Any] = {
            "analysis": analysis,
            "statistics": statistics,
            "score": 0,
            "interpretation": None,
            "strategy": None,
            "risk_mode": None,
            "data_points": len(oi),
        }
        current = analysis.current
        if current is not None:
            payload["score"] = signal_score(current)
            payload["interpretation"] = trading_interpretation(current)
            payload["strategy"] = strategy_recommendation(current.scenario, statistics.regime)
            payload["risk_mode"] = risk_mode_suggestion(current, statistics.regime, settings.momentum.materiality_pct)
        return payload

    return await _respond(
        request,
        "analysis/oi-momentum",
        {"symbol": sym, "period": period, "limit": n},
        produce,
    )


@router.get("/analysis/market-regime")
async def get_market_regime(
    request: Request, symbol: str | None = None, period: str = "5m", limit: int | None = None
) -> JSONResponse:
    """Composite regime from latest funding, long/short ratio and OI growth over the window."""
    client = request.app.state.market_data
    sym = resolve_symbol(symbol, request.app.state.settings.exchange.default_symbol)
    n = _limit(request, limit)

    async def produce() -> Any:
        funding, ratios, oi = await asyncio.gather(
            client.fetch_funding_rates(sym, 1),
            client.fetch_long_short_ratio(sym, period, 1),
            client.fetch_open_interest(sym, period, n),
        )
        funding_rate = funding[0].funding_rate if funding else Decimal("0")
        ratio = ratios[-1].long_short_ratio if ratios else Decimal("1")
        oi_change = Decimal("0")
        if len(oi) >= 2 and oi[0].value != 0:
            oi_change = (oi[-1].value - oi[0].value) / oi[0].value
        return classify_market_regime(funding_rate, ratio, oi_change)

    return await _respond(
        request,
        "analysis/market-regime",
        {"symbol": sym, "period": period, "limit": n},
        produce,
    )


@router.get("/analysis/funding-regime")
async def get_funding_regime(request: Request, symbol: str | None = None, limit: int | None = None) -> JSONResponse:
    client = request.app.state.market_data
    sym = resolve_symbol(symbol, request.app.state.settings.exchange.default_symbol)
    n = _limit(request, limit)

    async def produce() -> Any:
        return classify_funding_regime(await client.fetch_funding_rates(sym, n))

    return await _respond(request, "analysis/funding-regime", {"symbol": sym, "limit": n}, produce)


@router.get("/analysis/liquidation-cluster")
async def get_liquidation_cluster(
    request: Request,
    symbol: str | None = None,
    limit: int | None = None,
    bucket_size: Decimal | None = Query(None, gt=0),
) -> JSONResponse:
    """Liquidation clusters, zones, net pressure and proximity to the last price."""
    client = request.app.state.market_data
    settings = request.app.state.settings
    sym = resolve_symbol(symbol, settings.exchange.default_symbol)
    n = _limit(request, limit)
    size = bucket_size if bucket_size is not None else settings.liquidation.bucket_size

    async def produce() -> dict[str, Any]:
        events, candles = await asyncio.gather(
            client.fetch_liquidations(sym, n),
            client.fetch_candles(sym, "1m", 1),
        )
        clusters = aggregate_liquidations(events, size)
        summary = summarize_clusters(clusters)
        current_price = candles[-1].close if candles else Decimal("0")
        return {
            "clusters": clusters,
            "zones": find_liquidation_zones(clusters, settings.liquidation.zone_threshold),
            "net_pressure": calculate_net_pressure(clusters),
            "summary": summary,
            "proximity": nearest_cluster_signal(current_price, summary),
            "top": top_clusters(clusters),
            "support": support_levels(clusters, current_price),
            "resistance": resistance_levels(clusters, current_price),
            "current_price": current_price,
        }

    return await _respond(
        request,
        "analysis/liquidation-cluster",
        {"symbol": sym, "limit": n, "bucket_size": size},
        produce,
    )


@router.get("/analysis/taker-flow")
async def get_taker_flow(
    request: Request, symbol: str | None = None, period: str = "5m", limit: int | None = None
) -> JSONResponse:
    client = request.app.state.market_data
    sym = resolve_symbol(symbol, request.app.state.settings.exchange.default_symbol)
    n = _limit(request, limit)

    async def produce() -> dict[str, Any]:
        analysis = analyze_taker_flow(await client.fetch_taker_volume(sym, period, n))
        return {
            "analysis": analysis,
            "signal": taker_flow_signal(analysis.flows[-1]) if analysis.flows else None,
            "cumulative": cumulative_taker_flow(analysis.flows),
        }

    return await _respond(
        request,
        "analysis/taker-flow",
        {"symbol": sym, "period": period, "limit": n},
        produce,
    )


@router.get("/analysis/oi-delta")
async def get_oi_delta(
    request: Request,
    symbol: str | None = None,
    interval: str = "5m",
    limit: int | None = None,
    bucket_size: Decimal | None = Query(None, gt=0),
) -> JSONResponse:
    """OI change by closing-price bucket, with a signal for the strongest bucket."""
    client = request.app.state.market_data
    settings = request.app.state.settings
    sym = resolve_symbol(symbol, settings.exchange.default_symbol)
    n = _limit(request, limit)
    size = bucket_size if bucket_size is not None else settings.oi_delta.bucket_size

    async def produce() -> dict[str, Any]:
        candles, oi = await asyncio.gather(
            client.fetch_candles(sym, interval, n),
            client.fetch_open_interest(sym, interval, n),
        )
        analysis = calculate_oi_delta_by_price(candles, oi, size)
        strongest = max(analysis.buckets, key=lambda b: b.intensity, default=None)
        return {
            "analysis": analysis,
            "strongest": strongest,
            "signal": classify_oi_delta_signal(strongest) if strongest else None,
        }

    return await _respond(
        request,
        "analysis/oi-delta",
        {"symbol": sym, "interval": interval, "limit": n, "bucket_size": size},
        produce,
    )


@router.get("/analysis/volatility-regime")
async def get_volatility_regime(
    request: Request, symbol: str | None = None, interval: str = "5m", limit: int | None = None
) -> JSONResponse:
    """Volatility regime of the candle series and the current OI scenario filtered through it."""
    client = request.app.state.market_data
    settings = request.app.state.settings
    sym = resolve_symbol(symbol, settings.exchange.default_symbol)
    n = _limit(request, limit)

    async def produce() -> dict[str, Any]:
        candles, oi = await asyncio.gather(
            client.fetch_candles(sym, interval, n),
            client.fetch_open_interest(sym, interval, n),
        )
        regime = classify_volatility_regime(candles)
        current = _momentum(settings, oi).current
        if current is None:
            return {"regime": regime, "filtered_signal": None, "recommendation": None}
        return {
            "regime": regime,
            "filtered_signal": filter_oi_signal_by_vol_regime(current.scenario, current.strength, regime),
            "recommendation": combined_recommendation(current.scenario, current.strength, regime),
        }

    return await _respond(
        request,
        "analysis/volatility-regime",
        {"symbol": sym, "interval": interval, "limit": n},
        produce,
    )


# ---------------------------------------------------------------------------
# Heatmaps
# ---------------------------------------------------------------------------


@router.get("/heatmap/oi")
async def get_oi_heatmap(
    request: Request,
    symbol: str | None = None,
    interval: str = "5m",
    limit: int | None = None,
    price_step: Decimal | None = Query(None, gt=0),
) -> JSONResponse:
    client = request.app.state.market_data
    settings = request.app.state.settings
    sym = resolve_symbol(symbol, settings.exchange.default_symbol)
    n = _limit(request, limit)
    step = price_step if price_step is not None else settings.heatmap.price_step
    time_step = _time_step(request, interval)

    async def produce() -> dict[str, Any]:
        oi, candles = await asyncio.gather(
            client.fetch_open_interest(sym, interval, n),
            client.fetch_candles(sym, interval, n),
        )
        return _heatmap_payload(build_oi_heatmap(oi, candles, step, time_step, max_cells=settings.heatmap.max_cells))

    return await _respond(
        request,
        "heatmap/oi",
        {"symbol": sym, "interval": interval, "limit": n, "price_step": step},
        produce,
    )


@router.get("/heatmap/liquidation")
async def get_liquidation_heatmap(
    request: Request,
    symbol: str | None = None,
    interval: str = "5m",
    limit: int | None = None,
    price_step: Decimal | None = Query(None, gt=0),
) -> JSONResponse:
    """Liquidation notional heatmap over the candle close range."""
    client = request.app.state.market_data
    settings = request.app.state.settings
    sym = resolve_symbol(symbol, settings.exchange.default_symbol)
    n = _limit(request, limit)
    step = price_step if price_step is not None else settings.heatmap.price_step
    time_step = _time_step(request, interval)

    async def produce() -> dict[str, Any]:
        events, candles = await asyncio.gather(
            client.fetch_liquidations(sym, n),
            client.fetch_candles(sym, interval, n),
        )
        if not candles:
            return _heatmap_payload(build_liquidation_heatmap([], (Decimal("0"), Decimal("0")), step, time_step))
        closes = [c.close for c in candles]
        heatmap = build_liquidation_heatmap(
            events,
            (min(closes), max(closes)),
            step,
            time_step,
            time_range=(candles[0].timestamp, candles[-1].timestamp),
            max_cells=settings.heatmap.max_cells,
        )
        return _heatmap_payload(heatmap)

    return await _respond(
        request,
        "heatmap/liquidation",
        {"symbol": sym, "interval": interval, "limit": n, "price_step": step},
        produce,
    )


@router.get("/heatmap/combined")
async def get_combined_heatmap(
    request: Request,
    symbol: str | None = None,
    interval: str = "5m",
    limit: int | None = None,
    price_step: Decimal | None = Query(None, gt=0),
) -> JSONResponse:
    """Weighted OI + liquidation heatmap with significant zones.

    Falls back to an OI-only merge when the liquidation feed is unavailable.
    """
    client = request.app.state.market_data
    settings = request.app.state.settings
    sym = resolve_symbol(symbol, settings.exchange.default_symbol)
    n = _limit(request, limit)
    step = price_step if price_step is not None else settings.heatmap.price_step
    time_step = _time_step(request, interval)
    hm = settings.heatmap

    async def produce() -> dict[str, Any]:
        oi, candles = await asyncio.gather(
            client.fetch_open_interest(sym, interval, n),
            client.fetch_candles(sym, interval, n),
        )
        liquidations_available = True
        try:
            events = await client.fetch_liquidations(sym, n)
        except UpstreamUnavailableError:
            log.warning("combined_heatmap_without_liquidations", symbol=sym)
            liquidations_available = False
            events = []

        oi_heatmap = build_oi_heatmap(oi, candles, step, time_step, max_cells=hm.max_cells)
        if candles:
            closes = [c.close for c in candles]
            price_range = (min(closes), max(closes))
        else:
            price_range = (Decimal("0"), Decimal("0"))
        liq_heatmap = build_liquidation_heatmap(events, price_range, step, time_step, max_cells=hm.max_cells)

        combined = build_combined_heatmap(
            oi_heatmap,
            liq_heatmap,
            candles,
            oi_weight=hm.oi_weight,
            liquidation_weight=hm.liquidation_weight,
            max_cells=hm.max_cells,
        )
        zones = find_heatmap_zones(combined, threshold=hm.zone_threshold)
        return {
            "heatmap": _heatmap_payload(combined),
            "zones": zones,
            "liquidations_available": liquidations_available,
        }

    return await _respond(
        request,
        "heatmap/combined",
        {"symbol": sym, "interval": interval, "limit": n, "price_step": step},
        produce,
    )
