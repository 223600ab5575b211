"""Binance USD-M futures market data client via ccxt async.

Wraps ccxt.async_support.binanceusdm with market loading, Decimal conversion
of every numeric field, and translation of ccxt failures into ExchangeError.
Long/short ratio and taker volume come from Binance's futures data endpoints
through ccxt's implicit API methods.
"""

from collections.abc import Awaitable, Callable
from decimal import Decimal
from typing import Any

import ccxt.async_support as ccxt_async

from oitrader.config import ExchangeSettings
from oitrader.exceptions import ExchangeError, UpstreamUnavailableError
from oitrader.exchange.client import MarketDataClient
from oitrader.logging import get_logger
from oitrader.models import (
    Candle,
    FundingRate,
    LiquidationEvent,
    LiquidationSide,
    LongShortRatio,
    OpenInterestPoint,
    TakerVolume,
    with_deltas,
)

logger = get_logger(__name__)


def _dec(value: Any) -> Decimal:
    """Convert an exchange number (float, str or None) to Decimal."""
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


class BinanceFuturesClient(MarketDataClient):
    """Concrete Binance USD-M futures client using ccxt async."""

    def __init__(self, settings: ExchangeSettings, exchange: Any | None = None) -> None:
        self._settings = settings
        if exchange is None:
            exchange_class = getattr(ccxt_async, settings.exchange_id)
            exchange = exchange_class(
                {
                    "enableRateLimit": True,
                    "timeout": settings.timeout_ms,
                    "options": {"defaultType": "future"},
                }
            )
        self._exchange = exchange
        self._markets: dict = {}

    @property
    def exchange(self) -> Any:
        """Access the underlying ccxt exchange instance."""
        return self._exchange

    async def connect(self) -> None:
        """Initialize connection by loading markets."""
        logger.info("connecting_to_exchange", exchange=self._settings.exchange_id)
        self._markets = await self._call("load_markets", self._exchange.load_markets)
        logger.info(
            "exchange_connected",
            exchange=self._settings.exchange_id,
            market_count=len(self._markets),
        )

    async def close(self) -> None:
        """Clean up ccxt async resources. CRITICAL: must be called to avoid resource leaks."""
        logger.info("closing_exchange_connection")
        await self._exchange.close()
        logger.info("exchange_connection_closed")

    async def _call(self, method: str, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)
        except ccxt_async.BaseError as e:
            logger.error("exchange_request_failed", method=method, error=str(e))
            raise ExchangeError(f"{method} failed: {e}") from e

    def _market_id(self, symbol: str) -> str:
        """Exchange-native id ("BTCUSDT") for a unified symbol ("BTC/USDT:USDT")."""
        try:
            return self._exchange.market_id(symbol)
        except ccxt_async.BaseError as e:
            raise ExchangeError(f"Unknown symbol {symbol}: {e}") from e

    async def fetch_candles(self, symbol: str, interval: str = "5m", limit: int = 500) -> list[Candle]:
        rows = await self._call("fetch_ohlcv", self._exchange.fetch_ohlcv, symbol, interval, limit=limit)
        return [
            Candle(
                timestamp=int(row[0]),
                open=_dec(row[1]),
                high=_dec(row[2]),
                low=_dec(row[3]),
                close=_dec(row[4]),
                volume=_dec(row[5]),
            )
            for row in rows
        ]

    async def fetch_open_interest(
        self, symbol: str, period: str = "5m", limit: int = 500
    ) -> list[OpenInterestPoint]:
        """Fetch OI history in contracts (Binance ``sumOpenInterest``)."""
        rows = await self._call(
            "fetch_open_interest_history",
            self._exchange.fetch_open_interest_history,
            symbol,
            period,
            limit=limit,
        )
        points = [
            OpenInterestPoint(
                timestamp=int(row["timestamp"]),
                value=_dec(row.get("openInterestAmount")),
                symbol=symbol,
            )
            for row in sorted(rows, key=lambda r: r["timestamp"])
        ]
        return with_deltas(points)

    async def fetch_funding_rates(self, symbol: str, limit: int = 100) -> list[FundingRate]:
        rows = await self._call(
            "fetch_funding_rate_history",
            self._exchange.fetch_funding_rate_history,
            symbol,
            limit=limit,
        )
        rates = [
            FundingRate(
                symbol=symbol,
                funding_rate=_dec(row.get("fundingRate")),
                funding_time=int(row["timestamp"]),
                mark_price=_dec((row.get("info") or {}).get("markPrice")),
            )
            for row in rows
        ]
        rates.sort(key=lambda r: r.funding_time, reverse=True)
        return rates

    async def fetch_long_short_ratio(
        self, symbol: str, period: str = "5m", limit: int = 100
    ) -> list[LongShortRatio]:
        rows = await self._call(
            "global_long_short_account_ratio",
            self._exchange.fapiDataGetGlobalLongShortAccountRatio,
            {"symbol": self._market_id(symbol), "period": period, "limit": limit},
        )
        return sorted(
            (
                LongShortRatio(
                    symbol=symbol,
                    long_account=_dec(row.get("longAccount")),
                    short_account=_dec(row.get("shortAccount")),
                    long_short_ratio=_dec(row.get("longShortRatio")),
                    timestamp=int(row["timestamp"]),
                )
                for row in rows
            ),
            key=lambda r: r.timestamp,
        )

    async def fetch_taker_volume(
        self, symbol: str, period: str = "5m", limit: int = 100
    ) -> list[TakerVolume]:
        rows = await self._call(
            "taker_long_short_ratio",
            self._exchange.fapiDataGetTakerlongshortRatio,
            {"symbol": self._market_id(symbol), "period": period, "limit": limit},
        )
        return sorted(
            (
                TakerVolume(
                    symbol=symbol,
                    buy_sell_ratio=_dec(row.get("buySellRatio")),
                    buy_volume=_dec(row.get("buyVol")),
                    sell_volume=_dec(row.get("sellVol")),
                    timestamp=int(row["timestamp"]),
                )
                for row in rows
            ),
            key=lambda r: r.timestamp,
        )

    async def fetch_liquidations(self, symbol: str, limit: int = 500) -> list[LiquidationEvent]:
        """Fetch recent forced liquidations.

        A SELL force order closes a long position, a BUY closes a short.
        """
        if not self._settings.liquidations_available:
            logger.warning("liquidations_unavailable", symbol=symbol)
            raise UpstreamUnavailableError(
                "Liquidation data is not available from the public Binance REST API"
            )

        rows = await self._call("fetch_liquidations", self._exchange.fetch_liquidations, symbol, limit=limit)
        events: list[LiquidationEvent] = []
        for i, row in enumerate(rows):
            info = row.get("info") or {}
            side = str(info.get("side") or row.get("side") or "").upper()
            events.append(
                LiquidationEvent(
                    id=str(info.get("orderId") or f"{row['timestamp']}-{i}"),
                    symbol=symbol,
                    side=LiquidationSide.LONG if side in ("SELL", "LONG") else LiquidationSide.SHORT,
                    price=_dec(row.get("price")),
                    quantity=_dec(row.get("contracts") or info.get("origQty")),
                    timestamp=int(row["timestamp"]),
                )
            )
        events.sort(key=lambda e: e.timestamp)
        return events
