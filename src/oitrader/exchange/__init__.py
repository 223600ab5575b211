"""Exchange data layer -- Binance USD-M futures market data via ccxt."""

from oitrader.exchange.binance_client import BinanceFuturesClient
from oitrader.exchange.client import MarketDataClient

__all__ = ["BinanceFuturesClient", "MarketDataClient"]
