"""Abstract market data client interface.

Defines the contract for all exchange data providers. The HTTP layer depends
only on this interface, keeping Binance-specific details isolated in the
concrete implementation.

Every series method returns records ordered ascending by timestamp, except
fetch_funding_rates which returns the most recent settlement first.
"""

from abc import ABC, abstractmethod

from oitrader.models import (
    Candle,
    FundingRate,
    LiquidationEvent,
    LongShortRatio,
    OpenInterestPoint,
    TakerVolume,
)


class MarketDataClient(ABC):
    """Abstract base class for derivatives market data providers."""

    @abstractmethod
    async def connect(self) -> None:
        """Initialize connection and load markets."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources (CRITICAL for ccxt async)."""
        ...

    @abstractmethod
    async def fetch_candles(self, symbol: str, interval: str = "5m", limit: int = 500) -> list[Candle]:
        """Fetch OHLCV candles, oldest first."""
        ...

    @abstractmethod
    async def fetch_open_interest(
        self, symbol: str, period: str = "5m", limit: int = 500
    ) -> list[OpenInterestPoint]:
        """Fetch open interest history, oldest first, with deltas filled in."""
        ...

    @abstractmethod
    async def fetch_funding_rates(self, symbol: str, limit: int = 100) -> list[FundingRate]:
        """Fetch funding settlements, most recent first."""
        ...

    @abstractmethod
    async def fetch_long_short_ratio(
        self, symbol: str, period: str = "5m", limit: int = 100
    ) -> list[LongShortRatio]:
        """Fetch global long/short account ratio history, oldest first."""
        ...

    @abstractmethod
    async def fetch_taker_volume(
        self, symbol: str, period: str = "5m", limit: int = 100
    ) -> list[TakerVolume]:
        """Fetch taker buy/sell volume history, oldest first."""
        ...

    @abstractmethod
    async def fetch_liquidations(self, symbol: str, limit: int = 500) -> list[LiquidationEvent]:
        """Fetch recent forced liquidations, oldest first.

        Raises:
            UpstreamUnavailableError: If the provider has no liquidation feed.
        """
        ...
