"""Entry point for the oitrader analytics service.

Wires settings, logging, the exchange data client and the response cache
into the FastAPI dashboard, and serves it through uvicorn's programmatic
API. The exchange connection is opened and closed by the FastAPI lifespan,
so the client and the server share one asyncio event loop.

Component wiring order:
1. AppSettings (configuration)
2. Logging setup
3. BinanceFuturesClient (market data via ccxt)
4. ResponseCache (shared by all routes)
5. Dashboard app
"""

import asyncio
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from oitrader.cache import ResponseCache
from oitrader.config import AppSettings
from oitrader.dashboard.app import create_dashboard_app
from oitrader.exchange.binance_client import BinanceFuturesClient
from oitrader.logging import get_logger, setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the market data client on startup and close it on shutdown."""
    logger = get_logger("oitrader.main")
    client = app.state.market_data

    await client.connect()
    logger.info("lifespan_started", symbol=app.state.settings.exchange.default_symbol)

    try:
        yield
    finally:
        await client.close()
        logger.info("oitrader_stopped")


def build_app(settings: AppSettings) -> FastAPI:
    """Create the dashboard app with its client and cache attached."""
    app = create_dashboard_app(lifespan=lifespan, settings=settings)
    app.state.market_data = BinanceFuturesClient(settings.exchange)
    if settings.cache.enabled:
        app.state.cache = ResponseCache(settings.cache.ttl_seconds)
    return app


async def run() -> None:
    """Run the analytics dashboard until interrupted."""
    settings = AppSettings()
    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("oitrader.main")

    app = build_app(settings)

    logger.info(
        "starting_dashboard",
        host=settings.dashboard.host,
        port=settings.dashboard.port,
        exchange=settings.exchange.exchange_id,
        cache_ttl=settings.cache.ttl_seconds if settings.cache.enabled else None,
    )

    config = uvicorn.Config(
        app,
        host=settings.dashboard.host,
        port=settings.dashboard.port,
        log_level="warning",  # Suppress uvicorn access logs
    )
    server = uvicorn.Server(config)
    await server.serve()


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
