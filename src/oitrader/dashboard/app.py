"""FastAPI dashboard application factory."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from oitrader.config import AppSettings
from oitrader.dashboard.routes import api


def create_dashboard_app(lifespan: Any = None, settings: AppSettings | None = None) -> FastAPI:
    """Create and configure the FastAPI dashboard application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to inject startup/shutdown logic.
        settings: Application settings; loaded from the environment when omitted.

    Returns:
        Configured FastAPI application with the JSON API mounted under /api.
        ``app.state.market_data`` and ``app.state.cache`` are wired by the
        caller (main.py lifespan or tests).
    """
    app = FastAPI(
        title="OI Trader Analytics",
        lifespan=lifespan,
    )

    app.state.settings = settings or AppSettings()
    app.state.market_data = None
    app.state.cache = None

    app.include_router(api.router, prefix="/api")

    return app
