"""Shared test fixtures for the oitrader analytics service."""

import pytest
import structlog

from oitrader.config import AppSettings, CacheSettings, ExchangeSettings


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with test defaults (caching off, liquidations unavailable)."""
    return AppSettings(
        log_level="DEBUG",
        exchange=ExchangeSettings(liquidations_available=False),
        cache=CacheSettings(enabled=False),
    )


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Keep structlog context variables from leaking between tests."""
    yield
    structlog.contextvars.clear_contextvars()
