"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class ExchangeSettings(BaseSettings):
    """Exchange market-data connection settings."""

    model_config = SettingsConfigDict(env_prefix="EXCHANGE_")

    exchange_id: str = "binanceusdm"
    default_symbol: str = "BTC/USDT:USDT"
    timeout_ms: int = 10_000
    # Binance retired the public force-order REST endpoint
    liquidations_available: bool = False


class DivergenceSettings(BaseSettings):
    """Price / open interest divergence detection parameters."""

    model_config = SettingsConfigDict(env_prefix="DIVERGENCE_")

    window: int = 20  # Points between compared samples
    min_price_change_pct: Decimal = Decimal("2")  # |price move| floor, percent
    min_oi_change_pct: Decimal = Decimal("3")  # |OI move| floor, percent


class MomentumSettings(BaseSettings):
    """OI momentum / acceleration calibration.

    Momentum is expressed in percent of open interest per hour.
    All fields configurable via MOMENTUM_ environment variable prefix.
    """

    model_config = SettingsConfigDict(env_prefix="MOMENTUM_")

    window: int = 3  # Trailing points averaged into momentum
    materiality_pct: Decimal = Decimal("1.0")  # %/h separating real moves from noise
    acceleration_threshold: Decimal = Decimal("0.5")
    unwind_threshold: Decimal = Decimal("2.0")  # Momentum and accel floor for forced unwind
    persistence_points: int = 3  # Consecutive material points for "real" OI
    trend_lookback: int = 10
    bounce_lookback: int = 5  # Points after an unwind that may qualify as a bounce
    min_points: int = 3


class LiquidationSettings(BaseSettings):
    """Liquidation cluster aggregation parameters."""

    model_config = SettingsConfigDict(env_prefix="LIQUIDATION_")

    bucket_size: Decimal = Decimal("10")
    zone_threshold: Decimal = Decimal("0.7")  # Fraction of max cluster value


class OIDeltaSettings(BaseSettings):
    """OI delta by price bucketing."""

    model_config = SettingsConfigDict(env_prefix="OI_DELTA_")

    bucket_size: Decimal = Decimal("10")


class HeatmapSettings(BaseSettings):
    """Heatmap grid geometry and combination weights."""

    model_config = SettingsConfigDict(env_prefix="HEATMAP_")

    price_step: Decimal = Decimal("10")
    time_step_ms: int = 300_000  # 5 minutes
    oi_weight: Decimal = Decimal("0.6")  # Weights must sum to 1.0
    liquidation_weight: Decimal = Decimal("0.4")
    zone_threshold: Decimal = Decimal("0.5")
    max_cells: int = 100_000  # Larger grids are rejected before they are built


class CacheSettings(BaseSettings):
    """Response cache used by the HTTP layer."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    enabled: bool = True
    ttl_seconds: float = 30.0


class DashboardSettings(BaseSettings):
    """Dashboard server configuration."""

    model_config = SettingsConfigDict(env_prefix="DASHBOARD_")

    host: str = "0.0.0.0"
    port: int = 8080
    default_limit: int = 200
    max_limit: int = 1500


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production
    exchange: ExchangeSettings = ExchangeSettings()
    divergence: DivergenceSettings = DivergenceSettings()
    momentum: MomentumSettings = MomentumSettings()
    liquidation: LiquidationSettings = LiquidationSettings()
    oi_delta: OIDeltaSettings = OIDeltaSettings()
    heatmap: HeatmapSettings = HeatmapSettings()
    cache: CacheSettings = CacheSettings()
    dashboard: DashboardSettings = DashboardSettings()
