"""
Commerce Operations Dashboard
Centralized Configuration Management

This module provides configuration management using Pydantic settings with
environment variable support, validation, and type safety.
"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="opsboard", alias="database", description="Database name")
    user: str = Field(default="opsboard", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Full async URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL for asyncpg"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class MonitoringSettings(BaseSettings):
    """Monitoring and Observability Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")


class AnalyticsSettings(BaseSettings):
    """Result limits and list caps for the analytics engine"""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")

    default_limit: int = Field(default=25, description="Default rows for breakdowns and movers")
    default_risk_limit: int = Field(default=50, description="Default rows for risk listings")
    min_limit: int = Field(default=1, description="Lower clamp for any limit")
    max_limit: int = Field(default=200, description="Upper clamp for any limit")
    issue_sample_size: int = Field(default=5, description="Sample order ids per data-quality issue")
    planning_list_cap: int = Field(default=7, description="Max risks/opportunities in a plan")
    planning_evidence_items: int = Field(default=5, description="Inventory rows quoted as plan evidence")
    planning_stock_limit: int = Field(default=20, description="Inventory rows fetched for plan stock checks")
    forecast_default_horizon: int = Field(default=14, description="Default forecast horizon in days")
    forecast_max_horizon: int = Field(default=365, description="Maximum forecast horizon in days")

    def clamp_limit(self, limit: Optional[int], default: Optional[int] = None) -> int:
        """Clamp a requested limit into [min_limit, max_limit]"""
        if limit is None:
            limit = self.default_limit if default is None else default
        return max(self.min_limit, min(self.max_limit, limit))


class RiskThresholds(BaseSettings):
    """
    Cut-points used by the risk detectors and the planning synthesizer.

    Rates are 0..1 ratios; spike thresholds are deltas in rate units
    (0.02 == 2 percentage points).
    """

    model_config = SettingsConfigDict(env_prefix="RISK_")

    # Stock
    stockout_high_days_left: float = Field(default=3, description="daysLeft at or below this is high")
    default_horizon_days: int = Field(default=14, description="daysLeft at or below the horizon is medium")
    min_horizon_days: int = Field(default=1)
    max_horizon_days: int = Field(default=90)
    default_low_stock_threshold: int = Field(default=10, description="Low stock when 0 < onHand < threshold")
    min_low_stock_threshold: int = Field(default=1)
    max_low_stock_threshold: int = Field(default=100000)
    rollup_low_stock_level: int = Field(default=5, description="onHand at or below counts as low stock in rollups")

    # Period-over-period spikes
    refund_spike_medium: float = Field(default=0.02)
    refund_spike_high: float = Field(default=0.05)
    fee_spike_medium: float = Field(default=0.01)
    fee_spike_high: float = Field(default=0.03)

    # Margin leakage (marginPct strictly below)
    margin_high: float = Field(default=0.40)
    margin_medium: float = Field(default=0.60)

    # Planning opportunities (rate strictly above)
    opportunity_fee_rate: float = Field(default=0.02)
    opportunity_fee_rate_high: float = Field(default=0.04)
    opportunity_refund_rate: float = Field(default=0.01)
    opportunity_refund_rate_high: float = Field(default=0.03)

    def clamp_horizon(self, horizon_days: Optional[int]) -> int:
        value = self.default_horizon_days if horizon_days is None else horizon_days
        return max(self.min_horizon_days, min(self.max_horizon_days, value))

    def clamp_low_stock_threshold(self, threshold: Optional[int]) -> int:
        value = self.default_low_stock_threshold if threshold is None else threshold
        return max(self.min_low_stock_threshold, min(self.max_low_stock_threshold, value))


class SchedulerSettings(BaseSettings):
    """Nightly rollup job"""

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_")

    rollup_hour: int = Field(default=0, ge=0, le=23, description="Hour of the nightly rollup run")
    rollup_minute: int = Field(default=30, ge=0, le=59)
    timezone: str = Field(default="UTC", description="Timezone of the cron schedule")
    lookback_days: int = Field(default=2, ge=1, le=31, description="Days re-materialized per run, ending yesterday")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="commerce-opsboard", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    risk: RiskThresholds = Field(default_factory=RiskThresholds)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
