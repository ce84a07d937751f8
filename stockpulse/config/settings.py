"""
Inventory-Aware Sales Analytics
Centralized Configuration Management

Pydantic settings with environment variable support, validation and type
safety for the Shopify client, the report cache and the analytics knobs.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ShopifySettings(BaseSettings):
    """Shopify Admin API Configuration"""

    model_config = SettingsConfigDict(env_prefix="SHOPIFY_")

    shop: str = Field(default="example.myshopify.com", description="Shop domain")
    admin_token: SecretStr = Field(default="change-me", description="Admin API access token")
    api_version: str = Field(default="2024-07", description="Admin API version")
    api_generation: str = Field(default="rest", description="Order API generation: rest or graphql")
    timezone: str = Field(default="America/Monterrey", description="Shop timezone")
    page_size: int = Field(default=250, description="Orders per page")

    @field_validator("api_generation")
    @classmethod
    def validate_generation(cls, v: str) -> str:
        """Validate API generation"""
        allowed = ["rest", "graphql"]
        if v.lower() not in allowed:
            raise ValueError(f"API generation must be one of: {allowed}")
        return v.lower()

    @property
    def base_url(self) -> str:
        """Shop base URL"""
        return f"https://{self.shop}"


class RateLimitSettings(BaseSettings):
    """Outbound API Throttling Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    calls_per_second: float = Field(default=5.0, alias="RATE_LIMIT_CALLS_PER_SECOND", description="Max API calls per second")
    timeout_seconds: float = Field(default=15.0, alias="FETCH_TIMEOUT_SECONDS", description="Hard wall-clock timeout per call")
    max_retries: int = Field(default=2, alias="FETCH_MAX_RETRIES", description="Retries for retryable failures")
    rate_limit_backoff_seconds: float = Field(default=2.0, alias="RATE_LIMIT_BACKOFF_SECONDS", description="Backoff seed for 429s")
    timeout_backoff_seconds: float = Field(default=1.0, alias="TIMEOUT_BACKOFF_SECONDS", description="Backoff seed for timeouts")
    max_pages: int = Field(default=100, alias="MAX_PAGES", description="Pagination ceiling")
    inventory_chunk_size: int = Field(default=50, alias="INVENTORY_CHUNK_SIZE", description="Inventory items per level query")


class CacheSettings(BaseSettings):
    """In-Memory Report Cache Configuration"""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    max_entries: int = Field(default=15, description="Max cached reports")
    ttl_today_seconds: int = Field(default=180, description="TTL for intra-day reports")
    ttl_daily_seconds: int = Field(default=600, description="TTL for closed-day reports")
    ttl_weekly_seconds: int = Field(default=7200, description="TTL for weekly reports")
    ttl_monthly_seconds: int = Field(default=14400, description="TTL for monthly reports")


class AnalyticsSettings(BaseSettings):
    """Reorder, ABC and Dead-Stock Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    dead_stock_days: int = Field(default=90, alias="DEAD_STOCK_DAYS", description="Dead-stock lookback window")
    rop_lead_days: int = Field(default=7, alias="ROP_LEAD_DAYS", description="Supplier lead time")
    rop_safety_days: int = Field(default=3, alias="ROP_SAFETY_DAYS", description="Safety stock in days")
    review_window_days: int = Field(default=14, alias="REVIEW_WINDOW_DAYS", description="Review buffer for target stock")
    sales_lookback_days: int = Field(default=30, alias="SALES_LOOKBACK_DAYS", description="Velocity lookback window")
    include_inactive_locations: bool = Field(
        default=False,
        alias="INCLUDE_INACTIVE_LOCATIONS",
        description="Count stock held at inactive locations",
    )
    dead_stock_skip_periods: List[str] = Field(
        default=["weekly", "monthly"],
        alias="DEAD_STOCK_SKIP_PERIODS",
        description="Periods for which dead-stock detection is skipped",
    )


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")
    slow_report_ms: int = Field(default=15000, alias="SLOW_REPORT_MS", description="Slow report warning threshold")


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
    app_name: str = Field(default="stockpulse", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    shopify: ShopifySettings = Field(default_factory=ShopifySettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

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


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
