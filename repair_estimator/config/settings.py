"""
Configuration settings for the Repair Price Estimator.

Uses pydantic-settings for environment variable management with validation.
Each business area reads its own env prefix so a store can tune pricing
cutoffs, appraisal fees, and persistence independently.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database connection configuration."""

    model_config = SettingsConfigDict(env_prefix="DB_")

    host: str = "localhost"
    port: int = 5432
    name: str = "repair_estimator"
    user: str = "postgres"
    password: SecretStr = SecretStr("postgres")
    pool_size: int = 10
    max_overflow: int = 5
    url_override: str | None = None

    @property
    def async_url(self) -> str:
        """Construct async database URL."""
        if self.url_override:
            return self.url_override
        return (
            f"postgresql+asyncpg://{self.user}:"
            f"{self.password.get_secret_value()}@"
            f"{self.host}:{self.port}/{self.name}"
        )


class StoreSettings(BaseSettings):
    """Record store backend and resilience configuration."""

    model_config = SettingsConfigDict(env_prefix="STORE_")

    backend: Literal["memory", "sql"] = "memory"
    timeout_seconds: float = 5.0
    retry_attempts: int = 3
    retry_wait_min_seconds: float = 0.1
    retry_wait_max_seconds: float = 2.0


class PricingSettings(BaseSettings):
    """Pricing engine settings."""

    model_config = SettingsConfigDict(env_prefix="PRICING_")

    same_day_cutoff_hour: int = Field(default=14, ge=0, le=23)
    business_timezone: str = "UTC"
    metal_rate_stale_days: int = 7
    default_labor_role: str = "bench_jeweler"
    # Purchase SKUs carrying the store's purchase protection plan
    exempt_sku_prefixes: list[str] = ["PUR", "PRST", "SPR", "14K", "18K", "PLAT"]


class AppraisalSettings(BaseSettings):
    """Appraisal fee settings."""

    model_config = SettingsConfigDict(env_prefix="APPRAISAL_")

    update_recency_years: int = 10
    update_discount: Decimal = Decimal("0.50")
    sarin_report_fee: Decimal = Decimal("200.00")
    gem_id_fee: Decimal = Decimal("75.00")
    photo_documentation_fee: Decimal = Decimal("25.00")
    expedite_percentage: Decimal = Decimal("0.50")


class QuoteSettings(BaseSettings):
    """Quote lifecycle settings."""

    model_config = SettingsConfigDict(env_prefix="QUOTE_")

    validity_days: int = 30
    tax_rate: Decimal = Decimal("0.08")
    currency_code: str = "USD"
    id_generation_max_attempts: int = 10
    creation_max_attempts: int = 3


class Settings(BaseSettings):
    """Main application settings aggregating all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Repair Price Estimator"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 2

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"

    # Sub-configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    pricing: PricingSettings = Field(default_factory=PricingSettings)
    appraisal: AppraisalSettings = Field(default_factory=AppraisalSettings)
    quote: QuoteSettings = Field(default_factory=QuoteSettings)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Clear cache with get_settings.cache_clear() if needed.
    """
    return Settings()


# Convenience export
settings = get_settings()
