# portfolio_engine/config.py
"""
Engine configuration using Pydantic Settings.

Loads configuration from environment variables with validation:
- ENVIRONMENT: Runtime mode (development, test, production)
- LOG_LEVEL / LOG_FORMAT: Logging setup
- RISK_FREE_RATE, PERIODS_PER_YEAR, ...: Defaults used by AnalyticsService
- CACHE_*: Analytics cache bounds

The calculators never read settings directly; they take explicit
parameters defaulting to services/constants.py. Only the orchestrator
(AnalyticsService) and logging setup consult these values.

Usage:
    from portfolio_engine.config import settings

    if settings.is_production:
        ...
"""
from decimal import Decimal
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from portfolio_engine.services.constants import (
    CACHE_MAX_SIZE,
    CACHE_TTL_SECONDS,
    DEFAULT_FRONTIER_POINTS,
    DEFAULT_RISK_FREE_RATE,
    IRR_MAX_ITERATIONS,
    IRR_TOLERANCE,
    MIN_HISTORY_YEARS,
    STERLING_DRAWDOWN_COUNT,
)

# .env in the project root (parent of the package directory)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    Environment variables:
        - ENVIRONMENT: Runtime environment (development, test, production)
        - LOG_LEVEL: Logging level (default: "INFO")
        - LOG_FORMAT: "text" or "json" (default: "text")

    Analytics defaults:
        - RISK_FREE_RATE: Annual risk-free rate (default: 0.02)
        - PERIODS_PER_YEAR: Annualization factor for return series (default: 252)
        - MIN_HISTORY_YEARS: History needed for drawdown metrics (default: 3)
        - STERLING_DRAWDOWN_COUNT: Drawdowns averaged by Sterling (default: 3)
        - IRR_MAX_ITERATIONS / IRR_TOLERANCE: IRR solver bounds
        - FRONTIER_POINTS: Efficient frontier samples (default: 50)
        - ALLOW_SHORT_POSITIONS: Permit negative optimizer weights (default: False)

    Cache:
        - CACHE_TTL_SECONDS: Result lifetime (default: 3600)
        - CACHE_MAX_SIZE: Maximum cached results (default: 1000)
    """

    environment: Literal["development", "test", "production"] = Field(
        default="development",
        description="Runtime environment (development, test, production)"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: Literal["text", "json"] = Field(
        default="text",
        description="Log output format"
    )

    # =========================================================================
    # ANALYTICS DEFAULTS
    # =========================================================================
    risk_free_rate: Decimal = Field(
        default=DEFAULT_RISK_FREE_RATE,
        ge=Decimal("-0.05"),
        le=Decimal("0.5"),
        description="Annual risk-free rate as a decimal (0.02 = 2%)"
    )
    periods_per_year: int | None = Field(
        default=None,
        ge=1,
        le=366,
        description="Fixed return periods per year (252 daily, 12 monthly); None infers from dates"
    )
    min_history_years: int = Field(
        default=MIN_HISTORY_YEARS,
        ge=0,
        le=50,
        description="Years of history required for drawdown-based risk metrics"
    )
    sterling_drawdown_count: int = Field(
        default=STERLING_DRAWDOWN_COUNT,
        ge=1,
        le=20,
        description="Number of largest drawdowns averaged by the Sterling ratio"
    )
    irr_max_iterations: int = Field(
        default=IRR_MAX_ITERATIONS,
        ge=1,
        le=10000,
        description="Iteration cap per IRR solver phase"
    )
    irr_tolerance: Decimal = Field(
        default=IRR_TOLERANCE,
        gt=Decimal("0"),
        le=Decimal("0.01"),
        description="IRR convergence tolerance on the rate step"
    )
    frontier_points: int = Field(
        default=DEFAULT_FRONTIER_POINTS,
        ge=2,
        le=1000,
        description="Number of efficient frontier samples"
    )
    allow_short_positions: bool = Field(
        default=False,
        description="Allow negative weights in optimized portfolios"
    )

    # =========================================================================
    # CACHE
    # =========================================================================
    cache_ttl_seconds: int = Field(
        default=CACHE_TTL_SECONDS,
        ge=0,
        description="Lifetime of cached analytics results in seconds"
    )
    cache_max_size: int = Field(
        default=CACHE_MAX_SIZE,
        ge=1,
        description="Maximum number of cached analytics results"
    )

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_environment_config(self) -> "Settings":
        """
        Validate settings that depend on the environment.

        Rules:
        - log_level must be a standard logging level name
        - production: DEBUG logging is rejected
        """
        level = self.log_level.upper().strip()
        if level not in {"DEBUG", "INFO", "WARNING", "WARN", "ERROR", "CRITICAL"}:
            raise ValueError(
                f"Invalid LOG_LEVEL '{self.log_level}'. "
                "Use DEBUG, INFO, WARNING, ERROR or CRITICAL."
            )
        object.__setattr__(self, "log_level", level)

        if self.is_production and level == "DEBUG":
            raise ValueError(
                "DEBUG logging is not allowed in production. "
                "Set LOG_LEVEL to INFO or higher."
            )

        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


# Create single instance
settings = Settings()
