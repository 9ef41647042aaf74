"""
Route Optimizer Configuration Settings.

Clean, validated configuration using pydantic-settings.
"""

from typing import Annotated, Literal

from pydantic import BeforeValidator, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings


def parse_cors_origins(v):
    """Parse CORS origins from comma-separated string or list."""
    if isinstance(v, str):
        return [origin.strip() for origin in v.split(",") if origin.strip()]
    return v


CorsOriginsList = Annotated[list[str], BeforeValidator(parse_cors_origins)]


class DatabaseSettings(BaseSettings):
    """Job store configuration."""

    backend: Literal["sqlalchemy", "memory"] = Field(
        default="sqlalchemy",
        description="Which JobStore implementation to use",
    )
    url: str = Field(
        default="sqlite+aiosqlite:///./route_optimizer.db",
        description="Database URL (async driver)",
    )
    echo: bool = Field(default=False, description="Echo SQL queries")

    model_config = ConfigDict(env_prefix="DB_")


class OptimizationSettings(BaseSettings):
    """Admission control and pipeline execution."""

    max_concurrent_jobs: int = Field(default=100, ge=1, description="Concurrency ceiling")
    worker_pool_size: int = Field(default=4, ge=1, le=256)
    job_timeout_seconds: float = Field(default=600.0, gt=0)
    preprocessing_step_delay_seconds: float = Field(default=1.0, ge=0)

    model_config = ConfigDict(env_prefix="OPTIMIZATION_")


class EngineSettings(BaseSettings):
    """Downstream route-processing engine."""

    url: str = Field(default="http://localhost:8086")
    path: str = Field(default="/api/v1/process-route")

    # Retry / backoff
    max_attempts: int = Field(default=4, ge=1, le=20)
    base_delay_seconds: float = Field(default=2.0, ge=0)
    max_delay_seconds: float = Field(default=10.0, ge=0)

    # Timeouts
    overall_timeout_seconds: float = Field(default=480.0, gt=0)
    request_timeout_seconds: float = Field(default=60.0, gt=0)

    model_config = ConfigDict(env_prefix="ENGINE_")

    @model_validator(mode="after")
    def check_delays(self):
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")
        return self


class PollingSettings(BaseSettings):
    """Retry-After hints returned to polling clients."""

    pending_retry_after: int = Field(default=30, ge=1)
    pending_active_retry_after: int = Field(default=20, ge=1)
    processing_retry_after: int = Field(default=15, ge=1)

    model_config = ConfigDict(env_prefix="POLLING_")


class LoadSettings(BaseSettings):
    """Thresholds (percent of the concurrency ceiling) for the load label."""

    moderate_threshold: float = Field(default=50.0, ge=0)
    heavy_threshold: float = Field(default=80.0, ge=0)
    overloaded_threshold: float = Field(default=100.0, ge=0)

    model_config = ConfigDict(env_prefix="LOAD_")

    @model_validator(mode="after")
    def check_order(self):
        if not (self.moderate_threshold <= self.heavy_threshold <= self.overloaded_threshold):
            raise ValueError("load thresholds must be non-decreasing")
        return self


class SecuritySettings(BaseSettings):
    """CORS configuration."""

    cors_origins: CorsOriginsList = Field(
        default=["http://localhost:3000", "http://localhost:5173"]
    )
    cors_allow_credentials: bool = False

    model_config = ConfigDict(env_prefix="SECURITY_")


class Settings(BaseSettings):
    """Main application settings."""

    # Environment
    env: Literal["development", "testing", "staging", "production"] = Field(
        default="development"
    )
    debug: bool = Field(default=True)

    # App info
    app_name: str = Field(default="RouteOptimizer")
    app_version: str = Field(default="2.0.0")
    api_prefix: str = Field(default="/api/v1")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8085)
    base_url: str = Field(
        default="http://localhost:8085",
        description="Public base URL used to build polling links",
    )

    # Subsettings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    optimization: OptimizationSettings = Field(default_factory=OptimizationSettings)
    engine: EngineSettings = Field(default_factory=EngineSettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)
    load: LoadSettings = Field(default_factory=LoadSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    def is_production(self) -> bool:
        return self.env == "production"

    def is_development(self) -> bool:
        return self.env == "development"

    def setup(self) -> None:
        """Setup environment."""
        if self.is_production():
            self.debug = False

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Global instance
settings = Settings()
settings.setup()


def get_settings() -> Settings:
    """Get settings instance (for dependency injection)."""
    return settings
