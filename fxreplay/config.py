"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service Configuration
    service_host: str = Field(default="0.0.0.0", description="Service host")
    service_port: int = Field(default=8000, description="Service port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Trade history store (optional; persistence disabled when unset)
    database_url: Optional[str] = Field(
        default=None, description="PostgreSQL connection URL for the trade-history store"
    )
    db_pool_min_size: int = Field(default=1, description="Minimum connection pool size")
    db_pool_max_size: int = Field(default=10, description="Maximum connection pool size")

    # Backtest execution
    backtest_max_workers: int = Field(
        default=4,
        ge=1,
        description="Threads used to walk instruments in parallel (1 = sequential)",
    )
    persist_chunk_size: int = Field(
        default=50, ge=1, description="Rows per insert batch when persisting trades"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
