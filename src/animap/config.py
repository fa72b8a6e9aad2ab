"""
Runtime settings for the mapping pipeline.

Values come from (highest first) CLI overrides, ``ANIMAP_*`` environment
variables, a ``.env`` file, then the defaults declared here.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from animap.fetch_mode import FetchMode

logger = logging.getLogger(__name__)

OUTPUT_DIR_NAME = "animap"
DB_FILE_NAME = "animap.db"


class Settings(BaseSettings):
    """Pipeline configuration with validation."""

    model_config = SettingsConfigDict(
        env_prefix="ANIMAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Credentials
    mal_client_id: str = Field(default="", description="MyAnimeList API client id")
    tmdb_api_key: str = Field(default="", description="TMDB v3 API key")
    discord_webhook_url: str = Field(
        default="", description="Discord webhook for run notifications (optional)"
    )

    # Paths
    root_path: Path = Field(
        default=Path("."), description="Directory under which artifacts are written"
    )
    cache_dir: Path | None = Field(
        default=None,
        description="Directory for downloaded source files (defaults to <root>/animap/cache)",
    )

    # Fetch modes
    anidb_mode: FetchMode = Field(
        default=FetchMode.DEFAULT, description="Fetch mode for the AniDB scrape stage"
    )
    tmdb_mode: FetchMode = Field(
        default=FetchMode.DEFAULT, description="Fetch mode for the TMDB stage"
    )

    # Scraping
    scrape_concurrency: int = Field(
        default=10, description="Maximum concurrent MAL detail-page fetches"
    )
    scrape_delay_seconds: float = Field(
        default=5.0, description="Minimum delay between MAL detail-page requests"
    )
    scrape_random_delay_seconds: float = Field(
        default=5.0, description="Upper bound of random jitter added to the delay"
    )

    # HTTP
    request_timeout_seconds: float = Field(
        default=30.0, description="Total timeout for a single HTTP request"
    )

    # Matching
    tmdb_legacy_exact_match: bool = Field(
        default=True,
        description="Accept a TMDB result on exact date match or single result before scoring",
    )

    log_level: str = Field(default="INFO", description="Root logging level")

    @field_validator("scrape_concurrency")
    def validate_concurrency(cls, v):
        if v < 1:
            raise ValueError("scrape_concurrency must be at least 1")
        return v

    @field_validator("scrape_delay_seconds", "scrape_random_delay_seconds")
    def validate_delay(cls, v):
        if v < 0:
            raise ValueError("Delays must be non-negative")
        return v

    @field_validator("request_timeout_seconds")
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError("Request timeout must be positive")
        return v

    @field_validator("log_level")
    def validate_log_level(cls, v):
        level = str(v).upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def output_dir(self) -> Path:
        return Path(self.root_path) / OUTPUT_DIR_NAME

    @property
    def db_path(self) -> Path:
        return self.output_dir / DB_FILE_NAME

    @property
    def source_cache_dir(self) -> Path:
        return Path(self.cache_dir) if self.cache_dir else self.output_dir / "cache"

    def log_configuration(self) -> None:
        """Log the effective configuration without credentials."""
        logger.info("Mapping pipeline configuration:")
        logger.info(f"  Root: {self.root_path}")
        logger.info(f"  AniDB mode: {self.anidb_mode.value}")
        logger.info(f"  TMDB mode: {self.tmdb_mode.value}")
        logger.info(f"  Scrape concurrency: {self.scrape_concurrency}")
        logger.info(
            f"  Scrape delay: {self.scrape_delay_seconds}s (+ up to {self.scrape_random_delay_seconds}s)"
        )
        logger.info(
            f"  Discord notifications: {'Enabled' if self.discord_webhook_url else 'Disabled'}"
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
