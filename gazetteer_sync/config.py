"""
Settings for the gazetteer sync engine.

Read from the environment (and .env) with pydantic-settings:
POSTGRES_* / DATABASE_URL for the store, SYNC_* for the engine itself.
Per-source settings live in gazetteer_sync.sources.configs.
"""

from pathlib import Path
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


class DatabaseSettings(BaseSettings):
    """Where the local store lives."""

    model_config = SettingsConfigDict(
        env_prefix="POSTGRES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    user: str = "gazetteer"
    password: str = ""
    host: str = "localhost"
    port: int = 5432
    db: str = "gazetteer"

    # Full connection string; wins over the POSTGRES_* parts when set
    database_url: Optional[str] = Field(default=None, validation_alias="DATABASE_URL")

    @property
    def url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.db}"

    @property
    def safe_url(self) -> str:
        """The URL with any password masked, for log output."""
        scheme, sep, rest = self.url.partition("://")
        credentials, at, host = rest.rpartition("@")
        if not at or ":" not in credentials:
            return self.url
        user = credentials.split(":", 1)[0]
        return f"{scheme}{sep}{user}:***@{host}"

    @property
    def is_postgis(self) -> bool:
        """PostgreSQL stores get the PostGIS geometry column and spatial queries."""
        return self.url.startswith(("postgresql", "postgis"))


class SyncSettings(BaseSettings):
    """Fetching, batching and scheduling knobs."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Downloaded payloads, one subdirectory per source
    data_raw_dir: Path = Field(default=Path("./data/raw"))

    # Optional JSON file with per-source overrides
    sources_file: Optional[Path] = None

    log_level: str = "INFO"
    log_file: Optional[Path] = None
    log_json: bool = False  # serialize file records as JSON lines

    http_timeout: float = Field(default=60, gt=0)          # seconds
    http_max_retries: int = Field(default=3, ge=1)         # attempts per request on transient errors
    http_retry_delay: float = Field(default=1.0, ge=0)     # seconds, doubled per attempt

    # Records per upsert transaction
    batch_size: int = Field(default=1000, gt=0)

    max_workers: int = Field(default=4, gt=0)                    # concurrent source syncs
    default_poll_interval: int = Field(default=86400, gt=0)      # seconds between checks
    backoff_failure_threshold: int = Field(default=3, ge=1)      # failures before backoff
    backoff_ceiling: int = Field(default=7 * 86400, gt=0)        # longest backed-off interval
    tick_seconds: int = Field(default=60, gt=0)

    @field_validator("data_raw_dir", mode="before")
    @classmethod
    def ensure_path(cls, v):
        """Convert string to Path and ensure directory exists."""
        path = Path(v)
        path.mkdir(parents=True, exist_ok=True)
        return path

    @field_validator("log_level")
    @classmethod
    def known_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level

    @model_validator(mode="after")
    def ceiling_covers_default(self):
        if self.backoff_ceiling < self.default_poll_interval:
            raise ValueError("backoff_ceiling must not be shorter than default_poll_interval")
        return self


class Settings(BaseSettings):
    """All settings, grouped."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)

    # Contact string sent in the User-Agent (some gazetteers ask for one)
    contact_email: str = "gazetteer-sync@example.org"


@lru_cache()
def get_settings() -> Settings:
    """Settings are read once per process."""
    return Settings()


settings = get_settings()
