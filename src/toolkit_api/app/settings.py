"""Application settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "toolkit_api"
    log_level: str = "INFO"
    # Timeout for every management/governance API call made by a script.
    http_timeout_s: float = Field(default=15.0, ge=0.5)
    token_timeout_s: float = Field(default=10.0, ge=0.5)
    # Bounded progress queue between a running script and the stream writer.
    stream_queue_size: int = Field(default=256, ge=1)
    stream_poll_interval_s: float = Field(default=0.1, gt=0.0)
    # Socket timeout used by the stream consumer while waiting for frames.
    consumer_timeout_s: float = Field(default=300.0, ge=1.0)

    model_config = SettingsConfigDict(
        env_prefix="TOOLKIT_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
