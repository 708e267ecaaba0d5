"""Settings and logging setup.

Settings are read from ``SHOPASSIST_*`` environment variables (or a ``.env``
file). Components never read settings themselves; the app factory and CLI
pass the values they need into constructors.
"""

from __future__ import annotations

import logging
import sys
from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shopassist.core.schema import APPLICATION_TABLES

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = "sqlite:///./shopassist.db"
    echo_sql: bool = False
    pool_size: int = 5

    # Text generation (any OpenAI-compatible endpoint)
    llm_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SHOPASSIST_LLM_API_KEY", "OPENAI_API_KEY"),
    )
    llm_base_url: str | None = None
    llm_model: str = "gpt-4o-mini"

    # Synthesis
    synthesis_timeout_seconds: float = 15.0
    synthesis_concurrency: int = 4
    synthesis_retries: int = 1
    synthesis_retry_backoff_seconds: float = 0.5
    fallback_search_enabled: bool = False

    # Execution
    statement_timeout_ms: int = 5000
    max_result_rows: int = 200
    allowed_tables: list[str] = Field(default_factory=lambda: sorted(APPLICATION_TABLES))

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    include_sql_in_responses: bool = True
    log_level: str = "INFO"
    debug: bool = False

    model_config = SettingsConfigDict(
        env_prefix="SHOPASSIST_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    """Send log records to stderr in the service's standard format."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
