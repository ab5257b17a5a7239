"""
Configuration - Process settings read once from the environment.

Environment variables:
    QUESTLINE_ENV             Environment name (default: development)
    QUESTLINE_CONTENT_DIR     Folder of quest JSON files (default: ./content)
    QUESTLINE_DATABASE_URL    SQLAlchemy URL; unset keeps progress in memory
    QUESTLINE_RNG_SECRET      HMAC key for chest draws
    QUESTLINE_DEFAULT_LOCALE  Locale used when a request names none
    QUESTLINE_TIMER_SECONDS   Timer placeholder duration (default: 1800)
    QUESTLINE_LOG_LEVEL       Log level for the CLI and server (default: INFO)
    ALLOWED_ORIGINS           Comma-separated CORS origins (default: *)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Mapping, Optional
import os

DEFAULT_RNG_SECRET = "rotate-this-secret"


def _split_origins(value: str) -> list[str]:
    return [origin.strip() for origin in value.split(",") if origin.strip()]


@dataclass
class QuestlineConfig:
    """
    Usage:
        config = QuestlineConfig.from_env()
        service = APIService.from_config(config)
    """
    env: str = "development"
    content_dir: str = "./content"
    database_url: Optional[str] = None
    rng_secret: str = DEFAULT_RNG_SECRET
    default_locale: Optional[str] = None
    timer_seconds: int = 1800
    allowed_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> QuestlineConfig:
        """Build a config from environment variables (os.environ by default)."""
        getenv = environ.get if environ is not None else os.getenv

        return cls(
            env=getenv("QUESTLINE_ENV", "development"),
            content_dir=getenv("QUESTLINE_CONTENT_DIR", "./content"),
            database_url=getenv("QUESTLINE_DATABASE_URL") or None,
            rng_secret=getenv("QUESTLINE_RNG_SECRET", DEFAULT_RNG_SECRET),
            default_locale=getenv("QUESTLINE_DEFAULT_LOCALE") or None,
            timer_seconds=int(getenv("QUESTLINE_TIMER_SECONDS", "1800")),
            allowed_origins=_split_origins(getenv("ALLOWED_ORIGINS", "*")),
            log_level=getenv("QUESTLINE_LOG_LEVEL", "INFO").upper(),
        )

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def uses_default_secret(self) -> bool:
        return self.rng_secret == DEFAULT_RNG_SECRET
