"""Environment-driven settings for the scraping service."""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_CORS_ORIGINS = (
    "http://localhost:3000",
    "https://extraer-mtdatos-online.netlify.app",
)
BLOCKED_RESOURCE_TYPES = ("image", "stylesheet", "font", "script", "media")

# Environment variable -> Settings field.
_ENV_FIELDS = {
    "APP_ENV": "app_env",
    "HOST": "host",
    "PORT": "port",
    "LOG_LEVEL": "log_level",
    "SCRAPE_CONCURRENCY": "concurrency",
    "NAVIGATION_TIMEOUT_MS": "navigation_timeout_ms",
    "CACHE_TTL_SECONDS": "cache_ttl_seconds",
    "CACHE_MAX_ENTRIES": "cache_max_entries",
    "SCRAPER_USER_AGENT": "user_agent",
    "SCRAPER_ACCEPT_LANGUAGE": "accept_language",
    "BROWSER_PROFILE": "browser_profile",
    "BROWSER_EXECUTABLE_PATH": "browser_executable_path",
    "CORS_ORIGINS": "cors_origins",
    "RATE_LIMIT_MAX": "rate_limit_max",
    "RATE_LIMIT_WINDOW_SECONDS": "rate_limit_window_seconds",
    "MAX_BODY_BYTES": "max_body_bytes",
    "PRESERVE_REQUEST_ORDER": "preserve_request_order",
    "SHUTDOWN_GRACE_SECONDS": "shutdown_grace_seconds",
}


class Settings(BaseModel):
    app_env: str = "development"
    host: str = "0.0.0.0"
    port: int = Field(3000, ge=1, le=65535)
    log_level: Optional[str] = None

    concurrency: int = Field(3, ge=1)
    navigation_timeout_ms: int = Field(30000, gt=0)
    cache_ttl_seconds: float = Field(3600.0, gt=0)
    cache_max_entries: Optional[int] = Field(None, ge=1)
    user_agent: str = Field("MetaTag Analyzer Bot/1.0", min_length=1)
    accept_language: str = "es-ES,es;q=0.9,en;q=0.8"
    blocked_resource_types: tuple[str, ...] = BLOCKED_RESOURCE_TYPES

    browser_profile: Optional[Literal["local", "restricted"]] = None
    browser_executable_path: Optional[str] = None

    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS
    rate_limit_max: int = Field(100, ge=1)
    rate_limit_window_seconds: float = Field(15 * 60, gt=0)
    max_body_bytes: int = Field(50 * 1024 * 1024, gt=0)

    preserve_request_order: bool = False
    shutdown_grace_seconds: float = Field(0.0, ge=0)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: object) -> object:
        if isinstance(value, str):
            return tuple(origin.strip().rstrip("/") for origin in value.split(",") if origin.strip())
        return value

    @field_validator("cache_max_entries", "browser_executable_path", "log_level", mode="before")
    @classmethod
    def _blank_is_unset(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _default_browser_profile(self) -> "Settings":
        if self.browser_profile is None:
            self.browser_profile = "restricted" if self.is_production else "local"
        return self

    @property
    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        values = {field: env[name] for name, field in _ENV_FIELDS.items() if name in env}
        return cls(**values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
