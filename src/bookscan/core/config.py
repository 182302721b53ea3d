# src/bookscan/core/config.py
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from bookscan.domain.models import ResolutionPolicy


class Settings(BaseSettings):
    # App
    app_name: str = "Book Scanner API"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./bookscan.db"

    # Resolver: Reihenfolge der Quellen, höchste Priorität zuerst
    resolver_source_order: list[str] = Field(
        default=["openbd", "open_library", "ndl", "google_books"]
    )
    # Policy für den Scan-Pfad (schnell) und für manuelle Eingaben (vollständig)
    resolution_policy: ResolutionPolicy = ResolutionPolicy.SHORT_CIRCUIT
    manual_resolution_policy: ResolutionPolicy = ResolutionPolicy.BACK_FILL
    source_timeout_seconds: float = Field(default=5.0, gt=0)

    # External APIs
    google_books_api_key: str | None = None

    # Identifier
    identifier_prefixes: list[str] = Field(default=["978", "979"])
    identifier_verify_checksum: bool = False

    # Scan session
    debounce_window_seconds: float = Field(default=1.5, ge=0)
    debounce_retention_seconds: float = Field(default=60.0, ge=0)

    # Source health
    source_degraded_threshold: int = Field(default=3, ge=1)
    deprioritize_degraded_sources: bool = False

    # Feedback webhook (ntfy / gotify)
    feedback_webhook_enabled: bool = False
    feedback_webhook_url: str | None = None

    # CORS
    cors_origins: list[str] = Field(default=["*"])

    # Rate Limiting
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 60

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
