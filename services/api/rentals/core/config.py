from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# services/api/rentals/core/config.py -> BASE_DIR == services/api
BASE_DIR = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        extra="ignore",
        env_prefix="",
        case_sensitive=False,
    )

    # Environment
    env: str = Field(default="dev", validation_alias="ENV")

    # Application
    api_name: str = Field(default="rentals-api", validation_alias="API_NAME")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    display_timezone: str = Field(
        default="Europe/Stockholm", validation_alias="DISPLAY_TIMEZONE"
    )

    # Remote table store (NocoDB)
    nocodb_api_token: str | None = Field(
        default=None, validation_alias="NOCODB_API_TOKEN"
    )
    products_table_url: str | None = Field(
        default=None, validation_alias="PRODUCTS_TABLE_URL"
    )
    booking_table_url: str | None = Field(
        default=None, validation_alias="BOOKING_TABLE_URL"
    )
    products_search_field: str = Field(
        default="Produkt", validation_alias="PRODUCTS_SEARCH_FIELD"
    )
    bookings_fetch_limit: int = Field(
        default=1000, validation_alias="BOOKINGS_FETCH_LIMIT"
    )
    table_timeout_secs: float = Field(
        default=15.0, validation_alias="TABLE_TIMEOUT_SECS"
    )

    # Caches
    bookings_cache_ttl_secs: float = Field(
        default=300.0, validation_alias="BOOKINGS_CACHE_TTL_SECS"
    )
    product_index_ttl_secs: float = Field(
        default=300.0, validation_alias="PRODUCT_INDEX_TTL_SECS"
    )
    products_cache_ttl_secs: float = Field(
        default=300.0, validation_alias="PRODUCTS_CACHE_TTL_SECS"
    )
    products_error_cache_ttl_secs: float = Field(
        default=30.0, validation_alias="PRODUCTS_ERROR_CACHE_TTL_SECS"
    )
    bookings_fetch_attempts: int = Field(
        default=3, validation_alias="BOOKINGS_FETCH_ATTEMPTS"
    )
    bookings_retry_base_delay_secs: float = Field(
        default=1.0, validation_alias="BOOKINGS_RETRY_BASE_DELAY_SECS"
    )

    # Batching
    batch_size: int = Field(default=10, validation_alias="BATCH_SIZE")
    batch_interval_secs: float = Field(
        default=0.3, validation_alias="BATCH_INTERVAL_SECS"
    )

    # Bookings
    max_rental_days: int = Field(default=7, validation_alias="MAX_RENTAL_DAYS")

    # Redis (rate limiting only)
    redis_url: str = Field(
        default="redis://localhost:6379/0", validation_alias="REDIS_URL"
    )

    # CORS
    cors_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:4321"],
        validation_alias="CORS_ORIGINS",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> list[str]:
        """
        Supported env formats:
          - JSON list: '["http://localhost:4321"]'
          - Comma-separated: 'http://localhost:4321, https://rent.example.org'
          - '*' wildcard
        """
        if v is None:
            return []
        if isinstance(v, list):
            return [str(x).strip() for x in v if str(x).strip()]
        if not isinstance(v, str):
            raise TypeError("cors_origins must be a string or list of strings")

        s = v.strip()
        if not s:
            return []
        if s == "*":
            return ["*"]

        if s.startswith("[") and s.endswith("]"):
            try:
                parsed = json.loads(s)
            except json.JSONDecodeError:
                s = s[1:-1]
            else:
                if isinstance(parsed, list):
                    return [str(x).strip() for x in parsed if str(x).strip()]

        parts = [p.strip().strip('"').strip("'") for p in s.split(",")]
        return [p for p in parts if p]

    @field_validator("batch_size", "bookings_fetch_attempts", "max_rental_days")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    # Rate limiting
    rate_limit_window_seconds: int = Field(
        default=60, validation_alias="RATE_LIMIT_WINDOW_SECONDS"
    )
    rate_limit_bookings_per_window: int = Field(
        default=10, validation_alias="RATE_LIMIT_BOOKINGS_PER_WINDOW"
    )

    # OpenTelemetry
    otel_enabled: bool = Field(default=False, validation_alias="OTEL_ENABLED")
    otel_otlp_endpoint: str = Field(
        default="http://localhost:4317",
        validation_alias="OTEL_OTLP_ENDPOINT",
    )


settings = Settings()
