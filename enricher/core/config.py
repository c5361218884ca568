"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_STATUS_OPTIONS: Tuple[str, ...] = ("pending", "enriched", "not_found", "error")
_TRUTHY = {"1", "true", "yes", "on"}
_RAILWAY_MARKERS = ("RAILWAY_STATIC_URL", "RAILWAY_PROJECT_ID", "RAILWAY_ENVIRONMENT")


class ConfigError(RuntimeError):
    """Raised when mandatory configuration is missing."""


@dataclass(frozen=True)
class Settings:
    airtable_api_key: str
    airtable_base_id: str
    airtable_table_name: str = "Restaurants"
    google_places_api_key: str = ""
    google_places_region: str = "gb"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    default_city: str = "London"
    default_country: str = "UK"
    max_records_per_run: int = 50
    concurrency: int = 2
    sleep_ms_between_requests: int = 250
    status_options: Tuple[str, ...] = DEFAULT_STATUS_OPTIONS
    force_refresh: bool = False
    run_once: bool = False
    photo_max_width: int = 1200
    feed_cache_ttl_ms: int = 300000
    port: int = 3000
    host: str = "0.0.0.0"

    @property
    def text_generation_enabled(self) -> bool:
        return bool(self.openai_api_key)


def is_railway() -> bool:
    return any(os.getenv(marker) for marker in _RAILWAY_MARKERS)


def parse_status_options(raw: Optional[str]) -> Tuple[str, ...]:
    """Split a comma-separated label list, falling back to the default labels."""
    if not raw:
        return DEFAULT_STATUS_OPTIONS
    options = tuple(part.strip() for part in raw.split(",") if part.strip())
    return options or DEFAULT_STATUS_OPTIONS


def _env_bool(name: str) -> bool:
    return os.getenv(name, "false").strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("%s=%r is not an integer; using %d", name, raw, default)
        return default
    if value <= 0:
        logger.warning("%s must be positive; using %d", name, default)
        return default
    return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    if is_railway():
        logger.info("Railway environment detected; expecting secrets via Railway variables.")
    else:
        load_dotenv()

    airtable_api_key = os.getenv("AIRTABLE_API_KEY", "")
    airtable_base_id = os.getenv("AIRTABLE_BASE_ID", "")
    google_places_api_key = os.getenv("GOOGLE_PLACES_API_KEY", "")
    openai_api_key = os.getenv("OPENAI_API_KEY", "")

    if not airtable_api_key or not airtable_base_id:
        logger.warning("AIRTABLE_API_KEY or AIRTABLE_BASE_ID is not set; store operations will fail.")
    if not google_places_api_key:
        logger.warning("GOOGLE_PLACES_API_KEY is not configured; Google Places requests will fail.")
    if not openai_api_key:
        logger.info("OPENAI_API_KEY is not configured; descriptions will not be generated.")

    return Settings(
        airtable_api_key=airtable_api_key,
        airtable_base_id=airtable_base_id,
        airtable_table_name=os.getenv("AIRTABLE_TABLE_NAME") or "Restaurants",
        google_places_api_key=google_places_api_key,
        google_places_region=(os.getenv("GOOGLE_PLACES_REGION") or "gb").strip().lower(),
        openai_api_key=openai_api_key,
        openai_model=os.getenv("OPENAI_MODEL") or "gpt-4o-mini",
        default_city=os.getenv("DEFAULT_CITY") or "London",
        default_country=os.getenv("DEFAULT_COUNTRY") or "UK",
        max_records_per_run=_env_int("MAX_RECORDS_PER_RUN", 50),
        concurrency=_env_int("CONCURRENCY", 2),
        sleep_ms_between_requests=_env_int("SLEEP_MS_BETWEEN_REQUESTS", 250),
        status_options=parse_status_options(os.getenv("STATUS_OPTIONS")),
        force_refresh=_env_bool("FORCE_REFRESH"),
        run_once=_env_bool("RUN_ONCE"),
        photo_max_width=_env_int("PHOTO_MAX_WIDTH", 1200),
        feed_cache_ttl_ms=_env_int("RESTAURANTS_CACHE_TTL_MS", 300000),
        port=_env_int("PORT", 3000),
        host=os.getenv("HOST") or "0.0.0.0",
    )


def require(value: str, name: str) -> str:
    """Return ``value`` or raise ConfigError naming the missing variable."""
    if not value:
        raise ConfigError(f"{name} must be set in the environment for this job to run.")
    return value
