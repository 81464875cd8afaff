# propsignal/settings.py
from __future__ import annotations
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices


class Settings(BaseSettings):
    # pydantic v2 config
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Gemini (planner + conversation classifier) ---
    GEMINI_API_KEY: str
    GEMINI_MODEL: str = Field(default="gemini-1.5-pro", validation_alias=AliasChoices("GEMINI_MODEL", "GEMINI_MODEL_PLANNER"))
    GEMINI_FALLBACK_MODEL: str = "gemini-1.5-flash"

    # --- Data store (read-only) ---
    DB_URL_RO: str
    STATEMENT_TIMEOUT_MS: int = Field(default=20000, validation_alias=AliasChoices("STATEMENT_TIMEOUT_MS", "SQL_STATEMENT_TIMEOUT_MS"))  # 20s
    MAX_ROWS: int = 500

    # Logical table -> physical table
    PRICE_TABLE: str = "median_price"
    RENT_TABLE: str = "median_rentals"
    YIELD_TABLE: str = "rental_yields"
    LGA_YIELD_TABLE: str = "lga_rental_yields"
    SUBURB_TABLE: str = "lga_suburbs"

    # --- Fetching ---
    FETCH_TIMEOUT_SECONDS: float = 10.0
    FETCH_RETRIES: int = 1
    FETCH_RETRY_BACKOFF_SECONDS: float = 0.2  # exponential, capped at 2s

    # --- Caches / conversation ---
    CONTEXT_TTL_SECONDS: int = 60 * 60 * 2
    STATE_AVG_TTL_SECONDS: int = 60 * 60 * 24
    PLAN_CACHE_TTL_SECONDS: int = 60 * 60 * 24
    DEFAULT_STATE: str = "VIC"
    MAX_NEARBY: int = 2
    # clarification replies below this confidence count as new questions; 0 disables
    CLASSIFIER_MIN_CONFIDENCE: float = 0.0

    # Misc
    APP_NAME: str = "PropSignal API"
    APP_VERSION: str = "0.1.0"
