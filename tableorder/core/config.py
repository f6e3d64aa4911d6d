"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly. Defaults are tuned for a single small
restaurant running against a local SQLite-backed document store.
"""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # ==========================================================================
    # Document store
    # ==========================================================================
    # memory: process-local (tests, demos); sql: one row per top-level path;
    # firebase: hosted Realtime Database
    store_backend: Literal["memory", "sql", "firebase"] = "sql"
    database_url: str = "sqlite:///./data/tableorder.db"

    firebase_credentials_path: Optional[str] = None
    firebase_database_url: Optional[str] = None

    seed_on_startup: bool = True

    # ==========================================================================
    # Check-in
    # ==========================================================================
    default_allowed_distance_m: float = 100.0
    branch_match_tolerance_deg: float = 0.00001
    geolocation_timeout_seconds: float = 10.0

    # Base URL printed into table QR codes
    customer_web_url: str = "http://localhost:3000/"

    # ==========================================================================
    # Sessions
    # ==========================================================================
    # Flat session flag, reproduced as-is (no tokens)
    session_flag_value: str = "active"
    fallback_admin_username: str = "admin"
    fallback_admin_password: str = "123"

    # Kitchen ticket urgency thresholds (seconds since order placed)
    kitchen_warning_after_s: int = 300
    kitchen_overdue_after_s: int = 600

    # CORS - comma-separated origins or "*" for development only
    cors_origins: str = "http://localhost:3000,http://localhost:8000"

    # Timezone used to bucket orders into calendar days
    timezone: str = "Asia/Ho_Chi_Minh"

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # Rate limiting
    rate_limit_enabled: bool = True
    order_rate_limit: str = "30/minute"
    checkin_rate_limit: str = "20/minute"
    login_rate_limit: str = "10/minute"

    @field_validator("default_allowed_distance_m")
    @classmethod
    def validate_allowed_distance(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("default_allowed_distance_m must be positive")
        return v

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
