"""
Core configuration using Pydantic Settings.
Loads from environment variables.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Literal
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    app_name: str = Field(default="ficlat", alias="APP_NAME")
    app_env: Literal["development", "staging", "production", "test"] = Field(
        default="development", alias="APP_ENV"
    )
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", alias="LOG_LEVEL"
    )
    json_logs: bool = Field(default=True, alias="JSON_LOGS")
    log_request_body: bool = Field(default=False, alias="LOG_REQUEST_BODY")

    # API
    api_v1_prefix: str = "/api/v1"
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        alias="ALLOWED_ORIGINS",
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./ficlat.db", alias="DATABASE_URL"
    )
    database_pool_size: int = Field(default=20, alias="DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(default=10, alias="DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")
    database_create_all: bool = Field(default=False, alias="DATABASE_CREATE_ALL")

    # Auth
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60, alias="ACCESS_TOKEN_EXPIRE_MINUTES"
    )
    refresh_token_expire_days: int = Field(
        default=7, alias="REFRESH_TOKEN_EXPIRE_DAYS"
    )
    token_hash_secret: str = Field(..., alias="TOKEN_HASH_SECRET")
    bcrypt_rounds: int = Field(default=12, ge=4, le=16, alias="BCRYPT_ROUNDS")
    email_verification_expire_hours: int = Field(
        default=24, alias="EMAIL_VERIFICATION_EXPIRE_HOURS"
    )
    password_reset_expire_minutes: int = Field(
        default=60, alias="PASSWORD_RESET_EXPIRE_MINUTES"
    )

    # Payments
    default_currency: str = Field(default="INR", min_length=3, max_length=3, alias="DEFAULT_CURRENCY")
    platform_fee_percent: Decimal = Field(
        default=Decimal("0"), ge=0, lt=100, alias="PLATFORM_FEE_PERCENT"
    )


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings loaded from the environment."""
    return Settings()
