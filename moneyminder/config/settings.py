"""
Configuration Management for MoneyMinder

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Each external concern (auth secrets, database, SMTP, Gemini) has its own
settings class with its own env prefix, so a missing optional service
(email, advisor) never blocks the rest of the application from starting.
"""

from datetime import timedelta
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AuthSettings(BaseSettings):
    """Password hashing, session token and TOTP configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    jwt_secret: str = Field(
        ...,
        min_length=32,
        description="Secret used to sign session tokens"
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm"
    )
    session_ttl_days: int = Field(
        default=7,
        ge=1,
        le=90,
        description="Session token lifetime in days"
    )
    bcrypt_rounds: int = Field(
        default=12,
        ge=4,
        le=31,
        description="bcrypt cost factor"
    )
    verification_token_ttl_hours: int = Field(
        default=24,
        ge=1,
        description="How long an email verification link stays valid"
    )
    totp_issuer: str = Field(
        default="MoneyMinder",
        description="Issuer name shown in authenticator apps"
    )
    totp_valid_window: int = Field(
        default=1,
        ge=0,
        le=5,
        description="Accepted clock skew in 30-second steps"
    )
    cookie_secure: bool = Field(
        default=False,
        description="Send the session cookie over HTTPS only"
    )

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(days=self.session_ttl_days)

    @property
    def verification_token_ttl(self) -> timedelta:
        return timedelta(hours=self.verification_token_ttl_hours)


class DatabaseSettings(BaseSettings):
    """SQL storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite+aiosqlite:///./moneyminder.db",
        description="SQLAlchemy async database URL"
    )
    echo: bool = Field(
        default=False,
        description="Log every SQL statement"
    )


class EmailSettings(BaseSettings):
    """SMTP configuration for verification emails."""

    model_config = SettingsConfigDict(
        env_prefix="EMAIL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    server: Optional[str] = Field(
        default=None,
        description="SMTP host. When unset, emails are only logged."
    )
    port: int = Field(
        default=587,
        description="SMTP port (465 uses implicit TLS)"
    )
    username: Optional[str] = None
    password: Optional[str] = None
    from_address: str = Field(
        default='"MoneyMinder" <noreply@moneyminder.com>',
        description="From header for outgoing mail"
    )
    app_url: str = Field(
        default="http://localhost:3000",
        description="Base URL used to build verification links"
    )

    @field_validator('app_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration for the advice chat."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.4,
        ge=0.0,
        le=1.0,
        description="Model temperature"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level"
    )
    default_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Currency assigned when registration omits one"
    )
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins"
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def auth(self) -> AuthSettings:
        return AuthSettings()

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()

    @property
    def email(self) -> EmailSettings:
        return EmailSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with an extra
    ``<name>_error`` entry for each section that failed.
    """
    results = {}

    settings = get_settings()

    for name in ("auth", "database", "email", "gemini", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
