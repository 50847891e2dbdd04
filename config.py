"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).

AuthSettings is frozen: the enabled OAuth providers and the public app URL
are handed to the services at construction and never mutated afterwards.
"""

from __future__ import annotations

from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mongodb_uri: str
    db_name: str = "identity-portal"


class HasherSettings(BaseSettings):
    """Argon2id cost parameters. memory_cost is in KiB."""

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="HASHER_", extra="ignore"
    )

    time_cost: int = 3
    memory_cost: int = 65536
    parallelism: int = 4
    hash_len: int = 32
    salt_len: int = 16

    @model_validator(mode="after")
    def _enforce_minimums(self) -> "HasherSettings":
        if self.time_cost < 3:
            raise ValueError("time_cost must be at least 3")
        if self.memory_cost < 65536:
            raise ValueError("memory_cost must be at least 65536 KiB")
        if self.parallelism < 4:
            raise ValueError("parallelism must be at least 4")
        if self.hash_len != 32:
            raise ValueError("hash_len must be 32")
        if self.salt_len < 16:
            raise ValueError("salt_len must be at least 16")
        return self


class SessionSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    session_secret: str = ""
    session_issuer: str = "identity-portal"
    session_audience: str = "identity-portal.web"
    # 24h total validity, refreshed when older than 1h
    session_max_age_seconds: int = 86400
    session_update_age_seconds: int = 3600
    cookie_secure: bool = True


class AuthSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", frozen=True)

    app_url: str = "http://localhost:3000"
    oauth_providers: tuple[str, ...] = ("google", "github", "facebook", "linkedin", "apple")

    @field_validator("app_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("oauth_providers")
    @classmethod
    def _normalise_providers(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        providers = tuple(dict.fromkeys(p.strip().lower() for p in v if p.strip()))
        if "credentials" in providers:
            raise ValueError("'credentials' is not an OAuth provider")
        return providers


class OAuthProviderSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    google_oauth_client_id: str = ""
    google_oauth_client_secret: str = ""

    github_oauth_client_id: str = ""
    github_oauth_client_secret: str = ""

    facebook_oauth_client_id: str = ""
    facebook_oauth_client_secret: str = ""

    linkedin_oauth_client_id: str = ""
    linkedin_oauth_client_secret: str = ""

    # Apple expects its ES256-signed client secret JWT here
    apple_oauth_client_id: str = ""
    apple_oauth_client_secret: str = ""


class EmailSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    zepto_api_token: str = ""
    zepto_from_email: str = "noreply@identity-portal.local"
    zepto_from_name: str = "Identity Portal"
    http_timeout_seconds: float = 5.0


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    env: str = "development"
    app_name: str = "identity-portal"

    # Sub-configs (composed via model_validator below)
    db: Optional[DatabaseSettings] = None
    hasher: Optional[HasherSettings] = None
    session: Optional[SessionSettings] = None
    auth: Optional[AuthSettings] = None
    oauth: Optional[OAuthProviderSettings] = None
    email: Optional[EmailSettings] = None
    logging: Optional[LoggingSettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        if self.db is None:
            self.db = DatabaseSettings()
        if self.hasher is None:
            self.hasher = HasherSettings()
        if self.session is None:
            self.session = SessionSettings()
        if self.auth is None:
            self.auth = AuthSettings()
        if self.oauth is None:
            self.oauth = OAuthProviderSettings()
        if self.email is None:
            self.email = EmailSettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"
