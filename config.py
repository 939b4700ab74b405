"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).

Each concern gets its own BaseSettings class so tests can instantiate only
what they need; AppSettings composes them in a model_validator.
"""

from __future__ import annotations

from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mongodb_uri: str
    db_name: str = "workspace-connectors"


class RedisSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Optional. Without Redis the refresh lock is process-local and
    # per-key rate limiting is disabled
    redis_uri: Optional[str] = None


class OAuthProviderSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    google_client_id: str = ""
    google_client_secret: str = ""

    microsoft_client_id: str = ""
    microsoft_client_secret: str = ""
    microsoft_tenant: str = "common"


class BillingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    autumn_secret_key: str = ""
    autumn_api_url: str = "https://api.useautumn.com/v1"
    billing_feature_id: str = "workspace_connector_access"
    billing_timeout_seconds: float = 5.0


class GatewaySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    api_key_prefix: str = "wsc_"
    max_keys_per_user: int = 20

    # A stored token expiring within this window is refreshed before use
    token_refresh_margin_seconds: int = 300
    refresh_lock_ttl_seconds: int = 30
    refresh_wait_timeout_seconds: float = 10.0

    oauth_timeout_seconds: float = 10.0
    provider_timeout_seconds: float = 15.0

    # 0 disables the per-key limit
    rate_limit_per_minute: int = 100

    # Shared secret the dashboard uses for key management calls
    internal_api_secret: str = ""


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production

    # Sampling rates (0.0–1.0)
    sample_rate_token_cache: float = 0.05
    sample_rate_gateway_request: float = 0.20


class SentrySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sentry_dsn: str = ""
    sentry_send_pii: bool = False
    sentry_traces_sample_rate: float = 0.1
    sentry_profile_sample_rate: float = 0.05


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Core
    env: str = "development"
    app_url: str = "http://localhost:8000"
    app_name: str = "Workspace Connectors API"

    cors_origins: list[str] = ["*"]

    # OpenAPI docs URL (None disables the docs UI in production)
    docs_url: Optional[str] = "/docs"

    # Sub-configs (composed via model_validator below)
    db: Optional[DatabaseSettings] = None
    redis: Optional[RedisSettings] = None
    oauth: Optional[OAuthProviderSettings] = None
    billing: Optional[BillingSettings] = None
    gateway: Optional[GatewaySettings] = None
    logging: Optional[LoggingSettings] = None
    sentry: Optional[SentrySettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        # Populate sub-configs from the same env/dotenv source
        if self.db is None:
            self.db = DatabaseSettings()
        if self.redis is None:
            self.redis = RedisSettings()
        if self.oauth is None:
            self.oauth = OAuthProviderSettings()
        if self.billing is None:
            self.billing = BillingSettings()
        if self.gateway is None:
            self.gateway = GatewaySettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        if self.sentry is None:
            self.sentry = SentrySettings()

        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"
