from __future__ import annotations

import os
import secrets
from typing import Any, List

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from storefront.logging import get_logger

logger = get_logger(__name__)

_APP_ENVIRONMENTS = {"development", "production", "test"}
_MIN_SECRET_LENGTH = 32


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for the identity and session core."""

    app_env: str = env_field(
        "development",
        "APP_ENV",
        description="development, production or test; selects the cookie SameSite policy",
    )
    database_url: str = env_field(
        "postgresql://localhost:5432/storefront", "DATABASE_URL"
    )
    redis_url: str | None = env_field(None, "REDIS_URL")
    use_memory_store: bool = env_field(False, "USE_MEMORY_STORE")
    test_mode: bool = env_field(
        False,
        "TEST_MODE",
        description="Allows an ephemeral JWT secret and in-process OAuth state",
    )

    # Tokens
    jwt_secret: str | None = env_field(None, "JWT_SECRET")
    access_token_ttl_minutes: int = env_field(
        60, "ACCESS_TOKEN_TTL_MINUTES", ge=1, description="Access token lifetime"
    )
    refresh_token_ttl_minutes: int = env_field(
        7 * 24 * 60,
        "REFRESH_TOKEN_TTL_MINUTES",
        ge=1,
        description="Refresh token lifetime (signed into the token)",
    )

    # Refresh cookie
    refresh_token_cookie_name: str = env_field("refreshToken", "REFRESH_TOKEN_COOKIE_NAME")
    refresh_cookie_days: int = env_field(
        7,
        "REFRESH_COOKIE_DAYS",
        ge=1,
        description="Cookie lifetime in days; configured independently of the token TTL",
    )
    server_domain: str = env_field("localhost", "SERVER_DOMAIN")

    # URLs
    server_url: str = env_field("http://localhost:8050", "SERVER_URL")
    client_url: str = env_field("http://localhost:3000", "CLIENT_URL")
    cors_allow_origins: List[str] = env_field([], "CORS_ALLOW_ORIGINS")

    # OAuth providers
    oauth_yandex_client_id: str | None = env_field(None, "OAUTH_YANDEX_CLIENT_ID")
    oauth_yandex_client_secret: str | None = env_field(None, "OAUTH_YANDEX_CLIENT_SECRET")
    oauth_vk_client_id: str | None = env_field(None, "OAUTH_VK_CLIENT_ID")
    oauth_vk_client_secret: str | None = env_field(None, "OAUTH_VK_CLIENT_SECRET")
    oauth_state_ttl_minutes: int = env_field(10, "OAUTH_STATE_TTL_MINUTES", ge=1)

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    def oauth_callback_url(self, provider: str) -> str:
        return f"{self.server_url.rstrip('/')}/auth/{provider}/callback"

    @field_validator("app_env")
    @classmethod
    def _validate_app_env(cls, value: str) -> str:
        normalized = (value or "development").strip().lower()
        if normalized not in _APP_ENVIRONMENTS:
            raise ValueError(
                f"APP_ENV must be one of: {', '.join(sorted(_APP_ENVIRONMENTS))}"
            )
        return normalized

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @model_validator(mode="after")
    def _ensure_jwt_secret(self) -> "Settings":
        if self.jwt_secret:
            if len(self.jwt_secret) < _MIN_SECRET_LENGTH and not self.test_mode:
                raise ValueError(
                    f"JWT_SECRET must be at least {_MIN_SECRET_LENGTH} characters"
                )
            return self
        if not self.test_mode:
            raise ValueError("JWT_SECRET is required")
        logger.warning(
            "jwt_secret_ephemeral",
            message="No JWT_SECRET configured; tokens will not survive a restart",
        )
        self.jwt_secret = secrets.token_urlsafe(48)
        return self


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
