"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CONFIG_CACHE_SECONDS = 300


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="TVBox Bridge", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    tvbox_subscribe_token: str | None = Field(
        default=None, alias="TVBOX_SUBSCRIBE_TOKEN"
    )
    site_base: HttpUrl | None = Field(default=None, alias="SITE_BASE")

    auth_cookie_name: str = Field(default="auth", alias="AUTH_COOKIE_NAME")
    auth_cookie_secret: str | None = Field(default=None, alias="AUTH_COOKIE_SECRET")

    config_cache_seconds: int = Field(
        default=DEFAULT_CONFIG_CACHE_SECONDS,
        alias="EMBY_CONFIG_CACHE_TTL",
        ge=1,
        le=86_400,
    )

    emby_enabled: bool = Field(default=False, alias="EMBY_ENABLED")
    emby_server_url: HttpUrl | None = Field(default=None, alias="EMBY_SERVER_URL")
    emby_api_key: str | None = Field(default=None, alias="EMBY_API_KEY")
    emby_username: str | None = Field(default=None, alias="EMBY_USERNAME")
    emby_password: str | None = Field(default=None, alias="EMBY_PASSWORD")
    emby_user_id: str | None = Field(default=None, alias="EMBY_USER_ID")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./tvbox_bridge.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator(
        "tvbox_subscribe_token",
        "auth_cookie_secret",
        "emby_api_key",
        "emby_username",
        "emby_password",
        "emby_user_id",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        """Treat empty environment values as unset."""

        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("site_base", "emby_server_url", mode="before")
    @classmethod
    def _blank_url_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def site_base_url(self) -> str | None:
        """Return the externally visible base URL without a trailing slash."""

        if self.site_base is None:
            return None
        return str(self.site_base).rstrip("/")

    @property
    def config_cache_ttl_ms(self) -> int:
        return self.config_cache_seconds * 1000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
