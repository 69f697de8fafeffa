"""Configuration loader for the video mirror (Pydantic edition)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Literal

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOGGER = logging.getLogger(__name__)
DEFAULT_OAUTH_URL = "https://oauth.brightcove.com/v4/access_token"
DEFAULT_CATALOG_URL = "https://edge.api.brightcove.com/playback/v1/accounts/{account_id}/videos"
DEFAULT_ANALYTICS_URL = "https://analytics.api.brightcove.com/v1/data"
SQLITE_URL_PREFIXES: tuple[str, ...] = ("sqlite:///", "sqlite://", "sqlite:")


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded safely."""


class AppConfig(BaseSettings):
    """Strongly typed runtime configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        validate_default=True,
        populate_by_name=True,
    )

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        validation_alias=AliasChoices("APP_ENVIRONMENT", "APP_ENV"),
    )
    database_path: Path = Field(
        default=Path("videomirror.db"),
        validation_alias=AliasChoices("APP_DATABASE_PATH", "DATABASE_URL", "DATABASE_PATH"),
    )
    log_path: Path = Field(
        default=Path("logs/videomirror.log"),
        validation_alias=AliasChoices("APP_LOG_PATH", "LOG_PATH"),
    )

    # Remote platform credentials
    client_id: str | None = Field(default=None, validation_alias=AliasChoices("CLIENT_ID", "APP_CLIENT_ID"))
    client_secret: SecretStr | None = Field(
        default=None, validation_alias=AliasChoices("CLIENT_SECRET", "APP_CLIENT_SECRET")
    )
    account_id: str | None = Field(default=None, validation_alias=AliasChoices("ACCOUNT_ID", "APP_ACCOUNT_ID"))
    policy_key: SecretStr | None = Field(default=None, validation_alias=AliasChoices("POLICY_KEY", "APP_POLICY_KEY"))

    # Remote endpoints
    oauth_url: str = Field(default=DEFAULT_OAUTH_URL, validation_alias=AliasChoices("OAUTH_URL", "APP_OAUTH_URL"))
    catalog_url: str = Field(
        default=DEFAULT_CATALOG_URL, validation_alias=AliasChoices("CATALOG_URL", "APP_CATALOG_URL")
    )
    analytics_url: str = Field(
        default=DEFAULT_ANALYTICS_URL, validation_alias=AliasChoices("ANALYTICS_URL", "APP_ANALYTICS_URL")
    )
    page_size: int = Field(25, ge=1, le=100, validation_alias="APP_PAGE_SIZE")
    http_timeout_seconds: float = Field(30.0, gt=0, validation_alias="APP_HTTP_TIMEOUT")

    # Scheduling cadences
    token_interval_seconds: int = Field(
        240,
        ge=1,
        validation_alias=AliasChoices("THREAD_GET_ACCESS_TOKEN_DELAY_IN_S", "APP_TOKEN_INTERVAL"),
    )
    catalog_interval_seconds: int = Field(
        600,
        ge=1,
        validation_alias=AliasChoices("THREAD_SYNC_VIDEO_DELAY_IN_S", "APP_CATALOG_INTERVAL"),
    )
    views_interval_seconds: int = Field(
        3600,
        ge=1,
        validation_alias=AliasChoices("THREAD_SYNC_VIEWS_DELAY_IN_S", "APP_VIEWS_INTERVAL"),
    )

    # Read API
    api_host: str = Field("0.0.0.0", validation_alias="APP_API_HOST")
    api_port: int = Field(4000, ge=1, le=65535, validation_alias="APP_API_PORT")

    @field_validator("database_path", mode="before")
    @classmethod
    def _strip_sqlite_scheme(cls, value: str | Path) -> str | Path:
        if isinstance(value, str):
            for prefix in SQLITE_URL_PREFIXES:
                if value.startswith(prefix):
                    return value[len(prefix):]
        return value

    @field_validator("database_path", "log_path", mode="after")
    @classmethod
    def _expand_path(cls, value: Path) -> Path:
        expanded = value.expanduser()
        return expanded if expanded.is_absolute() else (Path.cwd() / expanded).resolve()

    @field_validator("client_id", "account_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = str(value).strip()
        return stripped or None

    @model_validator(mode="after")
    def _validate_catalog_url(self) -> "AppConfig":
        if "{account_id}" in self.catalog_url and not self.account_id:
            raise ConfigError("catalog_url references {account_id} but ACCOUNT_ID is not set")
        return self

    def ensure_runtime_directories(self) -> None:
        """Create directories required for runtime operation."""
        _ensure_directories((self.database_path.parent, self.log_path.parent))

    @property
    def catalog_endpoint(self) -> str:
        """Catalog URL with the account id substituted."""
        return self.catalog_url.format(account_id=self.account_id or "")

    @property
    def has_client_credentials(self) -> bool:
        return bool(self.client_id and secret_value(self.client_secret))


def secret_value(value: SecretStr | str | None) -> str | None:
    """Return the plaintext secret stripped of whitespace."""
    if value is None:
        return None
    raw = value.get_secret_value() if isinstance(value, SecretStr) else value
    stripped = raw.strip()
    return stripped or None


def _ensure_directories(paths: Iterable[Path]) -> None:
    for directory in paths:
        directory.mkdir(parents=True, exist_ok=True)


def load_config(env_path: Path | None = None) -> AppConfig:
    """Load configuration from .env/environment with validation."""
    load_kwargs: dict[str, str] = {}
    if env_path is not None:
        load_dotenv(env_path, override=False)
        load_kwargs["_env_file"] = str(env_path)
    else:
        load_dotenv(override=False)
    try:
        config = AppConfig(**load_kwargs)
    except (ValidationError, ConfigError) as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc

    config.ensure_runtime_directories()

    LOGGER.info(
        "AppConfig loaded",
        extra={
            "event": "config.loaded",
            "environment": config.environment,
            "paths": {
                "database": str(config.database_path),
                "log": str(config.log_path),
            },
        },
    )
    return config
