"""keygate API settings (Pydantic v2)."""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

from keygate_db.settings import (
    DatabaseSettingsMixin,
    create_settings_accessors,
    keygate_settings_config,
    normalize_log_format,
    normalize_log_level,
)

DEFAULT_WORKSPACE_HEADER = "X-Workspace-Id"
DEFAULT_ACTOR_HEADER = "X-Actor-Id"


class Settings(DatabaseSettingsMixin, BaseSettings):
    """FastAPI settings loaded from KEYGATE_* environment variables."""

    model_config = keygate_settings_config(enable_decoding=False, populate_by_name=True)

    # Core
    app_name: str = "keygate RBAC API"
    app_version: str = "unknown"
    api_prefix: str = "/api/v1"
    docs_url: str | None = "/api/docs"
    openapi_url: str | None = "/api/openapi.json"
    log_format: str = "console"
    log_level: str = "INFO"
    request_log_level: str | None = None

    # Server
    api_host: str = "127.0.0.1"
    api_port: int = Field(8000, ge=1, le=65535)

    # Tenant context
    workspace_header: str = DEFAULT_WORKSPACE_HEADER
    actor_header: str = DEFAULT_ACTOR_HEADER

    # Database
    database_log_level: str | None = None
    database_auto_create: bool = False

    @model_validator(mode="after")
    def _finalize(self) -> Settings:
        self.log_format = normalize_log_format(self.log_format, env_var="KEYGATE_LOG_FORMAT")

        normalized_log_level = normalize_log_level(self.log_level, env_var="KEYGATE_LOG_LEVEL")
        if normalized_log_level is None:
            raise ValueError("KEYGATE_LOG_LEVEL must not be empty.")
        self.log_level = normalized_log_level

        self.request_log_level = normalize_log_level(
            self.request_log_level,
            env_var="KEYGATE_REQUEST_LOG_LEVEL",
        )
        self.database_log_level = normalize_log_level(
            self.database_log_level,
            env_var="KEYGATE_DATABASE_LOG_LEVEL",
        )
        if not self.api_prefix.startswith("/"):
            raise ValueError("KEYGATE_API_PREFIX must start with '/'.")
        self.api_prefix = self.api_prefix.rstrip("/")
        return self

    @property
    def effective_request_log_level(self) -> str:
        return self.request_log_level or self.log_level


get_settings, reload_settings = create_settings_accessors(Settings)

__all__ = ["Settings", "get_settings", "reload_settings"]
