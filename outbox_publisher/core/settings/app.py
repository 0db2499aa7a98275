"""HTTP surface and service identity settings."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .yaml_sources import create_app_yaml_source

Environment = Literal["development", "staging", "production", "test"]


class AppSettings(BaseSettings):
    """Identity of the service and options for the operational API.

    Environment variables use APP_ prefix.
    Example: APP_PORT=8080, APP_ENVIRONMENT=production
    """

    service_name: str = Field(
        default="outbox-publisher",
        min_length=1,
        max_length=100,
        pattern=r"^[a-z0-9]+(-[a-z0-9]+)*$",
        description="Name used in log records and the app_info metric.",
    )
    version: str = Field(
        default="1.0.0",
        pattern=r"^\d+\.\d+\.\d+(-[a-zA-Z0-9]+)?$",
        description="Semantic version reported by OpenAPI and app_info.",
    )
    environment: Environment = Field(default="development")

    # OpenAPI
    title: str = Field(default="Outbox Publisher", min_length=1, max_length=200)
    description: str = Field(default="Operational API for the transactional outbox publisher.")
    disable_docs: bool = Field(default=False, description="Hide /docs and /openapi.json.")

    # Routing
    api_prefix: str = Field(
        default="",
        max_length=255,
        pattern=r"^(/.*)?$",
        description="Prefix for the /outbox routes, e.g. /ops. /metrics is never prefixed.",
    )
    root_path: str = Field(default="", description="ASGI root_path when served behind a proxy.")

    # Server
    host: str = Field(default="0.0.0.0", description="uvicorn bind address")  # noqa: S104
    port: int = Field(default=8000, ge=1, le=65535)
    debug: bool = Field(default=False, description="FastAPI debug mode and uvicorn reload.")

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: Any,
        env_settings: Any,
        dotenv_settings: Any,
        file_secret_settings: Any,
    ) -> tuple[Any, ...]:
        """Customize settings source precedence: init > yaml > env > dotenv > secrets."""
        return (
            init_settings,
            create_app_yaml_source(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def _no_debug_in_production(self) -> AppSettings:
        if self.environment == "production" and self.debug:
            msg = "Debug mode cannot be enabled in production environment"
            raise ValueError(msg)
        return self

    @property
    def docs_enabled(self) -> bool:
        return not self.disable_docs

    def get_docs_url(self) -> str | None:
        return "/docs" if self.docs_enabled else None

    def get_openapi_url(self) -> str | None:
        return "/openapi.json" if self.docs_enabled else None
