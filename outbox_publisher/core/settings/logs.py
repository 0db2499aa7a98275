"""Logging settings for the publisher process."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .yaml_sources import create_logging_yaml_source

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _quiet_libraries() -> dict[str, LogLevel]:
    return {
        "aiormq": "WARNING",
        "aio_pika": "WARNING",
        "faststream": "WARNING",
        "sqlalchemy.engine": "WARNING",
    }


class LoggingSettings(BaseSettings):
    """Log level, output format and handlers.

    Environment variables use LOG_ prefix.
    Example: LOG_LEVEL=DEBUG, LOG_JSON=false, LOG_FILE_ENABLED=true

    Per-logger overrides take JSON:
    LOG_LOGGER_LEVELS='{"outbox_publisher.infra.outbox": "DEBUG"}'
    """

    service_name: str = Field(
        default="outbox-publisher",
        description="Written as the static 'service' field of every JSON record.",
    )
    level: LogLevel = Field(default="INFO", description="Root logger level.")
    json_logs: bool = Field(
        default=True,
        alias="json",
        description="Emit JSON Lines instead of plain text.",
    )
    logger_levels: dict[str, LogLevel] = Field(
        default_factory=_quiet_libraries,
        description="Levels for named loggers; broker and SQL client chatter is at WARNING by default.",
    )

    # Console
    console_enabled: bool = Field(default=True, description="Write records to stderr.")
    console_level: LogLevel | None = Field(
        default=None,
        description="Console threshold; falls back to level.",
    )

    # Rotating file
    file_enabled: bool = Field(default=False, description="Also write records to file_path.")
    file_level: LogLevel | None = Field(default=None, description="File threshold; falls back to level.")
    file_path: Path = Field(
        default=Path("logs/outbox-publisher.log.jsonl"),
        description="Target of the rotating file handler.",
    )
    file_max_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1024,
        le=1024 * 1024 * 1024,
        description="Rotate once the file reaches this size.",
    )
    file_backup_count: int = Field(default=5, ge=0, le=100, description="Rotated files kept.")

    capture_warnings: bool = Field(
        default=True,
        description="Route the warnings module through logging.",
    )
    include_function_name: bool = Field(default=False, description="Add funcName to each record.")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        populate_by_name=True,
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
            create_logging_yaml_source(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @field_validator("level", "console_level", "file_level", mode="before")
    @classmethod
    def _upper_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("logger_levels", mode="before")
    @classmethod
    def _upper_logger_levels(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {name: level.upper() if isinstance(level, str) else level for name, level in v.items()}
        return v

    def to_logging_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``configure_logging``."""
        return {
            "service_name": self.service_name,
            "log_level": self.level,
            "json_logs": self.json_logs,
            "logger_levels": dict(self.logger_levels),
            "console_enabled": self.console_enabled,
            "console_level": self.console_level or self.level,
            "file_path": str(self.file_path) if self.file_enabled else None,
            "file_level": self.file_level or self.level,
            "file_max_bytes": self.file_max_bytes,
            "file_backup_count": self.file_backup_count,
            "capture_warnings": self.capture_warnings,
            "include_function_name": self.include_function_name,
        }
