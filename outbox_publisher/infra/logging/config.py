"""Process-wide logging setup.

Records go from a QueueHandler on the root logger to a QueueListener thread
that owns the console and rotating file handlers, so the event loop never
blocks on log I/O.
"""

from __future__ import annotations

import atexit
import logging
import logging.config
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import Queue
from typing import TYPE_CHECKING, Any

from outbox_publisher.infra.logging.formatters import JSONFormatter

if TYPE_CHECKING:
    from outbox_publisher.core.settings.logs import LoggingSettings

logger = logging.getLogger(__name__)

_listener: QueueListener | None = None
_configured = False

TEXT_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def shutdown() -> None:
    """Drain the queue and stop the listener thread. Registered with atexit."""
    global _listener

    if _listener is not None:
        # QueueListener.stop() processes everything still queued before joining
        _listener.stop()
        _listener = None


def setup_logging(
    log_settings: LoggingSettings | None = None,
    *,
    force: bool = False,
    **overrides: Any,
) -> None:
    """Configure logging once per process.

    Args:
        log_settings: Settings to apply; loaded with get_logging_settings() when omitted.
        force: Reconfigure even if logging was already set up.
        **overrides: Keyword overrides for configure_logging().
    """
    global _configured

    if _configured and not force:
        return

    if log_settings is None:
        from outbox_publisher.core.settings import get_logging_settings

        log_settings = get_logging_settings()

    configure_logging(**{**log_settings.to_logging_kwargs(), **overrides})
    _configured = True


def configure_logging(
    log_level: str = "INFO",
    *,
    json_logs: bool = True,
    service_name: str = "outbox-publisher",
    logger_levels: dict[str, str] | None = None,
    console_enabled: bool = True,
    console_level: str | None = None,
    file_path: str | Path | None = None,
    file_level: str | None = None,
    file_max_bytes: int = 10 * 1024 * 1024,
    file_backup_count: int = 5,
    capture_warnings: bool = True,
    include_function_name: bool = False,
) -> None:
    """Apply a logging configuration.

    Example:
        configure_logging("DEBUG", json_logs=False, logger_levels={"aiormq": "INFO"})
    """
    logging.captureWarnings(capture_warnings)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "root": {"level": log_level.upper(), "handlers": []},
            "loggers": {name: {"level": level.upper()} for name, level in (logger_levels or {}).items()},
        }
    )

    if json_logs:
        fmt_keys = {"level": "levelname", "logger": "name", "message": "message"}
        if include_function_name:
            fmt_keys["function"] = "funcName"
        formatter: logging.Formatter = JSONFormatter(fmt_keys=fmt_keys, static={"service": service_name})
    else:
        fmt = TEXT_FORMAT.replace("%(name)s", "%(name)s:%(funcName)s") if include_function_name else TEXT_FORMAT
        formatter = logging.Formatter(fmt=fmt, datefmt=DATE_FORMAT)

    handlers: list[logging.Handler] = []
    if console_enabled:
        handlers.append(_handler(logging.StreamHandler(), console_level or log_level, formatter))
    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        rotating = RotatingFileHandler(
            path,
            maxBytes=file_max_bytes,
            backupCount=file_backup_count,
            encoding="utf-8",
        )
        handlers.append(_handler(rotating, file_level or log_level, formatter))

    _start_listener(handlers)


def _handler(handler: logging.Handler, level: str, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level.upper())
    handler.setFormatter(formatter)
    return handler


def _start_listener(handlers: list[logging.Handler]) -> None:
    global _listener

    shutdown()
    if not handlers:
        return

    queue: Queue[logging.LogRecord] = Queue()
    _listener = QueueListener(queue, *handlers, respect_handler_level=True)
    _listener.start()
    atexit.register(shutdown)
    logging.getLogger().addHandler(QueueHandler(queue))
