"""CLI utilities for running async operations and formatting output."""

from outbox_publisher.cli.utils.async_runner import coro
from outbox_publisher.cli.utils.formatters import (
    echo_json,
    error,
    header,
    info,
    key_value,
    section,
    success,
    warning,
)

__all__ = [
    "coro",
    "echo_json",
    "error",
    "header",
    "info",
    "key_value",
    "section",
    "success",
    "warning",
]
