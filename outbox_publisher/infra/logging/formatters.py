"""JSON Lines formatter with trace correlation."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

from opentelemetry import trace

# Attributes every LogRecord has; anything else on the record came from extra={...}
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _utc_timestamp(created: float) -> str:
    return datetime.fromtimestamp(created, tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    ``fmt_keys`` maps output keys to LogRecord attributes, ``static`` fields
    are added to every record and ``extra={...}`` fields from the call site
    are copied as-is. The active OpenTelemetry span, if any, contributes
    ``trace_id`` and ``span_id``.

    Example output:
        {"level": "WARNING", "logger": "outbox_publisher.infra.outbox.processor",
         "message": "Transient delivery failure", "timestamp": "2026-01-01T00:00:00.123Z",
         "service": "outbox-publisher", "entry_id": "0190...", "destination": "orders"}
    """

    def __init__(self, fmt_keys: dict[str, str] | None = None, static: dict[str, Any] | None = None) -> None:
        super().__init__()
        self.fmt_keys = fmt_keys or {"level": "levelname", "logger": "name", "message": "message"}
        self.static = static or {}

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        data: dict[str, Any] = {key: getattr(record, attr, None) for key, attr in self.fmt_keys.items()}
        data["timestamp"] = _utc_timestamp(record.created)

        ctx = trace.get_current_span().get_span_context()
        if ctx.is_valid:
            data["trace_id"] = format(ctx.trace_id, "032x")
            data["span_id"] = format(ctx.span_id, "016x")

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            data["stack_trace"] = record.stack_info

        data.update(self.static)
        data.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and key not in data
        )

        # json.dumps escapes embedded newlines, so a traceback stays on one line
        return json.dumps(data, ensure_ascii=False, default=str)
