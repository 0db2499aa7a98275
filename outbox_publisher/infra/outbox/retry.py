"""What happens to an entry after a failed delivery attempt."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from outbox_publisher.infra.outbox.sink import FailureKind, failure_kind

if TYPE_CHECKING:
    from outbox_publisher.core.settings.outbox import OutboxSettings
    from outbox_publisher.infra.outbox.models import OutboxEntry


@dataclass(frozen=True, slots=True)
class RetryDecision:
    """New retry bookkeeping for one entry.

    ``retry_eligible`` is False once the entry has used its budget; the batch
    fetcher stops selecting it from then on.
    """

    retry_count: int
    retry_eligible: bool
    next_retry_at: datetime | None
    last_error: str
    kind: FailureKind


def format_error(error: BaseException, max_length: int) -> str:
    """``"<ErrorType>: <message>"`` cut to ``max_length`` characters."""
    text = f"{type(error).__name__}: {error}"
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


class RetryPolicy:
    """Turns a delivery failure into a ``RetryDecision``.

    Transient failures spend one attempt. Permanent failures spend the whole
    budget at once, so a hopeless entry is not retried. With backoff enabled,
    the n-th transient failure also defers the entry by
    ``min(base * multiplier ** (n - 1), max)`` seconds.
    """

    def __init__(
        self,
        *,
        backoff_enabled: bool = False,
        backoff_base: float = 60.0,
        backoff_max: float = 3600.0,
        backoff_multiplier: float = 2.0,
        max_error_length: int = 1000,
    ) -> None:
        self.backoff_enabled = backoff_enabled
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.backoff_multiplier = backoff_multiplier
        self.max_error_length = max_error_length

    @classmethod
    def from_settings(cls, settings: OutboxSettings) -> RetryPolicy:
        return cls(
            backoff_enabled=settings.backoff_enabled,
            backoff_base=settings.backoff_base_seconds,
            backoff_max=settings.backoff_max_seconds,
            backoff_multiplier=settings.backoff_multiplier,
            max_error_length=settings.max_error_length,
        )

    def backoff_delay(self, failures: int) -> timedelta:
        seconds = self.backoff_base * self.backoff_multiplier ** max(failures - 1, 0)
        return timedelta(seconds=min(seconds, self.backoff_max))

    def on_failure(self, entry: OutboxEntry, error: BaseException, *, now: datetime) -> RetryDecision:
        kind = failure_kind(error)
        last_error = format_error(error, self.max_error_length)

        if kind is FailureKind.PERMANENT:
            return RetryDecision(
                retry_count=max(entry.retry_count, entry.max_retries),
                retry_eligible=False,
                next_retry_at=None,
                last_error=last_error,
                kind=kind,
            )

        retry_count = entry.retry_count + 1
        eligible = retry_count < entry.max_retries
        next_retry_at = None
        if eligible and self.backoff_enabled:
            next_retry_at = now + self.backoff_delay(retry_count)

        return RetryDecision(
            retry_count=retry_count,
            retry_eligible=eligible,
            next_retry_at=next_retry_at,
            last_error=last_error,
            kind=kind,
        )


__all__ = ["RetryDecision", "RetryPolicy", "format_error"]
