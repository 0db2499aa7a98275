"""Tests for the startup retry decorator."""

from __future__ import annotations

import pytest

from outbox_publisher.utils.retry import RetryError, retry


@pytest.mark.unit
class TestRetryDecorator:
    async def test_returns_after_transient_failures(self):
        calls = 0

        @retry(max_attempts=3, initial_delay=0.001, jitter=False)
        async def connect() -> str:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise ConnectionError("refused")
            return "connected"

        assert await connect() == "connected"
        assert calls == 3

    async def test_raises_retry_error_when_attempts_run_out(self):
        @retry(max_attempts=2, initial_delay=0.001, jitter=False)
        async def connect() -> None:
            raise ConnectionError("refused")

        with pytest.raises(RetryError) as exc_info:
            await connect()

        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.last_exception, ConnectionError)

    async def test_unlisted_exceptions_are_not_retried(self):
        calls = 0

        @retry(max_attempts=5, initial_delay=0.001, exceptions=(ConnectionError,))
        async def connect() -> None:
            nonlocal calls
            calls += 1
            raise ValueError("bad config")

        with pytest.raises(ValueError, match="bad config"):
            await connect()
        assert calls == 1

    async def test_time_budget_stops_retries(self):
        calls = 0

        @retry(max_attempts=100, initial_delay=0.01, jitter=False, stop_after_delay=0.0)
        async def connect() -> None:
            nonlocal calls
            calls += 1
            raise ConnectionError("refused")

        with pytest.raises(RetryError):
            await connect()
        assert calls == 1

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError, match="at least 1"):
            retry(max_attempts=0)
