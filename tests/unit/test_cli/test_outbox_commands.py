"""Tests for the outbox CLI commands."""

from __future__ import annotations

from contextlib import asynccontextmanager
import json
import uuid
from unittest.mock import AsyncMock, MagicMock

from click.testing import CliRunner
import pytest

from outbox_publisher.cli.main import cli
from outbox_publisher.core.exceptions import NotFoundException
from outbox_publisher.features.outbox.schemas import OutboxStatsResponse
from outbox_publisher.infra.outbox import OutboxStatus


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def service(monkeypatch):
    """Replace OutboxService and the session factory used by the commands."""
    instance = MagicMock()
    instance.get_stats = AsyncMock(return_value=OutboxStatsResponse(unpublished=3, stuck=1))
    instance.list_stuck = AsyncMock(return_value=[])

    @asynccontextmanager
    async def fake_session():
        yield MagicMock()

    monkeypatch.setattr("outbox_publisher.features.outbox.service.OutboxService", MagicMock(return_value=instance))
    monkeypatch.setattr("outbox_publisher.infra.database.get_async_session", fake_session)
    monkeypatch.setattr("outbox_publisher.infra.database.close_database", AsyncMock())
    return instance


@pytest.mark.unit
class TestOutboxCommands:
    def test_help_lists_command_groups(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "outbox" in result.output
        assert "db" in result.output

    def test_outbox_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["outbox", "--help"])

        assert result.exit_code == 0
        for command in ("stats", "publish", "broker", "worker", "stuck", "reset", "fail"):
            assert command in result.output

    def test_stats_as_json(self, runner, service):
        result = runner.invoke(cli, ["outbox", "stats", "--format", "json"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {"unpublished": 3, "stuck": 1}

    def test_stats_table_warns_about_stuck_entries(self, runner, service):
        result = runner.invoke(cli, ["outbox", "stats"])

        assert result.exit_code == 0, result.output
        assert "Unpublished" in result.output
        assert "Stuck entries need attention" in result.output

    def test_stuck_with_empty_backlog(self, runner, service):
        result = runner.invoke(cli, ["outbox", "stuck", "--limit", "5"])

        assert result.exit_code == 0, result.output
        assert "No stuck entries" in result.output
        service.list_stuck.assert_awaited_once_with(limit=5)

    def test_reset_reports_new_state(self, runner, service):
        entry_id = uuid.uuid4()
        service.reset_entry = AsyncMock(
            return_value=MagicMock(id=entry_id, status=OutboxStatus.PENDING, retry_count=0, max_retries=5)
        )

        result = runner.invoke(cli, ["outbox", "reset", str(entry_id)])

        assert result.exit_code == 0, result.output
        service.reset_entry.assert_awaited_once_with(entry_id)
        assert str(entry_id) in result.output

    def test_fail_unknown_entry_exits_nonzero(self, runner, service):
        entry_id = uuid.uuid4()
        service.mark_failed = AsyncMock(side_effect=NotFoundException(detail=f"Outbox entry {entry_id} not found"))

        result = runner.invoke(cli, ["outbox", "fail", str(entry_id)])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_malformed_id_is_a_usage_error(self, runner):
        result = runner.invoke(cli, ["outbox", "reset", "not-a-uuid"])

        assert result.exit_code == 2

    def test_stuck_limit_is_bounded(self, runner):
        result = runner.invoke(cli, ["outbox", "stuck", "--limit", "0"])

        assert result.exit_code == 2


@pytest.fixture
def broker_calls(monkeypatch):
    """Replace the broker start/stop/health functions used by ``outbox broker``."""
    calls = MagicMock()
    calls.start_broker = AsyncMock()
    calls.stop_broker = AsyncMock()
    calls.check_broker_health = AsyncMock(
        return_value={"status": "healthy", "state": "connected", "is_connected": True}
    )
    for name in ("start_broker", "stop_broker", "check_broker_health"):
        monkeypatch.setattr(f"outbox_publisher.infra.messaging.{name}", getattr(calls, name))
    return calls


@pytest.mark.unit
class TestBrokerCommand:
    def test_connected_broker_exits_zero(self, runner, broker_calls):
        result = runner.invoke(cli, ["outbox", "broker"])

        assert result.exit_code == 0, result.output
        assert "connected" in result.output
        broker_calls.start_broker.assert_awaited_once()
        broker_calls.stop_broker.assert_awaited_once()

    def test_failed_connection_reports_state_and_exits_nonzero(self, runner, broker_calls):
        broker_calls.start_broker.side_effect = ConnectionError("RabbitMQ connection timeout after 10.0s")
        broker_calls.check_broker_health.return_value = {
            "status": "unhealthy",
            "state": "failed",
            "is_connected": False,
            "reason": "RabbitMQ connection timeout after 10.0s",
        }

        result = runner.invoke(cli, ["outbox", "broker", "--format", "json"])

        assert result.exit_code == 1
        assert '"state": "failed"' in result.output
        broker_calls.stop_broker.assert_awaited_once()

    def test_disabled_broker_is_unavailable(self, runner, broker_calls):
        broker_calls.check_broker_health.return_value = {
            "status": "unavailable",
            "state": "disconnected",
            "is_connected": False,
            "reason": "rabbitmq_not_enabled",
        }

        result = runner.invoke(cli, ["outbox", "broker"])

        assert result.exit_code == 1
        assert "rabbitmq_not_enabled" in result.output
