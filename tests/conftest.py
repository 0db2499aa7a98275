"""Pytest configuration and shared fixtures.

Organization:
    - Application Fixtures: FastAPI app and HTTP client
    - Database Fixtures: in-memory SQLite engine, session factory, session
    - Outbox Fixtures: settings, a controllable clock, a recording sink and
      an entry factory

All fixtures run without PostgreSQL or RabbitMQ; the environment defaults
below disable both before any application module is imported.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

if TYPE_CHECKING:
    from fastapi import FastAPI
    from sqlalchemy.ext.asyncio import AsyncEngine

    from outbox_publisher.infra.outbox import OutboxEntry

# Ensure tests run without external infrastructure
os.environ.setdefault("APP_API_PREFIX", "")
os.environ.setdefault("DB_ENABLED", "false")
os.environ.setdefault("DB_DATABASE_URL", "")
os.environ.setdefault("RABBIT_ENABLED", "false")
os.environ.setdefault("OUTBOX_ENABLED", "false")
os.environ.setdefault("LOG_FILE_ENABLED", "false")


# ============================================================================
# Application Fixtures
# ============================================================================


@pytest.fixture
async def app(session_factory: async_sessionmaker[AsyncSession]) -> FastAPI:
    """FastAPI application whose request sessions come from the test database.

    The lifespan is not run; tests that need a publisher override
    ``get_publisher`` themselves.
    """
    from outbox_publisher.app.main import create_app
    from outbox_publisher.core.dependencies import get_db_session

    application = create_app()

    async def _test_session() -> AsyncGenerator[AsyncSession]:
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db_session] = _test_session
    return application


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Async HTTP client bound to the app through ASGITransport.

    Example:
        async def test_health(client):
            response = await client.get("/outbox/health")
            assert response.json() == {"status": "UP"}
    """
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine]:
    """In-memory SQLite engine with the outbox and shedlock tables created.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    from outbox_publisher.core.database import Base
    from outbox_publisher.infra.locks.models import LockRecord
    from outbox_publisher.infra.outbox.models import OutboxEntry

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(
            Base.metadata.create_all,
            tables=[OutboxEntry.__table__, LockRecord.__table__],
        )

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()


# ============================================================================
# Outbox Fixtures
# ============================================================================


class FakeClock:
    """Manually advanced UTC clock.

    Example:
        clock = FakeClock()
        clock.advance(31)
    """

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class RecordingSink:
    """Delivery sink stub that records every send.

    ``failures`` maps a destination to a list of exceptions raised by
    successive sends to it; once the list is used up sends succeed.
    ``on_send`` runs before each send, e.g. to move a clock forward.
    """

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.failures: dict[str, list[Exception]] = {}
        self.on_send: Callable[[str], Any] | None = None

    def fail(self, destination: str, *errors: Exception) -> None:
        self.failures.setdefault(destination, []).extend(errors)

    async def send(
        self,
        destination: str,
        payload: str,
        *,
        message_id: str | None = None,
        headers: Mapping[str, str] | None = None,
    ):
        from outbox_publisher.infra.outbox import DeliveryAck

        if self.on_send is not None:
            result = self.on_send(destination)
            if hasattr(result, "__await__"):
                await result

        pending = self.failures.get(destination)
        if pending:
            raise pending.pop(0)

        self.sent.append(
            {
                "destination": destination,
                "payload": payload,
                "message_id": message_id,
                "headers": dict(headers or {}),
            }
        )
        return DeliveryAck(destination=destination, message_id=message_id)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def outbox_settings():
    """Fast settings for publisher tests: short send timeout, no min hold."""
    from outbox_publisher.core.settings import OutboxSettings

    return OutboxSettings(
        enabled=False,
        poll_interval=0.01,
        batch_size=50,
        lock_hold_seconds=30.0,
        lock_min_hold_seconds=0.0,
        send_timeout=1.0,
        shutdown_timeout=1.0,
        instance_id="test-a:1",
    )


@pytest.fixture
def make_publisher(session_factory, sink: RecordingSink, clock: FakeClock, outbox_settings):
    """Factory for publishers sharing the test database, sink and clock.

    Example:
        publisher = make_publisher(instance_id="b:2", batch_size=10)
    """
    from outbox_publisher.infra.locks import LockCoordinator
    from outbox_publisher.infra.outbox import OutboxPublisher

    def _make(*, instance_id: str | None = None, publish_sink: Any = None, **overrides: Any):
        settings = outbox_settings.model_copy(update=overrides) if overrides else outbox_settings
        coordinator = LockCoordinator(
            session_factory,
            instance_id=instance_id or settings.instance_id,
            clock=clock,
        )
        return OutboxPublisher(
            session_factory,
            publish_sink or sink,
            coordinator,
            settings=settings,
            clock=clock,
        )

    return _make


@pytest.fixture
def make_entry(session_factory, clock: FakeClock):
    """Stage and commit an outbox entry, returning it.

    Entries are spaced one millisecond apart in ``created_at`` so fetch order
    is deterministic.
    """
    from outbox_publisher.infra.outbox import stage_outbox_entry

    async def _make(
        destination: str = "orders",
        payload: Any = None,
        *,
        max_retries: int = 5,
        event_type: str = "order.created",
        aggregate_id: str = "42",
    ) -> OutboxEntry:
        async with session_factory() as session:
            entry = stage_outbox_entry(
                session,
                aggregate_type="Order",
                aggregate_id=aggregate_id,
                event_type=event_type,
                destination=destination,
                payload=payload if payload is not None else {"a": 1},
                max_retries=max_retries,
            )
            entry.created_at = clock.advance(0.001)
            await session.commit()
        return entry

    return _make


@pytest.fixture
def load_entry(session_factory):
    """Re-read an entry from the database in a fresh session."""
    from outbox_publisher.infra.outbox import OutboxEntry

    async def _load(entry_id) -> OutboxEntry:
        async with session_factory() as session:
            return await session.get(OutboxEntry, entry_id)

    return _load


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Settings constructed by one test never leak into another."""
    from outbox_publisher.core.settings import clear_all_caches

    yield
    clear_all_caches()
