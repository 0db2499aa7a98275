"""Tests for ordered startup and shutdown hooks."""

from __future__ import annotations

import pytest

from outbox_publisher.app.lifespan.registry import LifecycleRegistry


@pytest.fixture
def calls() -> list[str]:
    return []


@pytest.fixture
def registry(calls) -> LifecycleRegistry:
    """Registry wired like the application: core -> database -> messaging -> outbox."""
    reg = LifecycleRegistry()

    def pair(name: str, order: int, requires: list[str] | None = None) -> None:
        async def startup(**kwargs: object) -> None:
            calls.append(f"start:{name}")

        async def shutdown(**kwargs: object) -> None:
            calls.append(f"stop:{name}")

        startup.__name__ = f"startup_{name}"
        shutdown.__name__ = f"shutdown_{name}"
        reg.register(name=name, startup_order=order, requires=requires)(startup)
        reg.register(name=name)(shutdown)

    pair("outbox", 30, requires=["database", "messaging"])
    pair("messaging", 20, requires=["core"])
    pair("database", 10, requires=["core"])
    pair("core", 1)
    return reg


@pytest.mark.unit
class TestLifecycleRegistry:
    async def test_startup_follows_dependencies_and_order(self, registry, calls):
        await registry.startup()

        assert calls == ["start:core", "start:database", "start:messaging", "start:outbox"]

    async def test_shutdown_runs_in_reverse(self, registry, calls):
        await registry.startup()
        calls.clear()

        await registry.shutdown()

        assert calls == ["stop:outbox", "stop:messaging", "stop:database", "stop:core"]

    async def test_failed_startup_only_stops_started_components(self, calls):
        reg = LifecycleRegistry()

        @reg.register(name="core", startup_order=1)
        async def startup_core(**kwargs: object) -> None:
            calls.append("start:core")

        @reg.register(name="core")
        async def shutdown_core(**kwargs: object) -> None:
            calls.append("stop:core")

        @reg.register(name="database", startup_order=10, requires=["core"])
        async def startup_database(**kwargs: object) -> None:
            raise ConnectionError("database unavailable")

        @reg.register(name="database")
        async def shutdown_database(**kwargs: object) -> None:
            calls.append("stop:database")

        with pytest.raises(ConnectionError):
            await reg.startup()
        await reg.shutdown()

        assert calls == ["start:core", "stop:core"]

    async def test_shutdown_errors_do_not_stop_other_hooks(self, calls):
        reg = LifecycleRegistry()

        @reg.register(name="core", startup_order=1)
        async def startup_core(**kwargs: object) -> None:
            calls.append("start:core")

        @reg.register(name="core")
        async def shutdown_core(**kwargs: object) -> None:
            calls.append("stop:core")

        @reg.register(name="messaging", startup_order=20, requires=["core"])
        async def startup_messaging(**kwargs: object) -> None:
            calls.append("start:messaging")

        @reg.register(name="messaging")
        async def shutdown_messaging(**kwargs: object) -> None:
            raise RuntimeError("close failed")

        await reg.startup()
        await reg.shutdown()

        assert calls == ["start:core", "start:messaging", "stop:core"]

    async def test_settings_are_passed_as_kwargs(self):
        reg = LifecycleRegistry()
        seen: dict[str, object] = {}

        @reg.register(name="core")
        async def startup_core(app_settings: object, **kwargs: object) -> None:
            seen["app_settings"] = app_settings

        await reg.startup(app_settings="settings", db_settings="ignored")

        assert seen == {"app_settings": "settings"}

    def test_missing_dependency_is_rejected(self):
        reg = LifecycleRegistry()

        @reg.register(name="outbox", requires=["database"])
        async def startup_outbox(**kwargs: object) -> None:
            return None

        with pytest.raises(ValueError, match="requires 'database'"):
            reg._resolve_startup_order()

    def test_duplicate_registration_is_rejected(self):
        reg = LifecycleRegistry()

        @reg.register(name="core")
        async def startup_core(**kwargs: object) -> None:
            return None

        with pytest.raises(ValueError, match="already registered"):
            reg.register(name="core")(startup_core)


@pytest.mark.unit
class TestApplicationHooks:
    """The application's own registry has every component registered."""

    def test_all_components_registered_in_order(self):
        import outbox_publisher.app.lifespan  # noqa: F401
        from outbox_publisher.app.lifespan.registry import lifespan_registry

        assert lifespan_registry._resolve_startup_order() == ["core", "database", "messaging", "outbox"]
