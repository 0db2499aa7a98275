"""Lifecycle registry for ordered startup and shutdown hooks.

Startup hooks run by dependency, then by ``startup_order``. Shutdown hooks
run in reverse, and only for components whose startup hook completed.
"""

from __future__ import annotations

from collections.abc import Callable  # noqa: TC003
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable

logger = logging.getLogger(__name__)

type HookFunc = Callable[..., Awaitable[None]]


class LifecycleHook:
    """A startup or shutdown function plus its ordering metadata."""

    def __init__(self, name: str, func: HookFunc, order: int, requires: list[str]) -> None:
        self.name = name
        self.func = func
        self.startup_order = order
        self.requires = requires
        self.started = False

    async def execute(self, **kwargs: Any) -> None:
        await self.func(**kwargs)
        self.started = True


class LifecycleRegistry:
    """Registry of named startup/shutdown hook pairs.

    A function whose name starts with ``shutdown`` (or ends with
    ``_shutdown``) is registered as the shutdown half of the pair.

    Example:
        registry = LifecycleRegistry()

        @registry.register(name="database", startup_order=10, requires=["core"])
        async def startup_database(db_settings: PostgresSettings, **kwargs: object) -> None:
            await init_database()

        @registry.register(name="database")
        async def shutdown_database(**kwargs: object) -> None:
            await close_database()

        await registry.startup(**settings)
        await registry.shutdown(**settings)
    """

    def __init__(self) -> None:
        self._startup_hooks: dict[str, LifecycleHook] = {}
        self._shutdown_hooks: dict[str, LifecycleHook] = {}

    def register(
        self,
        name: str,
        startup_order: int = 50,
        requires: list[str] | None = None,
    ) -> Callable[[HookFunc], HookFunc]:
        requires_list = requires or []

        def decorator(func: HookFunc) -> HookFunc:
            func_name = func.__name__.lower()
            is_shutdown = func_name.startswith("shutdown") or func_name.endswith("_shutdown")
            hooks = self._shutdown_hooks if is_shutdown else self._startup_hooks
            kind = "Shutdown" if is_shutdown else "Startup"

            if name in hooks:
                msg = f"{kind} hook '{name}' already registered"
                raise ValueError(msg)
            hooks[name] = LifecycleHook(name=name, func=func, order=startup_order, requires=requires_list)
            return func

        return decorator

    def _resolve_startup_order(self) -> list[str]:
        """Topological order of startup hooks; ties broken by ``startup_order``.

        Raises:
            ValueError: On a missing or circular dependency.
        """
        ordered: list[str] = []
        visiting: set[str] = set()

        def visit(name: str) -> None:
            if name in ordered:
                return
            if name in visiting:
                msg = f"Circular dependency detected at '{name}'"
                raise ValueError(msg)
            visiting.add(name)
            for dep in self._startup_hooks[name].requires:
                if dep not in self._startup_hooks:
                    msg = f"Hook '{name}' requires '{dep}' but it's not registered"
                    raise ValueError(msg)
                visit(dep)
            visiting.discard(name)
            ordered.append(name)

        for name in sorted(self._startup_hooks, key=lambda n: self._startup_hooks[n].startup_order):
            visit(name)
        return ordered

    def _resolve_shutdown_order(self) -> list[str]:
        """Reverse startup order, limited to started components with a shutdown hook."""
        return [
            name
            for name in reversed(self._resolve_startup_order())
            if self._startup_hooks[name].started and name in self._shutdown_hooks
        ]

    async def startup(self, **kwargs: Any) -> None:
        """Run all startup hooks; the first failure aborts startup."""
        for name in self._resolve_startup_order():
            hook = self._startup_hooks[name]
            try:
                logger.debug("Starting %s...", name)
                await hook.execute(**kwargs)
                logger.debug("Started %s", name)
            except Exception as e:
                logger.error("Failed to start %s: %s", name, e, exc_info=True)
                raise

    async def shutdown(self, **kwargs: Any) -> None:
        """Run shutdown hooks for started components; failures are logged and skipped."""
        for name in self._resolve_shutdown_order():
            hook = self._shutdown_hooks[name]
            try:
                logger.debug("Shutting down %s...", name)
                await hook.execute(**kwargs)
                logger.debug("Shut down %s", name)
            except Exception as e:
                logger.warning("Error shutting down %s: %s", name, e, exc_info=True)
            finally:
                self._startup_hooks[name].started = False

    def clear(self) -> None:
        """Remove all hooks (tests only)."""
        self._startup_hooks.clear()
        self._shutdown_hooks.clear()


lifespan_registry = LifecycleRegistry()

__all__ = ["LifecycleHook", "LifecycleRegistry", "lifespan_registry"]
