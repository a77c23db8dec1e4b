"""Integration manager - registers integrations and runs their hooks."""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

from .base import READY_HOOKS, HookContext, HookName, Integration

logger = logging.getLogger(__name__)

NAME_SEPARATORS = (":", ".", "/")


@dataclass
class HookResult:
    """Outcome of running one hook across integrations."""

    hook: str
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def _hook_key(hook: HookName | str) -> str:
    return hook.value if isinstance(hook, HookName) else hook


class IntegrationManager:
    """Registry of integrations keyed by name.

    A failing hook is logged and never stops the remaining integrations.

    Example:
        >>> manager = IntegrationManager()
        >>> manager.register(Integration("analytics", {"app:started": on_started}))
        >>> manager.execute_hook(HookName.APP_STARTED)
    """

    def __init__(self, context_factory: Callable[[str], HookContext] | None = None):
        """Initialize the manager.

        Args:
            context_factory: Builds the context passed to hooks for a hook name.
        """
        self._integrations: dict[str, Integration] = {}
        self._lock = threading.RLock()
        self._context_factory = context_factory or (lambda hook: HookContext(hook=hook))
        self._pending: set[asyncio.Task] = set()
        self.ready = False

    def register(self, integration: Integration) -> None:
        """Register an integration, replacing one with the same name.

        If the framework is already ready, the integration's ready hooks run
        immediately.
        """
        with self._lock:
            if integration.name in self._integrations:
                logger.warning("Integration %s already registered, replacing it", integration.name)
            self._integrations[integration.name] = integration
            ready = self.ready

        logger.info("Registered integration: %s", integration.name)
        if ready:
            for hook in READY_HOOKS:
                self._run(integration, hook.value)

    def _matches(self, registered: str, name: str) -> bool:
        if registered == name:
            return True
        return any(registered.startswith(name + sep) for sep in NAME_SEPARATORS)

    def unregister(self, name: str) -> bool:
        """Remove an integration and any integrations namespaced under it.

        Each removed integration's ``app:destroy`` hook runs.

        Returns:
            True if anything was removed.
        """
        return bool(self._remove(lambda key, integration: self._matches(key, name)))

    def unregister_by_source(self, source: str) -> int:
        """Remove every integration contributed by an extension.

        Only integrations whose source matches are removed; names are
        matched exactly.

        Returns:
            Number of integrations removed.
        """
        return len(self._remove(lambda key, integration: integration.source == source))

    def _remove(self, predicate: Callable[[str, Integration], bool]) -> list[Integration]:
        with self._lock:
            removed = [i for key, i in self._integrations.items() if predicate(key, i)]
            for integration in removed:
                del self._integrations[integration.name]

        for integration in removed:
            self._run(integration, HookName.APP_DESTROY.value)
            logger.info("Unregistered integration: %s", integration.name)
        return removed

    def _run(self, integration: Integration, hook: str) -> bool:
        fn = integration.hook(hook)
        if fn is None:
            return True
        try:
            result = fn(self._context_factory(hook))
            if inspect.isawaitable(result):
                return self._schedule(integration, hook, result)
        except Exception:
            logger.error("Hook %s failed for integration %s", hook, integration.name, exc_info=True)
            return False
        return True

    def _schedule(self, integration: Integration, hook: str, awaitable: Any) -> bool:
        """Run a coroutine hook.

        Returns:
            The hook's outcome when it ran to completion, or True when it was
            scheduled on the running loop.
        """

        async def runner() -> bool:
            try:
                await awaitable
            except Exception:
                logger.error("Hook %s failed for integration %s", hook, integration.name, exc_info=True)
                return False
            return True

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(runner())
        task = loop.create_task(runner())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    def execute_hook(self, hook: HookName | str) -> HookResult:
        """Run a hook on every integration that defines it.

        Coroutine hooks run to completion when no event loop is running,
        and are scheduled on the running loop otherwise.
        """
        key = _hook_key(hook)
        result = HookResult(hook=key)
        for integration in self.integrations():
            if integration.hook(key) is None:
                continue
            if self._run(integration, key):
                result.succeeded.append(integration.name)
            else:
                result.failed.append(integration.name)
        logger.debug("Executed hook %s on %d integrations", key, len(result.succeeded) + len(result.failed))
        return result

    async def execute_hook_async(self, hook: HookName | str) -> HookResult:
        """Run a hook on every integration, awaiting coroutine hooks in order."""
        key = _hook_key(hook)
        result = HookResult(hook=key)
        for integration in self.integrations():
            fn = integration.hook(key)
            if fn is None:
                continue
            try:
                outcome = fn(self._context_factory(key))
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.error("Hook %s failed for integration %s", key, integration.name, exc_info=True)
                result.failed.append(integration.name)
            else:
                result.succeeded.append(integration.name)
        return result

    def get(self, name: str) -> Integration | None:
        with self._lock:
            return self._integrations.get(name)

    def integrations(self) -> tuple[Integration, ...]:
        """Snapshot of registered integrations in registration order."""
        with self._lock:
            return tuple(self._integrations.values())

    def names(self) -> list[str]:
        with self._lock:
            return list(self._integrations)

    def clear_all(self) -> None:
        with self._lock:
            self._integrations.clear()

    def stats(self) -> dict[str, Any]:
        integrations = self.integrations()
        hook_counts: dict[str, int] = {}
        for integration in integrations:
            for hook in integration.hooks:
                hook_counts[hook] = hook_counts.get(hook, 0) + 1
        return {
            "total": len(integrations),
            "withHooks": sum(1 for i in integrations if i.hooks),
            "hookCounts": hook_counts,
        }

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._integrations

    def __len__(self) -> int:
        with self._lock:
            return len(self._integrations)
