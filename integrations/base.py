"""Base types for the client integration registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping


class HookName(str, Enum):
    """Lifecycle hooks an integration can subscribe to."""

    FRAMEWORK_READY = "framework:ready"
    COMPONENTS_READY = "components:ready"
    APP_START = "app:start"
    APP_STARTED = "app:started"
    APP_DESTROY = "app:destroy"


# Hooks replayed for an integration registered after the framework is ready
READY_HOOKS = (HookName.FRAMEWORK_READY, HookName.COMPONENTS_READY, HookName.APP_STARTED)


@dataclass(frozen=True)
class HookContext:
    """Argument passed to every hook call."""

    hook: str
    framework: Any = None
    config: Mapping[str, Any] = field(default_factory=dict)


Hook = Callable[[HookContext], Any]


@dataclass(frozen=True)
class Integration:
    """A named set of lifecycle hooks.

    Hook functions take a HookContext and may be plain functions or
    coroutine functions.
    """

    name: str
    hooks: Mapping[str, Hook] = field(default_factory=dict)
    source: str | None = None

    def __post_init__(self) -> None:
        normalized = {
            (key.value if isinstance(key, HookName) else str(key)): fn
            for key, fn in dict(self.hooks).items()
        }
        object.__setattr__(self, "hooks", MappingProxyType(normalized))

    def hook(self, hook: HookName | str) -> Hook | None:
        key = hook.value if isinstance(hook, HookName) else hook
        return self.hooks.get(key)


@dataclass(frozen=True)
class SlotRegistration:
    """A component registered into a named slot."""

    component: Any
    source: str
    priority: int = 0
    name: str | None = None
    condition: Callable[[Mapping[str, Any]], bool] | None = None
    props: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResolvedComponent:
    """A slot component whose condition passed, with merged props."""

    component: Any
    source: str
    name: str | None
    props: Mapping[str, Any]


class ContributionKind(str, Enum):
    """Shape of an extension's client-side module."""

    INTEGRATION = "integration"
    REGISTER = "register"
    COMPONENT = "component"


@dataclass(frozen=True)
class Contribution:
    """Normalized extension module; exactly one payload is set, matching ``kind``."""

    kind: ContributionKind
    source: str
    integration: Integration | None = None
    register: Callable[[Any], Any] | None = None
    component: Any = None
