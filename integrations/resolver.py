"""Contribution resolver - normalizes extension modules into one shape.

An extension's client module can be authored three ways:
- an integration descriptor: an object or mapping with a string ``name`` and ``hooks``
- a register function: an object or mapping with a callable ``register``
- a bare component: any other callable (class or function)

Everything else is rejected.
"""

from __future__ import annotations

from typing import Any, Mapping

from extensions.errors import ValidationError

from .base import Contribution, ContributionKind, Integration


def _field(module: Any, name: str) -> Any:
    if isinstance(module, Mapping):
        return module.get(name)
    return getattr(module, name, None)


def resolve_contribution(source: str, module: Any) -> Contribution:
    """Resolve an extension module to a Contribution.

    Args:
        source: Extension id the module belongs to.
        module: The loaded module, descriptor, or component.

    Returns:
        Normalized contribution.

    Raises:
        ValidationError: If the module matches none of the supported shapes.
    """
    if isinstance(module, Integration):
        if module.source is None:
            module = Integration(name=module.name, hooks=module.hooks, source=source)
        return Contribution(kind=ContributionKind.INTEGRATION, source=source, integration=module)

    name = _field(module, "name")
    hooks = _field(module, "hooks")
    if isinstance(name, str) and isinstance(hooks, Mapping):
        integration = Integration(name=name, hooks=hooks, source=source)
        return Contribution(kind=ContributionKind.INTEGRATION, source=source, integration=integration)

    register = _field(module, "register")
    if callable(register):
        return Contribution(kind=ContributionKind.REGISTER, source=source, register=register)

    if callable(module) and not isinstance(module, Mapping):
        return Contribution(kind=ContributionKind.COMPONENT, source=source, component=module)

    raise ValidationError(f"Unknown plugin format for: {source}", extension_id=source)
