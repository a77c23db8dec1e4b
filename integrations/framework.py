"""Extension framework - the client-side host for enabled extensions.

Owns a slot manager and an integration manager, loads extension modules
into them, and converges on the backend's list of active extensions.
Instances are constructed explicitly and passed to whoever needs them.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping

import pydantic

from extensions.errors import ExtensionError
from extensions.manifest import ExtensionManifest

from .base import ContributionKind, HookContext, HookName, Integration, SlotRegistration
from .manager import IntegrationManager
from .resolver import resolve_contribution
from .slots import SlotManager

if TYPE_CHECKING:
    from .client import ExtensionApiClient

logger = logging.getLogger(__name__)

PLUGIN_COMPONENT_SLOT = "plugin.components"


class FrameworkStatus(str, Enum):
    INITIALIZING = "initializing"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class FrameworkSnapshot:
    """Immutable view of what the framework currently hosts."""

    status: FrameworkStatus
    extensions: tuple[str, ...]
    integrations: tuple[str, ...]
    slots: Mapping[str, tuple[str, ...]]


@dataclass
class SyncResult:
    """What a sync changed."""

    loaded: list[str] = field(default_factory=list)
    unloaded: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ExtensionScope:
    """The framework as seen by one extension's ``register`` function.

    Integrations and slot components registered through the scope are
    tagged with the extension id, so unloading the extension removes them.
    Other attributes are read from the framework.
    """

    def __init__(self, framework: ExtensionFramework, extension_id: str):
        self._framework = framework
        self.extension_id = extension_id

    def register(self, integration: Integration) -> None:
        if integration.source != self.extension_id:
            integration = replace(integration, source=self.extension_id)
        self._framework.register(integration)

    def register_component(self, slot_id: str, registration: SlotRegistration) -> None:
        if registration.source != self.extension_id:
            registration = replace(registration, source=self.extension_id)
        self._framework.register_component(slot_id, registration)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._framework, name)


class ExtensionFramework:
    """Host for extension slots and integrations.

    Example:
        >>> framework = ExtensionFramework()
        >>> framework.initialize({"debug": True})
        >>> framework.load_extension(manifest, cookie_consent_module)
        >>> framework.slots.resolve("app.footer")
        >>> framework.destroy()
    """

    def __init__(self, config: Mapping[str, Any] | None = None):
        self.config: dict[str, Any] = dict(config or {})
        self.status = FrameworkStatus.INITIALIZING
        self.error: str | None = None
        self.slots = SlotManager()
        self.integrations = IntegrationManager(context_factory=self._context)
        self._extensions: dict[str, ExtensionManifest] = {}
        self._lock = threading.RLock()

    def _context(self, hook: str) -> HookContext:
        return HookContext(hook=hook, framework=self, config=MappingProxyType(dict(self.config)))

    @property
    def is_ready(self) -> bool:
        return self.status == FrameworkStatus.READY

    def initialize(self, config: Mapping[str, Any] | None = None) -> None:
        """Mark the framework ready and run the startup hooks.

        Calling initialize on a ready framework does nothing.
        """
        with self._lock:
            if self.is_ready:
                logger.debug("Framework already initialized")
                return
            try:
                if config:
                    self.config = deep_merge(self.config, config)
                self.status = FrameworkStatus.READY
                self.error = None
                self.integrations.ready = True
                for hook in (HookName.FRAMEWORK_READY, HookName.COMPONENTS_READY, HookName.APP_STARTED):
                    self.integrations.execute_hook(hook)
            except Exception as e:
                self.status = FrameworkStatus.ERROR
                self.error = str(e)
                self.integrations.ready = False
                logger.exception("Framework initialization failed")
                raise

        logger.info("Extension framework ready (%d integrations)", len(self.integrations))

    def destroy(self) -> None:
        """Run ``app:destroy`` and drop everything registered."""
        with self._lock:
            self.integrations.execute_hook(HookName.APP_DESTROY)
            self.slots.clear_all()
            self.integrations.clear_all()
            self.integrations.ready = False
            self._extensions.clear()
            self.status = FrameworkStatus.INITIALIZING
        logger.info("Extension framework destroyed")

    def register(self, integration: Integration) -> None:
        self.integrations.register(integration)

    def register_component(self, slot_id: str, registration: SlotRegistration) -> None:
        self.slots.register(slot_id, registration)

    def load_extension(self, manifest: ExtensionManifest, module: Any) -> None:
        """Load an extension's client module.

        A module that is already loaded is unloaded first. A ``register``
        function receives an ExtensionScope; if it raises, whatever it had
        registered is removed.

        Raises:
            ValidationError: If the module has an unknown shape.
            ExtensionError: If the module's ``register`` function fails.
        """
        contribution = resolve_contribution(manifest.id, module)
        with self._lock:
            if manifest.id in self._extensions:
                self.unload_extension(manifest.id)

            if contribution.kind == ContributionKind.INTEGRATION:
                self.integrations.register(contribution.integration)
            elif contribution.kind == ContributionKind.REGISTER:
                try:
                    contribution.register(ExtensionScope(self, manifest.id))
                except Exception as e:
                    self.unload_extension(manifest.id)
                    raise ExtensionError(
                        f"Failed to register extension {manifest.id}: {e}", extension_id=manifest.id
                    ) from e
            else:
                self.slots.register(
                    PLUGIN_COMPONENT_SLOT,
                    SlotRegistration(
                        component=contribution.component,
                        source=manifest.id,
                        name=manifest.name,
                        priority=0,
                    ),
                )
            self._extensions[manifest.id] = manifest

        logger.info("Loaded extension %s (%s)", manifest.id, contribution.kind.value)

    def unload_extension(self, extension_id: str) -> bool:
        """Remove everything an extension registered.

        Slot registrations are matched by source. Integrations are matched by
        source and by name, including names namespaced under the extension id.
        """
        with self._lock:
            was_loaded = self._extensions.pop(extension_id, None) is not None
            removed_slots = self.slots.unregister_by_source(extension_id)
            removed_by_name = self.integrations.unregister(extension_id)
            removed_by_source = self.integrations.unregister_by_source(extension_id)

        changed = was_loaded or bool(removed_slots) or removed_by_name or bool(removed_by_source)
        if changed:
            logger.info("Unloaded extension %s", extension_id)
        return changed

    def loaded_extensions(self) -> list[str]:
        with self._lock:
            return list(self._extensions)

    def sync(self, client: ExtensionApiClient, modules: Mapping[str, Any]) -> SyncResult:
        """Converge on the backend's list of active extensions.

        Args:
            client: API client for the backend.
            modules: Client modules by extension id.

        Returns:
            What was loaded, unloaded, had no module, or failed to load.
        """
        active = {entry["id"]: entry for entry in client.list_extensions(status="active")}
        result = SyncResult()

        for extension_id in self.loaded_extensions():
            if extension_id not in active:
                self.unload_extension(extension_id)
                result.unloaded.append(extension_id)

        loaded = set(self.loaded_extensions())
        for extension_id, entry in active.items():
            if extension_id in loaded:
                continue
            module = modules.get(extension_id)
            if module is None:
                logger.warning("No client module for active extension %s", extension_id)
                result.missing.append(extension_id)
                continue
            try:
                manifest = ExtensionManifest.model_validate(entry.get("manifest") or entry)
                self.load_extension(manifest, module)
            except (ExtensionError, pydantic.ValidationError) as e:
                logger.error("Failed to load extension %s: %s", extension_id, e)
                result.failed.append(extension_id)
                continue
            result.loaded.append(extension_id)

        logger.info(
            "Synced extensions: %d loaded, %d unloaded, %d missing",
            len(result.loaded),
            len(result.unloaded),
            len(result.missing),
        )
        return result

    def snapshot(self) -> FrameworkSnapshot:
        with self._lock:
            slots = self.slots.snapshot()
            return FrameworkSnapshot(
                status=self.status,
                extensions=tuple(self._extensions),
                integrations=tuple(self.integrations.names()),
                slots=MappingProxyType(
                    {slot_id: tuple(r.source for r in entries) for slot_id, entries in slots.items()}
                ),
            )

    def stats(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "extensions": len(self.loaded_extensions()),
            "integrations": self.integrations.stats(),
            "slots": self.slots.stats(),
        }
