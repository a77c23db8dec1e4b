"""Extension lifecycle manager for VoxNest.

The only component that changes whether an extension is installed or
enabled. Each operation runs under a per-extension lock, writes the manifest
first and the index second, and restores the manifest if the index write
fails.
"""

from __future__ import annotations

import logging
import threading
from contextlib import ExitStack, contextmanager, nullcontext
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Iterable, Iterator, TypeVar

from extensions.errors import ConflictError, ExtensionError, ForbiddenError, NotFoundError, ValidationError
from extensions.installer import ArchiveSource, ExtensionInstaller
from extensions.manifest import (
    ExtensionIndex,
    ExtensionManifest,
    IndexEntry,
    LifecycleState,
    utcnow,
)
from extensions.registry import ExtensionRegistry
from extensions.state_machine import LifecycleStateMachine

if TYPE_CHECKING:
    from extensions.config_store import ConfigStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BatchItemResult:
    """Outcome of one extension in a batch status change."""

    id: str
    success: bool
    message: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "success": self.success,
            "message": self.message,
            "errorCode": self.error_code,
        }


class LifecycleManager:
    """Install, uninstall, enable, disable, reload and activate extensions.

    Example:
        >>> manager = LifecycleManager(registry, ExtensionInstaller(root))
        >>> manifest = manager.install(Path("cookie-consent.zip"), user_id="admin")
        >>> manager.enable(manifest.id)
        >>> manager.activate("dark-theme")
    """

    def __init__(
        self,
        registry: ExtensionRegistry,
        installer: ExtensionInstaller,
        config_store: ConfigStore | None = None,
        protected_extensions: list[str] | tuple[str, ...] = (),
        purge_config_on_uninstall: bool = False,
        default_theme: str | None = None,
    ):
        """Initialize the lifecycle manager.

        Args:
            registry: Registry for the extensions root.
            installer: Archive installer for the same root.
            config_store: Config store, used to purge configs on uninstall.
            protected_extensions: Ids that can never be uninstalled.
            purge_config_on_uninstall: Default for ``uninstall(purge_config=None)``.
            default_theme: Theme restored by ``reset_to_default``. When unset,
                the first builtin theme is used.
        """
        self.registry = registry
        self.store = registry.store
        self.installer = installer
        self.config_store = config_store
        self.protected_extensions = set(protected_extensions)
        self.purge_config_on_uninstall = purge_config_on_uninstall
        self.default_theme = default_theme or None
        self.state_machine = LifecycleStateMachine()

        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._index_lock = threading.RLock()
        self._theme_lock = threading.RLock()

    def _lock_for(self, extension_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(extension_id)
            if lock is None:
                lock = self._locks[extension_id] = threading.RLock()
            return lock

    @contextmanager
    def _locked(self, extension_ids: Iterable[str]) -> Iterator[None]:
        """Hold several per-extension locks, taken in sorted id order."""
        with ExitStack() as stack:
            for extension_id in sorted(set(extension_ids)):
                stack.enter_context(self._lock_for(extension_id))
            yield

    @contextmanager
    def _operation(self, extension_id: str) -> Iterator[None]:
        with self._lock_for(extension_id), self.registry.loading(extension_id):
            yield

    def _update_index(self, mutate: Callable[[ExtensionIndex], T]) -> T:
        """Read-modify-write the index with lost-update detection."""
        with self._index_lock:
            index = self.store.read_index()
            revision = index.meta.revision
            result = mutate(index)
            self.store.write_index(index, expected_revision=revision)
            return result

    def _current_state(self, manifest: ExtensionManifest, indexed: IndexEntry | None) -> LifecycleState:
        # The manifest's enabled flag wins over whatever the index recorded
        if manifest.enabled:
            return self.state_machine.enabled_state(manifest.type)
        if indexed and indexed.state in (LifecycleState.INSTALLED, LifecycleState.DISABLED):
            return indexed.state
        return LifecycleState.INSTALLED if indexed is None else LifecycleState.DISABLED

    def _set_state(
        self,
        index: ExtensionIndex,
        manifest: ExtensionManifest,
        state: LifecycleState,
    ) -> IndexEntry:
        entry = index.get(manifest.id)
        if entry is None:
            entry = IndexEntry.from_manifest(manifest, state=state)
        entry.enabled = manifest.enabled
        entry.state = state
        entry.version = manifest.version
        entry.name = manifest.name
        if state == LifecycleState.ACTIVE:
            entry.activated_at = utcnow()
        index.upsert(entry)
        return entry

    def _commit(
        self,
        changes: list[tuple[ExtensionManifest, LifecycleState]],
    ) -> None:
        """Write manifests, then the index; restore manifests if the index write fails."""
        originals: list[ExtensionManifest] = []
        try:
            for manifest, _ in changes:
                originals.append(self.registry.read_manifest(manifest.id))
                self.registry.write_manifest(manifest.id, manifest)

            def apply(index: ExtensionIndex) -> None:
                for manifest, state in changes:
                    self._set_state(index, manifest, state)

            self._update_index(apply)
        except ExtensionError:
            for original in originals:
                self.registry.write_manifest(original.id, original)
            raise

    def install(self, archive: ArchiveSource, user_id: str | None = None) -> ExtensionManifest:
        """Install an extension from a zip archive.

        The extension is installed disabled.

        Args:
            archive: Zip archive bytes, path, or binary file object.
            user_id: Id of the installing user, recorded in the index.

        Returns:
            The installed manifest.

        Raises:
            ValidationError: If the archive or its manifest is invalid.
            ConflictError: If an extension with the same id already exists.
            StorageError: If extraction or a write fails.
        """
        data = self.installer.read(archive)
        inspection = self.installer.inspect(data)
        manifest = inspection.manifest
        extension_id = manifest.id
        self.state_machine.check(
            extension_id, LifecycleState.UPLOADED, LifecycleState.INSTALLED, manifest.type
        )

        with self._operation(extension_id):
            if extension_id in self.store.read_index():
                raise ConflictError(
                    f"Extension already installed: {extension_id}", extension_id=extension_id
                )

            directory = self.installer.extract(data, inspection)
            try:
                manifest.enabled = False
                self.store.write_manifest(extension_id, manifest, directory=directory)
                self._update_index(lambda index: self._add_entry(index, manifest, user_id))
            except ExtensionError:
                self.installer.remove(directory)
                raise

        logger.info("Installed extension: %s v%s (%s)", extension_id, manifest.version, manifest.type.value)
        return manifest

    def _add_entry(
        self,
        index: ExtensionIndex,
        manifest: ExtensionManifest,
        user_id: str | None,
        state: LifecycleState = LifecycleState.INSTALLED,
    ) -> IndexEntry:
        if manifest.id in index:
            raise ConflictError(f"Extension already installed: {manifest.id}", extension_id=manifest.id)
        entry = IndexEntry.from_manifest(manifest, state=state, installed_by=user_id)
        index.upsert(entry)
        return entry

    def install_discovered(self, extension_id: str, user_id: str | None = None) -> ExtensionManifest:
        """Register an extension whose directory is already under the root.

        Raises:
            NotFoundError: If there is no such directory.
            ConflictError: If the extension is already in the index.
        """
        with self._operation(extension_id):
            manifest = self.registry.read_manifest(extension_id)
            state = self._current_state(manifest, None)
            self._update_index(lambda index: self._add_entry(index, manifest, user_id, state))

        logger.info("Registered discovered extension: %s", extension_id)
        return manifest

    def enable(self, extension_id: str) -> ExtensionManifest:
        """Enable an extension. Enabling a theme activates it.

        Returns:
            The updated manifest.

        Raises:
            NotFoundError: If the extension does not exist.
        """
        # Themes take the theme lock before the per-extension lock
        if self.registry.read_manifest(extension_id).is_theme:
            return self.activate(extension_id)

        with self._operation(extension_id):
            manifest = self.registry.read_manifest(extension_id)
            indexed = self.store.read_index().get(extension_id)
            from_state = self._current_state(manifest, indexed)
            if from_state == LifecycleState.ENABLED:
                if indexed is None or indexed.state != LifecycleState.ENABLED or not indexed.enabled:
                    self._commit([(manifest, LifecycleState.ENABLED)])
                return manifest

            self.state_machine.check(extension_id, from_state, LifecycleState.ENABLED, manifest.type)
            manifest.enabled = True
            self._commit([(manifest, LifecycleState.ENABLED)])

        logger.info("Enabled extension: %s", extension_id)
        return manifest

    def disable(self, extension_id: str) -> ExtensionManifest:
        """Disable an extension. Disabling an already disabled extension is a no-op.

        Returns:
            The updated manifest.

        Raises:
            NotFoundError: If the extension does not exist.
        """
        with self._operation(extension_id):
            manifest = self.registry.read_manifest(extension_id)
            indexed = self.store.read_index().get(extension_id)
            from_state = self._current_state(manifest, indexed)
            if not manifest.enabled:
                if indexed is None:
                    self._commit([(manifest, from_state)])
                elif indexed.enabled:
                    self._commit([(manifest, LifecycleState.DISABLED)])
                return manifest

            self.state_machine.check(extension_id, from_state, LifecycleState.DISABLED, manifest.type)
            manifest.enabled = False
            self._commit([(manifest, LifecycleState.DISABLED)])

        logger.info("Disabled extension: %s", extension_id)
        return manifest

    def toggle(self, extension_id: str, enabled: bool) -> ExtensionManifest:
        if enabled:
            return self.enable(extension_id)
        return self.disable(extension_id)

    def activate(self, extension_id: str) -> ExtensionManifest:
        """Make a theme the single active theme.

        Every other enabled theme is disabled in the same commit. Plugins are
        not touched.

        Raises:
            NotFoundError: If the extension does not exist.
            ValidationError: If the extension is not a theme.
        """
        with self._theme_lock:
            # Every theme a commit may rewrite is locked, not just the target
            theme_ids = [m.id for m in self.registry.discover() if m.is_theme]
            with self._locked([extension_id, *theme_ids]), self.registry.loading(extension_id):
                manifest = self.registry.read_manifest(extension_id)
                if not manifest.is_theme:
                    raise ValidationError(
                        f"Only themes can be activated: {extension_id} is a {manifest.type.value}",
                        extension_id=extension_id,
                    )

                index = self.store.read_index()
                changes: list[tuple[ExtensionManifest, LifecycleState]] = []
                for other in self.registry.discover():
                    if other.id == extension_id or not other.is_theme:
                        continue
                    other_indexed = index.get(other.id)
                    if other.enabled or (other_indexed and other_indexed.state == LifecycleState.ACTIVE):
                        other.enabled = False
                        changes.append((other, LifecycleState.DISABLED))

                indexed = index.get(extension_id)
                from_state = self._current_state(manifest, indexed)
                already_active = (
                    from_state == LifecycleState.ACTIVE
                    and indexed is not None
                    and indexed.state == LifecycleState.ACTIVE
                )
                if already_active and not changes:
                    return manifest
                if from_state != LifecycleState.ACTIVE:
                    self.state_machine.check(extension_id, from_state, LifecycleState.ACTIVE, manifest.type)

                manifest.enabled = True
                changes.append((manifest, LifecycleState.ACTIVE))
                self._commit(changes)

        for other, _ in changes[:-1]:
            logger.info("Deactivated theme: %s", other.id)
        logger.info("Activated theme: %s", extension_id)
        return manifest

    def uninstall(self, extension_id: str, purge_config: bool | None = None) -> None:
        """Remove an extension's directory and index entry.

        Args:
            extension_id: Extension to remove.
            purge_config: Also delete the stored config. Defaults to the
                manager's ``purge_config_on_uninstall`` setting.

        Raises:
            NotFoundError: If the extension is neither on disk nor indexed.
            ForbiddenError: If the extension is protected.
        """
        with self._operation(extension_id):
            indexed = self.store.read_index().get(extension_id)
            try:
                directory: Path | None = self.registry.resolve(extension_id)
            except NotFoundError:
                directory = None
            if directory is None and indexed is None:
                raise NotFoundError.extension(extension_id)

            manifest: ExtensionManifest | None = None
            if directory is not None:
                try:
                    manifest = self.registry.read_manifest(extension_id)
                except ExtensionError as e:
                    logger.warning("Uninstalling %s with unreadable manifest: %s", extension_id, e.message)

            if extension_id in self.protected_extensions or (manifest and manifest.builtin):
                raise ForbiddenError(
                    f"Extension is protected and cannot be uninstalled: {extension_id}",
                    extension_id=extension_id,
                )

            if manifest is not None:
                from_state = self._current_state(manifest, indexed)
                self.state_machine.check(
                    extension_id, from_state, LifecycleState.UNINSTALLED, manifest.type
                )

            if directory is not None:
                self.installer.remove(directory)
            if indexed is not None:
                self._update_index(lambda index: index.remove(extension_id))

            purge = self.purge_config_on_uninstall if purge_config is None else purge_config
            if purge and self.config_store is not None:
                self.config_store.delete(extension_id, missing_ok=True)

        logger.info("Uninstalled extension: %s%s", extension_id, " (config purged)" if purge else "")

    def reload(self, extension_id: str) -> ExtensionManifest:
        """Disable then enable an extension.

        If enabling fails the extension stays disabled and the error propagates.
        """
        manifest = self.registry.read_manifest(extension_id)
        # Themes take the theme lock before the per-extension lock
        theme_lock = self._theme_lock if manifest.is_theme else nullcontext()
        with theme_lock, self._lock_for(extension_id):
            self.disable(extension_id)
            manifest = self.enable(extension_id)

        logger.info("Reloaded extension: %s", extension_id)
        return manifest

    def active_theme(self) -> ExtensionManifest:
        """Return the active theme.

        Raises:
            NotFoundError: If no theme is active.
        """
        for manifest in self.registry.discover():
            if manifest.is_theme and manifest.enabled:
                return manifest
        raise NotFoundError("No active theme")

    def default_theme_id(self) -> str:
        """Id of the configured default theme, or the first builtin theme.

        Raises:
            NotFoundError: If there is no default theme.
        """
        if self.default_theme:
            return self.default_theme
        builtin = sorted(m.id for m in self.registry.discover() if m.is_theme and m.builtin)
        if not builtin:
            raise NotFoundError("No default theme configured")
        return builtin[0]

    def reset_to_default(self) -> ExtensionManifest:
        """Activate the default theme."""
        theme_id = self.default_theme_id()
        manifest = self.activate(theme_id)
        logger.info("Reset to default theme: %s", theme_id)
        return manifest

    def batch_set_status(self, extension_ids: Iterable[str], enabled: bool) -> list[BatchItemResult]:
        """Enable or disable several extensions, one at a time.

        A failure is recorded for that id and the rest still run. The
        default theme is never disabled. Enabling several themes leaves the
        last one active.

        Returns:
            One result per distinct id, in the order given.
        """
        try:
            default_id: str | None = self.default_theme_id()
        except NotFoundError:
            default_id = None

        action = "enable" if enabled else "disable"
        results: list[BatchItemResult] = []
        for extension_id in dict.fromkeys(extension_ids):
            try:
                if not enabled and extension_id == default_id:
                    raise ForbiddenError(
                        f"The default theme cannot be disabled: {extension_id}",
                        extension_id=extension_id,
                    )
                self.toggle(extension_id, enabled)
            except ExtensionError as e:
                logger.warning("Batch %s failed for %s: %s", action, extension_id, e.message)
                results.append(BatchItemResult(extension_id, False, e.message, e.kind))
            else:
                results.append(BatchItemResult(extension_id, True))

        logger.info(
            "Batch %s: %d succeeded, %d failed",
            action,
            sum(1 for r in results if r.success),
            sum(1 for r in results if not r.success),
        )
        return results
