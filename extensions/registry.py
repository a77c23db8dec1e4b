"""Extension registry for VoxNest.

Discovers extensions on disk, resolves ids to directories, and merges what
is on disk with what the index says into registry entries with a derived
status. The registry never mutates state; that is the lifecycle manager's job.
"""

from __future__ import annotations

import logging
import math
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Iterator

from extensions.errors import ExtensionError, NotFoundError
from extensions.manifest import (
    ID_PATTERN,
    ExtensionIndex,
    ExtensionManifest,
    ExtensionType,
    IndexEntry,
    LifecycleState,
)
from extensions.store import MANIFEST_FILE, ManifestStore

logger = logging.getLogger(__name__)

DEFAULT_IGNORED_DIRS = ("node_modules",)


class ExtensionStatus(str, Enum):
    """Derived display status of a registry entry."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"
    LOADING = "loading"


@dataclass
class RegistryEntry:
    """Merged view of an extension on disk and in the index."""

    id: str
    name: str
    type: ExtensionType | None
    version: str = ""
    description: str = ""
    author: str = ""
    enabled: bool = False
    installed: bool = False
    status: ExtensionStatus = ExtensionStatus.INACTIVE
    state: LifecycleState | None = None
    path: Path | None = None
    file_size: int = 0
    error: str | None = None
    tags: list[str] = field(default_factory=list)
    slots: list[str] = field(default_factory=list)
    installed_at: datetime | None = None
    manifest: ExtensionManifest | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value if self.type else None,
            "version": self.version,
            "description": self.description,
            "author": self.author,
            "enabled": self.enabled,
            "installed": self.installed,
            "status": self.status.value,
            "state": self.state.value if self.state else None,
            "path": str(self.path) if self.path else None,
            "fileSize": self.file_size,
            "error": self.error,
            "tags": list(self.tags),
            "slots": list(self.slots),
            "installedAt": self.installed_at.isoformat() if self.installed_at else None,
            "manifest": self.manifest.to_json_dict() if self.manifest else None,
        }


@dataclass
class Page:
    """One page of query results."""

    items: list[RegistryEntry]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "total": self.total,
            "pageNumber": self.page,
            "pageSize": self.page_size,
            "totalPages": self.total_pages,
        }


def _directory_size(path: Path) -> int:
    total = 0
    for item in path.rglob("*"):
        if item.is_file():
            total += item.stat().st_size
    return total


class ExtensionRegistry:
    """Discovery and lookup of extensions under an extensions root.

    Example:
        >>> registry = ExtensionRegistry(ManifestStore("extensions"))
        >>> [m.id for m in registry.discover()]
        ['cookie-consent', 'dark-theme']
        >>> registry.resolve("cookie-consent")
        PosixPath('extensions/cookie-consent')
    """

    def __init__(
        self,
        store: ManifestStore,
        aliases: dict[str, str] | None = None,
        ignored_dirs: tuple[str, ...] | list[str] = DEFAULT_IGNORED_DIRS,
    ):
        """Initialize the registry.

        Args:
            store: Manifest store for the extensions root.
            aliases: Static table of extension id to directory name.
            ignored_dirs: Directory names never treated as extensions.
        """
        self.store = store
        self.aliases = dict(aliases or {})
        self.ignored_dirs = set(ignored_dirs)
        self._loading: dict[str, int] = {}
        self._loading_lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self.store.root

    def _candidate_dirs(self) -> Iterator[Path]:
        if not self.root.is_dir():
            return
        for path in self.root.iterdir():
            if not path.is_dir():
                continue
            if path.name.startswith(".") or path.name in self.ignored_dirs:
                logger.debug("Skipping directory: %s", path.name)
                continue
            if not (path / MANIFEST_FILE).is_file():
                continue
            yield path

    def discover(self) -> list[ExtensionManifest]:
        """Find every extension directory with a readable manifest.

        Unreadable manifests are logged and skipped.

        Returns:
            Manifests in filesystem listing order.
        """
        manifests = []
        for path in self._candidate_dirs():
            try:
                manifests.append(self.store.read_manifest(path.name, directory=path))
            except ExtensionError as e:
                logger.warning("Skipping extension %s: %s", path.name, e.message)
        return manifests

    def resolve(self, extension_id: str) -> Path:
        """Resolve an extension id to its directory.

        Raises:
            NotFoundError: If neither the id nor an alias maps to a directory.
        """
        if ID_PATTERN.match(extension_id):
            direct = self.root / extension_id
            if direct.is_dir():
                return direct
            alias = self.aliases.get(extension_id)
            if alias and (self.root / alias).is_dir():
                return self.root / alias
        raise NotFoundError.extension(extension_id)

    def exists(self, extension_id: str) -> bool:
        try:
            self.resolve(extension_id)
        except NotFoundError:
            return False
        return True

    def read_manifest(self, extension_id: str) -> ExtensionManifest:
        """Read the manifest of an extension by id (alias aware)."""
        return self.store.read_manifest(extension_id, directory=self.resolve(extension_id))

    def write_manifest(self, extension_id: str, manifest: ExtensionManifest) -> None:
        self.store.write_manifest(extension_id, manifest, directory=self.resolve(extension_id))

    @contextmanager
    def loading(self, extension_id: str) -> Iterator[None]:
        """Mark an extension as busy for the duration of a lifecycle operation."""
        with self._loading_lock:
            self._loading[extension_id] = self._loading.get(extension_id, 0) + 1
        try:
            yield
        finally:
            with self._loading_lock:
                remaining = self._loading.get(extension_id, 1) - 1
                if remaining > 0:
                    self._loading[extension_id] = remaining
                else:
                    self._loading.pop(extension_id, None)

    def is_loading(self, extension_id: str) -> bool:
        with self._loading_lock:
            return extension_id in self._loading

    def _status(self, entry: RegistryEntry) -> ExtensionStatus:
        if self.is_loading(entry.id):
            return ExtensionStatus.LOADING
        if entry.error:
            return ExtensionStatus.ERROR
        if entry.installed and entry.enabled:
            return ExtensionStatus.ACTIVE
        return ExtensionStatus.INACTIVE

    def _entry_from_manifest(
        self,
        manifest: ExtensionManifest,
        path: Path,
        indexed: IndexEntry | None,
    ) -> RegistryEntry:
        return RegistryEntry(
            id=manifest.id,
            name=manifest.name,
            type=manifest.type,
            version=manifest.version,
            description=manifest.description,
            author=manifest.author,
            enabled=manifest.enabled,
            installed=indexed is not None,
            state=indexed.state if indexed else None,
            path=path,
            file_size=_directory_size(path),
            tags=list(manifest.tags),
            slots=list(manifest.capabilities.slots),
            installed_at=indexed.installed_at if indexed else None,
            manifest=manifest,
        )

    def entries(self, index: ExtensionIndex | None = None) -> list[RegistryEntry]:
        """Merge discovered extensions with the index.

        Unreadable manifests and index records whose directory is gone are
        reported as entries with status ``error``.
        """
        if index is None:
            index = self.store.read_index()
        reverse_aliases = {directory: ext_id for ext_id, directory in self.aliases.items()}

        entries: list[RegistryEntry] = []
        seen: set[str] = set()
        for path in self._candidate_dirs():
            try:
                manifest = self.store.read_manifest(path.name, directory=path)
            except ExtensionError as e:
                ext_id = reverse_aliases.get(path.name, path.name)
                indexed = index.get(ext_id)
                entries.append(
                    RegistryEntry(
                        id=ext_id,
                        name=indexed.name if indexed else ext_id,
                        type=indexed.type if indexed else None,
                        installed=indexed is not None,
                        path=path,
                        error=e.message,
                    )
                )
                seen.add(ext_id)
                continue
            entries.append(self._entry_from_manifest(manifest, path, index.get(manifest.id)))
            seen.add(manifest.id)

        for indexed in index.extensions:
            if indexed.id in seen:
                continue
            entries.append(
                RegistryEntry(
                    id=indexed.id,
                    name=indexed.name,
                    type=indexed.type,
                    version=indexed.version,
                    description=indexed.description,
                    author=indexed.author,
                    enabled=indexed.enabled,
                    installed=True,
                    state=indexed.state,
                    error="Extension directory is missing",
                    tags=list(indexed.tags),
                    slots=list(indexed.slots),
                    installed_at=indexed.installed_at,
                )
            )

        for entry in entries:
            entry.status = self._status(entry)
        return entries

    def get_entry(self, extension_id: str) -> RegistryEntry:
        """Get the merged entry for one extension.

        Raises:
            NotFoundError: If the extension is neither on disk nor indexed.
        """
        for entry in self.entries():
            if entry.id == extension_id:
                return entry
        raise NotFoundError.extension(extension_id)

    def query(
        self,
        search: str | None = None,
        extension_type: str | None = None,
        status: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page:
        """Filter, sort by name and paginate registry entries.

        Args:
            search: Case-insensitive match on id, name, description, author and tags.
            extension_type: ``plugin``, ``theme`` or ``all``.
            status: ``active``, ``inactive``, ``error``, ``loading`` or ``all``.
            page: 1-based page number.
            page_size: Items per page.
        """
        items = self.entries()

        if search:
            needle = search.lower()
            items = [
                e
                for e in items
                if needle in e.id.lower()
                or needle in e.name.lower()
                or needle in e.description.lower()
                or needle in e.author.lower()
                or any(needle in tag.lower() for tag in e.tags)
            ]
        if extension_type and extension_type != "all":
            items = [e for e in items if e.type and e.type.value == extension_type]
        if status and status != "all":
            items = [e for e in items if e.status.value == status]

        items.sort(key=lambda e: (e.name.lower(), e.id))
        page = max(page, 1)
        page_size = max(page_size, 1)
        start = (page - 1) * page_size
        return Page(items=items[start : start + page_size], total=len(items), page=page, page_size=page_size)

    def stats(self) -> dict[str, Any]:
        """Summary counts over all registry entries."""
        entries = self.entries()
        by_type: dict[str, int] = {}
        by_status: dict[str, int] = {}
        for entry in entries:
            type_key = entry.type.value if entry.type else "unknown"
            by_type[type_key] = by_type.get(type_key, 0) + 1
            by_status[entry.status.value] = by_status.get(entry.status.value, 0) + 1

        return {
            "totalExtensions": len(entries),
            "activeExtensions": by_status.get(ExtensionStatus.ACTIVE.value, 0),
            "inactiveExtensions": by_status.get(ExtensionStatus.INACTIVE.value, 0),
            "errorExtensions": by_status.get(ExtensionStatus.ERROR.value, 0),
            "totalPlugins": by_type.get(ExtensionType.PLUGIN.value, 0),
            "totalThemes": by_type.get(ExtensionType.THEME.value, 0),
            "extensionsByType": by_type,
            "extensionsByStatus": by_status,
        }

    def validate_structure(self) -> dict[str, Any]:
        """Describe the extensions root for diagnostics."""
        folders = []
        if self.root.is_dir():
            for path in sorted(self.root.iterdir()):
                if not path.is_dir() or path.name.startswith("."):
                    continue
                folders.append(
                    {
                        "name": path.name,
                        "hasManifest": (path / MANIFEST_FILE).is_file(),
                        "ignored": path.name in self.ignored_dirs,
                    }
                )
        return {
            "root": str(self.root),
            "rootExists": self.root.is_dir(),
            "indexExists": self.store.index_path.is_file(),
            "folders": folders,
        }
