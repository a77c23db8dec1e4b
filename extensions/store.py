"""Manifest store for VoxNest extensions.

Reads and writes ``<root>/<id>/manifest.json`` and the ``<root>/extensions.json``
index. Every write replaces the whole file atomically (temp file, fsync,
rename), so a reader never sees a half written document and a write is durable
once it returns.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

import pydantic

from extensions.errors import ConflictError, NotFoundError, ParseError, StorageError, ValidationError
from extensions.manifest import ExtensionIndex, ExtensionManifest, utcnow

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"
INDEX_FILE = "extensions.json"


def read_json(path: Path) -> Any:
    """Read a JSON document.

    Raises:
        NotFoundError: If the file does not exist.
        ParseError: If the file is not valid JSON.
        StorageError: If the file cannot be read.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise NotFoundError(f"File not found: {path}")
    except OSError as e:
        raise StorageError(f"Failed to read {path}: {e}") from e

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in {path}: {e}") from e


def atomic_write_json(path: Path, data: Any) -> None:
    """Write a JSON document through a temp file in the same directory.

    Raises:
        StorageError: If the file cannot be written.
    """
    payload = json.dumps(data, indent=2, ensure_ascii=False, default=str)
    tmp_name: str | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as f:
            tmp_name = f.name
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as e:
        raise StorageError(f"Failed to write {path}: {e}") from e
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)


def describe_validation_error(exc: pydantic.ValidationError) -> list[str]:
    """Flatten pydantic errors into ``field: message`` strings."""
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err["loc"])
        messages.append(f"{location}: {err['msg']}" if location else err["msg"])
    return messages


def parse_manifest(data: Any, source: str = "manifest") -> ExtensionManifest:
    """Validate a decoded manifest document.

    Raises:
        ValidationError: If required fields are missing or malformed.
    """
    if not isinstance(data, dict):
        raise ValidationError(f"Invalid {source}: expected a JSON object")
    try:
        return ExtensionManifest.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid {source}", errors=describe_validation_error(e)) from e


class ManifestStore:
    """Persistence for manifests and the extensions index.

    Example:
        >>> store = ManifestStore(Path("extensions"))
        >>> manifest = store.read_manifest("cookie-consent")
        >>> index = store.read_index()
    """

    def __init__(self, root: Path | str, index_file: str = INDEX_FILE):
        self.root = Path(root)
        self.index_path = self.root / index_file
        self._index_lock = threading.Lock()

    def manifest_path(self, extension_id: str, directory: Path | None = None) -> Path:
        return (directory or self.root / extension_id) / MANIFEST_FILE

    def read_manifest(self, extension_id: str, directory: Path | None = None) -> ExtensionManifest:
        """Read and validate an extension's manifest.

        Args:
            extension_id: Extension id (used for the default directory and errors).
            directory: Extension directory, when it differs from ``<root>/<id>``.

        Raises:
            NotFoundError: If the manifest does not exist.
            ParseError: If the manifest is not valid JSON.
            ValidationError: If the manifest violates the schema.
        """
        path = self.manifest_path(extension_id, directory)
        try:
            data = read_json(path)
        except NotFoundError:
            raise NotFoundError(f"Manifest not found for {extension_id}", extension_id=extension_id)
        return parse_manifest(data, source=str(path))

    def write_manifest(
        self,
        extension_id: str,
        manifest: ExtensionManifest,
        directory: Path | None = None,
    ) -> None:
        """Replace an extension's manifest."""
        atomic_write_json(self.manifest_path(extension_id, directory), manifest.to_json_dict())

    def read_index_raw(self) -> dict[str, Any] | None:
        """Return the index document as stored, or None when there is none."""
        if not self.index_path.exists():
            return None
        return read_json(self.index_path)

    def read_index(self) -> ExtensionIndex:
        """Read the extensions index.

        A missing index is treated as empty with revision 0.

        Raises:
            ParseError: If the index is not valid JSON or does not match the schema.
        """
        data = self.read_index_raw()
        if data is None:
            return ExtensionIndex()
        try:
            return ExtensionIndex.model_validate(data)
        except pydantic.ValidationError as e:
            raise ParseError(
                f"Invalid extensions index: {self.index_path}",
                errors=describe_validation_error(e),
            ) from e

    def write_index(self, index: ExtensionIndex, expected_revision: int | None = None) -> ExtensionIndex:
        """Replace the extensions index.

        Args:
            index: Index to write. Its meta block is refreshed before writing.
            expected_revision: Revision the caller read. When given and the stored
                revision differs, the write is rejected.

        Returns:
            The index as written.

        Raises:
            ConflictError: If the stored revision moved since the caller read it.
            StorageError: If the index cannot be written.
        """
        with self._index_lock:
            current = self.read_index().meta.revision if self.index_path.exists() else 0
            if expected_revision is not None and current != expected_revision:
                raise ConflictError(
                    f"Extensions index changed concurrently "
                    f"(expected revision {expected_revision}, found {current})"
                )
            index.meta.revision = max(current, index.meta.revision) + 1
            index.meta.last_updated = utcnow()
            index.meta.total_extensions = len(index.extensions)
            atomic_write_json(self.index_path, index.to_json_dict())
            logger.debug("Wrote extensions index revision %d", index.meta.revision)
        return index
