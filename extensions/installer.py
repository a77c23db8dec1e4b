"""Extension archive installer for VoxNest.

Validates uploaded zip archives and extracts them into the extensions root.
Index bookkeeping is left to the lifecycle manager.
"""

from __future__ import annotations

import io
import json
import logging
import shutil
import tempfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Union

from extensions.errors import ConflictError, StorageError, ValidationError
from extensions.manifest import ExtensionManifest
from extensions.store import MANIFEST_FILE, parse_manifest

logger = logging.getLogger(__name__)

MAX_ARCHIVE_BYTES = 50 * 1024 * 1024

ALLOWED_FILE_TYPES = (
    ".js",
    ".jsx",
    ".ts",
    ".tsx",
    ".css",
    ".json",
    ".md",
    ".html",
    ".svg",
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
)

# Metadata some archivers add; never extracted
_SKIPPED_PREFIXES = ("__MACOSX/",)

ArchiveSource = Union[bytes, Path, str, BinaryIO]


@dataclass
class ArchiveInspection:
    """Result of validating an archive before extraction."""

    manifest: ExtensionManifest
    prefix: str
    files: list[str] = field(default_factory=list)

    def relative(self, member: str) -> str:
        return member[len(self.prefix) :]


def _read_source(archive: ArchiveSource) -> bytes:
    if isinstance(archive, bytes):
        return archive
    if isinstance(archive, (str, Path)):
        try:
            return Path(archive).read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read archive {archive}: {e}") from e
    return archive.read()


def _is_unsafe(name: str) -> bool:
    if name.startswith(("/", "\\")) or "\\" in name:
        return True
    parts = PurePosixPath(name).parts
    return ".." in parts or (bool(parts) and ":" in parts[0])


class ExtensionInstaller:
    """Validate and extract extension archives.

    Example:
        >>> installer = ExtensionInstaller(Path("extensions"))
        >>> inspection = installer.inspect(Path("cookie-consent.zip").read_bytes())
        >>> installer.extract(data, inspection)
    """

    def __init__(
        self,
        extensions_dir: Path | str,
        max_archive_bytes: int = MAX_ARCHIVE_BYTES,
        allowed_file_types: tuple[str, ...] | list[str] = ALLOWED_FILE_TYPES,
    ):
        """Initialize the installer.

        Args:
            extensions_dir: Extensions root that archives are installed into.
            max_archive_bytes: Largest accepted archive.
            allowed_file_types: File suffixes an archive may contain.
        """
        self.extensions_dir = Path(extensions_dir)
        self.max_archive_bytes = max_archive_bytes
        self.allowed_file_types = tuple(s.lower() for s in allowed_file_types)

    def read(self, archive: ArchiveSource) -> bytes:
        """Read an archive into memory and check its size.

        Raises:
            ValidationError: If the archive is empty or too large.
        """
        data = _read_source(archive)
        if not data:
            raise ValidationError("Archive is empty")
        if len(data) > self.max_archive_bytes:
            raise ValidationError(
                f"Archive is too large ({len(data)} bytes, limit {self.max_archive_bytes})"
            )
        return data

    def inspect(self, data: bytes) -> ArchiveInspection:
        """Validate archive contents and parse its manifest.

        Raises:
            ValidationError: If the archive is not a zip file, contains unsafe
                paths or disallowed file types, lacks a manifest, or its
                manifest is invalid.
        """
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as zf:
                names = [
                    info.filename
                    for info in zf.infolist()
                    if not info.is_dir() and not info.filename.startswith(_SKIPPED_PREFIXES)
                ]
                prefix = self._find_prefix(names)

                errors = []
                for name in names:
                    if _is_unsafe(name):
                        errors.append(f"Unsafe path in archive: {name}")
                    elif PurePosixPath(name).suffix.lower() not in self.allowed_file_types:
                        errors.append(f"File type not allowed: {name}")
                if errors:
                    raise ValidationError("Archive contains invalid files", errors=errors)

                try:
                    manifest_data = json.loads(zf.read(prefix + MANIFEST_FILE).decode("utf-8"))
                except (json.JSONDecodeError, UnicodeDecodeError) as e:
                    raise ValidationError(f"{MANIFEST_FILE} is not valid JSON: {e}") from e
        except zipfile.BadZipFile as e:
            raise ValidationError("Only .zip archives are supported") from e

        manifest = parse_manifest(manifest_data, source=MANIFEST_FILE)
        if manifest.main and prefix + manifest.main not in names:
            raise ValidationError(
                f"Entry file '{manifest.main}' declared in {MANIFEST_FILE} is missing from the archive",
                extension_id=manifest.id,
            )
        return ArchiveInspection(manifest=manifest, prefix=prefix, files=names)

    def _find_prefix(self, names: list[str]) -> str:
        if MANIFEST_FILE in names:
            return ""

        # Unwrap a single top-level directory
        top_levels = {PurePosixPath(name).parts[0] for name in names if PurePosixPath(name).parts}
        if len(top_levels) == 1:
            prefix = f"{top_levels.pop()}/"
            if prefix + MANIFEST_FILE in names:
                return prefix
        raise ValidationError(f"Archive does not contain {MANIFEST_FILE} at its root")

    def extract(self, data: bytes, inspection: ArchiveInspection) -> Path:
        """Extract a validated archive to ``<root>/<id>``.

        Extraction happens in a hidden staging directory under the root, then
        the result is renamed into place, so a failed install leaves nothing
        behind.

        Returns:
            The installed extension directory.

        Raises:
            ConflictError: If the target directory already exists.
            StorageError: If extraction fails.
        """
        extension_id = inspection.manifest.id
        target_dir = self.extensions_dir / extension_id
        if target_dir.exists():
            raise ConflictError(f"Extension already exists: {extension_id}", extension_id=extension_id)

        try:
            self.extensions_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.TemporaryDirectory(dir=self.extensions_dir, prefix=".staging-") as tmp_dir:
                staging = Path(tmp_dir) / extension_id
                staging.mkdir()
                with zipfile.ZipFile(io.BytesIO(data)) as zf:
                    for name in inspection.files:
                        destination = staging / inspection.relative(name)
                        destination.parent.mkdir(parents=True, exist_ok=True)
                        with zf.open(name) as src, open(destination, "wb") as dst:
                            shutil.copyfileobj(src, dst)

                if target_dir.exists():
                    raise ConflictError(
                        f"Extension already exists: {extension_id}", extension_id=extension_id
                    )
                staging.rename(target_dir)
        except (OSError, zipfile.BadZipFile) as e:
            raise StorageError(f"Failed to extract {extension_id}: {e}", extension_id=extension_id) from e

        logger.info("Extracted extension %s to %s", extension_id, target_dir)
        return target_dir

    def remove(self, directory: Path) -> None:
        """Recursively delete an extension directory.

        Raises:
            StorageError: If the directory cannot be removed.
        """
        try:
            shutil.rmtree(directory)
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageError(f"Failed to remove {directory}: {e}") from e
