"""Tests for the manifest store."""

import json

import pytest

from conftest import manifest_data
from extensions.errors import ConflictError, NotFoundError, ParseError, ValidationError
from extensions.manifest import ExtensionIndex, ExtensionManifest, IndexEntry
from extensions.store import ManifestStore, atomic_write_json, read_json


class TestJsonFiles:
    """Tests for JSON read and atomic write helpers."""

    def test_atomic_write_leaves_no_temp_files(self, tmp_path):
        """Only the target file remains after a write."""
        target = tmp_path / "nested" / "doc.json"

        atomic_write_json(target, {"a": 1})
        atomic_write_json(target, {"a": 2})

        assert read_json(target) == {"a": 2}
        assert [p.name for p in target.parent.iterdir()] == ["doc.json"]

    def test_read_missing_file(self, tmp_path):
        """Missing files raise NotFoundError."""
        with pytest.raises(NotFoundError):
            read_json(tmp_path / "missing.json")

    def test_read_invalid_json(self, tmp_path):
        """Malformed JSON raises ParseError."""
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        with pytest.raises(ParseError):
            read_json(path)


class TestManifestStore:
    """Tests for manifest and index persistence."""

    def test_manifest_round_trip(self, extensions_dir, write_extension):
        """A written manifest reads back unchanged."""
        write_extension()
        store = ManifestStore(extensions_dir)

        manifest = store.read_manifest("cookie-consent")
        manifest.enabled = True
        store.write_manifest("cookie-consent", manifest)

        stored = json.loads((extensions_dir / "cookie-consent" / "manifest.json").read_text())
        assert stored["enabled"] is True
        assert store.read_manifest("cookie-consent").enabled is True

    def test_missing_manifest(self, extensions_dir):
        """Reading a manifest that does not exist raises NotFoundError."""
        with pytest.raises(NotFoundError) as exc_info:
            ManifestStore(extensions_dir).read_manifest("nope")

        assert exc_info.value.extension_id == "nope"

    def test_invalid_manifest(self, extensions_dir):
        """Schema violations raise ValidationError with field details."""
        target = extensions_dir / "broken"
        target.mkdir()
        (target / "manifest.json").write_text(json.dumps({"id": "broken", "name": "Broken"}))

        with pytest.raises(ValidationError) as exc_info:
            ManifestStore(extensions_dir).read_manifest("broken")

        assert any(error.startswith("version") for error in exc_info.value.errors)
        assert any(error.startswith("type") for error in exc_info.value.errors)

    def test_missing_index_is_empty(self, extensions_dir):
        """No extensions.json means an empty index at revision 0."""
        index = ManifestStore(extensions_dir).read_index()

        assert len(index) == 0
        assert index.meta.revision == 0

    def test_write_index_updates_meta(self, extensions_dir, read_index):
        """Writing bumps the revision and refreshes totals."""
        store = ManifestStore(extensions_dir)
        index = ExtensionIndex()
        index.upsert(IndexEntry.from_manifest(ExtensionManifest.model_validate(manifest_data())))

        store.write_index(index)
        stored = read_index()

        assert stored["meta"]["revision"] == 1
        assert stored["meta"]["totalExtensions"] == 1
        assert stored["meta"]["lastUpdated"]
        assert stored["extensions"][0]["id"] == "cookie-consent"

    def test_stale_revision_rejected(self, extensions_dir):
        """A writer holding an old revision gets a ConflictError."""
        store = ManifestStore(extensions_dir)
        first = store.read_index()
        second = store.read_index()

        store.write_index(first, expected_revision=0)

        with pytest.raises(ConflictError):
            store.write_index(second, expected_revision=0)
        assert store.read_index().meta.revision == 1

    def test_corrupt_index(self, extensions_dir):
        """An unparseable index raises ParseError."""
        (extensions_dir / "extensions.json").write_text("[]")

        with pytest.raises(ParseError):
            ManifestStore(extensions_dir).read_index()
