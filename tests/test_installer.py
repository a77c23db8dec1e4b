"""Tests for archive validation and extraction."""

import io
import zipfile

import pytest

from conftest import build_archive, manifest_data
from extensions.errors import ConflictError, ValidationError
from extensions.installer import ExtensionInstaller


@pytest.fixture
def installer(extensions_dir):
    return ExtensionInstaller(extensions_dir)


class TestInspect:
    """Tests for archive validation."""

    def test_valid_archive(self, installer, make_archive):
        """A well-formed archive yields its manifest and file list."""
        inspection = installer.inspect(make_archive(files={"styles/main.css": "body {}"}))

        assert inspection.manifest.id == "cookie-consent"
        assert inspection.prefix == ""
        assert set(inspection.files) == {"manifest.json", "index.tsx", "styles/main.css"}

    def test_single_top_level_folder_is_unwrapped(self, installer, make_archive):
        """Archives wrapping everything in one folder are accepted."""
        inspection = installer.inspect(make_archive(prefix="cookie-consent-1.0.0/"))

        assert inspection.prefix == "cookie-consent-1.0.0/"
        assert inspection.relative("cookie-consent-1.0.0/index.tsx") == "index.tsx"

    def test_not_a_zip(self, installer):
        """Arbitrary bytes are rejected."""
        with pytest.raises(ValidationError, match="zip"):
            installer.inspect(b"definitely not a zip file")

    def test_missing_manifest(self, installer):
        """Archives without manifest.json are rejected."""
        with pytest.raises(ValidationError, match="manifest.json"):
            installer.inspect(build_archive(None))

    def test_invalid_manifest_json(self, installer):
        """A manifest that is not JSON is rejected."""
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            zf.writestr("manifest.json", "{oops")
            zf.writestr("index.tsx", "")

        with pytest.raises(ValidationError, match="not valid JSON"):
            installer.inspect(buffer.getvalue())

    def test_manifest_missing_fields(self, installer):
        """Schema errors are reported per field."""
        data = manifest_data()
        del data["version"]

        with pytest.raises(ValidationError) as exc_info:
            installer.inspect(build_archive(data))

        assert any("version" in error for error in exc_info.value.errors)

    def test_unsafe_path(self, installer, make_archive):
        """Entries escaping the extension folder are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            installer.inspect(make_archive(files={"../evil.js": "alert(1)"}))

        assert exc_info.value.errors == ["Unsafe path in archive: ../evil.js"]

    def test_disallowed_file_type(self, installer, make_archive):
        """Executable content is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            installer.inspect(make_archive(files={"install.sh": "rm -rf /"}))

        assert exc_info.value.errors == ["File type not allowed: install.sh"]

    def test_missing_entry_file(self, installer, make_archive):
        """The declared main file must be in the archive."""
        with pytest.raises(ValidationError, match="src/main.tsx"):
            installer.inspect(make_archive(main="src/main.tsx"))


class TestReadAndExtract:
    """Tests for reading and extracting archives."""

    def test_empty_archive(self, installer):
        """Zero-byte uploads are rejected."""
        with pytest.raises(ValidationError, match="empty"):
            installer.read(b"")

    def test_archive_too_large(self, extensions_dir, make_archive):
        """Archives over the limit are rejected before inspection."""
        installer = ExtensionInstaller(extensions_dir, max_archive_bytes=10)

        with pytest.raises(ValidationError, match="too large"):
            installer.read(make_archive())

    def test_read_from_path(self, installer, tmp_path, make_archive):
        """Archives can be read from a file path."""
        path = tmp_path / "cookie-consent.zip"
        path.write_bytes(make_archive())

        assert installer.read(path) == path.read_bytes()

    def test_extract(self, installer, extensions_dir, make_archive):
        """Extraction lands in <root>/<id> and leaves no staging folder."""
        data = make_archive(prefix="wrapped/", files={"styles/main.css": "body {}"})

        target = installer.extract(data, installer.inspect(data))

        assert target == extensions_dir / "cookie-consent"
        assert (target / "manifest.json").is_file()
        assert (target / "styles" / "main.css").read_text() == "body {}"
        assert [p.name for p in extensions_dir.iterdir()] == ["cookie-consent"]

    def test_extract_existing_target(self, installer, write_extension, make_archive):
        """Extracting over an existing folder is a conflict."""
        write_extension("cookie-consent")
        data = make_archive()

        with pytest.raises(ConflictError):
            installer.extract(data, installer.inspect(data))
