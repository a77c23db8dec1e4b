"""Pytest configuration and fixtures."""

import io
import json
import zipfile
from pathlib import Path

import pytest

from extensions.services import ExtensionServices
from settings.config import Config, LifecycleConfig, StorageConfig

COOKIE_CONSENT_SCHEMA = {
    "title": "Cookie consent",
    "properties": {
        "showBanner": {"type": "boolean", "title": "Show banner", "default": True},
    },
}


def manifest_data(extension_id="cookie-consent", extension_type="plugin", **overrides):
    """A valid manifest document."""
    data = {
        "id": extension_id,
        "name": extension_id.replace("-", " ").title(),
        "version": "1.0.0",
        "type": extension_type,
        "author": "VoxNest",
        "description": f"The {extension_id} extension",
        "main": "index.tsx",
    }
    if extension_id == "cookie-consent":
        data["configSchema"] = COOKIE_CONSENT_SCHEMA
        data["capabilities"] = {"slots": ["app.footer"]}
    data.update(overrides)
    return data


def build_archive(manifest, files=None, prefix=""):
    """Zip a manifest plus files into archive bytes."""
    files = {"index.tsx": "export default function Extension() {}\n", **(files or {})}
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        if manifest is not None:
            zf.writestr(prefix + "manifest.json", json.dumps(manifest))
        for name, content in files.items():
            zf.writestr(prefix + name, content)
    return buffer.getvalue()


@pytest.fixture
def extensions_dir(tmp_path) -> Path:
    path = tmp_path / "extensions"
    path.mkdir()
    return path


@pytest.fixture
def configs_dir(tmp_path) -> Path:
    return tmp_path / "ExtensionConfigs"


@pytest.fixture
def config(extensions_dir, configs_dir) -> Config:
    return Config(
        storage=StorageConfig(extensions_dir=str(extensions_dir), configs_dir=str(configs_dir)),
        lifecycle=LifecycleConfig(protected_extensions=["default-theme"], default_theme="default-theme"),
    )


@pytest.fixture
def services(config) -> ExtensionServices:
    return ExtensionServices.from_config(config)


@pytest.fixture
def write_extension(extensions_dir):
    """Write an extension directory straight to disk, bypassing install."""

    def _write(extension_id="cookie-consent", extension_type="plugin", directory=None, **overrides):
        target = extensions_dir / (directory or extension_id)
        target.mkdir(parents=True, exist_ok=True)
        (target / "manifest.json").write_text(
            json.dumps(manifest_data(extension_id, extension_type, **overrides))
        )
        (target / "index.tsx").write_text("export default function Extension() {}\n")
        return target

    return _write


@pytest.fixture
def make_archive():
    """Build zip archive bytes for an extension."""

    def _make(extension_id="cookie-consent", extension_type="plugin", files=None, prefix="", **overrides):
        return build_archive(manifest_data(extension_id, extension_type, **overrides), files, prefix)

    return _make


@pytest.fixture
def read_index(extensions_dir):
    """Load extensions.json as stored."""

    def _read():
        return json.loads((extensions_dir / "extensions.json").read_text())

    return _read
