"""Tests for the voxnest-ext CLI."""

import pytest
from typer.testing import CliRunner

from cli.voxnest import __version__
from cli.voxnest.cli import app
from settings.config import reload_config

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_env(tmp_path, extensions_dir, configs_dir, monkeypatch):
    """Point the CLI at temporary directories and a clean working directory."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("VOXNEST_EXTENSIONS_DIR", str(extensions_dir))
    monkeypatch.setenv("VOXNEST_CONFIGS_DIR", str(configs_dir))
    monkeypatch.setenv("VOXNEST_DEFAULT_THEME", "classic")
    monkeypatch.delenv("VOXNEST_ADMIN_TOKEN", raising=False)
    yield
    monkeypatch.undo()
    reload_config()


def invoke(*args):
    return runner.invoke(app, ["--log-level", "WARNING", *args])


@pytest.fixture
def archive_path(tmp_path, make_archive):
    path = tmp_path / "cookie-consent.zip"
    path.write_bytes(make_archive())
    return path


class TestExtensionCommands:
    """Tests for the extensions sub-commands."""

    def test_install_and_enable(self, archive_path, extensions_dir):
        """Install from a zip, then enable."""
        result = invoke("extensions", "install", str(archive_path), "--user", "admin")

        assert result.exit_code == 0
        assert "Installed Cookie Consent v1.0.0" in result.output
        assert (extensions_dir / "cookie-consent" / "manifest.json").is_file()

        result = invoke("extensions", "enable", "cookie-consent")
        assert result.exit_code == 0
        assert "Enabled extension: cookie-consent" in result.output

    def test_list_json(self, archive_path):
        """List can print JSON."""
        invoke("extensions", "install", str(archive_path))

        result = invoke("extensions", "list", "--json")

        assert result.exit_code == 0
        assert '"id": "cookie-consent"' in result.output

    def test_list_empty(self):
        result = invoke("extensions", "list")

        assert result.exit_code == 0
        assert "No extensions found" in result.output

    def test_enable_unknown_fails(self):
        """Errors exit with status 1 and print the message."""
        result = invoke("extensions", "enable", "unknown-id")

        assert result.exit_code == 1
        assert "Extension not found: unknown-id" in result.output

    def test_uninstall(self, archive_path, extensions_dir):
        """Uninstall with --yes skips the prompt."""
        invoke("extensions", "install", str(archive_path))

        result = invoke("extensions", "uninstall", "cookie-consent", "--yes")

        assert result.exit_code == 0
        assert not (extensions_dir / "cookie-consent").exists()

    def test_uninstall_cancelled(self, archive_path, extensions_dir):
        """Declining the prompt leaves the extension in place."""
        invoke("extensions", "install", str(archive_path))

        result = runner.invoke(app, ["extensions", "uninstall", "cookie-consent"], input="n\n")

        assert result.exit_code == 0
        assert "Cancelled" in result.output
        assert (extensions_dir / "cookie-consent").is_dir()

    def test_stats(self, archive_path):
        invoke("extensions", "install", str(archive_path))

        result = invoke("extensions", "stats")

        assert '"totalPlugins": 1' in result.output

    def test_batch_and_themes(self, archive_path, make_archive, tmp_path):
        """Batch reports each id; reset-theme activates the configured default."""
        invoke("extensions", "install", str(archive_path))
        theme_path = tmp_path / "classic.zip"
        theme_path.write_bytes(make_archive("classic", "theme"))
        invoke("extensions", "install", str(theme_path))

        result = invoke("extensions", "batch", "enable", "cookie-consent", "missing")
        assert result.exit_code == 1
        assert "Enabled cookie-consent" in result.output
        assert "missing: Extension not found: missing" in result.output

        assert invoke("extensions", "active-theme").exit_code == 1

        result = invoke("extensions", "reset-theme")
        assert result.exit_code == 0
        assert "Activated theme: classic" in result.output
        assert "classic" in invoke("extensions", "active-theme").output


class TestConfigCommands:
    """Tests for the config sub-commands."""

    def test_get_set_reset(self, archive_path):
        """Values set on the command line are parsed as JSON."""
        invoke("extensions", "install", str(archive_path))

        assert '"showBanner": true' in invoke("config", "get", "cookie-consent").output

        result = invoke("config", "set", "cookie-consent", "showBanner=false")
        assert result.exit_code == 0
        assert '"showBanner": false' in invoke("config", "get", "cookie-consent").output

        result = invoke("config", "reset", "cookie-consent")
        assert result.exit_code == 0
        assert '"showBanner": true' in invoke("config", "get", "cookie-consent").output

    def test_validate_invalid(self, archive_path):
        """Invalid values exit with status 1 and list the errors."""
        invoke("extensions", "install", str(archive_path))

        result = invoke("config", "validate", "cookie-consent", "showBanner=yes")

        assert result.exit_code == 1
        assert "showBanner: expected a boolean" in result.output

    def test_bad_assignment(self, archive_path):
        """Assignments must be KEY=VALUE."""
        invoke("extensions", "install", str(archive_path))

        result = invoke("config", "set", "cookie-consent", "showBanner")

        assert result.exit_code != 0


class TestSettingsCommands:
    """Tests for settings and misc commands."""

    def test_init_and_set(self, tmp_path):
        """Init writes voxnest.toml and set updates it."""
        result = invoke("settings", "init")
        assert result.exit_code == 0
        assert (tmp_path / "voxnest.toml").is_file()

        result = invoke("settings", "set", "server.port", "9000")
        assert result.exit_code == 0

        assert "9000" in invoke("settings", "show", "server").output

    def test_init_refuses_overwrite(self, tmp_path):
        (tmp_path / "voxnest.toml").write_text("")

        result = invoke("settings", "init")

        assert result.exit_code == 1

    def test_set_without_file(self):
        """Set needs an existing voxnest.toml."""
        result = invoke("settings", "set", "server.port", "9000")

        assert result.exit_code == 1

    def test_show_unknown_section(self):
        result = invoke("settings", "show", "nope")

        assert result.exit_code == 1

    def test_version(self):
        result = invoke("version")

        assert result.exit_code == 0
        assert f"v{__version__}" in result.output
