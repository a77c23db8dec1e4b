"""VoxNest extension manager CLI.

Main command-line interface for managing extensions and running the API.
"""

from pathlib import Path
from typing import Optional

import typer

from cli.commands.configs import configs_app
from cli.commands.extensions import extensions_app
from cli.voxnest.output import (
    console,
    print_config,
    print_error,
    print_info,
    print_success,
    print_warning,
)

app = typer.Typer(
    name="voxnest-ext",
    help="VoxNest extension manager - plugins, themes and their configuration",
    no_args_is_help=True,
)

# Settings sub-app
settings_app = typer.Typer(
    name="settings",
    help="Manage voxnest.toml settings.",
    no_args_is_help=True,
)

app.add_typer(extensions_app, name="extensions")
app.add_typer(configs_app, name="config")
app.add_typer(settings_app, name="settings")


@app.callback()
def main_callback(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to voxnest.toml (default: search current and parent directories)",
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override the log level"),
) -> None:
    """Load settings and configure logging before any command runs."""
    from settings.config import reload_config
    from settings.log import configure_logging

    loaded = reload_config(config)
    configure_logging(log_level or loaded.logging.level, rich=loaded.logging.rich)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
) -> None:
    """Run the extension management API.

    Example:
        voxnest-ext serve --port 8080
    """
    import uvicorn

    from api.app import create_app
    from settings.config import get_config

    config = get_config()
    bind_host = host or config.server.host
    bind_port = port or config.server.port
    print_info(f"Serving extensions from {config.storage.extensions_dir} on http://{bind_host}:{bind_port}")
    uvicorn.run(create_app(config), host=bind_host, port=bind_port, log_config=None)


@settings_app.command("show")
def settings_show(
    section: Optional[str] = typer.Argument(None, help="Section to show (storage, lifecycle, server, logging)"),
) -> None:
    """Show current settings.

    Examples:
        voxnest-ext settings show
        voxnest-ext settings show lifecycle
    """
    from settings.config import find_config_file, get_config

    config_path = find_config_file()
    if config_path:
        print_info(f"Config file: {config_path}")
    else:
        print_warning("No voxnest.toml found (using defaults)")

    sections = get_config().to_dict()
    if section:
        if section not in sections:
            print_error(f"Unknown section: {section}")
            print_info(f"Available: {', '.join(sections)}")
            raise typer.Exit(1)
        sections = {section: sections[section]}

    for name, values in sections.items():
        print_config(values, title=name)


@settings_app.command("set")
def settings_set(
    key: str = typer.Argument(..., help="Setting key (e.g., server.port, lifecycle.purge_config_on_uninstall)"),
    value: str = typer.Argument(..., help="Value to set"),
) -> None:
    """Set a value in voxnest.toml.

    Examples:
        voxnest-ext settings set server.port 8080
        voxnest-ext settings set lifecycle.protected_extensions "[default-theme]"
    """
    import tomllib

    import tomli_w

    from settings.config import find_config_file, reload_config

    config_path = find_config_file()
    if not config_path:
        print_error("No voxnest.toml found. Run 'voxnest-ext settings init' first.")
        raise typer.Exit(1)

    parts = key.split(".")
    if len(parts) != 2:
        print_error("Key must be in format 'section.key' (e.g., server.port)")
        raise typer.Exit(1)
    section, setting = parts

    with open(config_path, "rb") as f:
        config_data = tomllib.load(f)
    config_data.setdefault(section, {})

    # Parse value type
    parsed_value: str | int | bool | list = value
    if value.lower() == "true":
        parsed_value = True
    elif value.lower() == "false":
        parsed_value = False
    elif value.isdigit():
        parsed_value = int(value)
    elif value.startswith("[") and value.endswith("]"):
        inner = value[1:-1].strip()
        parsed_value = [v.strip().strip('"').strip("'") for v in inner.split(",")] if inner else []

    config_data[section][setting] = parsed_value

    with open(config_path, "wb") as f:
        tomli_w.dump(config_data, f)

    print_success(f"Set {key} = {parsed_value}")
    reload_config(config_path)


@settings_app.command("init")
def settings_init(
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite existing voxnest.toml"),
) -> None:
    """Create a default voxnest.toml file."""
    config_path = Path.cwd() / "voxnest.toml"

    if config_path.exists() and not force:
        print_warning(f"Config file already exists: {config_path}")
        print_info("Use --force to overwrite")
        raise typer.Exit(1)

    default_config = '''# VoxNest extension manager configuration
# Auto-generated by 'voxnest-ext settings init'

[storage]
extensions_dir = "extensions"
configs_dir = "ExtensionConfigs"
index_file = "extensions.json"

[lifecycle]
# Extensions that can never be uninstalled
protected_extensions = []
# Delete an extension's stored config when it is uninstalled
purge_config_on_uninstall = false
# Theme restored by "extensions reset-theme" (empty = first builtin theme)
default_theme = ""
ignored_dirs = ["node_modules"]

[lifecycle.aliases]
# extension-id = "directory-name"

[server]
host = "127.0.0.1"
port = 8000
api_prefix = "/api/extension"
# Set an admin token (or VOXNEST_ADMIN_TOKEN) to protect admin routes
admin_token = ""
debug = false

[logging]
level = "INFO"
rich = true
'''

    config_path.write_text(default_config)
    print_success(f"Created config file: {config_path}")


@app.command()
def version() -> None:
    """Show version."""
    from cli.voxnest import __version__

    console.print(f"VoxNest extension manager v{__version__}")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
