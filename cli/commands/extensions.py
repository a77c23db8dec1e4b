"""Extensions CLI commands for VoxNest.

Manage plugins and themes under the extensions root.
"""

from pathlib import Path
from typing import List, Optional

import typer

from cli.voxnest.output import (
    console,
    fail,
    print_entries,
    print_entry,
    print_info,
    print_json,
    print_success,
    print_warning,
)
from extensions.errors import ExtensionError

extensions_app = typer.Typer(
    name="extensions",
    help="Install, enable and manage plugins and themes.",
    no_args_is_help=True,
)


def get_services():
    """Build extension services from the current configuration."""
    from extensions.services import ExtensionServices
    from settings.config import get_config

    return ExtensionServices.from_config(get_config())


@extensions_app.command("list")
def list_extensions(
    ext_type: Optional[str] = typer.Option(
        None,
        "--type",
        "-t",
        help="Filter by type (plugin, theme)",
    ),
    status: Optional[str] = typer.Option(
        None,
        "--status",
        "-s",
        help="Filter by status (active, inactive, error)",
    ),
    search: Optional[str] = typer.Option(None, "--search", "-q", help="Search text"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """List extensions on disk and in the index.

    Examples:
        voxnest-ext extensions list
        voxnest-ext extensions list --type theme --status active
    """
    services = get_services()
    page = services.registry.query(search=search, extension_type=ext_type, status=status, page_size=10_000)

    if as_json:
        print_json([entry.to_dict() for entry in page.items])
        return

    if not page.items:
        console.print("[yellow]No extensions found[/yellow]")
        console.print(f"[dim]Extensions root: {services.registry.root}[/dim]")
        return

    print_entries(page.items)
    console.print(f"\n[dim]Total: {page.total} extensions[/dim]")


@extensions_app.command("show")
def show(
    extension_id: str = typer.Argument(..., help="Extension id"),
) -> None:
    """Show details of an extension.

    Example:
        voxnest-ext extensions show cookie-consent
    """
    try:
        entry = get_services().registry.get_entry(extension_id)
    except ExtensionError as e:
        fail(e)
    print_entry(entry)


@extensions_app.command("stats")
def stats() -> None:
    """Show extension counts by type and status."""
    print_json(get_services().registry.stats())


@extensions_app.command("install")
def install(
    archive: Path = typer.Argument(..., help="Path to the extension .zip archive", exists=True, dir_okay=False),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Installing user id"),
) -> None:
    """Install an extension from a zip archive.

    The extension is installed disabled.

    Example:
        voxnest-ext extensions install ./cookie-consent.zip
    """
    try:
        manifest = get_services().lifecycle.install(archive, user_id=user)
    except ExtensionError as e:
        fail(e)
    print_success(f"Installed {manifest.name} v{manifest.version} ({manifest.type.value})")
    print_info(f"Enable with: voxnest-ext extensions enable {manifest.id}")


@extensions_app.command("register")
def register(
    extension_id: str = typer.Argument(..., help="Id of an extension already under the root"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Installing user id"),
) -> None:
    """Add an extension that is already on disk to the index."""
    try:
        manifest = get_services().lifecycle.install_discovered(extension_id, user_id=user)
    except ExtensionError as e:
        fail(e)
    print_success(f"Registered {manifest.name} v{manifest.version}")


@extensions_app.command("enable")
def enable(
    extension_id: str = typer.Argument(..., help="Extension id to enable"),
) -> None:
    """Enable an extension. Enabling a theme makes it the active theme.

    Example:
        voxnest-ext extensions enable cookie-consent
    """
    try:
        get_services().lifecycle.enable(extension_id)
    except ExtensionError as e:
        fail(e)
    print_success(f"Enabled extension: {extension_id}")


@extensions_app.command("disable")
def disable(
    extension_id: str = typer.Argument(..., help="Extension id to disable"),
) -> None:
    """Disable an extension without uninstalling."""
    try:
        get_services().lifecycle.disable(extension_id)
    except ExtensionError as e:
        fail(e)
    print_success(f"Disabled extension: {extension_id}")


@extensions_app.command("activate")
def activate(
    extension_id: str = typer.Argument(..., help="Theme id to activate"),
) -> None:
    """Make a theme the active theme."""
    try:
        get_services().lifecycle.activate(extension_id)
    except ExtensionError as e:
        fail(e)
    print_success(f"Activated theme: {extension_id}")


@extensions_app.command("reload")
def reload(
    extension_id: str = typer.Argument(..., help="Extension id to reload"),
) -> None:
    """Disable and re-enable an extension."""
    try:
        get_services().lifecycle.reload(extension_id)
    except ExtensionError as e:
        fail(e)
    print_success(f"Reloaded extension: {extension_id}")


@extensions_app.command("active-theme")
def active_theme() -> None:
    """Show the active theme."""
    try:
        manifest = get_services().lifecycle.active_theme()
    except ExtensionError as e:
        fail(e)
    console.print(f"[bold]{manifest.name}[/bold] ({manifest.id}) v{manifest.version}")


@extensions_app.command("reset-theme")
def reset_theme() -> None:
    """Activate the default theme."""
    try:
        manifest = get_services().lifecycle.reset_to_default()
    except ExtensionError as e:
        fail(e)
    print_success(f"Activated theme: {manifest.id}")


@extensions_app.command("batch")
def batch(
    action: str = typer.Argument(..., help="enable or disable"),
    extension_ids: List[str] = typer.Argument(..., help="Extension ids"),
) -> None:
    """Enable or disable several extensions at once.

    Example:
        voxnest-ext extensions batch disable cookie-consent analytics
    """
    if action not in ("enable", "disable"):
        raise typer.BadParameter("Action must be 'enable' or 'disable'", param_hint="ACTION")

    results = get_services().lifecycle.batch_set_status(extension_ids, action == "enable")
    for result in results:
        if result.success:
            print_success(f"{action.capitalize()}d {result.id}")
        else:
            print_warning(f"{result.id}: {result.message}")
    if not all(r.success for r in results):
        raise typer.Exit(1)


@extensions_app.command("uninstall")
def uninstall(
    extension_id: str = typer.Argument(..., help="Extension id to uninstall"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    purge_config: bool = typer.Option(False, "--purge-config", help="Also delete the stored config"),
) -> None:
    """Uninstall an extension.

    Example:
        voxnest-ext extensions uninstall cookie-consent --yes
    """
    if not yes:
        confirm = typer.confirm(f"Uninstall {extension_id}?")
        if not confirm:
            print_warning("Cancelled")
            raise typer.Exit(0)

    try:
        get_services().lifecycle.uninstall(extension_id, purge_config=purge_config or None)
    except ExtensionError as e:
        fail(e)
    print_success(f"Uninstalled {extension_id}")
