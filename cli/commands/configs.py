"""Extension configuration CLI commands for VoxNest."""

import json
from typing import Any, List, Optional

import typer
from rich.table import Table

from cli.commands.extensions import get_services
from cli.voxnest.output import console, fail, print_error, print_json, print_success
from extensions.errors import ExtensionError

configs_app = typer.Typer(
    name="config",
    help="Read and change extension configuration.",
    no_args_is_help=True,
)


def parse_assignments(assignments: list[str]) -> dict[str, Any]:
    """Parse KEY=VALUE pairs; values are read as JSON when possible."""
    values: dict[str, Any] = {}
    for assignment in assignments:
        if "=" not in assignment:
            raise typer.BadParameter(f"Expected KEY=VALUE, got: {assignment}")
        key, raw = assignment.split("=", 1)
        try:
            values[key.strip()] = json.loads(raw)
        except json.JSONDecodeError:
            values[key.strip()] = raw
    return values


@configs_app.command("list")
def list_configs(
    ext_type: Optional[str] = typer.Option(None, "--type", "-t", help="Filter by type (plugin, theme)"),
) -> None:
    """List stored extension configs."""
    page = get_services().configs.list(extension_type=ext_type, page_size=10_000)
    if not page.items:
        console.print("[yellow]No stored configs[/yellow]")
        return

    table = Table(title="Extension Configs")
    table.add_column("Extension", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Enabled", justify="center")
    table.add_column("Keys", justify="right")
    table.add_column("Updated")
    for config in page.items:
        table.add_row(
            config.extension_id,
            config.extension_type.value if config.extension_type else "-",
            "✓" if config.enabled else "",
            str(len(config.user_config)),
            config.updated_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@configs_app.command("get")
def get(
    extension_id: str = typer.Argument(..., help="Extension id"),
) -> None:
    """Show an extension's config, creating it from defaults if needed.

    Example:
        voxnest-ext config get cookie-consent
    """
    try:
        config = get_services().configs.get(extension_id)
    except ExtensionError as e:
        fail(e)
    print_json(config.to_json_dict())


@configs_app.command("set")
def set_values(
    extension_id: str = typer.Argument(..., help="Extension id"),
    assignments: List[str] = typer.Argument(..., help="KEY=VALUE pairs (values parsed as JSON)"),
) -> None:
    """Update config values.

    Example:
        voxnest-ext config set cookie-consent showBanner=false position='"top"'
    """
    values = parse_assignments(assignments)
    try:
        get_services().configs.set(extension_id, values)
    except ExtensionError as e:
        fail(e)
    print_success(f"Updated {', '.join(sorted(values))} for {extension_id}")


@configs_app.command("reset")
def reset(
    extension_id: str = typer.Argument(..., help="Extension id"),
) -> None:
    """Reset an extension's config to its defaults."""
    try:
        defaults = get_services().configs.reset(extension_id)
    except ExtensionError as e:
        fail(e)
    print_success(f"Reset config for {extension_id}")
    print_json(defaults)


@configs_app.command("validate")
def validate(
    extension_id: str = typer.Argument(..., help="Extension id"),
    assignments: List[str] = typer.Argument(..., help="KEY=VALUE pairs to check"),
) -> None:
    """Check values against an extension's config schema without saving."""
    try:
        result = get_services().configs.validate(extension_id, parse_assignments(assignments))
    except ExtensionError as e:
        fail(e)

    if result.is_valid:
        print_success("Configuration is valid")
        return
    print_error("Configuration is invalid")
    for error in result.errors:
        console.print(f"  - {error}")
    raise typer.Exit(1)
