"""Rich console output utilities for the VoxNest extension CLI."""

import json
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from extensions.errors import ExtensionError
from extensions.registry import RegistryEntry

console = Console()
error_console = Console(stderr=True)

STATUS_STYLES = {
    "active": "green",
    "inactive": "dim",
    "error": "red",
    "loading": "yellow",
}


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    error_console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]![/yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]→[/blue] {message}")


def print_json(data: Any) -> None:
    """Print formatted JSON."""
    console.print_json(json.dumps(data, indent=2, default=str))


def fail(exc: ExtensionError) -> NoReturn:
    """Print an extension error with its details and exit with status 1."""
    print_error(exc.message)
    for detail in exc.errors:
        error_console.print(f"  - {detail}")
    raise typer.Exit(1)


def print_entries(entries: list[RegistryEntry], title: str = "Extensions") -> None:
    """Print registry entries as a table."""
    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Type", style="green")
    table.add_column("Version")
    table.add_column("Status")
    table.add_column("Installed", justify="center")
    table.add_column("Author")

    for entry in entries:
        style = STATUS_STYLES.get(entry.status.value, "")
        table.add_row(
            entry.id,
            entry.name,
            entry.type.value if entry.type else "-",
            entry.version or "-",
            f"[{style}]{entry.status.value}[/{style}]" if style else entry.status.value,
            "✓" if entry.installed else "",
            entry.author or "-",
        )

    console.print(table)


def print_entry(entry: RegistryEntry) -> None:
    """Print one registry entry in detail."""
    lines = [
        f"[bold]Type:[/bold] {entry.type.value if entry.type else '-'}",
        f"[bold]Version:[/bold] {entry.version or '-'}",
        f"[bold]Status:[/bold] {entry.status.value}",
        f"[bold]State:[/bold] {entry.state.value if entry.state else 'not installed'}",
        f"[bold]Path:[/bold] {entry.path or '-'}",
        f"[bold]Size:[/bold] {entry.file_size} bytes",
    ]
    if entry.author:
        lines.append(f"[bold]Author:[/bold] {entry.author}")
    if entry.slots:
        lines.append(f"[bold]Slots:[/bold] {', '.join(entry.slots)}")
    if entry.tags:
        lines.append(f"[bold]Tags:[/bold] {', '.join(entry.tags)}")
    if entry.error:
        lines.append(f"[red]Error: {entry.error}[/red]")

    body = "\n".join(lines)
    if entry.description:
        body = f"{entry.description}\n\n{body}"
    console.print(Panel(body, title=f"[bold cyan]{entry.name}[/bold cyan] ({entry.id})"))


def print_config(config: dict[str, Any], title: str | None = None) -> None:
    """Print key/value settings as a table."""
    table = Table(title=title, title_justify="left", show_header=True, header_style="bold")
    table.add_column("Setting")
    table.add_column("Value")

    for key, value in sorted(config.items()):
        # Mask secrets
        if key == "admin_token" and value:
            value = "***"
        table.add_row(key, str(value))

    console.print(table)
