"""CLI command modules for the VoxNest extension manager."""

from cli.commands.configs import configs_app
from cli.commands.extensions import extensions_app

__all__ = ["configs_app", "extensions_app"]
