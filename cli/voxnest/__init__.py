"""VoxNest extension manager CLI.

Command-line interface for managing VoxNest plugins and themes.
"""

__version__ = "0.1.0"

from cli.voxnest.cli import app, main

__all__ = ["__version__", "app", "main"]
