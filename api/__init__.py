"""HTTP API for VoxNest extension management."""

from api.app import create_app

__all__ = ["create_app"]
