"""Extension lifecycle management for VoxNest.

This module provides discovery, installation, enablement and configuration
of VoxNest front-end extensions.

Extensions come in two types:
- plugins: Components and hooks contributed to the forum UI
- themes: Styling packages, exactly one of which is active at a time

Each extension lives in its own directory under the extensions root with a
manifest.json, and the root's extensions.json indexes installed extensions.
"""

from extensions.config_store import ConfigStore, ExtensionConfig, ValidationResult
from extensions.errors import (
    ConflictError,
    ExtensionError,
    ForbiddenError,
    NotFoundError,
    ParseError,
    StorageError,
    ValidationError,
)
from extensions.installer import ExtensionInstaller
from extensions.lifecycle import LifecycleManager
from extensions.manifest import (
    ConfigSchema,
    ExtensionIndex,
    ExtensionManifest,
    ExtensionType,
    IndexEntry,
    LifecycleState,
)
from extensions.registry import ExtensionRegistry, ExtensionStatus, RegistryEntry
from extensions.store import ManifestStore

__all__ = [
    "ConfigSchema",
    "ConfigStore",
    "ConflictError",
    "ExtensionConfig",
    "ExtensionError",
    "ExtensionIndex",
    "ExtensionInstaller",
    "ExtensionManifest",
    "ExtensionRegistry",
    "ExtensionStatus",
    "ExtensionType",
    "ForbiddenError",
    "IndexEntry",
    "LifecycleManager",
    "LifecycleState",
    "ManifestStore",
    "NotFoundError",
    "ParseError",
    "RegistryEntry",
    "StorageError",
    "ValidationError",
    "ValidationResult",
]
