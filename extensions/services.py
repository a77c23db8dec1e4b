"""Wiring of the extension components for one extensions root."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from extensions.config_store import ConfigStore
from extensions.installer import ExtensionInstaller
from extensions.lifecycle import LifecycleManager
from extensions.registry import ExtensionRegistry
from extensions.store import ManifestStore

if TYPE_CHECKING:
    from settings.config import Config


@dataclass
class ExtensionServices:
    """The store, registry, installer, lifecycle manager and config store, built together."""

    store: ManifestStore
    registry: ExtensionRegistry
    installer: ExtensionInstaller
    lifecycle: LifecycleManager
    configs: ConfigStore

    @classmethod
    def from_config(cls, config: Config) -> ExtensionServices:
        """Build services from loaded configuration."""
        extensions_dir = Path(config.storage.extensions_dir)
        store = ManifestStore(extensions_dir, index_file=config.storage.index_file)
        registry = ExtensionRegistry(
            store,
            aliases=config.lifecycle.aliases,
            ignored_dirs=config.lifecycle.ignored_dirs,
        )
        installer = ExtensionInstaller(
            extensions_dir,
            max_archive_bytes=config.lifecycle.max_archive_bytes,
            allowed_file_types=config.lifecycle.allowed_file_types,
        )
        configs = ConfigStore(Path(config.storage.configs_dir), registry)
        lifecycle = LifecycleManager(
            registry,
            installer,
            config_store=configs,
            protected_extensions=config.lifecycle.protected_extensions,
            purge_config_on_uninstall=config.lifecycle.purge_config_on_uninstall,
            default_theme=config.lifecycle.default_theme,
        )
        return cls(store=store, registry=registry, installer=installer, lifecycle=lifecycle, configs=configs)
