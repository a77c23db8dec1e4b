"""Per-extension configuration store for VoxNest.

Each extension's configuration lives in ``<configs_dir>/<id>.json`` and holds
the user's values, the defaults derived from the manifest, and the schema
they are validated against. A config is created from the manifest the first
time it is read.
"""

from __future__ import annotations

import copy
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import pydantic
from pydantic import Field

from extensions.errors import ExtensionError, NotFoundError, ParseError, ValidationError
from extensions.manifest import (
    ID_PATTERN,
    CamelModel,
    ConfigProperty,
    ConfigSchema,
    ExtensionManifest,
    ExtensionType,
    PropertyType,
    utcnow,
)
from extensions.registry import ExtensionRegistry
from extensions.store import atomic_write_json, describe_validation_error, read_json

logger = logging.getLogger(__name__)


class ExtensionConfig(CamelModel):
    """Stored configuration of one extension."""

    extension_id: str
    extension_name: str = ""
    extension_type: ExtensionType | None = None
    enabled: bool = True
    user_config: dict[str, Any] = Field(default_factory=dict)
    default_config: dict[str, Any] = Field(default_factory=dict)
    config_schema: ConfigSchema | None = Field(None, alias="schema")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_manifest(cls, manifest: ExtensionManifest) -> ExtensionConfig:
        defaults = manifest.default_values()
        return cls(
            extension_id=manifest.id,
            extension_name=manifest.name,
            extension_type=manifest.type,
            enabled=manifest.enabled,
            user_config=copy.deepcopy(defaults),
            default_config=defaults,
            config_schema=manifest.config_schema,
        )


@dataclass
class ValidationResult:
    """Outcome of validating a candidate configuration."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"isValid": self.is_valid, "errors": list(self.errors)}


@dataclass
class ConfigPage:
    items: list[ExtensionConfig]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_json_dict() for item in self.items],
            "total": self.total,
            "pageNumber": self.page,
            "pageSize": self.page_size,
            "totalPages": self.total_pages,
        }


_STRING_TYPES = (PropertyType.STRING, PropertyType.TEXTAREA, PropertyType.COLOR, PropertyType.URL)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_property(key: str, value: Any, prop: ConfigProperty) -> list[str]:
    if prop.type in _STRING_TYPES and not isinstance(value, str):
        return [f"{key}: expected a string"]
    if prop.type == PropertyType.NUMBER and not _is_number(value):
        return [f"{key}: expected a number"]
    if prop.type == PropertyType.BOOLEAN and not isinstance(value, bool):
        return [f"{key}: expected a boolean"]
    if prop.type == PropertyType.ARRAY and not isinstance(value, list):
        return [f"{key}: expected an array"]
    if prop.type == PropertyType.OBJECT and not isinstance(value, dict):
        return [f"{key}: expected an object"]

    errors = []
    if prop.type == PropertyType.SELECT and prop.options:
        allowed = [option.value for option in prop.options]
        if value not in allowed:
            errors.append(f"{key}: must be one of {allowed}")
    if _is_number(value):
        if prop.min is not None and value < prop.min:
            errors.append(f"{key}: must be >= {prop.min:g}")
        if prop.max is not None and value > prop.max:
            errors.append(f"{key}: must be <= {prop.max:g}")
    if isinstance(value, str) and prop.pattern:
        try:
            if not re.search(prop.pattern, value):
                errors.append(f"{key}: does not match pattern {prop.pattern}")
        except re.error:
            errors.append(f"{key}: schema pattern is invalid: {prop.pattern}")
    return errors


def check_values(values: dict[str, Any], schema: ConfigSchema | None) -> list[str]:
    """Check config values against a schema.

    Keys the schema does not declare are accepted.

    Returns:
        A list of error messages, empty when the values conform.
    """
    if schema is None:
        return []

    errors = []
    for key in schema.required_keys():
        if values.get(key) in (None, ""):
            errors.append(f"{key}: is required")
    for key, value in values.items():
        prop = schema.properties.get(key)
        if prop is None or value is None:
            continue
        errors.extend(_check_property(key, value, prop))
    return errors


class ConfigStore:
    """Read, update, reset and validate extension configurations.

    Example:
        >>> configs = ConfigStore(Path("ExtensionConfigs"), registry)
        >>> configs.get("cookie-consent").user_config["showBanner"]
        True
        >>> configs.set("cookie-consent", {"showBanner": False})
        >>> configs.reset("cookie-consent")
    """

    def __init__(self, configs_dir: Path | str, registry: ExtensionRegistry | None = None):
        """Initialize the config store.

        Args:
            configs_dir: Directory holding ``<id>.json`` config files.
            registry: Registry used to look up manifests for defaults and schemas.
        """
        self.configs_dir = Path(configs_dir)
        self.registry = registry

    def _path(self, extension_id: str) -> Path:
        if not ID_PATTERN.match(extension_id):
            raise NotFoundError.extension(extension_id)
        return self.configs_dir / f"{extension_id}.json"

    def _manifest(self, extension_id: str) -> ExtensionManifest | None:
        if self.registry is None:
            return None
        try:
            return self.registry.read_manifest(extension_id)
        except NotFoundError:
            return None

    def _read(self, path: Path) -> ExtensionConfig:
        data = read_json(path)
        try:
            return ExtensionConfig.model_validate(data)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid config file: {path}", errors=describe_validation_error(e)) from e

    def _write(self, config: ExtensionConfig) -> None:
        atomic_write_json(self._path(config.extension_id), config.to_json_dict())

    def exists(self, extension_id: str) -> bool:
        return self._path(extension_id).is_file()

    def get(self, extension_id: str) -> ExtensionConfig:
        """Get an extension's config, creating it from the manifest on first read.

        Raises:
            NotFoundError: If there is neither a stored config nor a manifest.
            ParseError: If the stored config is not valid JSON.
        """
        path = self._path(extension_id)
        if path.is_file():
            return self._read(path)

        manifest = self._manifest(extension_id)
        if manifest is None:
            raise NotFoundError(f"No configuration found for {extension_id}", extension_id=extension_id)

        config = ExtensionConfig.from_manifest(manifest)
        self._write(config)
        logger.info("Created default config for %s", extension_id)
        return config

    def set(
        self,
        extension_id: str,
        user_config: dict[str, Any],
        enabled: bool | None = None,
    ) -> ExtensionConfig:
        """Merge values into an extension's user config.

        Keys in ``user_config`` replace stored keys wholesale; other stored
        keys are kept.

        Raises:
            ValidationError: If the merged config violates the schema.
        """
        config = self.get(extension_id)
        merged = {**config.user_config, **user_config}
        errors = check_values(merged, config.config_schema)
        if errors:
            raise ValidationError("Invalid configuration", errors=errors, extension_id=extension_id)

        config.user_config = merged
        if enabled is not None:
            config.enabled = enabled
        config.updated_at = utcnow()
        self._write(config)
        logger.info("Updated config for %s (%s)", extension_id, ", ".join(sorted(user_config)) or "no keys")
        return config

    def reset(self, extension_id: str) -> dict[str, Any]:
        """Reset an extension's user config to its defaults.

        Defaults are re-derived from the current manifest when there is one.
        A stored config that cannot be read is rebuilt from the manifest.

        Returns:
            The default values now in effect.

        Raises:
            ParseError: If the stored config is unreadable and there is no manifest.
        """
        manifest = self._manifest(extension_id)
        try:
            config = self.get(extension_id)
        except (ParseError, ValidationError) as e:
            if manifest is None:
                raise
            logger.warning("Rebuilding unreadable config for %s: %s", extension_id, e.message)
            config = ExtensionConfig.from_manifest(manifest)

        if manifest is not None:
            config.default_config = manifest.default_values()
            config.config_schema = manifest.config_schema

        config.user_config = copy.deepcopy(config.default_config)
        config.updated_at = utcnow()
        self._write(config)
        logger.info("Reset config for %s", extension_id)
        return copy.deepcopy(config.default_config)

    def validate(self, extension_id: str, candidate: dict[str, Any]) -> ValidationResult:
        """Validate a candidate config without saving it."""
        if not candidate:
            return ValidationResult(is_valid=False, errors=["Configuration must not be empty"])

        manifest = self._manifest(extension_id)
        if manifest is not None:
            schema = manifest.config_schema
        else:
            schema = self.get(extension_id).config_schema

        errors = check_values(candidate, schema)
        return ValidationResult(is_valid=not errors, errors=errors)

    def save(self, config: ExtensionConfig) -> ExtensionConfig:
        """Create or replace a full config record.

        Raises:
            ValidationError: If the user config violates the record's schema.
        """
        path = self._path(config.extension_id)
        errors = check_values(config.user_config, config.config_schema)
        if errors:
            raise ValidationError("Invalid configuration", errors=errors, extension_id=config.extension_id)

        if path.is_file():
            try:
                config.created_at = self._read(path).created_at
            except ExtensionError as e:
                logger.warning("Replacing unreadable config for %s: %s", config.extension_id, e.message)
        config.updated_at = utcnow()
        self._write(config)
        logger.info("Saved config for %s", config.extension_id)
        return config

    def delete(self, extension_id: str, missing_ok: bool = False) -> bool:
        """Delete a stored config.

        Raises:
            NotFoundError: If there is no stored config and ``missing_ok`` is False.
        """
        path = self._path(extension_id)
        if not path.is_file():
            if missing_ok:
                return False
            raise NotFoundError(f"No configuration found for {extension_id}", extension_id=extension_id)
        path.unlink()
        logger.info("Deleted config for %s", extension_id)
        return True

    def list(
        self,
        extension_type: str | None = None,
        enabled: bool | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> ConfigPage:
        """List stored configs with optional filters.

        Unreadable config files are logged and skipped.
        """
        configs: list[ExtensionConfig] = []
        if self.configs_dir.is_dir():
            for path in sorted(self.configs_dir.glob("*.json")):
                try:
                    configs.append(self._read(path))
                except ExtensionError as e:
                    logger.warning("Skipping config %s: %s", path.name, e.message)

        if extension_type and extension_type != "all":
            configs = [c for c in configs if c.extension_type and c.extension_type.value == extension_type]
        if enabled is not None:
            configs = [c for c in configs if c.enabled == enabled]

        page = max(page, 1)
        page_size = max(page_size, 1)
        start = (page - 1) * page_size
        return ConfigPage(items=configs[start : start + page_size], total=len(configs), page=page, page_size=page_size)
