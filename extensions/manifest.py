"""Extension manifest and index schema for VoxNest extensions.

Defines the structure and validation for extension manifests (manifest.json)
and for the extensions index (extensions.json) kept at the extensions root.
Both documents are stored with camelCase keys.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

INDEX_VERSION = "1.0.0"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExtensionType(str, Enum):
    """Type of extension."""

    PLUGIN = "plugin"
    THEME = "theme"


class LifecycleState(str, Enum):
    """Persisted lifecycle state of an installed extension."""

    UPLOADED = "uploaded"
    INSTALLED = "installed"
    ENABLED = "enabled"
    DISABLED = "disabled"
    ACTIVE = "active"  # Themes only
    UNINSTALLED = "uninstalled"


class PropertyType(str, Enum):
    """Value types a configuration property can declare."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    COLOR = "color"
    SELECT = "select"
    TEXTAREA = "textarea"
    URL = "url"


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        """Dump to a JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _sorted_unique(values: Any) -> list[str]:
    if values is None:
        return []
    return sorted({str(v) for v in values})


class SelectOption(CamelModel):
    label: str
    value: Any


class ConfigProperty(CamelModel):
    """A single declared configuration key."""

    type: PropertyType = PropertyType.STRING
    title: str | None = None
    description: str | None = None
    default: Any = None
    required: bool = False
    options: list[SelectOption] = Field(default_factory=list)
    min: float | None = None
    max: float | None = None
    pattern: str | None = None
    format: str | None = None
    group: str | None = None
    order: int | None = None

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set


class ConfigGroup(CamelModel):
    id: str
    title: str
    description: str | None = None
    order: int = 0
    collapsible: bool = False
    collapsed: bool = False


class ConfigSchema(CamelModel):
    """Grouped property declarations for an extension's configuration."""

    title: str | None = None
    description: str | None = None
    properties: dict[str, ConfigProperty] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)
    groups: list[ConfigGroup] = Field(default_factory=list)

    def defaults(self) -> dict[str, Any]:
        """Collect the declared default of every property that has one."""
        return {
            key: prop.default
            for key, prop in self.properties.items()
            if prop.has_default
        }

    def required_keys(self) -> list[str]:
        keys = list(self.required)
        for key, prop in self.properties.items():
            if prop.required and key not in keys:
                keys.append(key)
        return keys


class Capabilities(CamelModel):
    """Slots and hooks an extension contributes to on the client."""

    slots: list[str] = Field(default_factory=list)
    hooks: list[str] = Field(default_factory=list)

    @field_validator("slots", "hooks", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> list[str]:
        return _sorted_unique(value)


class FrameworkRequirement(CamelModel):
    min_version: str | None = None
    max_version: str | None = None


class ThemeInfo(CamelModel):
    supports: list[str] = Field(default_factory=list)
    variables: dict[str, Any] = Field(default_factory=dict)


class ExtensionManifest(CamelModel):
    """Parsed extension manifest.

    Example manifest.json:
        {
          "id": "cookie-consent",
          "name": "Cookie Consent",
          "version": "1.0.0",
          "type": "plugin",
          "author": "VoxNest",
          "main": "index.tsx",
          "capabilities": {"slots": ["app.footer"]},
          "configSchema": {"properties": {"showBanner": {"type": "boolean", "default": true}}}
        }
    """

    id: str
    name: str
    version: str
    type: ExtensionType
    author: str = ""
    description: str = ""
    enabled: bool = False
    main: str | None = Field(None, validation_alias=AliasChoices("main", "entry"))
    homepage: str | None = None
    repository: str | None = None
    tags: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)
    capabilities: Capabilities = Field(default_factory=Capabilities)
    config_schema: ConfigSchema | None = None
    default_config: dict[str, Any] | None = None
    framework: FrameworkRequirement | None = None
    theme: ThemeInfo | None = None
    builtin: bool = False

    @model_validator(mode="before")
    @classmethod
    def _fold_legacy_capabilities(cls, data: Any) -> Any:
        # Older manifests list slots and hooks at the top level
        if not isinstance(data, dict):
            return data
        legacy_slots = data.get("slots")
        legacy_hooks = data.get("hooks")
        if legacy_slots is None and legacy_hooks is None:
            return data
        data = dict(data)
        data.pop("slots", None)
        data.pop("hooks", None)
        caps = data.get("capabilities") or {}
        if isinstance(caps, BaseModel):
            caps = caps.model_dump()
        caps = dict(caps)
        caps["slots"] = list(caps.get("slots") or []) + list(legacy_slots or [])
        caps["hooks"] = list(caps.get("hooks") or []) + list(legacy_hooks or [])
        data["capabilities"] = caps
        return data

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        if not ID_PATTERN.match(value):
            raise ValueError(f"Invalid extension id: {value!r}")
        return value

    @field_validator("name", "version")
    @classmethod
    def _check_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @property
    def is_theme(self) -> bool:
        return self.type == ExtensionType.THEME

    def default_values(self) -> dict[str, Any]:
        """Schema defaults overlaid with explicit ``defaultConfig`` entries."""
        values = self.config_schema.defaults() if self.config_schema else {}
        values.update(self.default_config or {})
        return values


class IndexEntry(CamelModel):
    """One extension record in extensions.json."""

    id: str
    name: str
    type: ExtensionType
    version: str = ""
    enabled: bool = False
    state: LifecycleState = LifecycleState.INSTALLED
    description: str = ""
    author: str = ""
    main: str | None = None
    dependencies: list[str] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    slots: list[str] = Field(default_factory=list)
    installed_at: datetime | None = None
    installed_by: str | None = None
    activated_at: datetime | None = None

    @classmethod
    def from_manifest(
        cls,
        manifest: ExtensionManifest,
        state: LifecycleState = LifecycleState.INSTALLED,
        installed_by: str | None = None,
    ) -> IndexEntry:
        return cls(
            id=manifest.id,
            name=manifest.name,
            type=manifest.type,
            version=manifest.version,
            enabled=manifest.enabled,
            state=state,
            description=manifest.description,
            author=manifest.author,
            main=manifest.main,
            dependencies=manifest.dependencies,
            permissions=manifest.permissions,
            tags=manifest.tags,
            slots=manifest.capabilities.slots,
            installed_at=utcnow(),
            installed_by=installed_by,
        )


class IndexMeta(CamelModel):
    version: str = INDEX_VERSION
    description: str = "VoxNest extension index"
    last_updated: datetime | None = None
    total_extensions: int = 0
    revision: int = 0


class ExtensionIndex(CamelModel):
    """The extensions.json document."""

    meta: IndexMeta = Field(default_factory=IndexMeta)
    extensions: list[IndexEntry] = Field(default_factory=list)

    def get(self, extension_id: str) -> IndexEntry | None:
        for entry in self.extensions:
            if entry.id == extension_id:
                return entry
        return None

    def upsert(self, entry: IndexEntry) -> None:
        for i, existing in enumerate(self.extensions):
            if existing.id == entry.id:
                self.extensions[i] = entry
                return
        self.extensions.append(entry)

    def remove(self, extension_id: str) -> bool:
        before = len(self.extensions)
        self.extensions = [e for e in self.extensions if e.id != extension_id]
        return len(self.extensions) != before

    def __contains__(self, extension_id: str) -> bool:
        return self.get(extension_id) is not None

    def __len__(self) -> int:
        return len(self.extensions)
