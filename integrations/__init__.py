"""Client integration registry for VoxNest extensions.

Mirrors the backend's enabled extensions on the client side:
- SlotManager: components contributed to named UI slots
- IntegrationManager: named lifecycle hook sets
- ExtensionFramework: the host that loads extension modules into both
- ExtensionApiClient: HTTP client used to sync with the backend

Usage:
    framework = ExtensionFramework()
    framework.initialize()
    framework.sync(ExtensionApiClient("http://localhost:8000"), modules)
"""

from .base import (
    Contribution,
    ContributionKind,
    HookContext,
    HookName,
    Integration,
    ResolvedComponent,
    SlotRegistration,
)
from .client import ApiClientError, ExtensionApiClient
from .framework import ExtensionFramework, ExtensionScope, FrameworkSnapshot, FrameworkStatus, SyncResult
from .manager import HookResult, IntegrationManager
from .resolver import resolve_contribution
from .slots import SlotManager

__all__ = [
    "ApiClientError",
    "Contribution",
    "ContributionKind",
    "ExtensionApiClient",
    "ExtensionFramework",
    "ExtensionScope",
    "FrameworkSnapshot",
    "FrameworkStatus",
    "HookContext",
    "HookName",
    "HookResult",
    "Integration",
    "IntegrationManager",
    "ResolvedComponent",
    "SlotManager",
    "SlotRegistration",
    "SyncResult",
    "resolve_contribution",
]
