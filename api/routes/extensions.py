"""Extension lifecycle and registry routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, File, Header, Query, UploadFile

from api.deps import get_services, require_admin
from api.schemas import BatchStatusRequest, ToggleRequest, ok
from extensions.errors import NotFoundError, ValidationError
from extensions.services import ExtensionServices

router = APIRouter(tags=["extensions"], dependencies=[Depends(require_admin)])


@router.get("")
def list_extensions(
    search: str | None = None,
    ext_type: str | None = Query(None, alias="type", description="plugin, theme or all"),
    status: str | None = Query(None, description="active, inactive, error, loading or all"),
    page_number: int = Query(1, alias="pageNumber", ge=1),
    page_size: int = Query(20, alias="pageSize", ge=1, le=500),
    services: ExtensionServices = Depends(get_services),
) -> dict[str, Any]:
    page = services.registry.query(
        search=search,
        extension_type=ext_type,
        status=status,
        page=page_number,
        page_size=page_size,
    )
    return ok(page.to_dict())


@router.get("/stats")
def extension_stats(services: ExtensionServices = Depends(get_services)) -> dict[str, Any]:
    return ok(services.registry.stats())


@router.get("/config")
def raw_index(services: ExtensionServices = Depends(get_services)) -> dict[str, Any]:
    """Return extensions.json exactly as stored."""
    data = services.store.read_index_raw()
    if data is None:
        raise NotFoundError("Extensions index not found")
    return ok(data)


@router.post("/validate-structure")
def validate_structure(services: ExtensionServices = Depends(get_services)) -> dict[str, Any]:
    return ok(services.registry.validate_structure())


@router.get("/themes/active")
def active_theme(services: ExtensionServices = Depends(get_services)) -> dict[str, Any]:
    return ok(services.lifecycle.active_theme().to_json_dict())


@router.post("/themes/reset-to-default")
def reset_to_default_theme(services: ExtensionServices = Depends(get_services)) -> dict[str, Any]:
    manifest = services.lifecycle.reset_to_default()
    return ok(manifest.to_json_dict(), message=f"Activated {manifest.id}")


@router.post("/batch-status")
def batch_status(
    body: BatchStatusRequest,
    services: ExtensionServices = Depends(get_services),
) -> dict[str, Any]:
    """Enable or disable several extensions, reporting a result per id."""
    results = services.lifecycle.batch_set_status(body.ids, body.enabled)
    failed = sum(1 for r in results if not r.success)
    return ok(
        {"results": [r.to_dict() for r in results], "succeeded": len(results) - failed, "failed": failed},
        message=f"Updated {len(results) - failed} of {len(results)} extensions",
    )


@router.post("/install")
def install_archive(
    file: UploadFile = File(...),
    user_id: str | None = Header(None, alias="X-User-Id"),
    services: ExtensionServices = Depends(get_services),
) -> dict[str, Any]:
    """Install an extension from an uploaded zip archive."""
    if not (file.filename or "").lower().endswith(".zip"):
        raise ValidationError("Only .zip archives are supported")
    data = file.file.read()
    manifest = services.lifecycle.install(data, user_id=user_id)
    return ok(manifest.to_json_dict(), message=f"Installed {manifest.id}")


@router.post("/{extension_id}/install")
def install_discovered(
    extension_id: str,
    user_id: str | None = Header(None, alias="X-User-Id"),
    services: ExtensionServices = Depends(get_services),
) -> dict[str, Any]:
    manifest = services.lifecycle.install_discovered(extension_id, user_id=user_id)
    return ok(manifest.to_json_dict(), message=f"Installed {extension_id}")


@router.post("/{extension_id}/uninstall")
def uninstall(
    extension_id: str,
    purge_config: bool | None = Query(None, alias="purgeConfig"),
    services: ExtensionServices = Depends(get_services),
) -> dict[str, Any]:
    services.lifecycle.uninstall(extension_id, purge_config=purge_config)
    return ok({"id": extension_id}, message=f"Uninstalled {extension_id}")


@router.post("/{extension_id}/enable")
def enable(extension_id: str, services: ExtensionServices = Depends(get_services)) -> dict[str, Any]:
    manifest = services.lifecycle.enable(extension_id)
    return ok(manifest.to_json_dict(), message=f"Enabled {extension_id}")


@router.post("/{extension_id}/disable")
def disable(extension_id: str, services: ExtensionServices = Depends(get_services)) -> dict[str, Any]:
    manifest = services.lifecycle.disable(extension_id)
    return ok(manifest.to_json_dict(), message=f"Disabled {extension_id}")


@router.post("/{extension_id}/toggle")
def toggle(
    extension_id: str,
    body: ToggleRequest,
    services: ExtensionServices = Depends(get_services),
) -> dict[str, Any]:
    manifest = services.lifecycle.toggle(extension_id, body.enabled)
    state = "Enabled" if body.enabled else "Disabled"
    return ok(manifest.to_json_dict(), message=f"{state} {extension_id}")


@router.post("/{extension_id}/reload")
def reload(extension_id: str, services: ExtensionServices = Depends(get_services)) -> dict[str, Any]:
    manifest = services.lifecycle.reload(extension_id)
    return ok(manifest.to_json_dict(), message=f"Reloaded {extension_id}")


@router.post("/{extension_id}/activate")
def activate(extension_id: str, services: ExtensionServices = Depends(get_services)) -> dict[str, Any]:
    manifest = services.lifecycle.activate(extension_id)
    return ok(manifest.to_json_dict(), message=f"Activated {extension_id}")


@router.get("/{extension_id}")
def get_extension(extension_id: str, services: ExtensionServices = Depends(get_services)) -> dict[str, Any]:
    return ok(services.registry.get_entry(extension_id).to_dict())
