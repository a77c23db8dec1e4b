"""Extension configuration routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Query

from api.deps import get_services, require_admin
from api.schemas import ConfigUpdateRequest, ok
from extensions.config_store import ExtensionConfig
from extensions.services import ExtensionServices

router = APIRouter(prefix="/configs", tags=["configs"])


@router.get("")
def list_configs(
    extension_type: str | None = Query(None, alias="extensionType"),
    enabled: bool | None = None,
    page_number: int = Query(1, alias="pageNumber", ge=1),
    page_size: int = Query(20, alias="pageSize", ge=1, le=500),
    services: ExtensionServices = Depends(get_services),
) -> dict[str, Any]:
    page = services.configs.list(
        extension_type=extension_type,
        enabled=enabled,
        page=page_number,
        page_size=page_size,
    )
    return ok(page.to_dict())


@router.post("", dependencies=[Depends(require_admin)])
def save_config(
    config: ExtensionConfig,
    services: ExtensionServices = Depends(get_services),
) -> dict[str, Any]:
    saved = services.configs.save(config)
    return ok(saved.to_json_dict(), message=f"Saved config for {saved.extension_id}")


@router.get("/{extension_id}")
def get_config(extension_id: str, services: ExtensionServices = Depends(get_services)) -> dict[str, Any]:
    """Get an extension's config, creating it from the manifest if needed."""
    return ok(services.configs.get(extension_id).to_json_dict())


@router.put("/{extension_id}", dependencies=[Depends(require_admin)])
def update_config(
    extension_id: str,
    body: ConfigUpdateRequest,
    services: ExtensionServices = Depends(get_services),
) -> dict[str, Any]:
    config = services.configs.set(extension_id, body.user_config, enabled=body.enabled)
    return ok(config.to_json_dict(), message=f"Updated config for {extension_id}")


@router.post("/{extension_id}/reset", dependencies=[Depends(require_admin)])
def reset_config(extension_id: str, services: ExtensionServices = Depends(get_services)) -> dict[str, Any]:
    defaults = services.configs.reset(extension_id)
    return ok(defaults, message=f"Reset config for {extension_id}")


@router.post("/{extension_id}/validate")
def validate_config(
    extension_id: str,
    candidate: dict[str, Any] = Body(...),
    services: ExtensionServices = Depends(get_services),
) -> dict[str, Any]:
    result = services.configs.validate(extension_id, candidate)
    return ok(result.to_dict(), message="Valid" if result.is_valid else "Invalid configuration")


@router.delete("/{extension_id}", dependencies=[Depends(require_admin)])
def delete_config(extension_id: str, services: ExtensionServices = Depends(get_services)) -> dict[str, Any]:
    services.configs.delete(extension_id)
    return ok({"id": extension_id}, message=f"Deleted config for {extension_id}")
