"""Shared API dependencies."""

from __future__ import annotations

import secrets

from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from extensions.services import ExtensionServices

admin_token_header = APIKeyHeader(name="X-Admin-Token", auto_error=False)


def get_services(request: Request) -> ExtensionServices:
    return request.app.state.services


def require_admin(request: Request, token: str | None = Security(admin_token_header)) -> None:
    """Reject requests without the configured admin token.

    When no token is configured, every request is allowed.
    """
    expected = request.app.state.config.server.admin_token
    if not expected:
        return
    if not token or not secrets.compare_digest(token.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing admin token",
        )
