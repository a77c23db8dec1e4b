"""HTTP client for the VoxNest extension API.

Used by client-side hosts to read the backend's extension list and drive
lifecycle operations remotely.
"""

from __future__ import annotations

from typing import Any

import httpx

from extensions.errors import (
    ConflictError,
    ExtensionError,
    ForbiddenError,
    NotFoundError,
    ParseError,
    StorageError,
    ValidationError,
)

_ERRORS_BY_KIND: dict[str, type[ExtensionError]] = {
    cls.kind: cls
    for cls in (ValidationError, ConflictError, NotFoundError, ForbiddenError, StorageError, ParseError)
}


class ApiClientError(ExtensionError):
    """Raised when the extension API cannot be reached or answers unexpectedly."""

    kind = "client_error"
    status_code = 502


class ExtensionApiClient:
    """Client for the extension management API.

    Example:
        >>> client = ExtensionApiClient("http://localhost:8000", admin_token="secret")
        >>> [e["id"] for e in client.list_extensions(status="active")]
        ['cookie-consent', 'dark-theme']
        >>> client.disable("cookie-consent")
    """

    DEFAULT_PREFIX = "/api/extension"

    def __init__(
        self,
        base_url: str,
        admin_token: str | None = None,
        prefix: str = DEFAULT_PREFIX,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Server base URL.
            admin_token: Token sent as ``X-Admin-Token`` for admin operations.
            prefix: Route prefix of the extension API.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used for testing).
        """
        self.base_url = base_url.rstrip("/")
        self.admin_token = admin_token
        self.prefix = "/" + prefix.strip("/")
        self.timeout = timeout
        self.transport = transport

    def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> Any:
        """Make an API request and unwrap the response envelope."""
        url = self.prefix + endpoint
        headers = {}
        if self.admin_token:
            headers["X-Admin-Token"] = self.admin_token

        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
                response = client.request(method, url, params=params, json=json_data, headers=headers)
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as e:
            raise self._error_from_response(e.response) from e
        except httpx.RequestError as e:
            raise ApiClientError(f"Connection error: {e}") from e
        except ValueError as e:
            raise ApiClientError(f"Invalid JSON from {url}: {e}") from e

        if not isinstance(body, dict) or not body.get("success", False):
            raise ApiClientError(f"Unexpected response from {url}")
        return body.get("data")

    def _error_from_response(self, response: httpx.Response) -> ExtensionError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("message") or f"API error: {response.status_code}"
        error_cls = _ERRORS_BY_KIND.get(body.get("errorCode") or "", ApiClientError)
        return error_cls(message, errors=body.get("errors") or [])

    def list_extensions(
        self,
        status: str | None = None,
        ext_type: str | None = None,
        search: str | None = None,
        page_size: int = 100,
    ) -> list[dict[str, Any]]:
        """List extensions, following pagination.

        Returns:
            Registry entries as dicts.
        """
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            params: dict[str, Any] = {"pageNumber": page, "pageSize": page_size}
            if status:
                params["status"] = status
            if ext_type:
                params["type"] = ext_type
            if search:
                params["search"] = search
            data = self._request("GET", "", params=params)
            items.extend(data.get("items", []))
            if page >= data.get("totalPages", 0):
                return items
            page += 1

    def stats(self) -> dict[str, Any]:
        return self._request("GET", "/stats")

    def enable(self, extension_id: str) -> dict[str, Any]:
        return self._request("POST", f"/{extension_id}/enable")

    def disable(self, extension_id: str) -> dict[str, Any]:
        return self._request("POST", f"/{extension_id}/disable")

    def reload(self, extension_id: str) -> dict[str, Any]:
        return self._request("POST", f"/{extension_id}/reload")

    def activate(self, extension_id: str) -> dict[str, Any]:
        return self._request("POST", f"/{extension_id}/activate")

    def uninstall(self, extension_id: str, purge_config: bool = False) -> Any:
        return self._request(
            "POST", f"/{extension_id}/uninstall", params={"purgeConfig": str(purge_config).lower()}
        )

    def get_config(self, extension_id: str) -> dict[str, Any]:
        return self._request("GET", f"/configs/{extension_id}")

    def update_config(self, extension_id: str, user_config: dict[str, Any]) -> dict[str, Any]:
        return self._request("PUT", f"/configs/{extension_id}", json_data={"userConfig": user_config})
