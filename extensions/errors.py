"""Error taxonomy for extension management.

Every failure raised by the core carries a machine readable ``kind`` and the
HTTP status it maps to, so the API and CLI layers can translate errors without
inspecting messages.
"""

from __future__ import annotations

from typing import Any


class ExtensionError(Exception):
    """Base exception for extension management errors."""

    kind = "extension_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        extension_id: str | None = None,
    ):
        self.message = message
        self.errors = list(errors or [])
        self.extension_id = extension_id
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API and CLI output."""
        return {
            "message": self.message,
            "errorCode": self.kind,
            "errors": self.errors,
        }


class ValidationError(ExtensionError):
    """Raised when input, a manifest, an archive or a config fails validation."""

    kind = "validation_error"
    status_code = 400


class ConflictError(ExtensionError):
    """Raised when an extension already exists or the index changed underneath us."""

    kind = "conflict"
    status_code = 400


class NotFoundError(ExtensionError):
    """Raised when an extension, manifest or config cannot be found."""

    kind = "not_found"
    status_code = 404

    @classmethod
    def extension(cls, extension_id: str) -> NotFoundError:
        return cls(f"Extension not found: {extension_id}", extension_id=extension_id)


class ForbiddenError(ExtensionError):
    """Raised when an operation is not allowed on a protected extension."""

    kind = "forbidden"
    status_code = 403


class StorageError(ExtensionError):
    """Raised when the filesystem fails underneath an operation."""

    kind = "io_error"
    status_code = 500


class ParseError(ExtensionError):
    """Raised when a stored JSON document cannot be decoded."""

    kind = "parse_error"
    status_code = 500
