"""Custom exception hierarchy for TenantGate.

Provides structured error types that the centralized error handler
translates into consistent JSON responses.
"""

from __future__ import annotations

from collections.abc import Iterable


class TenantGateError(Exception):
    """Base exception for all TenantGate errors."""

    status_code: int = 500
    error_type: str = "internal_error"

    def __init__(self, message: str = "An internal error occurred") -> None:
        self.message = message
        super().__init__(message)


class Unauthorized(TenantGateError):
    """A guard assertion failed.

    Carries the action and the namespace/resource that was checked so the
    audit log can record it.  Only ``message`` is shown to the caller.
    """

    status_code = 403
    error_type = "access_denied"

    def __init__(
        self,
        action: str,
        *,
        namespace_id: str | None = None,
        resource_id: str | None = None,
        required_roles: Iterable[str] = (),
    ) -> None:
        self.action = action
        self.namespace_id = namespace_id
        self.resource_id = resource_id
        self.required_roles = tuple(str(r) for r in required_roles)
        super().__init__(f"The actor is not authorized to perform: {action}")


class NotFoundError(TenantGateError):
    """Requested resource was not found."""

    status_code = 404
    error_type = "not_found"


class ValidationError(TenantGateError):
    """Input validation failure beyond Pydantic constraints."""

    status_code = 400
    error_type = "validation_error"


class StorageError(TenantGateError):
    """Database or storage layer failure."""

    status_code = 503
    error_type = "storage_error"


class DataLoadError(StorageError):
    """Groups or rules for an actor could not be read."""

    error_type = "data_load_failure"
