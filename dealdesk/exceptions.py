"""
DealDesk - Exception Hierarchy

All DealDesk-specific exceptions inherit from DealDeskError.
Remote store failures carry the store's error code, HTTP status and hint so
callers can tell an access-policy denial from schema drift or a business rule.
"""

from typing import Any


class DealDeskError(Exception):
    """Base exception for all DealDesk errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Configuration and input errors
class ConfigError(DealDeskError):
    """Raised when configuration is invalid or missing."""

    pass


class ValidationError(DealDeskError):
    """Raised when required identifiers or parameters are missing.

    Always raised before any network call is made.
    """

    pass


# Remote store errors
class RemoteStoreError(DealDeskError):
    """Base exception for errors returned by the remote REST store.

    A plain RemoteStoreError is the generic class: network, constraint or
    anything the classifier does not recognise.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status: int | None = None,
        hint: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        merged = {"code": code, "status": status}
        if hint:
            merged["hint"] = hint
        if details:
            merged.update(details)
        super().__init__(message, {k: v for k, v in merged.items() if v is not None})
        self.code = code
        self.status = status
        self.hint = hint

    def __str__(self) -> str:
        # Classifiers match on the raw store message.
        return self.message


class RemoteConnectionError(RemoteStoreError):
    """Raised when the REST endpoint cannot be reached."""

    pass


class AccessDeniedError(RemoteStoreError):
    """Raised when a row or column access policy rejects the request."""

    pass


class PermissionRemediationError(AccessDeniedError):
    """Access denial rewritten with actionable remediation steps.

    Raised only when a policy references the identity table.
    """

    def __init__(self, message: str, original: BaseException | None = None):
        code = getattr(original, "code", None)
        status = getattr(original, "status", None)
        super().__init__(message, code=code, status=status)
        self.original = original


class MissingColumnError(RemoteStoreError):
    """Raised when the store's schema cache does not know a column."""

    def __init__(self, message: str, column: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.column = column
        if column:
            self.details["column"] = column


class MissingRelationshipError(RemoteStoreError):
    """Raised when an embedded relationship cannot be found in the schema cache."""

    pass


class StaleCacheError(RemoteStoreError):
    """Raised when the store reports a stale schema cache."""

    pass
