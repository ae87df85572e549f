"""Typed errors raised by the routing core.

Every error carries a stable ``code`` so callers can branch on type or code
instead of parsing messages.
"""

from __future__ import annotations


class RoutingError(Exception):
    """Base class for travel request routing errors."""

    code: str = "routing_error"


class ValidationError(RoutingError):
    """Malformed input at request creation; nothing was stored."""

    code = "validation_error"

    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        details = "; ".join(f"{field}: {message}" for field, message in self.errors.items())
        super().__init__(f"Invalid travel request: {details}")


class AuthorizationError(RoutingError):
    """Verdict submitted by a role that may not act on the request."""

    code = "not_authorized"

    def __init__(
        self,
        reason: str,
        *,
        request_id: str | None = None,
        role: str | None = None,
    ):
        self.reason = reason
        self.request_id = request_id
        self.role = role
        super().__init__(reason)


class ConflictError(RoutingError):
    """A concurrent write advanced the request first."""

    code = "conflict"

    def __init__(
        self,
        request_id: str,
        expected_version: int,
        actual_version: int,
        *,
        detail: str | None = None,
    ):
        self.request_id = request_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        self.detail = detail or (
            f"expected version {expected_version}, found {actual_version}"
        )
        super().__init__(f"Request '{request_id}' state changed, please retry ({self.detail})")


class StorageError(RoutingError):
    """The durable store or object store is unavailable."""

    code = "storage_unavailable"

    def __init__(self, operation: str, message: str | None = None):
        self.operation = operation
        super().__init__(message or f"Storage unavailable during '{operation}'")


class RequestNotFoundError(RoutingError):
    """No travel request exists with the given identifier."""

    code = "not_found"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"No travel request with id '{request_id}'")
