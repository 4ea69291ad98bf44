"""
Custom exceptions for the KPIGate service.

Provides structured error handling with appropriate HTTP status codes
and error details for API responses. Every component converts its own
failures into one of these before they cross back to the caller.
"""

from typing import Any, Dict, Optional


class KPIGateException(Exception):
    """Base exception for KPIGate service."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        # Extra top-level fields merged into the error body
        self.extra: Dict[str, Any] = {}


class ValidationError(KPIGateException):
    """Raised when the request body is malformed or has wrong types."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code="malformed_input",
            details=details,
        )


class InvalidOperationError(KPIGateException):
    """Raised when the requested operation is not allowed for the endpoint."""

    def __init__(self, operation: Any = None) -> None:
        super().__init__(
            message="Invalid operation",
            status_code=400,
            error_code="invalid_operation",
            details={"operation": operation} if isinstance(operation, str) else None,
        )


class InvalidTableError(KPIGateException):
    """Raised when the requested table is not whitelisted."""

    def __init__(self, table: Any = None) -> None:
        super().__init__(
            message="Invalid table",
            status_code=400,
            error_code="invalid_table",
            details={"table": table} if isinstance(table, str) else None,
        )


class MissingIdentifierError(KPIGateException):
    """Raised when get/update/delete is called without a record id."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            message="Missing id",
            status_code=400,
            error_code="missing_identifier",
            details={"operation": operation},
        )


class NoValidFieldsError(KPIGateException):
    """Raised when a write payload has nothing left after whitelisting."""

    def __init__(self, table: str) -> None:
        super().__init__(
            message="No valid fields provided",
            status_code=400,
            error_code="no_valid_fields",
            details={"table": table},
        )


class AuthenticationError(KPIGateException):
    """Raised when the caller supplies no credential."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            message=message,
            status_code=401,
            error_code="unauthenticated",
        )


class InvalidCredentialError(KPIGateException):
    """Raised when no credential record matches the supplied password."""

    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(
            message=message,
            status_code=401,
            error_code="invalid_credential",
        )


class ForbiddenError(KPIGateException):
    """Raised when an authenticated caller lacks the management flag."""

    def __init__(self, message: str = "Management access required") -> None:
        super().__init__(
            message=message,
            status_code=403,
            error_code="forbidden",
        )


class OriginNotAllowedError(KPIGateException):
    """Raised when a browser request comes from an origin outside the allow-list."""

    def __init__(self, origin: str) -> None:
        super().__init__(
            message="Origin not allowed",
            status_code=403,
            error_code="origin_not_allowed",
            details={"origin": origin},
        )


class NotFoundError(KPIGateException):
    """Raised when a record lookup by id finds nothing."""

    def __init__(self, table: str, record_id: str) -> None:
        super().__init__(
            message="Record not found",
            status_code=404,
            error_code="not_found",
            details={"table": table, "id": record_id},
        )


class RateLimitError(KPIGateException):
    """Raised when rate limit is exceeded."""

    def __init__(
        self,
        message: str = "Too many requests. Please try again later.",
        retry_after: Optional[int] = None,
    ) -> None:
        details = {}
        if retry_after:
            details["retry_after"] = retry_after

        super().__init__(
            message=message,
            status_code=429,
            error_code="rate_limit_exceeded",
            details=details,
        )


class StorageFailure(KPIGateException):
    """
    Raised when the underlying store fails.

    The cause is logged where it is caught; only a generic message
    reaches the caller.
    """

    def __init__(self, operation: str, table: Optional[str] = None) -> None:
        details: Dict[str, Any] = {"operation": operation}
        if table:
            details["table"] = table
        super().__init__(
            message="Database operation failed",
            status_code=500,
            error_code="storage_failure",
            details=details,
        )
