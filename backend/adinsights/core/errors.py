"""API error classes.

Every error raised towards the HTTP layer carries a machine-readable code,
a human-readable message, and an HTTP status. The exception handler in
main.py renders them into the standard error envelope.
"""

from enum import Enum


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for request body validation errors, query param errors, etc.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class AuthErrorKind(str, Enum):
    """Why an authentication flow failed."""

    INVALID_STATE = "invalid_state"
    UPSTREAM_OAUTH_FAILURE = "upstream_oauth_failure"
    MISSING_SESSION = "missing_session"


_AUTH_ERROR_MESSAGES = {
    AuthErrorKind.INVALID_STATE: "Invalid OAuth state",
    AuthErrorKind.UPSTREAM_OAUTH_FAILURE: "OAuth authentication failed",
    AuthErrorKind.MISSING_SESSION: "Authentication required",
}


class AuthError(APIError):
    """Authentication failure (401).

    The message is always generic. Provider error bodies and other
    diagnostics belong in server logs only.

    Attributes:
        kind: AuthErrorKind describing the failure.
    """

    def __init__(self, kind: AuthErrorKind, message: str | None = None) -> None:
        self.kind = kind
        super().__init__(
            code=kind.name,
            message=message or _AUTH_ERROR_MESSAGES[kind],
            status_code=401,
        )


class NotFoundError(APIError):
    """Resource not found (404).

    Use when requested resource doesn't exist OR doesn't belong to user.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Duplicate or conflicting resource (409).

    Accepts custom code for specific conflict types.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class RateLimitError(APIError):
    """Too many requests (429)."""

    def __init__(self, message: str = "Too many requests") -> None:
        super().__init__(
            code="RATE_LIMITED",
            message=message,
            status_code=429,
        )


class DatabaseError(APIError):
    """Persistence failure (500).

    The underlying driver error is logged where it is caught; clients only
    see the generic message.
    """

    def __init__(self, message: str = "A database error occurred") -> None:
        super().__init__(
            code="DATABASE_ERROR",
            message=message,
            status_code=500,
        )



class InternalError(APIError):
    """Unexpected server failure (500).

    Rendered by the catch-all handler; the traceback is logged, never sent.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
