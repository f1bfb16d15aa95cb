"""
Error taxonomy shared by the MCP tools and the REST API.

Every failure that reaches a caller is one of the ErrorCode values below.
The REST layer maps codes to HTTP status; the MCP layer embeds the code in
the tool response envelope.
"""
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes surfaced to callers."""

    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    DATABASE_ERROR = "DATABASE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    # REST only
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"


HTTP_STATUS_BY_CODE = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.DATABASE_ERROR: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


class ContextStoreError(Exception):
    """Base exception for errors that are reported to the caller."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, code: ErrorCode | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_CODE[self.code]


class InvalidInputError(ContextStoreError):
    """Malformed key, content or parameters."""

    code = ErrorCode.INVALID_INPUT


class NotFoundError(ContextStoreError):
    """Key, user or API key does not exist."""

    code = ErrorCode.NOT_FOUND


class UnauthorizedError(ContextStoreError):
    """No credential was presented."""

    code = ErrorCode.UNAUTHORIZED


class InvalidCredentialError(ContextStoreError):
    """A credential was presented but rejected (bad token, revoked key)."""

    code = ErrorCode.FORBIDDEN


class ForbiddenError(ContextStoreError):
    """Valid credential, insufficient privilege."""

    code = ErrorCode.FORBIDDEN


class ConflictError(ContextStoreError):
    """Uniqueness violation that the caller can resolve (duplicate key name, key cap)."""

    code = ErrorCode.CONFLICT


class RateLimitedError(ContextStoreError):
    """Too many requests from one client in the current window."""

    code = ErrorCode.RATE_LIMITED


class AuthenticationError(ContextStoreError):
    """Internal failure while resolving a principal (profile fetch, lookup error)."""

    code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str = "Authentication error"):
        super().__init__(message)
