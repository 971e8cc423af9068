"""
Kernel error taxonomy.

Every failure the kernel surfaces to a caller is an ``AppError`` carrying one
of five codes. The HTTP adapter maps codes to status codes; library callers
branch on ``code``.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Closed set of error codes surfaced to callers."""

    FORBIDDEN = "FORBIDDEN"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INTERNAL = "INTERNAL"


_STATUS_BY_CODE = {
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.INTERNAL: 500,
}


class AppError(Exception):
    """Base class for all kernel errors."""

    code: ErrorCode = ErrorCode.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        if code is not None:
            self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return _STATUS_BY_CODE[self.code]

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.code.value}: {self.message}>"


class ForbiddenError(AppError):
    """Authorization denied. The message is safe to show end users."""

    code = ErrorCode.FORBIDDEN

    def __init__(
        self,
        message: str = "You do not have permission to perform this action",
        *,
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)
        # Internal reason code (e.g. NOT_FOUND vs WRONG_INSTITUTION); logged, never shown
        self.reason = reason


class ValidationError(AppError):
    code = ErrorCode.VALIDATION_ERROR


class NotFoundError(AppError):
    code = ErrorCode.NOT_FOUND


class ConflictError(AppError):
    code = ErrorCode.CONFLICT


class InternalError(AppError):
    code = ErrorCode.INTERNAL


class AccessStoreUnavailable(InternalError):
    """The resource store failed while computing a verdict. Treat as deny-and-alert."""


class ImpersonationSessionError(ValidationError):
    """
    An impersonation token was presented but the session is not usable.

    ``cause`` is one of EXPIRED, INACTIVE, REVOKED or COMPLETED so callers can
    tell the user exactly why the session ended.
    """

    def __init__(self, message: str, *, status: str, cause: str):
        super().__init__(message, details={"status": status, "cause": cause})
        self.status = status
        self.cause = cause
