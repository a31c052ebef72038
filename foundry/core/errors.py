"""Application error hierarchy.

Every error that should reach an HTTP caller as a 4xx/5xx is an ``AppError``
carrying its status code and a stable machine-readable ``code``.  The API
layer renders them into the ``{"error": {...}}`` envelope
(see ``foundry.api.errors``).

Errors raised inside the stage pipeline never reach a caller; the executor
records them on the job instead.
"""
from __future__ import annotations

from typing import Any


class AppError(Exception):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "Internal server error",
        *,
        status_code: int | None = None,
        code: str | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return {"error": error}


class BadRequestError(AppError):
    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str = "Invalid request", details: Any = None) -> None:
        super().__init__(message, details=details)


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Validation failed", details: Any = None) -> None:
        super().__init__(message, details=details)


class UnauthorizedError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class TokenExpiredError(AppError):
    status_code = 401
    code = "TOKEN_EXPIRED"

    def __init__(self, message: str = "Token has expired") -> None:
        super().__init__(message)


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "Access forbidden") -> None:
        super().__init__(message)


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message)


class UnprocessableError(AppError):
    status_code = 422
    code = "UNPROCESSABLE_ENTITY"

    def __init__(self, message: str = "Cannot process request", details: Any = None) -> None:
        super().__init__(message, details=details)


class InternalServerError(AppError):
    status_code = 500
    code = "INTERNAL_ERROR"
