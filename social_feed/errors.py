"""
Typed error hierarchy shared by the store, the services and the HTTP layer.

  ValidationError        400 — malformed input, rejected before any store call
    InvalidOperation         — e.g. following yourself
    InvalidCursor            — cursor does not reference an existing document
  AuthenticationRequired 401 — no principal on a mutation
  Unauthorized           403 — ownership check failed
  NotFound               404 — referenced entity absent
  StorageError           503 — backend unavailable or query failure
    DuplicateDocument    409 — uniqueness constraint violated
"""
from typing import Optional


class AppError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, context: Optional[dict] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidOperation(ValidationError):
    code = "INVALID_OPERATION"


class InvalidCursor(ValidationError):
    code = "INVALID_CURSOR"


class AuthenticationRequired(AppError):
    status_code = 401
    code = "UNAUTHENTICATED"


class Unauthorized(AppError):
    status_code = 403
    code = "UNAUTHORIZED"


class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"


class StorageError(AppError):
    status_code = 503
    code = "STORAGE_ERROR"


class DuplicateDocument(StorageError):
    """A create collided with a uniqueness constraint."""

    status_code = 409
    code = "ALREADY_EXISTS"
