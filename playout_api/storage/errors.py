"""Error taxonomy for storage operations.

Each error carries the HTTP status the API layer answers with:
    try:
        sandbox.normalize(root, source)
    except StorageError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
"""

from __future__ import annotations


class StorageError(Exception):
    """Base class for failures surfaced to API callers."""

    status_code = 500


class Forbidden(StorageError):
    """Raised when a path resolves outside every allowed root."""

    status_code = 403


class BadRequest(StorageError):
    status_code = 400


class NotFound(StorageError):
    status_code = 404


class Conflict(StorageError):
    status_code = 409


class PayloadTooLarge(StorageError):
    status_code = 413


class InternalError(StorageError):
    """Raised when a classification branch that should be unreachable is hit."""

    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
