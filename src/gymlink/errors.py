"""
Error taxonomy for the gym identity engine.

Every error carries a machine-readable ``kind`` and an HTTP-style
``status_code`` so the admin boundary can render a structured body
without inspecting exception types.

- ValidationError: malformed ids, missing fields, re-reviewing a resolved
  match. The caller can fix the input and retry.
- NotFoundError: a referenced match, source gym or master gym does not exist.
- StorageError: the database is unavailable or kept failing after retries.
"""

from __future__ import annotations


class GymLinkError(Exception):
    """Base class for all engine errors."""

    kind = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.kind, "message": self.message}


class ValidationError(GymLinkError):
    kind = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(GymLinkError):
    kind = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")
        self.resource = resource


class StorageError(GymLinkError):
    kind = "STORAGE_ERROR"
    status_code = 503
