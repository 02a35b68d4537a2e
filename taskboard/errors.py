from __future__ import annotations

from typing import Any, Optional


class TaskboardError(Exception):
    """Base error raised by storage and rendered by the API error handler."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationFailed(TaskboardError):
    status_code = 400
    code = "invalid_request"


class Unauthorized(TaskboardError):
    status_code = 401
    code = "unauthorized"


class Forbidden(TaskboardError):
    status_code = 403
    code = "forbidden"


class NotFound(TaskboardError):
    status_code = 404
    code = "not_found"


class Conflict(TaskboardError):
    status_code = 409
    code = "conflict"


class Gone(TaskboardError):
    status_code = 410
    code = "gone"
