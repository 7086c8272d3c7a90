"""
Typed failures raised by the issue domain.

Routes never build error bodies themselves: main.py registers one handler
for CivicPulseError that renders {"success": false, "error", "message"}.
"""

from typing import Optional


class CivicPulseError(Exception):
    """Base class for expected, user-visible failures."""

    status_code = 500
    error = "Request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.error
        super().__init__(self.message)


class NotFoundError(CivicPulseError):
    status_code = 404
    error = "Not found"


class ValidationFailure(CivicPulseError):
    status_code = 400
    error = "Validation failed"


class PermissionDenied(CivicPulseError):
    status_code = 403
    error = "Access denied"


class PersistenceFailure(CivicPulseError):
    """Store-layer failure. The message shown to callers stays generic."""

    status_code = 500
    error = "Persistence failure"

    def __init__(self, message: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
