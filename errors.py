"""
Errors raised by the scheduling code.

Each carries the HTTP status it maps to; main.py renders them with the same
``{"detail": ...}`` body FastAPI uses for HTTPException.
"""

from fastapi import status


class SchedulerError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Server error"
    headers = None

    def __init__(self, detail: str = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class ValidationError(SchedulerError):
    status_code = 422
    detail = "Invalid input"


class NotFound(SchedulerError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Not found"


class NotFoundOrUnauthorized(NotFound):
    # Absent and not-yours look the same to the caller
    detail = "Meeting not found or not authorized"


class Conflict(SchedulerError):
    status_code = status.HTTP_409_CONFLICT
    detail = "Conflict"


class Unauthorized(SchedulerError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Unauthorized"


class InvalidCredentials(Unauthorized):
    detail = "Could not validate credentials"
    headers = {"WWW-Authenticate": "Bearer"}


class Forbidden(SchedulerError):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "Forbidden"


class InternalError(SchedulerError):
    pass
