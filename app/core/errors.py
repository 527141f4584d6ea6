"""
Service-level errors.

Services raise these instead of HTTP exceptions so they can be called
in-process. app.main translates them into JSON responses.
"""
from fastapi import status


class ServiceError(Exception):
    """Base class. Anything not covered below is an internal error."""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class BadRequestError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenError(ServiceError):
    """Operation on a system-protected resource."""
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ServiceError):
    """Business invariant would be violated."""
    status_code = status.HTTP_409_CONFLICT
