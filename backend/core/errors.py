"""Error taxonomy for the appointment API.

Each error is an ``HTTPException`` so FastAPI renders it as ``{"detail": ...}``
and tests can assert on ``status_code`` and ``detail`` directly.
"""

from fastapi import HTTPException, status


class InvalidRequestError(HTTPException):
    def __init__(self, detail: str = 'Missing required fields') -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class AuthorizationError(HTTPException):
    def __init__(self, detail: str = 'Forbidden: access denied') -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFoundError(HTTPException):
    def __init__(self, detail: str = 'Not found') -> None:
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class AvailabilityConflictError(HTTPException):
    """A requested slot cannot be booked; ``reason`` is the conflict check result."""

    def __init__(self, reason, detail: str) -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)
        self.reason = reason


class ExpiredCapabilityError(HTTPException):
    def __init__(self, detail: str = 'Call link expired') -> None:
        super().__init__(status_code=status.HTTP_410_GONE, detail=detail)


class DatabaseUnavailableError(HTTPException):
    def __init__(self) -> None:
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        )
