"""Custom exceptions."""
from typing import Optional
from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    """Resource not found exception."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail or "Resource not found")


class ValidationError(HTTPException):
    """Validation exception."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail or "Validation error"
        )


class ConflictError(HTTPException):
    """Conflict exception."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail or "Resource conflict")
