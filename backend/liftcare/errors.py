"""Error taxonomy raised by services and turned into the JSON envelope by main."""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, status


class ServiceError(HTTPException):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Unexpected server error"

    def __init__(self, message: Optional[str] = None, error: Optional[str] = None):
        super().__init__(status_code=self.status_code, detail=message or self.default_message)
        self.message = message or self.default_message
        self.error = error


class ValidationError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation error"


class AuthError(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class AuthorizationError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You do not have permission to access this resource"


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class ConflictError(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflicting state"


class InvalidStateError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid state for this operation"


class UnexpectedError(ServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Unexpected server error"
