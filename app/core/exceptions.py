from enum import Enum

from fastapi import status


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    INVALID_INPUT = "invalid_input"
    CONFLICT = "conflict"
    PERSISTENCE_FAILURE = "persistence_failure"
    NOTIFICATION_FAILURE = "notification_failure"
    UNAUTHORIZED = "unauthorized"


class ServiceError(Exception):
    """Base exception for service layer errors."""

    kind: ErrorKind = ErrorKind.PERSISTENCE_FAILURE
    retryable: bool = False

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def to_detail(self) -> dict:
        """Structured error body returned to API callers."""
        detail = {"kind": self.kind.value, "message": self.message}
        if self.retryable:
            detail["retryable"] = True
        return detail


class NotFoundError(ServiceError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class AuthenticationError(ServiceError):
    kind = ErrorKind.UNAUTHORIZED

    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(message, status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(ServiceError):
    kind = ErrorKind.FORBIDDEN

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class InvalidInputError(ServiceError):
    kind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class ConflictError(ServiceError):
    """Concurrent or duplicate write; the caller may retry."""

    kind = ErrorKind.CONFLICT
    retryable = True

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class PersistenceError(ServiceError):
    kind = ErrorKind.PERSISTENCE_FAILURE

    def __init__(self, message: str = "Failed to persist changes") -> None:
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


class NotificationError(ServiceError):
    """Raised inside notification transports only; flows convert it to a failed result."""

    kind = ErrorKind.NOTIFICATION_FAILURE

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_502_BAD_GATEWAY)
