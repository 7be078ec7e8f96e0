"""
Error taxonomy for reminder queue operations.

A single exception type carries an ``ErrorKind`` tag. Callers dispatch on
``error.kind`` rather than on subclasses:

    try:
        await service.claim_due({"claimerId": "poller-1"})
    except ReminderServiceError as e:
        match e.kind:
            case ErrorKind.VALIDATION:
                ...  # fix the request
            case ErrorKind.STORAGE:
                ...  # nothing was persisted; retry if e.retryable
            case ErrorKind.NOT_FOUND:
                ...
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    STORAGE = "storage_error"
    NOT_FOUND = "not_found"


class ReminderServiceError(Exception):
    """Tagged failure surfaced by the service layer."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        field: str | None = None,
        operation: str | None = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.field = field
        self.operation = operation
        self.recoverable = recoverable

    @property
    def retryable(self) -> bool:
        return self.kind is ErrorKind.STORAGE and self.recoverable

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.kind.value, "message": self.message}
        if self.field:
            payload["field"] = self.field
        return payload

    def __repr__(self) -> str:
        return f"ReminderServiceError(kind={self.kind.name}, message={self.message!r}, field={self.field!r})"


def validation_error(message: str, field: str | None = None) -> ReminderServiceError:
    return ReminderServiceError(ErrorKind.VALIDATION, message, field=field)


def storage_error(
    message: str, operation: str = "unknown", recoverable: bool = True
) -> ReminderServiceError:
    return ReminderServiceError(
        ErrorKind.STORAGE, message, operation=operation, recoverable=recoverable
    )


def not_found(message: str) -> ReminderServiceError:
    return ReminderServiceError(ErrorKind.NOT_FOUND, message)


class MigrationError(RuntimeError):
    """Schema migration failed; the store must not be served."""

    def __init__(self, message: str, version: int | None = None):
        super().__init__(message)
        self.version = version
