"""
Domain error taxonomy and the result type returned by service operations.

Expected failures (bad input, wrong credentials, missing resources) travel
back to the route layer as a ``Result`` carrying a ``DomainError``. Anything
else is a real exception and is left to propagate.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class DomainError:
    kind: ErrorKind
    message: str
    field: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or a ``DomainError``; never both."""

    value: Optional[T] = None
    error: Optional[DomainError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        *,
        field: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> "Result[T]":
        return cls(error=DomainError(kind, message, field=field, reason=reason))


def validation_error(message: str, field: Optional[str] = None) -> Result:
    return Result.failure(ErrorKind.VALIDATION, message, field=field)


def not_found(message: str) -> Result:
    return Result.failure(ErrorKind.NOT_FOUND, message)


class DuplicateEmailError(Exception):
    """Raised by a user store when the email uniqueness constraint is hit."""

    def __init__(self, email: str):
        super().__init__(f"Email address already exists: {email}")
        self.email = email


class ApiError(Exception):
    """Raised in the HTTP layer; rendered as ``{"errorMessage": ...}``."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
