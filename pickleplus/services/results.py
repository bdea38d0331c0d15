"""Typed results returned by the booking services."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class BookingErrorKind(str, Enum):
    """Every failure a booking operation can report."""

    NOT_FOUND = "NOT_FOUND"
    CLASS_NOT_FOUND = "CLASS_NOT_FOUND"
    ALREADY_ACTIVE = "ALREADY_ACTIVE"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    CLASS_CANCELLED = "CLASS_CANCELLED"
    NOT_ENROLLED = "NOT_ENROLLED"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"
    INVALID_ACCESS_CODE = "INVALID_ACCESS_CODE"


@dataclass(frozen=True)
class BookingError:
    kind: BookingErrorKind
    message: str

    @property
    def retryable(self) -> bool:
        """Only a lost race is worth one re-fetch and retry."""
        return self.kind == BookingErrorKind.CONCURRENCY_CONFLICT


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or a ``BookingError``, never both."""

    value: Optional[T] = None
    error: Optional[BookingError] = None

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, kind: BookingErrorKind, message: str) -> "Result[T]":
        return cls(error=BookingError(kind=kind, message=message))

    @property
    def is_ok(self) -> bool:
        return self.error is None
