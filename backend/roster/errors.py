"""Tagged outcomes and error kinds returned across the record-management boundary."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    INVALID_NAME = "invalid_name"
    INVALID_AGE = "invalid_age"
    INVALID_GRADE = "invalid_grade"
    INVALID_DATE = "invalid_date"
    INVALID_OFFERING = "invalid_offering"
    INVALID_SORT_KEY = "invalid_sort_key"
    DUPLICATE_LEARNER = "duplicate_learner"
    LEARNER_NOT_FOUND = "learner_not_found"
    ENROLLMENT_NOT_FOUND = "enrollment_not_found"
    STORE_ERROR = "store_error"
    EXCHANGE_ERROR = "exchange_error"

    @property
    def is_validation(self) -> bool:
        return self in _VALIDATION_KINDS


_VALIDATION_KINDS = {
    ErrorKind.INVALID_NAME,
    ErrorKind.INVALID_AGE,
    ErrorKind.INVALID_GRADE,
    ErrorKind.INVALID_DATE,
    ErrorKind.INVALID_OFFERING,
    ErrorKind.INVALID_SORT_KEY,
}


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class RosterError(Exception):
    """Raised inside a unit of work to force a rollback, or by ``Outcome.unwrap``."""

    kind: ErrorKind = ErrorKind.STORE_ERROR

    def __init__(self, message: str, *, kind: Optional[ErrorKind] = None) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind

    def to_failure(self) -> Failure:
        return Failure(kind=self.kind, message=self.message)


class DuplicateLearnerError(RosterError):
    kind = ErrorKind.DUPLICATE_LEARNER


class LearnerNotFoundError(RosterError):
    kind = ErrorKind.LEARNER_NOT_FOUND


class EnrollmentNotFoundError(RosterError):
    kind = ErrorKind.ENROLLMENT_NOT_FOUND


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value (``ok``) or a tagged ``Failure``. Callers must inspect ``ok``."""

    ok: bool
    value: Optional[T] = None
    failure: Optional[Failure] = None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(ok=True, value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str) -> "Outcome[T]":
        return cls(ok=False, failure=Failure(kind=kind, message=message))

    @classmethod
    def from_error(cls, exc: RosterError) -> "Outcome[T]":
        return cls(ok=False, failure=exc.to_failure())

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.failure.kind if self.failure else None

    def unwrap(self) -> T:
        if not self.ok:
            assert self.failure is not None
            raise RosterError(self.failure.message, kind=self.failure.kind)
        return self.value  # type: ignore[return-value]


__all__ = [
    "DuplicateLearnerError",
    "EnrollmentNotFoundError",
    "ErrorKind",
    "Failure",
    "LearnerNotFoundError",
    "Outcome",
    "RosterError",
]
