"""Learner, offering and enrollment models with their validation rules."""

from __future__ import annotations

import math
import uuid
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ErrorKind, Outcome

MIN_AGE = 18
MAX_AGE = 100
MIN_GRADE = 0.0
MAX_GRADE = 100.0
DEFAULT_CREDITS = 4
DEFAULT_ENROLLMENT_GRADE = 0.0

M = TypeVar("M", bound=BaseModel)

_FIELD_KINDS: Dict[str, ErrorKind] = {
    "name": ErrorKind.INVALID_NAME,
    "age": ErrorKind.INVALID_AGE,
    "grade": ErrorKind.INVALID_GRADE,
    "enrollment_grade": ErrorKind.INVALID_GRADE,
    "enrollment_date": ErrorKind.INVALID_DATE,
    "courses": ErrorKind.INVALID_OFFERING,
}


def round_grade(value: float) -> float:
    """Round half-up to two decimals (``89.995`` becomes ``90.0``)."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def default_course_name(code: str) -> str:
    return f"Course {code}"


def _check_grade(value: float) -> float:
    if not math.isfinite(value) or value < MIN_GRADE or value > MAX_GRADE:
        raise ValueError(f"Grade must be between {MIN_GRADE:g} and {MAX_GRADE:g}.")
    return round_grade(value)


def _validate(
    model: Type[M],
    payload: Dict[str, Any],
    fallback: ErrorKind,
    kinds: Optional[Dict[str, ErrorKind]] = None,
) -> Outcome[M]:
    kinds = _FIELD_KINDS if kinds is None else kinds
    try:
        return Outcome.success(model.model_validate(payload))
    except ValidationError as exc:
        error = exc.errors()[0]
        field = str(error["loc"][0]) if error.get("loc") else ""
        kind = kinds.get(field, fallback)
        cause = (error.get("ctx") or {}).get("error")
        message = str(cause) if cause is not None else f"{field or 'value'}: {error['msg']}"
        return Outcome.fail(kind, message)


class LearnerFields(BaseModel):
    """The replaceable part of a learner record."""

    model_config = ConfigDict(frozen=True)

    name: str
    age: int
    grade: float
    enrollment_date: date = Field(default_factory=date.today)

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Name cannot be empty.")
        if not all(ch.isalpha() or ch in " -" for ch in trimmed):
            raise ValueError("Name may only contain letters, spaces and hyphens.")
        return trimmed

    @field_validator("age")
    @classmethod
    def _check_age(cls, value: int) -> int:
        if value < MIN_AGE or value > MAX_AGE:
            raise ValueError(f"Age must be between {MIN_AGE} and {MAX_AGE}.")
        return value

    @field_validator("grade")
    @classmethod
    def _check_grade(cls, value: float) -> float:
        return _check_grade(value)

    @classmethod
    def build(
        cls,
        *,
        name: Any,
        age: Any,
        grade: Any,
        enrollment_date: Any = None,
    ) -> Outcome["LearnerFields"]:
        payload: Dict[str, Any] = {"name": name, "age": age, "grade": grade}
        if enrollment_date is not None:
            payload["enrollment_date"] = enrollment_date
        return _validate(cls, payload, ErrorKind.INVALID_NAME)


class Learner(LearnerFields):
    """A managed learner record.

    ``student_id`` is generated once from ``uuid4`` and carried unchanged through
    every copy. The offering set is de-duplicated; its order carries no meaning.
    """

    student_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    courses: List[str] = Field(default_factory=list)

    @field_validator("courses")
    @classmethod
    def _dedupe_courses(cls, value: List[str]) -> List[str]:
        seen: List[str] = []
        for code in value:
            trimmed = code.strip()
            if trimmed and trimmed not in seen:
                seen.append(trimmed)
        return seen

    @classmethod
    def build(  # type: ignore[override]
        cls,
        *,
        name: Any,
        age: Any,
        grade: Any,
        enrollment_date: Any = None,
        courses: Optional[Iterable[str]] = None,
    ) -> Outcome["Learner"]:
        payload: Dict[str, Any] = {
            "name": name,
            "age": age,
            "grade": grade,
            "courses": list(courses or []),
        }
        if enrollment_date is not None:
            payload["enrollment_date"] = enrollment_date
        return _validate(cls, payload, ErrorKind.INVALID_NAME)

    @classmethod
    def from_row(
        cls,
        *,
        student_id: str,
        name: str,
        age: int,
        grade: float,
        enrollment_date: date,
        courses: Iterable[str] = (),
    ) -> "Learner":
        # Stored rows were validated on the way in.
        return cls.model_construct(
            student_id=student_id,
            name=name,
            age=age,
            grade=grade,
            enrollment_date=enrollment_date,
            courses=list(courses),
        )

    @property
    def current_fields(self) -> LearnerFields:
        return LearnerFields.model_construct(
            name=self.name,
            age=self.age,
            grade=self.grade,
            enrollment_date=self.enrollment_date,
        )

    @property
    def gpa(self) -> float:
        """Grade mapped onto a 4.0 scale."""
        return (self.grade / 100.0) * 4.0

    def replace_fields(self, fields: LearnerFields) -> "Learner":
        return self.model_copy(
            update={
                "name": fields.name,
                "age": fields.age,
                "grade": fields.grade,
                "enrollment_date": fields.enrollment_date,
            }
        )

    def with_course(self, code: str) -> "Learner":
        trimmed = code.strip()
        if not trimmed or trimmed in self.courses:
            return self
        return self.model_copy(update={"courses": [*self.courses, trimmed]})

    def without_course(self, code: str) -> "Learner":
        return self.model_copy(update={"courses": [c for c in self.courses if c != code]})

    def summary(self) -> str:
        return "\n".join(
            [
                f"Student ID: {self.student_id}",
                f"Name: {self.name}",
                f"Age: {self.age}",
                f"Grade: {self.grade}",
                f"Enrollment Date: {self.enrollment_date.isoformat()}",
                f"Courses: {', '.join(self.courses)}",
            ]
        )


class SortKey(str, Enum):
    NAME = "name"
    GRADE = "grade"
    AGE = "age"

    @classmethod
    def parse(cls, value: "SortKey | str") -> Outcome["SortKey"]:
        if isinstance(value, SortKey):
            return Outcome.success(value)
        try:
            return Outcome.success(cls(str(value).strip().lower()))
        except ValueError:
            allowed = ", ".join(key.value for key in cls)
            return Outcome.fail(ErrorKind.INVALID_SORT_KEY, f"Cannot sort by '{value}'; expected one of {allowed}.")


class Offering(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    name: str = ""
    credits: int = Field(default=DEFAULT_CREDITS, gt=0)

    @model_validator(mode="before")
    @classmethod
    def _fill_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("code"), str):
            name = data.get("name")
            if not isinstance(name, str) or not name.strip():
                data = {**data, "name": default_course_name(data["code"].strip())}
        return data

    @field_validator("code", "name")
    @classmethod
    def _strip(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Course code and name cannot be empty.")
        return trimmed

    @classmethod
    def build(
        cls,
        code: Any,
        name: Optional[str] = None,
        credits: Optional[int] = None,
    ) -> Outcome["Offering"]:
        payload: Dict[str, Any] = {"code": code}
        if name is not None:
            payload["name"] = name
        if credits is not None:
            payload["credits"] = credits
        return _validate(cls, payload, ErrorKind.INVALID_OFFERING, kinds={})


class OfferingSummary(Offering):
    enrollment_count: int = 0


class Enrollment(BaseModel):
    model_config = ConfigDict(frozen=True)

    student_id: str
    course_code: str
    enrollment_grade: float = DEFAULT_ENROLLMENT_GRADE

    @field_validator("enrollment_grade")
    @classmethod
    def _check_enrollment_grade(cls, value: float) -> float:
        return _check_grade(value)

    @classmethod
    def build(cls, student_id: str, course_code: str, enrollment_grade: Any) -> Outcome["Enrollment"]:
        payload = {
            "student_id": student_id,
            "course_code": course_code,
            "enrollment_grade": enrollment_grade,
        }
        return _validate(cls, payload, ErrorKind.INVALID_GRADE)


__all__ = [
    "DEFAULT_CREDITS",
    "DEFAULT_ENROLLMENT_GRADE",
    "Enrollment",
    "Learner",
    "LearnerFields",
    "MAX_AGE",
    "MAX_GRADE",
    "MIN_AGE",
    "MIN_GRADE",
    "Offering",
    "OfferingSummary",
    "SortKey",
    "default_course_name",
    "round_grade",
]
