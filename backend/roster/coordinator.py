"""Atomic compound writes over the roster store.

Every public method opens exactly one unit of work through the gateway and
returns an ``Outcome``. Store failures are logged and rolled back by
``StoreGateway.run``; conflicts and missing rows are raised as ``RosterError``
inside the unit so the rollback happens before the failure is reported.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from .audit import record_event
from .db.session import StoreGateway
from .entities import DEFAULT_CREDITS, Enrollment, Learner, LearnerFields, Offering
from .errors import (
    DuplicateLearnerError,
    EnrollmentNotFoundError,
    LearnerNotFoundError,
    Outcome,
)
from .repositories.students import StudentRepository, students

logger = logging.getLogger(__name__)


def _merge_codes(*groups: Iterable[str]) -> List[str]:
    merged: List[str] = []
    for group in groups:
        for code in group:
            trimmed = code.strip()
            if trimmed and trimmed not in merged:
                merged.append(trimmed)
    return merged


def _course_code(value: Any) -> Outcome[str]:
    offering = Offering.build(value)
    if not offering.ok:
        return Outcome(ok=False, failure=offering.failure)
    return Outcome.success(offering.unwrap().code)


class WriteCoordinator:
    def __init__(
        self,
        gateway: StoreGateway,
        *,
        repository: Optional[StudentRepository] = None,
        default_credits: int = DEFAULT_CREDITS,
    ) -> None:
        self._gateway = gateway
        self._repo = repository or students
        self._default_credits = default_credits

    def create(self, learner: Learner, courses: Iterable[str] = ()) -> Outcome[Learner]:
        """Insert a learner and enroll it in its own plus the extra course codes."""
        codes = _merge_codes(learner.courses, courses)

        def work(session: Session) -> Learner:
            if self._repo.exists(session, learner.student_id):
                raise DuplicateLearnerError(f"Learner {learner.student_id} already exists.")
            self._repo.insert(session, learner)
            for code in codes:
                self._repo.ensure_course(session, code, credits=self._default_credits)
                self._repo.ensure_enrollment(session, learner.student_id, code)
            return learner.model_copy(update={"courses": codes})

        outcome = self._gateway.run("create learner", work)
        if outcome.ok:
            record_event("learner_created", student_id=learner.student_id, courses=codes)
        return outcome

    def remove(self, student_id: str) -> Outcome[bool]:
        """Delete a learner; its enrollment rows go in the same unit of work."""

        def work(session: Session) -> bool:
            removed, enrollments = self._repo.delete(session, student_id)
            if removed:
                logger.debug("Removed learner %s with %d enrollment(s)", student_id, enrollments)
            return removed

        outcome = self._gateway.run("remove learner", work)
        if outcome.ok and outcome.value:
            record_event("learner_removed", student_id=student_id)
        return outcome

    def update(
        self,
        student_id: str,
        fields: LearnerFields,
        *,
        keep_enrollment_date: bool = False,
    ) -> Outcome[Learner]:
        """Replace name, age, grade and enrollment date. Id and courses stay as they are.

        With ``keep_enrollment_date`` the stored date is left as it is.
        """

        def work(session: Session) -> Learner:
            if not self._repo.update_fields(
                session, student_id, fields, keep_enrollment_date=keep_enrollment_date
            ):
                raise LearnerNotFoundError(f"Learner {student_id} does not exist.")
            stored = self._repo.get(session, student_id)
            assert stored is not None
            return stored

        outcome = self._gateway.run("update learner", work)
        if outcome.ok:
            record_event("learner_updated", student_id=student_id)
        return outcome

    def enroll(
        self,
        student_id: str,
        course_code: str,
        course_name: Optional[str] = None,
        credits: Optional[int] = None,
    ) -> Outcome[bool]:
        """Enroll an existing learner, creating the course first when it is unknown.

        The value is ``True`` when a new enrollment row was written and ``False``
        when the learner was already enrolled.
        """
        offering = Offering.build(
            course_code,
            course_name,
            credits if credits is not None else self._default_credits,
        )
        if not offering.ok:
            return Outcome(ok=False, failure=offering.failure)
        course = offering.unwrap()

        def work(session: Session) -> bool:
            if not self._repo.exists(session, student_id):
                raise LearnerNotFoundError(f"Learner {student_id} does not exist.")
            self._repo.ensure_course(session, course.code, course.name, course.credits)
            return self._repo.ensure_enrollment(session, student_id, course.code)

        outcome = self._gateway.run("enroll learner", work)
        if outcome.ok and outcome.value:
            record_event("course_enrolled", student_id=student_id, course_code=course.code)
        return outcome

    def unenroll(self, student_id: str, course_code: str) -> Outcome[bool]:
        """Drop one enrollment row. The course itself is kept."""
        checked = _course_code(course_code)
        if not checked.ok:
            return Outcome(ok=False, failure=checked.failure)
        code = checked.unwrap()
        outcome = self._gateway.run(
            "unenroll learner",
            lambda session: self._repo.delete_enrollment(session, student_id, code),
        )
        if outcome.ok and outcome.value:
            record_event("course_unenrolled", student_id=student_id, course_code=code)
        return outcome

    def set_enrollment_grade(self, student_id: str, course_code: str, grade: float) -> Outcome[Enrollment]:
        checked = _course_code(course_code)
        if not checked.ok:
            return Outcome(ok=False, failure=checked.failure)
        validated = Enrollment.build(student_id, checked.unwrap(), grade)
        if not validated.ok:
            return validated
        enrollment = validated.unwrap()

        def work(session: Session) -> Enrollment:
            if not self._repo.set_enrollment_grade(
                session, enrollment.student_id, enrollment.course_code, enrollment.enrollment_grade
            ):
                raise EnrollmentNotFoundError(
                    f"Learner {student_id} is not enrolled in {enrollment.course_code}."
                )
            return enrollment

        outcome = self._gateway.run("set enrollment grade", work)
        if outcome.ok:
            record_event(
                "enrollment_grade_set",
                student_id=student_id,
                course_code=enrollment.course_code,
                grade=enrollment.enrollment_grade,
            )
        return outcome

    def remove_course(self, course_code: str) -> Outcome[bool]:
        """Delete a course and every enrollment that references it."""
        checked = _course_code(course_code)
        if not checked.ok:
            return Outcome(ok=False, failure=checked.failure)
        code = checked.unwrap()

        def work(session: Session) -> bool:
            removed, enrollments = self._repo.delete_course(session, code)
            if removed:
                logger.debug("Removed course %s with %d enrollment(s)", code, enrollments)
            return removed

        outcome = self._gateway.run("remove course", work)
        if outcome.ok and outcome.value:
            record_event("course_removed", course_code=code)
        return outcome

    def clear(self) -> Outcome[Dict[str, int]]:
        outcome = self._gateway.run("clear records", self._repo.clear)
        if outcome.ok:
            record_event("records_cleared", **(outcome.value or {}))
        return outcome


__all__ = ["WriteCoordinator"]
