"""Read-only listing, lookup, search and aggregation over the roster store."""

from __future__ import annotations

import logging
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from .db.session import StoreGateway
from .entities import Learner, OfferingSummary, SortKey
from .errors import LearnerNotFoundError, Outcome
from .repositories.students import StudentRepository, students

logger = logging.getLogger(__name__)


class QueryEngine:
    def __init__(self, gateway: StoreGateway, *, repository: Optional[StudentRepository] = None) -> None:
        self._gateway = gateway
        self._repo = repository or students

    def list_all(self, sort_key: Union[SortKey, str] = SortKey.NAME) -> Outcome[List[Learner]]:
        parsed = SortKey.parse(sort_key)
        if not parsed.ok:
            return Outcome(ok=False, failure=parsed.failure)
        key = parsed.unwrap()
        return self._gateway.run(
            "list learners",
            lambda session: self._repo.list_all(session, key),
            commit=False,
        )

    def search(self, query: str) -> Outcome[List[Learner]]:
        """Case-insensitive substring match over name, id, course code/name, age and grade."""
        return self._gateway.run(
            "search learners",
            lambda session: self._repo.search(session, query or ""),
            commit=False,
        )

    def exists(self, student_id: str) -> Outcome[bool]:
        return self._gateway.run(
            "check learner",
            lambda session: self._repo.exists(session, student_id),
            commit=False,
        )

    def get(self, student_id: str) -> Outcome[Learner]:
        def work(session: Session) -> Learner:
            learner = self._repo.get(session, student_id)
            if learner is None:
                raise LearnerNotFoundError(f"Learner {student_id} does not exist.")
            return learner

        return self._gateway.run("get learner", work, commit=False)

    def count(self) -> Outcome[int]:
        return self._gateway.run("count learners", self._repo.count, commit=False)

    def average_grade(self, course_code: Optional[str] = None) -> Outcome[float]:
        """Mean learner grade, optionally restricted to one course; 0.0 when nothing matches.

        Grades outside 0-100 are left out of the mean. The schema rejects such
        values, so any excluded row points at data written around this layer.
        """

        def work(session: Session) -> float:
            average, excluded = self._repo.average_grade(session, course_code)
            if excluded:
                logger.warning(
                    "Excluded %d out-of-range grade(s) from average%s",
                    excluded,
                    f" for course {course_code}" if course_code else "",
                )
            return average

        return self._gateway.run("average grade", work, commit=False)

    def list_courses(self) -> Outcome[List[OfferingSummary]]:
        return self._gateway.run("list courses", self._repo.list_courses, commit=False)


__all__ = ["QueryEngine"]
