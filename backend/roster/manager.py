"""The record-management facade handed to presentation collaborators."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .config import Settings, get_settings
from .coordinator import WriteCoordinator
from .db.session import StoreGateway
from .entities import DEFAULT_CREDITS, Enrollment, Learner, LearnerFields, OfferingSummary, SortKey
from .errors import Outcome
from .exchange import BulkExchange, ImportReport, Target
from .queries import QueryEngine

logger = logging.getLogger(__name__)


class RecordManager:
    """Single entry point for learner, course and enrollment operations.

    Build one per process (``RecordManager.from_settings()``) and pass it to
    whoever needs it. Every method returns an ``Outcome`` and never raises for
    validation, conflict or store failures.
    """

    def __init__(
        self,
        gateway: StoreGateway,
        *,
        default_credits: int = DEFAULT_CREDITS,
        ensure_schema: bool = True,
    ) -> None:
        self.gateway = gateway
        if ensure_schema:
            gateway.ensure_schema()
        self.queries = QueryEngine(gateway)
        self.writes = WriteCoordinator(gateway, default_credits=default_credits)
        self.exchange = BulkExchange(self.queries, self.writes)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RecordManager":
        settings = settings or get_settings()
        gateway = StoreGateway.from_settings(settings)
        return cls(
            gateway,
            default_credits=settings.default_credits,
            ensure_schema=settings.create_schema,
        )

    # Writes

    def create(self, learner: Learner, courses: Iterable[str] = ()) -> Outcome[Learner]:
        return self.writes.create(learner, courses)

    def remove(self, student_id: str) -> Outcome[bool]:
        return self.writes.remove(student_id)

    def update(
        self,
        student_id: str,
        fields: Union[LearnerFields, Mapping[str, Any]],
    ) -> Outcome[Learner]:
        """Replace a learner's fields.

        A mapping without ``enrollment_date`` leaves the stored date unchanged.
        """
        keep_enrollment_date = False
        if not isinstance(fields, LearnerFields):
            keep_enrollment_date = fields.get("enrollment_date") is None
            built = LearnerFields.build(
                name=fields.get("name"),
                age=fields.get("age"),
                grade=fields.get("grade"),
                enrollment_date=fields.get("enrollment_date"),
            )
            if not built.ok:
                return Outcome(ok=False, failure=built.failure)
            fields = built.unwrap()
        elif isinstance(fields, Learner):
            fields = fields.current_fields
        return self.writes.update(student_id, fields, keep_enrollment_date=keep_enrollment_date)

    def enroll(
        self,
        student_id: str,
        course_code: str,
        course_name: Optional[str] = None,
        credits: Optional[int] = None,
    ) -> Outcome[bool]:
        return self.writes.enroll(student_id, course_code, course_name, credits)

    def unenroll(self, student_id: str, course_code: str) -> Outcome[bool]:
        return self.writes.unenroll(student_id, course_code)

    def set_enrollment_grade(self, student_id: str, course_code: str, grade: float) -> Outcome[Enrollment]:
        return self.writes.set_enrollment_grade(student_id, course_code, grade)

    def remove_course(self, course_code: str) -> Outcome[bool]:
        return self.writes.remove_course(course_code)

    def clear(self) -> Outcome[Dict[str, int]]:
        return self.writes.clear()

    # Reads

    def list_all(self, sort_key: Union[SortKey, str] = SortKey.NAME) -> Outcome[List[Learner]]:
        return self.queries.list_all(sort_key)

    def search(self, query: str) -> Outcome[List[Learner]]:
        return self.queries.search(query)

    def exists(self, student_id: str) -> Outcome[bool]:
        return self.queries.exists(student_id)

    def get(self, student_id: str) -> Outcome[Learner]:
        return self.queries.get(student_id)

    def average_grade(self, course_code: Optional[str] = None) -> Outcome[float]:
        return self.queries.average_grade(course_code)

    def list_courses(self) -> Outcome[List[OfferingSummary]]:
        return self.queries.list_courses()

    # Bulk exchange

    def export_all(self, destination: Target) -> Outcome[int]:
        return self.exchange.export_all(destination)

    def import_all(self, source: Target) -> Outcome[ImportReport]:
        return self.exchange.import_all(source)

    def close(self) -> None:
        self.gateway.dispose()


__all__ = ["RecordManager"]
