"""Row-level access to the students, courses and enrollments tables."""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import String, cast, delete, func, or_, select, update
from sqlalchemy.orm import Session

from ..db.models import CourseModel, EnrollmentModel, StudentModel
from ..db.session import UNICODE_LOWER
from ..entities import (
    DEFAULT_CREDITS,
    DEFAULT_ENROLLMENT_GRADE,
    MAX_GRADE,
    MIN_GRADE,
    Learner,
    LearnerFields,
    OfferingSummary,
    SortKey,
    default_course_name,
)

_ID_CHUNK = 500

_ORDERING = {
    SortKey.NAME: StudentModel.name.asc(),
    SortKey.GRADE: StudentModel.grade.desc(),
    SortKey.AGE: StudentModel.age.asc(),
}


class StudentRepository:
    """Stateless SQL helpers. Callers own the session and its transaction."""

    # ------------------------------------------------------------------
    # Learners
    # ------------------------------------------------------------------

    def exists(self, session: Session, student_id: str) -> bool:
        stmt = select(StudentModel.student_id).where(StudentModel.student_id == student_id)
        return session.execute(stmt).first() is not None

    def get(self, session: Session, student_id: str) -> Optional[Learner]:
        model = session.get(StudentModel, student_id)
        if model is None:
            return None
        return self._to_domain(model, self._course_codes(session, [model.student_id]))

    def insert(self, session: Session, learner: Learner) -> None:
        session.add(
            StudentModel(
                student_id=learner.student_id,
                name=learner.name,
                age=learner.age,
                grade=learner.grade,
                enrollment_date=learner.enrollment_date,
            )
        )
        session.flush()

    def update_fields(
        self,
        session: Session,
        student_id: str,
        fields: LearnerFields,
        *,
        keep_enrollment_date: bool = False,
    ) -> bool:
        values = {"name": fields.name, "age": fields.age, "grade": fields.grade}
        if not keep_enrollment_date:
            values["enrollment_date"] = fields.enrollment_date
        result = session.execute(
            update(StudentModel)
            .where(StudentModel.student_id == student_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    def delete(self, session: Session, student_id: str) -> Tuple[bool, int]:
        """Delete a learner and its enrollments; returns (removed, enrollments removed)."""
        enrollments = session.execute(
            delete(EnrollmentModel)
            .where(EnrollmentModel.student_id == student_id)
            .execution_options(synchronize_session=False)
        )
        result = session.execute(
            delete(StudentModel)
            .where(StudentModel.student_id == student_id)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount), int(enrollments.rowcount or 0)

    def count(self, session: Session) -> int:
        return int(session.execute(select(func.count()).select_from(StudentModel)).scalar_one())

    # ------------------------------------------------------------------
    # Courses and enrollments
    # ------------------------------------------------------------------

    def ensure_course(
        self,
        session: Session,
        course_code: str,
        course_name: Optional[str] = None,
        credits: Optional[int] = None,
    ) -> bool:
        """Insert the course when absent. An existing row is left untouched."""
        if session.get(CourseModel, course_code) is not None:
            return False
        session.add(
            CourseModel(
                course_code=course_code,
                course_name=course_name or default_course_name(course_code),
                credits=credits if credits is not None else DEFAULT_CREDITS,
            )
        )
        session.flush()
        return True

    def ensure_enrollment(self, session: Session, student_id: str, course_code: str) -> bool:
        if session.get(EnrollmentModel, (student_id, course_code)) is not None:
            return False
        session.add(
            EnrollmentModel(
                student_id=student_id,
                course_code=course_code,
                enrollment_grade=DEFAULT_ENROLLMENT_GRADE,
            )
        )
        session.flush()
        return True

    def delete_enrollment(self, session: Session, student_id: str, course_code: str) -> bool:
        result = session.execute(
            delete(EnrollmentModel)
            .where(
                EnrollmentModel.student_id == student_id,
                EnrollmentModel.course_code == course_code,
            )
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    def set_enrollment_grade(self, session: Session, student_id: str, course_code: str, grade: float) -> bool:
        result = session.execute(
            update(EnrollmentModel)
            .where(
                EnrollmentModel.student_id == student_id,
                EnrollmentModel.course_code == course_code,
            )
            .values(enrollment_grade=grade)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    def enrollment_grade(self, session: Session, student_id: str, course_code: str) -> Optional[float]:
        model = session.get(EnrollmentModel, (student_id, course_code))
        return model.enrollment_grade if model is not None else None

    def delete_course(self, session: Session, course_code: str) -> Tuple[bool, int]:
        enrollments = session.execute(
            delete(EnrollmentModel)
            .where(EnrollmentModel.course_code == course_code)
            .execution_options(synchronize_session=False)
        )
        result = session.execute(
            delete(CourseModel)
            .where(CourseModel.course_code == course_code)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount), int(enrollments.rowcount or 0)

    def list_courses(self, session: Session) -> List[OfferingSummary]:
        stmt = (
            select(CourseModel, func.count(EnrollmentModel.student_id))
            .outerjoin(EnrollmentModel, EnrollmentModel.course_code == CourseModel.course_code)
            .group_by(CourseModel.course_code)
            .order_by(CourseModel.course_code.asc())
        )
        return [
            OfferingSummary.model_construct(
                code=course.course_code,
                name=course.course_name,
                credits=course.credits,
                enrollment_count=int(total),
            )
            for course, total in session.execute(stmt).all()
        ]

    def clear(self, session: Session) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for label, model in (
            ("enrollments", EnrollmentModel),
            ("students", StudentModel),
            ("courses", CourseModel),
        ):
            result = session.execute(delete(model).execution_options(synchronize_session=False))
            counts[label] = int(result.rowcount or 0)
        return counts

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_all(self, session: Session, sort_key: SortKey = SortKey.NAME) -> List[Learner]:
        stmt = select(StudentModel).order_by(_ORDERING[sort_key])
        models = session.execute(stmt).scalars().all()
        return self._with_courses(session, models)

    def search(self, session: Session, query: str) -> List[Learner]:
        needle = query.lower()
        lower = self._lowercase(session)
        searchable = (
            StudentModel.name,
            StudentModel.student_id,
            CourseModel.course_code,
            CourseModel.course_name,
            cast(StudentModel.age, String),
            cast(StudentModel.grade, String),
        )
        matching_ids = (
            select(StudentModel.student_id)
            .outerjoin(EnrollmentModel, EnrollmentModel.student_id == StudentModel.student_id)
            .outerjoin(CourseModel, CourseModel.course_code == EnrollmentModel.course_code)
            .where(or_(*(lower(column).contains(needle, autoescape=True) for column in searchable)))
        )
        stmt = (
            select(StudentModel)
            .where(StudentModel.student_id.in_(matching_ids))
            .order_by(StudentModel.name.asc())
        )
        models = session.execute(stmt).scalars().all()
        return self._with_courses(session, models)

    def average_grade(self, session: Session, course_code: Optional[str] = None) -> Tuple[float, int]:
        """Mean grade over in-range rows, plus the number of rows the range filter excluded."""
        in_range = StudentModel.grade.between(MIN_GRADE, MAX_GRADE)
        average_stmt = select(func.avg(StudentModel.grade)).where(in_range)
        excluded_stmt = select(func.count()).select_from(StudentModel).where(~in_range)
        if course_code is not None:
            enrolled = EnrollmentModel.student_id == StudentModel.student_id
            average_stmt = average_stmt.join(EnrollmentModel, enrolled).where(
                EnrollmentModel.course_code == course_code
            )
            excluded_stmt = excluded_stmt.join(EnrollmentModel, enrolled).where(
                EnrollmentModel.course_code == course_code
            )
        average = session.execute(average_stmt).scalar_one_or_none()
        excluded = session.execute(excluded_stmt).scalar_one()
        return (float(average) if average is not None else 0.0), int(excluded)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _lowercase(session: Session):  # type: ignore[no-untyped-def]
        if session.get_bind().dialect.name == "sqlite":
            return lambda column: getattr(func, UNICODE_LOWER)(column, type_=String)
        return func.lower

    def _with_courses(self, session: Session, models: Sequence[StudentModel]) -> List[Learner]:
        codes = self._course_codes(session, [model.student_id for model in models])
        return [self._to_domain(model, codes) for model in models]

    def _course_codes(self, session: Session, student_ids: Iterable[str]) -> Dict[str, List[str]]:
        ids = list(student_ids)
        codes: Dict[str, List[str]] = defaultdict(list)
        for start in range(0, len(ids), _ID_CHUNK):
            chunk = ids[start : start + _ID_CHUNK]
            stmt = (
                select(EnrollmentModel.student_id, CourseModel.course_code)
                .join(CourseModel, CourseModel.course_code == EnrollmentModel.course_code)
                .where(EnrollmentModel.student_id.in_(chunk))
                .order_by(CourseModel.course_code.asc())
            )
            for student_id, course_code in session.execute(stmt).all():
                codes[student_id].append(course_code)
        return codes

    @staticmethod
    def _to_domain(model: StudentModel, codes: Dict[str, List[str]]) -> Learner:
        return Learner.from_row(
            student_id=model.student_id,
            name=model.name,
            age=model.age,
            grade=model.grade,
            enrollment_date=model.enrollment_date,
            courses=codes.get(model.student_id, []),
        )


students = StudentRepository()

__all__ = ["StudentRepository", "students"]
