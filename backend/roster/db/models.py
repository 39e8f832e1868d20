"""ORM models for the three-table roster schema.

Column names are fixed by the persisted format shared with other tools
(``studentID``, ``enrollmentDate``, ``courseCode`` ...); Python attributes use
snake_case.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import CheckConstraint, Date, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class StudentModel(Base):
    __tablename__ = "students"
    __table_args__ = (
        CheckConstraint("age >= 18 AND age <= 100", name="age_range"),
        CheckConstraint("grade >= 0 AND grade <= 100", name="grade_range"),
        Index("idx_student_name", "name"),
    )

    student_id: Mapped[str] = mapped_column("studentID", String(36), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    grade: Mapped[float] = mapped_column(Float, nullable=False)
    enrollment_date: Mapped[date] = mapped_column("enrollmentDate", Date, nullable=False)


class CourseModel(Base):
    __tablename__ = "courses"

    course_code: Mapped[str] = mapped_column("courseCode", String(64), primary_key=True)
    course_name: Mapped[str] = mapped_column("courseName", Text, nullable=False)
    credits: Mapped[int] = mapped_column(Integer, nullable=False, default=4)


class EnrollmentModel(Base):
    __tablename__ = "enrollments"

    student_id: Mapped[str] = mapped_column(
        "studentID",
        String(36),
        ForeignKey("students.studentID", ondelete="CASCADE"),
        primary_key=True,
    )
    course_code: Mapped[str] = mapped_column(
        "courseCode",
        String(64),
        ForeignKey("courses.courseCode", ondelete="CASCADE"),
        primary_key=True,
    )
    enrollment_grade: Mapped[float] = mapped_column("enrollmentGrade", Float, nullable=False, default=0.0)


Index("idx_course_code", EnrollmentModel.course_code)


__all__ = ["CourseModel", "EnrollmentModel", "StudentModel"]
