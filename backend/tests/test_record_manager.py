"""Behavioural tests for the record manager against a file-backed SQLite store."""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Iterable

import pytest
from sqlalchemy import func, insert, select, text

from roster.config import Settings
from roster.db.models import CourseModel, EnrollmentModel, StudentModel
from roster.entities import Learner, LearnerFields
from roster.errors import ErrorKind
from roster.manager import RecordManager
from roster.repositories.students import students


def _setup_manager(tmp_path: Path) -> RecordManager:
    db_path = tmp_path / "roster.db"
    return RecordManager.from_settings(Settings(ROSTER_DATABASE_URL=f"sqlite:///{db_path}"))


@pytest.fixture
def manager(tmp_path: Path):
    records = _setup_manager(tmp_path)
    yield records
    records.close()


def _learner(
    name: str,
    age: int = 20,
    grade: float = 80.0,
    courses: Iterable[str] = (),
    enrolled_on: date = date(2023, 9, 1),
) -> Learner:
    return Learner.build(
        name=name,
        age=age,
        grade=grade,
        enrollment_date=enrolled_on,
        courses=list(courses),
    ).unwrap()


def _enrollment_count(manager: RecordManager, student_id: str) -> int:
    with manager.gateway.unit_of_work(commit=False) as session:
        stmt = select(func.count()).select_from(EnrollmentModel).where(EnrollmentModel.student_id == student_id)
        return int(session.execute(stmt).scalar_one())


def test_create_then_list_round_trip(manager: RecordManager) -> None:
    learner = _learner("Alice Johnson", 20, 92.5)
    created = manager.create(learner)
    assert created.ok

    listed = manager.list_all().unwrap()
    assert len(listed) == 1
    stored = listed[0]
    assert stored.student_id == learner.student_id
    assert (stored.name, stored.age, stored.grade) == ("Alice Johnson", 20, 92.5)
    assert stored.enrollment_date == date(2023, 9, 1)
    assert manager.exists(learner.student_id).unwrap() is True


def test_duplicate_create_is_rejected_without_changes(manager: RecordManager) -> None:
    learner = _learner("Alice Johnson")
    assert manager.create(learner).ok

    again = manager.create(learner.model_copy(update={"name": "Someone Else"}))
    assert again.kind is ErrorKind.DUPLICATE_LEARNER
    assert manager.queries.count().unwrap() == 1
    assert manager.get(learner.student_id).unwrap().name == "Alice Johnson"


def test_create_enrolls_own_and_extra_courses(manager: RecordManager) -> None:
    learner = _learner("Bob Smith", courses=["CS101", "MATH201"])
    created = manager.create(learner, ["CS101", "PHYS150"]).unwrap()
    assert created.courses == ["CS101", "MATH201", "PHYS150"]

    stored = manager.get(learner.student_id).unwrap()
    assert stored.courses == ["CS101", "MATH201", "PHYS150"]

    courses = manager.list_courses().unwrap()
    assert [course.code for course in courses] == ["CS101", "MATH201", "PHYS150"]
    assert courses[0].name == "Course CS101"
    assert courses[0].credits == 4
    assert all(course.enrollment_count == 1 for course in courses)


def test_failed_create_leaves_no_partial_rows(manager: RecordManager, monkeypatch) -> None:
    def _boom(*_args, **_kwargs):
        raise RuntimeError("enrollment write failed")

    monkeypatch.setattr(students, "ensure_enrollment", _boom)
    learner = _learner("Carol White", courses=["CS101"])

    outcome = manager.create(learner)
    assert outcome.kind is ErrorKind.STORE_ERROR
    monkeypatch.undo()

    assert manager.exists(learner.student_id).unwrap() is False
    assert manager.list_courses().unwrap() == []


def test_remove_deletes_enrollments(manager: RecordManager) -> None:
    learner = _learner("Dave Brown")
    manager.create(learner).unwrap()
    assert manager.enroll(learner.student_id, "CS101").unwrap() is True
    assert _enrollment_count(manager, learner.student_id) == 1

    assert manager.remove(learner.student_id).unwrap() is True
    assert _enrollment_count(manager, learner.student_id) == 0
    assert manager.exists(learner.student_id).unwrap() is False
    assert [course.code for course in manager.list_courses().unwrap()] == ["CS101"]

    assert manager.remove(learner.student_id).unwrap() is False


def test_update_replaces_fields_and_keeps_id_and_courses(manager: RecordManager) -> None:
    learner = _learner("Eve Adams", 21, 70.0, courses=["CS101"])
    manager.create(learner).unwrap()

    fields = LearnerFields.build(
        name="Eve Baker",
        age=22,
        grade=88.888,
        enrollment_date=date(2024, 1, 15),
    ).unwrap()
    updated = manager.update(learner.student_id, fields).unwrap()

    assert updated.student_id == learner.student_id
    assert (updated.name, updated.age, updated.grade) == ("Eve Baker", 22, 88.89)
    assert updated.enrollment_date == date(2024, 1, 15)
    assert updated.courses == ["CS101"]


def test_update_accepts_mapping_and_validates_it(manager: RecordManager) -> None:
    learner = _learner("Frank Moore")
    manager.create(learner).unwrap()

    updated = manager.update(learner.student_id, {"name": "Frank Miller", "age": 30, "grade": 65}).unwrap()
    assert updated.name == "Frank Miller"
    assert updated.enrollment_date == date(2023, 9, 1)
    assert manager.get(learner.student_id).unwrap().enrollment_date == date(2023, 9, 1)

    rejected = manager.update(learner.student_id, {"name": "Frank Miller", "age": 5, "grade": 65})
    assert rejected.kind is ErrorKind.INVALID_AGE
    assert manager.get(learner.student_id).unwrap().age == 30

    redated = manager.update(
        learner.student_id,
        {"name": "Frank Miller", "age": 30, "grade": 65, "enrollment_date": "2024-02-01"},
    )
    assert redated.unwrap().enrollment_date == date(2024, 2, 1)


def test_update_accepts_learner_value(manager: RecordManager) -> None:
    learner = _learner("Gina Lopez")
    manager.create(learner).unwrap()

    changed = learner.model_copy(update={"grade": 99.0})
    assert manager.update(learner.student_id, changed).unwrap().grade == 99.0


def test_unknown_learner_is_reported(manager: RecordManager) -> None:
    fields = LearnerFields.build(name="Nobody", age=30, grade=50).unwrap()
    assert manager.update("missing", fields).kind is ErrorKind.LEARNER_NOT_FOUND
    assert manager.get("missing").kind is ErrorKind.LEARNER_NOT_FOUND
    assert manager.enroll("missing", "CS101").kind is ErrorKind.LEARNER_NOT_FOUND
    assert manager.list_courses().unwrap() == []


def test_enroll_and_unenroll(manager: RecordManager) -> None:
    learner = _learner("Hank Green")
    manager.create(learner).unwrap()

    assert manager.enroll(learner.student_id, "CS101", "Intro to Programming", 3).unwrap() is True
    assert manager.enroll(learner.student_id, "CS101").unwrap() is False

    course = manager.list_courses().unwrap()[0]
    assert (course.code, course.name, course.credits, course.enrollment_count) == (
        "CS101",
        "Intro to Programming",
        3,
        1,
    )

    assert manager.unenroll(learner.student_id, "CS101").unwrap() is True
    assert manager.get(learner.student_id).unwrap().courses == []
    course = manager.list_courses().unwrap()[0]
    assert (course.code, course.enrollment_count) == ("CS101", 0)

    assert manager.unenroll(learner.student_id, "CS101").unwrap() is False


def test_enroll_rejects_invalid_offering(manager: RecordManager) -> None:
    learner = _learner("Ivy Chen")
    manager.create(learner).unwrap()
    assert manager.enroll(learner.student_id, "  ").kind is ErrorKind.INVALID_OFFERING
    assert manager.enroll(learner.student_id, "CS101", credits=0).kind is ErrorKind.INVALID_OFFERING


@pytest.mark.parametrize("code", [None, 101, "   "])
def test_course_code_is_validated_before_store_access(manager: RecordManager, code) -> None:
    learner = _learner("Jade Fox", courses=["CS101"])
    manager.create(learner).unwrap()

    assert manager.unenroll(learner.student_id, code).kind is ErrorKind.INVALID_OFFERING
    assert manager.set_enrollment_grade(learner.student_id, code, 75).kind is ErrorKind.INVALID_OFFERING
    assert manager.remove_course(code).kind is ErrorKind.INVALID_OFFERING
    assert manager.get(learner.student_id).unwrap().courses == ["CS101"]


def test_average_grade(manager: RecordManager) -> None:
    assert manager.average_grade().unwrap() == 0.0

    manager.create(_learner("Jack Black", grade=80.0, courses=["CS101"])).unwrap()
    manager.create(_learner("Kate Blue", grade=90.0, courses=["CS101", "MATH201"])).unwrap()
    manager.create(_learner("Liam Gray", grade=60.0)).unwrap()

    assert manager.average_grade().unwrap() == pytest.approx(76.6666, rel=1e-4)
    assert manager.average_grade("CS101").unwrap() == pytest.approx(85.0)
    assert manager.average_grade("MATH201").unwrap() == pytest.approx(90.0)
    assert manager.average_grade("NOPE").unwrap() == 0.0


def test_average_grade_skips_out_of_range_rows(manager: RecordManager) -> None:
    manager.create(_learner("Mia Rose", grade=80.0)).unwrap()
    with manager.gateway.unit_of_work() as session:
        session.execute(text("PRAGMA ignore_check_constraints=ON"))
        session.execute(
            insert(StudentModel).values(
                student_id="corrupt",
                name="Corrupt Row",
                age=30,
                grade=150.0,
                enrollment_date=date(2023, 9, 1),
            )
        )
        session.execute(text("PRAGMA ignore_check_constraints=OFF"))

    assert manager.average_grade().unwrap() == pytest.approx(80.0)


def test_search_is_case_insensitive_and_distinct(manager: RecordManager) -> None:
    charlie = _learner("Charlie Brown", 25, 72.5, courses=["CS101", "CS102"])
    alice = _learner("Alice Smith", 31, 88.0, courses=["MATH201"])
    manager.create(charlie).unwrap()
    manager.create(alice).unwrap()

    assert [l.name for l in manager.search("char").unwrap()] == ["Charlie Brown"]
    assert [l.name for l in manager.search("SMITH").unwrap()] == ["Alice Smith"]
    assert [l.name for l in manager.search("cs1").unwrap()] == ["Charlie Brown"]
    assert [l.name for l in manager.search("course math").unwrap()] == ["Alice Smith"]
    assert [l.student_id for l in manager.search(alice.student_id).unwrap()] == [alice.student_id]
    assert manager.search("NotFound").unwrap() == []
    assert manager.search("%").unwrap() == []
    assert [l.name for l in manager.search("").unwrap()] == ["Alice Smith", "Charlie Brown"]


def test_search_folds_case_beyond_ascii(manager: RecordManager) -> None:
    manager.create(_learner("Élodie Durand")).unwrap()
    manager.create(_learner("Ömer Şahin", courses=["ÉCO101"])).unwrap()

    assert [l.name for l in manager.search("élodie").unwrap()] == ["Élodie Durand"]
    assert [l.name for l in manager.search("ÉLODIE").unwrap()] == ["Élodie Durand"]
    assert [l.name for l in manager.search("ömer").unwrap()] == ["Ömer Şahin"]
    assert [l.name for l in manager.search("éco1").unwrap()] == ["Ömer Şahin"]


def test_list_all_sort_orders(manager: RecordManager) -> None:
    manager.create(_learner("Charlie", age=19, grade=70.0)).unwrap()
    manager.create(_learner("Alice", age=25, grade=80.0)).unwrap()
    manager.create(_learner("Bob", age=40, grade=95.0)).unwrap()

    def names(key: str) -> list[str]:
        return [learner.name for learner in manager.list_all(key).unwrap()]

    assert names("name") == ["Alice", "Bob", "Charlie"]
    assert names("grade") == ["Bob", "Alice", "Charlie"]
    assert names("age") == ["Charlie", "Alice", "Bob"]
    assert manager.list_all("height").kind is ErrorKind.INVALID_SORT_KEY


def test_remove_course_drops_its_enrollments(manager: RecordManager) -> None:
    first = _learner("Nina Park", courses=["CS101", "MATH201"])
    second = _learner("Omar Reed", courses=["CS101"])
    manager.create(first).unwrap()
    manager.create(second).unwrap()

    assert manager.remove_course("CS101").unwrap() is True
    assert manager.get(first.student_id).unwrap().courses == ["MATH201"]
    assert manager.get(second.student_id).unwrap().courses == []
    assert [course.code for course in manager.list_courses().unwrap()] == ["MATH201"]

    assert manager.remove_course("CS101").unwrap() is False


def test_set_enrollment_grade(manager: RecordManager) -> None:
    learner = _learner("Paul Stone", courses=["CS101"])
    manager.create(learner).unwrap()

    enrollment = manager.set_enrollment_grade(learner.student_id, "CS101", 88.456).unwrap()
    assert enrollment.enrollment_grade == 88.46
    with manager.gateway.unit_of_work(commit=False) as session:
        assert students.enrollment_grade(session, learner.student_id, "CS101") == 88.46

    missing = manager.set_enrollment_grade(learner.student_id, "MATH201", 70)
    assert missing.kind is ErrorKind.ENROLLMENT_NOT_FOUND
    assert manager.set_enrollment_grade(learner.student_id, "CS101", 120).kind is ErrorKind.INVALID_GRADE


def test_clear_empties_every_table(manager: RecordManager) -> None:
    manager.create(_learner("Quinn Hall", courses=["CS101"])).unwrap()
    manager.create(_learner("Rita Moss", courses=["CS101", "MATH201"])).unwrap()

    counts = manager.clear().unwrap()
    assert counts == {"enrollments": 3, "students": 2, "courses": 2}
    assert manager.list_all().unwrap() == []
    assert manager.list_courses().unwrap() == []


def test_store_failures_become_store_error(manager: RecordManager) -> None:
    manager.gateway.drop_schema()
    assert manager.list_all().kind is ErrorKind.STORE_ERROR
    assert manager.create(_learner("Sam Wise")).kind is ErrorKind.STORE_ERROR


def test_schema_column_names() -> None:
    def columns(model) -> list[str]:
        return [column.name for column in model.__table__.columns]

    assert columns(StudentModel) == ["studentID", "name", "age", "grade", "enrollmentDate"]
    assert columns(CourseModel) == ["courseCode", "courseName", "credits"]
    assert columns(EnrollmentModel) == ["studentID", "courseCode", "enrollmentGrade"]
