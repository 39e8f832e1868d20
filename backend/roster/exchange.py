"""Delimited text export and import of the full learner set.

Format::

    name,age,grade,enrollmentDate,courses
    Alice Johnson,20,92.50,2023-09-01,CS101;MATH201

Import never keeps identifiers: every row becomes a new learner. A bad row is
logged and recorded in the report, and the rest of the file still loads.
"""

from __future__ import annotations

import csv
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import IO, Iterator, List, Sequence, Union

from .audit import record_event
from .coordinator import WriteCoordinator
from .entities import Learner, SortKey
from .errors import ErrorKind, Outcome
from .queries import QueryEngine

logger = logging.getLogger(__name__)

HEADER = ("name", "age", "grade", "enrollmentDate", "courses")
FIELD_DELIMITER = ","
COURSE_DELIMITER = ";"

Target = Union[str, Path, IO[str]]


@dataclass(frozen=True)
class SkippedRow:
    line_number: int
    line: str
    reason: str


@dataclass
class ImportReport:
    imported: int = 0
    skipped: List[SkippedRow] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.imported + len(self.skipped)


def format_row(learner: Learner) -> List[str]:
    return [
        learner.name,
        str(learner.age),
        f"{learner.grade:.2f}",
        learner.enrollment_date.isoformat(),
        COURSE_DELIMITER.join(learner.courses),
    ]


def parse_row(fields: Sequence[str]) -> Outcome[Learner]:
    """Turn one data row into a new, validated learner."""
    if len(fields) not in (len(HEADER) - 1, len(HEADER)):
        return Outcome.fail(
            ErrorKind.EXCHANGE_ERROR,
            f"expected {len(HEADER)} fields, found {len(fields)}",
        )
    name, age_text, grade_text, date_text = (value.strip() for value in fields[:4])
    try:
        age = int(age_text)
    except ValueError:
        return Outcome.fail(ErrorKind.INVALID_AGE, f"age {age_text!r} is not an integer")
    try:
        grade = float(grade_text)
    except ValueError:
        return Outcome.fail(ErrorKind.INVALID_GRADE, f"grade {grade_text!r} is not a number")
    try:
        enrolled_on = date.fromisoformat(date_text)
    except ValueError:
        return Outcome.fail(ErrorKind.INVALID_DATE, f"date {date_text!r} is not an ISO calendar date")
    courses = fields[4].split(COURSE_DELIMITER) if len(fields) == len(HEADER) else []
    return Learner.build(
        name=name,
        age=age,
        grade=grade,
        enrollment_date=enrolled_on,
        courses=[code.strip() for code in courses if code.strip()],
    )


@contextmanager
def _open_text(target: Target, mode: str) -> Iterator[IO[str]]:
    if isinstance(target, (str, Path)):
        if mode == "r":
            # Undecodable bytes turn into U+FFFD so only the affected row fails validation.
            opened = Path(target).open(mode, encoding="utf-8-sig", errors="replace", newline="")
        else:
            opened = Path(target).open(mode, encoding="utf-8", newline="")
        with opened as handle:
            yield handle
    else:
        yield target


class BulkExchange:
    def __init__(self, queries: QueryEngine, writes: WriteCoordinator) -> None:
        self._queries = queries
        self._writes = writes

    def export_all(self, destination: Target) -> Outcome[int]:
        """Write every learner in name order; the value is the number of rows written."""
        listing = self._queries.list_all(SortKey.NAME)
        if not listing.ok:
            return Outcome(ok=False, failure=listing.failure)
        learners = listing.unwrap()
        try:
            with _open_text(destination, "w") as handle:
                writer = csv.writer(handle, delimiter=FIELD_DELIMITER, lineterminator="\n")
                writer.writerow(HEADER)
                for learner in learners:
                    writer.writerow(format_row(learner))
        except (OSError, csv.Error) as exc:
            logger.error("Export failed: %s", exc)
            return Outcome.fail(ErrorKind.EXCHANGE_ERROR, f"Could not write export: {exc}")
        record_event("records_exported", count=len(learners))
        logger.info("%d learners exported.", len(learners))
        return Outcome.success(len(learners))

    def import_all(self, source: Target) -> Outcome[ImportReport]:
        """Create a new learner for every valid row after the header."""
        report = ImportReport()
        try:
            with _open_text(source, "r") as handle:
                reader = csv.reader(handle, delimiter=FIELD_DELIMITER)
                for line_number, fields in enumerate(reader, start=1):
                    if line_number == 1 or not any(value.strip() for value in fields):
                        continue
                    self._import_row(report, line_number, fields)
        except (OSError, csv.Error, UnicodeDecodeError) as exc:
            logger.error("Import aborted after %d row(s): %s", report.processed, exc)
            return Outcome.fail(ErrorKind.EXCHANGE_ERROR, f"Could not read import source: {exc}")
        record_event("records_imported", count=report.imported, skipped=len(report.skipped))
        logger.info("%d learners imported successfully.", report.imported)
        return Outcome.success(report)

    def _import_row(self, report: ImportReport, line_number: int, fields: Sequence[str]) -> None:
        line = FIELD_DELIMITER.join(fields)
        parsed = parse_row(fields)
        if parsed.ok:
            created = self._writes.create(parsed.unwrap())
            if created.ok:
                report.imported += 1
                return
            failure = created.failure
        else:
            failure = parsed.failure
        reason = str(failure)
        logger.warning("Skipping invalid line %d (%s): %s", line_number, reason, line)
        report.skipped.append(SkippedRow(line_number=line_number, line=line, reason=reason))


__all__ = [
    "BulkExchange",
    "COURSE_DELIMITER",
    "FIELD_DELIMITER",
    "HEADER",
    "ImportReport",
    "SkippedRow",
    "format_row",
    "parse_row",
]
