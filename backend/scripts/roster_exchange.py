"""Export, import and summarise roster records from the command line.

Examples::

    python scripts/roster_exchange.py export students.csv
    python scripts/roster_exchange.py import students.csv --replace
    python scripts/roster_exchange.py stats
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Optional

from roster.config import get_settings
from roster.errors import Outcome
from roster.logging_config import configure_logging, install_exception_hook
from roster.manager import RecordManager

LOGGER = logging.getLogger("roster.exchange_cli")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bulk exchange for roster records.")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override ROSTER_DATABASE_URL for this run.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    export_cmd = commands.add_parser("export", help="Write every learner to a CSV file.")
    export_cmd.add_argument("path", help="Destination file.")

    import_cmd = commands.add_parser("import", help="Create learners from a CSV file.")
    import_cmd.add_argument("path", help="Source file.")
    import_cmd.add_argument(
        "--replace",
        action="store_true",
        help="Remove all existing records before importing.",
    )

    commands.add_parser("stats", help="Print learner count, average grade and per-course averages.")
    return parser.parse_args(argv)


def build_manager(database_url: Optional[str] = None) -> RecordManager:
    settings = get_settings()
    if database_url:
        settings = settings.model_copy(update={"database_url": database_url})
    return RecordManager.from_settings(settings)


def _report_failure(action: str, outcome: Outcome) -> int:
    LOGGER.error("%s failed: %s", action, outcome.failure)
    return 1


def run_export(manager: RecordManager, path: str) -> int:
    outcome = manager.export_all(path)
    if not outcome.ok:
        return _report_failure("Export", outcome)
    LOGGER.info("Exported %d learner(s) to %s", outcome.value, path)
    return 0


def run_import(manager: RecordManager, path: str, *, replace: bool = False) -> int:
    if replace:
        cleared = manager.clear()
        if not cleared.ok:
            return _report_failure("Clear", cleared)
    outcome = manager.import_all(path)
    if not outcome.ok:
        return _report_failure("Import", outcome)
    report = outcome.unwrap()
    for skipped in report.skipped:
        LOGGER.warning("Line %d skipped: %s", skipped.line_number, skipped.reason)
    LOGGER.info("Imported %d learner(s), skipped %d", report.imported, len(report.skipped))
    return 0


def run_stats(manager: RecordManager) -> int:
    count = manager.queries.count()
    average = manager.average_grade()
    courses = manager.list_courses()
    for label, outcome in (("Count", count), ("Average", average), ("Course listing", courses)):
        if not outcome.ok:
            return _report_failure(label, outcome)
    per_course = {}
    for course in courses.unwrap():
        course_average = manager.average_grade(course.code)
        if not course_average.ok:
            return _report_failure("Course average", course_average)
        per_course[course.code] = {
            "name": course.name,
            "credits": course.credits,
            "enrolled": course.enrollment_count,
            "average_grade": round(course_average.unwrap(), 2),
        }
    payload = {
        "learners": count.unwrap(),
        "average_grade": round(average.unwrap(), 2),
        "courses": per_course,
    }
    print(json.dumps(payload, indent=2))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(get_settings().log_level)
    install_exception_hook()
    manager = build_manager(args.database_url)
    try:
        if args.command == "export":
            return run_export(manager, args.path)
        if args.command == "import":
            return run_import(manager, args.path, replace=args.replace)
        return run_stats(manager)
    finally:
        manager.close()


if __name__ == "__main__":
    sys.exit(main())
