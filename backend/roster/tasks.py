"""Run record operations off the caller's thread and hand back futures."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from .config import Settings, get_settings
from .errors import Outcome
from .manager import RecordManager

logger = logging.getLogger(__name__)

OPERATIONS = frozenset(
    {
        "average_grade",
        "clear",
        "create",
        "enroll",
        "exists",
        "export_all",
        "get",
        "import_all",
        "list_all",
        "list_courses",
        "remove",
        "remove_course",
        "search",
        "set_enrollment_grade",
        "unenroll",
        "update",
    }
)

CompletionCallback = Callable[[Outcome[Any]], None]


class RecordTaskRunner:
    """Thread-pool wrapper around a ``RecordManager``.

    Each submitted operation opens its own unit of work on a worker thread, so
    the manager is the only object shared between workers.
    """

    def __init__(self, manager: RecordManager, *, max_workers: int = 4) -> None:
        self._manager = manager
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="roster-task")

    @classmethod
    def from_settings(cls, manager: RecordManager, settings: Optional[Settings] = None) -> "RecordTaskRunner":
        settings = settings or get_settings()
        return cls(manager, max_workers=settings.task_workers)

    def submit(
        self,
        operation: str,
        *args: Any,
        on_done: Optional[CompletionCallback] = None,
        **kwargs: Any,
    ) -> "Future[Outcome[Any]]":
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown record operation: {operation}")
        method = getattr(self._manager, operation)
        future: Future[Outcome[Any]] = self._executor.submit(method, *args, **kwargs)
        if on_done is not None:
            future.add_done_callback(lambda done: self._notify(operation, done, on_done))
        return future

    def shutdown(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "RecordTaskRunner":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    @staticmethod
    def _notify(operation: str, future: "Future[Outcome[Any]]", callback: CompletionCallback) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error("Record operation %s raised", operation, exc_info=error)
            return
        try:
            callback(future.result())
        except Exception:  # noqa: BLE001
            logger.exception("Completion callback failed for %s", operation)


__all__ = ["OPERATIONS", "RecordTaskRunner"]
