"""In-process audit trail for record mutations.

Every write the coordinator commits is announced here as an ``AuditEvent``.
Listeners run synchronously on the caller's thread; a listener that raises is
logged and skipped so it can never undo a committed write. Each event is also
written as a single JSON line on the ``roster.audit`` logger.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from threading import RLock
from typing import Any, Callable, Dict, List

logger = logging.getLogger("roster.audit")


@dataclass(frozen=True)
class AuditEvent:
    name: str
    payload: Dict[str, Any]


AuditListener = Callable[[AuditEvent], None]

_listeners: List[AuditListener] = []
_lock = RLock()


def register_listener(listener: AuditListener) -> None:
    with _lock:
        _listeners.append(listener)


def unregister_listener(listener: AuditListener) -> None:
    with _lock:
        if listener in _listeners:
            _listeners.remove(listener)


def clear_listeners() -> None:
    with _lock:
        _listeners.clear()


def record_event(name: str, **fields: Any) -> AuditEvent:
    event = AuditEvent(name=name, payload={key: _plain(value) for key, value in fields.items()})

    with _lock:
        listeners = list(_listeners)

    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Audit listener failed for %s", name)

    logger.info("AUDIT %s", json.dumps({"event": name, **event.payload}, default=str))
    return event


def _plain(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return sorted(value) if isinstance(value, (set, frozenset)) else list(value)
    return value


__all__ = [
    "AuditEvent",
    "AuditListener",
    "clear_listeners",
    "record_event",
    "register_listener",
    "unregister_listener",
]
