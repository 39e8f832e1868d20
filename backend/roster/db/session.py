"""Engine construction and unit-of-work scoping for the roster store."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Generator, Optional, TypeVar

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import Settings, get_settings
from ..errors import ErrorKind, Outcome, RosterError
from .base import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNICODE_LOWER = "unicode_lower"


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _is_memory_sqlite(database_url: str) -> bool:
    if not _is_sqlite(database_url):
        return False
    database = make_url(database_url).database
    return database in (None, "", ":memory:")


def build_engine(settings: Settings) -> Engine:
    database_url = settings.database_url
    if not database_url:
        raise RuntimeError("ROSTER_DATABASE_URL must be configured before using the store.")

    kwargs: dict[str, object] = {
        "echo": settings.database_echo,
        "pool_pre_ping": True,
    }

    if _is_sqlite(database_url):
        kwargs["connect_args"] = {"check_same_thread": False}
        if _is_memory_sqlite(database_url):
            # Every pooled connection would otherwise open its own empty database.
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_size"] = settings.database_pool_size
        kwargs["max_overflow"] = settings.database_max_overflow

    engine = create_engine(database_url, **kwargs)
    if _is_sqlite(database_url):
        _configure_sqlite_connections(engine)
    return engine


def _unicode_lower(value: Optional[str]) -> Optional[str]:
    return value.lower() if isinstance(value, str) else value


def _configure_sqlite_connections(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        # SQLite's built-in lower() only folds ASCII.
        dbapi_connection.create_function(UNICODE_LOWER, 1, _unicode_lower, deterministic=True)
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
        finally:
            cursor.close()


class StoreGateway:
    """Hands out one SQLAlchemy session per logical operation.

    The gateway owns the engine and session factory and nothing else: sessions
    never outlive the ``unit_of_work`` block that opened them.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory: sessionmaker[Session] = sessionmaker(
            bind=engine,
            autoflush=False,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "StoreGateway":
        return cls(build_engine(settings or get_settings()))

    @property
    def engine(self) -> Engine:
        return self._engine

    def ensure_schema(self) -> None:
        Base.metadata.create_all(self._engine)
        logger.debug("Roster schema ensured on %s", self._engine.url.render_as_string(hide_password=True))

    def drop_schema(self) -> None:
        Base.metadata.drop_all(self._engine)

    @contextmanager
    def unit_of_work(self, *, commit: bool = True) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
            if commit:
                session.commit()
        except Exception:  # noqa: BLE001
            session.rollback()
            raise
        finally:
            session.close()

    def run(
        self,
        action: str,
        work: Callable[[Session], T],
        *,
        commit: bool = True,
    ) -> Outcome[T]:
        """Run ``work`` inside one unit of work and report the result as an ``Outcome``.

        ``RosterError`` raised by ``work`` rolls the unit back and becomes a tagged
        failure. Any other exception is logged with its traceback, rolled back and
        reported as ``store_error``; nothing propagates to the caller.
        """
        try:
            with self.unit_of_work(commit=commit) as session:
                value = work(session)
        except RosterError as exc:
            logger.warning("%s rejected (%s): %s", action, exc.kind.value, exc.message)
            return Outcome.from_error(exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Store error during %s; transaction rolled back", action)
            return Outcome.fail(ErrorKind.STORE_ERROR, f"{action} failed: {exc}")
        return Outcome.success(value)

    def dispose(self) -> None:
        self._engine.dispose()


__all__ = ["StoreGateway", "UNICODE_LOWER", "build_engine"]
