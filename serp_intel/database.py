"""SQLAlchemy engine and session plumbing for the run/snapshot history."""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///data/serp_intel.db"
SQLITE_BUSY_TIMEOUT_MS = 5000

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


class Base(DeclarativeBase):
    """Declarative base shared by the ORM models in ``serp_intel.models``."""


def _on_sqlite_connect(dbapi_conn, _record) -> None:
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    finally:
        cursor.close()


def _sqlite_connect_args(database_url: str) -> dict[str, Any]:
    """Create the parent directory of a file-backed SQLite database."""
    database = make_url(database_url).database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)
    return {"check_same_thread": False}


def get_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """Process-wide engine, built on first use.

    The URL is only read on the first call: explicit argument, then
    ``DATABASE_URL``, then the bundled SQLite file under ``data/``.
    """
    global _engine
    if _engine is None:
        url = database_url or os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL
        is_sqlite = make_url(url).get_backend_name() == "sqlite"
        _engine = create_engine(
            url,
            echo=echo,
            pool_pre_ping=True,
            connect_args=_sqlite_connect_args(url) if is_sqlite else {},
        )
        if is_sqlite:
            event.listen(_engine, "connect", _on_sqlite_connect)
        logger.info("Connected run history to %s", _engine.url.render_as_string())
    return _engine


def _get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(), expire_on_commit=False)
    return _session_factory


@contextmanager
def get_session() -> Iterator[Session]:
    """Unit of work: commits on clean exit, rolls back if the block raises.

    Usage::

        with get_session() as session:
            session.add(run)
    """
    with _get_session_factory().begin() as session:
        yield session


def init_db(database_url: Optional[str] = None, echo: bool = False) -> None:
    """Bind the engine and create any missing history tables."""
    engine = get_engine(database_url=database_url, echo=echo)
    import serp_intel.models  # noqa: F401  (registers the mapped tables)

    Base.metadata.create_all(bind=engine)
    logger.info("Tables ready: %s", ", ".join(sorted(Base.metadata.tables)))


def reset_engine() -> None:
    """Dispose the cached engine so the next call can bind a new URL."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
