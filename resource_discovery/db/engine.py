"""Engine and session plumbing for the resource store.

The store defaults to a SQLite file under the user's home directory.
``DATABASE_URL`` may hold either a bare file path or a full SQLAlchemy URL,
so a Postgres deployment only needs the environment variable changed.
"""

import os
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

DEFAULT_DB_PATH = Path.home() / ".resource_discovery" / "resource_discovery.db"

_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def get_database_url(db_path: Path | str | None = None) -> str:
    """
    Resolve the connection URL for the resource store.

    An explicit ``db_path`` wins, then ``DATABASE_URL``, then the default
    file. File-backed URLs get their parent directory created.
    """
    target = db_path if db_path is not None else os.environ.get("DATABASE_URL")
    if target and "://" in str(target):
        return str(target)

    sqlite_file = Path(target) if target else DEFAULT_DB_PATH
    sqlite_file.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{sqlite_file}"


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    """Build an engine for the resolved URL.

    SQLite connections are shared across the worker's threads and enforce
    foreign keys.
    """
    url = get_database_url(db_path)
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, pool_pre_ping=True)

    engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def get_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_db_engine(db_path, echo)
    return _engine


def get_session_factory(db_path: Path | str | None = None) -> sessionmaker:
    """Return the process-wide session factory bound to :func:`get_engine`."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            bind=get_engine(db_path), autocommit=False, autoflush=False
        )
    return _session_factory


def reset_engine() -> None:
    """Dispose of the cached engine so the next call re-reads ``DATABASE_URL``."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


@contextmanager
def get_session(db_path: Path | str | None = None) -> Generator[Session, None, None]:
    """
    Open a session for one unit of work.

    Callers commit explicitly; anything left uncommitted when an exception
    escapes the block is rolled back before the session closes.
    """
    session = get_session_factory(db_path)()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(db_path: Path | str | None = None) -> None:
    """Create any missing tables for resources, eligibility, events and tombstones."""
    from resource_discovery.db.models import Base

    Base.metadata.create_all(bind=get_engine(db_path))
