"""Process-wide SQLAlchemy engine and per-request sessions.

The engine is created on first use and released by ``shutdown()``.
"""

import logging
import threading
from typing import Any, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session as DBSession, sessionmaker

from dataweb.app.config import settings

logger = logging.getLogger("dataweb.db")


class Base(DeclarativeBase):
    pass


SessionLocal = sessionmaker(autocommit=False, autoflush=False)

_engine: Engine | None = None
_engine_lock = threading.Lock()


def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(url: str, **kwargs: Any) -> Engine:
    """Create an engine; SQLite connections get WAL journaling and FK enforcement."""
    if url.startswith("sqlite"):
        # Sync route handlers run on a threadpool
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    engine = create_engine(url, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


def init_db(engine: Engine) -> None:
    # Registers every table on Base.metadata
    import dataweb.app.models  # noqa: F401

    Base.metadata.create_all(engine)


def get_engine() -> Engine:
    global _engine
    if _engine is not None:
        return _engine
    with _engine_lock:
        if _engine is None:
            engine = create_db_engine(settings.DATABASE_URL)
            if settings.AUTO_CREATE_TABLES:
                init_db(engine)
            SessionLocal.configure(bind=engine)
            _engine = engine
            logger.info("Database initialized at %s", engine.url.render_as_string(hide_password=True))
    return _engine


def shutdown() -> None:
    global _engine
    with _engine_lock:
        if _engine is not None:
            _engine.dispose()
            _engine = None
            logger.info("Database connections closed")


def get_db() -> Iterator[DBSession]:
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
