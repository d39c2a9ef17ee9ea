"""
Engine construction and the process-wide session factory.

``build_engine`` is pure: it returns a configured ``Engine`` and keeps no
state, which is what the gateway and the test fixtures use.  Long-running
hosts call ``init_engine_from_url`` once and then borrow sessions through
``get_session`` or ``session_scope``.

Backends:
    - SQLite: foreign keys switched on per connection; sessions may be
      shared across threads (the notification pool reads after commit).
    - PostgreSQL: pooled, pre-pinged, READ COMMITTED.  Decision writes are
      guarded by row versions, not by the isolation level, so both
      backends behave the same under contention.
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from validation_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_NOT_READY = "Database engine not initialized; call init_engine_from_url() first"

_engine: Engine | None = None
_factory: sessionmaker[Session] | None = None


def _sqlite_pragmas(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """Engine for ``database_url``; pool arguments only apply to server backends."""
    if database_url.startswith("sqlite"):
        sqlite_engine = create_engine(
            database_url, echo=echo, connect_args={"check_same_thread": False},
        )
        event.listen(sqlite_engine, "connect", _sqlite_pragmas)
        return sqlite_engine

    pool_options = {
        "poolclass": QueuePool,
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": pool_pre_ping,
        "pool_timeout": pool_timeout,
        "pool_recycle": pool_recycle,
    }
    return create_engine(database_url, echo=echo, isolation_level="READ COMMITTED", **pool_options)


def init_engine_from_url(database_url: str, echo: bool = False, **pool_options: Any) -> Engine:
    """
    Install the process-wide engine and session factory.

    Calling it again replaces both; the previous engine is not disposed
    (use ``reset_engine`` for that).  Extra keyword arguments are passed
    through to ``build_engine``.
    """
    global _engine, _factory

    _engine = build_engine(database_url, echo=echo, **pool_options)
    _factory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo, **pool_options},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_READY)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _factory is None:
        raise RuntimeError(_NOT_READY)
    return _factory


def get_session() -> Session:
    """A fresh session from the process-wide factory.  The caller closes it."""
    return get_session_factory()()


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """
    One unit of work: commit when the block exits cleanly, otherwise roll
    back and let the exception propagate.  The session is always closed.

        with session_scope() as session:
            ThresholdService(session, AuditorService(session)).create_threshold(...)
    """
    session = (factory or get_session_factory())()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    else:
        logger.debug("transaction_committed")
    finally:
        session.close()


def _metadata():
    # Importing the models package registers every table on Base.metadata.
    import validation_kernel.models  # noqa: F401
    from validation_kernel.db.base import Base

    return Base.metadata


def create_tables(engine: Engine | None = None) -> None:
    _metadata().create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    """Test helper; destroys every table the models declare."""
    _metadata().drop_all(engine or get_engine())


def is_postgres() -> bool:
    return _engine is not None and _engine.dialect.name == "postgresql"


def reset_engine() -> None:
    """Dispose the process-wide engine and forget the factory."""
    global _engine, _factory

    engine, _engine, _factory = _engine, None, None
    if engine is not None:
        engine.dispose()


atexit.register(reset_engine)
