"""
Module: console_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factories and the
    transactional scope used by ``SqlEntityStore``.
Architecture position: Kernel > DB.  May import from db/base.py; imports
    models/ only inside create_tables/drop_tables.

Invariants enforced:
    - Every store call runs in its own session (one per gateway thread).
    - SQLite engines allow cross-thread use, since gateway calls run on
      short-lived worker threads.
    - Store transactions on one SQLite engine never overlap
      (``write_lock_for``).

Failure modes:
    - OperationalError bubbles up from session_scope after rollback; the
      store translates it into StoreUnavailableError.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from console_kernel.logging_config import get_logger

logger = get_logger("db.engine")

# Keyed by id(engine); a recycled id only over-serializes a new engine.
_SQLITE_LOCKS: dict[int, threading.Lock] = {}
_SQLITE_LOCKS_GUARD = threading.Lock()


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
) -> Engine:
    """
    Build an engine for the store database.

    ``sqlite://`` (in-memory) URLs share one connection across threads so
    every session sees the same database; file SQLite URLs get
    ``check_same_thread=False``; other backends get a pre-pinged QueuePool.

    Args:
        database_url: SQLAlchemy URL.
        echo: If True, log all SQL statements.
        pool_size: Connections kept in the pool (non-SQLite backends).
        max_overflow: Max connections beyond pool_size (non-SQLite backends).
        pool_pre_ping: Test connections before use (non-SQLite backends).

    Returns:
        SQLAlchemy Engine instance.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=echo, **kwargs)
        dialect = "sqlite"
    else:
        engine = create_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
        )
        dialect = url.get_backend_name()

    logger.info(
        "engine_initialized",
        extra={"dialect": dialect, "echo": echo},
    )
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


def write_lock_for(engine: Engine | None) -> threading.Lock | None:
    """
    Lock that serializes store transactions on a SQLite engine.

    In-memory SQLite hands every session the same DBAPI connection, so a
    commit or rollback in one thread would end another thread's
    transaction.  File databases allow a single writer.  Other backends
    return None.
    """
    if engine is None or engine.dialect.name != "sqlite":
        return None
    with _SQLITE_LOCKS_GUARD:
        lock = _SQLITE_LOCKS.get(id(engine))
        if lock is None:
            lock = _SQLITE_LOCKS[id(engine)] = threading.Lock()
        return lock


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    On normal exit the session is committed and closed.  On exception it is
    rolled back and closed, and the exception is re-raised.

    Usage:
        with session_scope(factory) as session:
            session.add(record)
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine) -> None:
    """Create every table the SQL store needs."""
    from console_kernel.db.base import Base
    import console_kernel.models  # noqa: F401  (registers the mappers)

    Base.metadata.create_all(engine)
    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def drop_tables(engine: Engine) -> None:
    from console_kernel.db.base import Base
    import console_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine)
