"""
Engine, session factory and transaction scope for the harvest kernel.

There is one engine per process.  ``init_engine_from_url()`` builds it (the
API does so at startup, the test suite once per run) and everything else
obtains sessions through ``get_session()`` or ``session_scope()``.

Backends:
    PostgreSQL is the production database.  Connections run at READ
    COMMITTED; unit exclusivity, numbering and transitions rely on
    ``SELECT ... FOR UPDATE`` against batch, unit and numbering-lock rows.

    SQLite serves local runs and the single-threaded test suite.  It has no
    row locks.  pysqlite's implicit transaction handling is turned off so
    that SQLAlchemy's own BEGIN/SAVEPOINT statements are the ones executed.

Calling any accessor before ``init_engine_from_url()`` raises RuntimeError.
"""

import atexit
from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from harvest_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Database engine not initialized; call init_engine_from_url() first"


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _sqlite_options(timeout: int) -> dict[str, Any]:
    return {"connect_args": {"check_same_thread": False, "timeout": timeout}}


def _postgres_options(
    pool_size: int,
    max_overflow: int,
    pool_pre_ping: bool,
    pool_timeout: int,
    pool_recycle: int,
) -> dict[str, Any]:
    return {
        "poolclass": QueuePool,
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": pool_pre_ping,
        "pool_timeout": pool_timeout,
        "pool_recycle": pool_recycle,
        "isolation_level": "READ COMMITTED",
    }


def _hook_sqlite(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        for pragma in ("PRAGMA foreign_keys=ON", "PRAGMA journal_mode=WAL"):
            cursor.execute(pragma)
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Build the process engine and its session factory.

    A second call replaces the previous engine (the old one is not
    disposed; use ``reset_engine()`` for that).  Pool arguments are ignored
    for SQLite URLs.
    """
    global _engine, _SessionFactory

    if _is_sqlite(database_url):
        engine = create_engine(database_url, echo=echo, **_sqlite_options(pool_timeout))
        _hook_sqlite(engine)
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            **_postgres_options(
                pool_size, max_overflow, pool_pre_ping, pool_timeout, pool_recycle
            ),
        )

    _engine = engine
    _SessionFactory = sessionmaker(bind=engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={"dialect": engine.dialect.name, "pool_size": pool_size, "echo": echo},
    )
    return engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Session factory, for worker threads that each need their own session."""
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    One transaction: commit on normal exit, roll back and re-raise otherwise.

    Services only flush; this scope (or the test fixture owning the session)
    decides when work becomes visible to other transactions::

        with session_scope() as session:
            StageService(session, clock).submit(Stage.PROCESSING, batch_id, actor_id)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _metadata():
    from harvest_kernel.db.base import Base
    import harvest_kernel.models  # noqa: F401  registers every table

    return Base.metadata


def create_tables() -> None:
    engine = get_engine()
    # Pooled connections opened before the DDL would miss the new tables.
    engine.dispose()
    _metadata().create_all(engine)


def drop_tables() -> None:
    _metadata().drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


def is_postgres() -> bool:
    return _engine is not None and _engine.dialect.name == "postgresql"


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
