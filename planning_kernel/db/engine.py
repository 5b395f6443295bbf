"""
Module: planning_kernel.db.engine
Responsibility: Engine construction, the module-level session factory used by
    the scripts, and ``session_scope``, the one place a planning transaction
    is committed or rolled back.
Architecture position: Kernel > DB.  May import from db/base.py.  MUST NOT
    import from services/, selectors/ or domain/ (create_tables imports
    models so that Base.metadata is complete).

Invariants enforced:
    - PostgreSQL (psycopg2) is the production backend; SQLite is accepted
      for tests and demos.  In-memory SQLite shares one connection through a
      StaticPool so every session of an edit sees the same grid.
    - SQLite connections run ``PRAGMA foreign_keys=ON`` so cell rows cascade
      with their node, measure, period and version.
    - Services flush only; each orchestrator stage opens its own
      session_scope and therefore commits on its own.

Failure modes:
    - RuntimeError from get_engine/get_session/get_session_factory before
      init_engine_from_url().
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from planning_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_IN_MEMORY_SQLITE = ("sqlite://", "sqlite+pysqlite://")
_POOL_TIMEOUT_SECONDS = 30
_POOL_RECYCLE_SECONDS = 1800

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _is_in_memory(database_url: str) -> bool:
    return database_url in _IN_MEMORY_SQLITE or ":memory:" in database_url


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
) -> Engine:
    """
    Create an engine for ``database_url`` without touching module state.

    SQLite gets foreign key enforcement, plus a StaticPool when in memory.
    Anything else is treated as a server database: pre-pinging QueuePool,
    READ COMMITTED isolation.
    """
    if database_url.startswith("sqlite"):
        options: dict = {"connect_args": {"check_same_thread": False}}
        if _is_in_memory(database_url):
            options["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=echo, **options)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(
        database_url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_timeout=_POOL_TIMEOUT_SECONDS,
        pool_recycle=_POOL_RECYCLE_SECONDS,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
) -> Engine:
    """
    Build the module-level engine and session factory.

    A second call replaces the first.  Sessions use ``expire_on_commit=False``
    so the reload stage can hand back rows read in a committed scope.
    """
    global _engine, _SessionFactory

    _engine = build_engine(
        database_url, echo=echo, pool_size=pool_size, max_overflow=max_overflow
    )
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "in_memory": _is_in_memory(database_url),
            "pool_size": pool_size,
        },
    )
    return _engine


def _require_factory() -> sessionmaker[Session]:
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    return _require_factory()


def get_session() -> Session:
    return _require_factory()()


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session] | None = None,
) -> Iterator[Session]:
    """
    Open a session, commit on clean exit, roll back and re-raise otherwise.

    Args:
        session_factory: Defaults to the module-level factory.

    Usage:
        with session_scope(factory) as session:
            CellStore(session, clock).upsert(...)
    """
    factory = session_factory if session_factory is not None else _require_factory()
    session = factory()
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """Create the catalog, version and cell tables."""
    from planning_kernel.db.base import Base
    import planning_kernel.models  # noqa: F401  (registers all tables)

    target = engine or get_engine()
    Base.metadata.create_all(target)
    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def drop_tables(engine: Engine | None = None) -> None:
    """Drop every planning table, cells included.  Used by reseeding and tests."""
    from planning_kernel.db.base import Base
    import planning_kernel.models  # noqa: F401

    target = engine or get_engine()
    Base.metadata.drop_all(target)
    logger.info("tables_dropped")


def reset_engine() -> None:
    """Dispose the module-level engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


def _dispose_at_exit() -> None:
    if _engine is not None:
        _engine.dispose()


atexit.register(_dispose_at_exit)
