"""
Module: stock_kernel.db.engine
Responsibility: The process-wide engine and session factory, and schema
    creation (tables + immutability triggers).
Architecture position: Kernel > DB.  May import from db/base.py and
    db/triggers.py; ``create_tables`` imports models so metadata is complete.

Backends:
    - PostgreSQL (production): pooled, READ COMMITTED, positions locked with
      SELECT ... FOR UPDATE.
    - SQLite (local runs, default test run): one database-wide write lock.
      FOR UPDATE is ignored; concurrent position writes are caught by the
      version column on stock_positions and retried by StockLedger.  Writers
      wait up to ``lock_timeout_seconds`` for the lock before failing with
      "database is locked".

Failure modes:
    - RuntimeError from the accessors before init_engine_from_url().
    - OperationalError when trigger installation deadlocks three times.
"""

import atexit
import time

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from stock_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Engine not initialized. Call init_engine_from_url() first."


def _sqlite_engine(database_url: str, echo: bool, lock_timeout_seconds: int) -> Engine:
    return create_engine(
        database_url,
        echo=echo,
        connect_args={"check_same_thread": False, "timeout": lock_timeout_seconds},
    )


def _postgres_engine(
    database_url: str,
    echo: bool,
    pool_size: int,
    max_overflow: int,
    pool_timeout: int,
    pool_recycle: int,
) -> Engine:
    return create_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    lock_timeout_seconds: int = 30,
) -> Engine:
    """
    (Re)initialize the engine and session factory.

    Args:
        database_url: ``postgresql://...`` or ``sqlite:///path.db``.
        echo: Log every SQL statement.
        pool_size, max_overflow, pool_timeout, pool_recycle: PostgreSQL pool.
        lock_timeout_seconds: SQLite busy timeout.

    Calling again disposes the previous engine.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()

    if database_url.startswith("sqlite"):
        _engine = _sqlite_engine(database_url, echo, lock_timeout_seconds)
    else:
        _engine = _postgres_engine(
            database_url, echo, pool_size, max_overflow, pool_timeout, pool_recycle
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Factory for new sessions.  Each concurrent caller needs its own session."""
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


def create_tables(install_triggers: bool = True) -> None:
    """
    Create the stock tables and, by default, the immutability triggers.

    Idempotent: existing tables and triggers are left in place.
    """
    from stock_kernel.db.base import Base
    import stock_kernel.models  # noqa: F401  (registers all tables)

    engine = get_engine()
    Base.metadata.create_all(engine)
    if not install_triggers:
        return

    from stock_kernel.db.triggers import install_immutability_triggers

    # Parallel test workers may race on CREATE OR REPLACE FUNCTION
    for attempt in range(1, 4):
        try:
            install_immutability_triggers(engine)
            return
        except OperationalError as exc:
            if "deadlock" not in str(exc).lower() or attempt == 3:
                raise
            logger.warning("trigger_install_deadlock_retry", extra={"attempt": attempt})
            engine.dispose()
            time.sleep(0.5 * attempt)


def drop_tables() -> None:
    """Drop triggers and tables.  Test and reset tooling only."""
    from stock_kernel.db.base import Base
    from stock_kernel.db.triggers import uninstall_immutability_triggers
    import stock_kernel.models  # noqa: F401

    engine = get_engine()
    if inspect(engine).has_table("movement_events"):
        uninstall_immutability_triggers(engine)
    Base.metadata.drop_all(engine)


def reset_engine() -> None:
    """Dispose and forget the engine (test cleanup)."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


atexit.register(reset_engine)
