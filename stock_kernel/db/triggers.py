"""
Module: stock_kernel.db.triggers
Responsibility: Installing, removing and verifying database-level immutability
    triggers (layer 2 of 2).  This is the database-side complement to the ORM
    listeners in db/immutability.py.
Architecture position: Kernel > DB.  MUST NOT import from models/, services/,
    selectors/, domain/, or outer layers.

Invariants enforced:
    - movement_events rows: no UPDATE, no DELETE, ever.
    - stock_positions rows: no DELETE (deleting a position would break
      replayability of the events keyed to it).

Both PostgreSQL (PL/pgSQL functions) and SQLite (RAISE(ABORT)) variants are
provided; the dialect of the engine selects which set is installed.

Failure modes:
    - PostgreSQL RAISE EXCEPTION / SQLite ABORT on any violation, surfaced by
      SQLAlchemy as InternalError, IntegrityError or OperationalError.
    - ValueError for an unsupported dialect.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine

from stock_kernel.logging_config import get_logger

logger = get_logger("db.triggers")

ALL_TRIGGER_NAMES = [
    "trg_movement_event_immutability_update",
    "trg_movement_event_immutability_delete",
    "trg_stock_position_delete",
]

_POSTGRES_INSTALL = [
    """
    CREATE OR REPLACE FUNCTION stock_prevent_movement_event_mutation()
    RETURNS trigger AS $$
    BEGIN
        RAISE EXCEPTION 'IMMUTABILITY_VIOLATION - movement_events are append-only (% of %)',
            TG_OP, OLD.id;
    END;
    $$ LANGUAGE plpgsql
    """,
    """
    CREATE OR REPLACE FUNCTION stock_prevent_position_delete()
    RETURNS trigger AS $$
    BEGIN
        RAISE EXCEPTION 'IMMUTABILITY_VIOLATION - stock_positions cannot be deleted (%)',
            OLD.id;
    END;
    $$ LANGUAGE plpgsql
    """,
    "DROP TRIGGER IF EXISTS trg_movement_event_immutability_update ON movement_events",
    """
    CREATE TRIGGER trg_movement_event_immutability_update
    BEFORE UPDATE ON movement_events
    FOR EACH ROW EXECUTE FUNCTION stock_prevent_movement_event_mutation()
    """,
    "DROP TRIGGER IF EXISTS trg_movement_event_immutability_delete ON movement_events",
    """
    CREATE TRIGGER trg_movement_event_immutability_delete
    BEFORE DELETE ON movement_events
    FOR EACH ROW EXECUTE FUNCTION stock_prevent_movement_event_mutation()
    """,
    "DROP TRIGGER IF EXISTS trg_stock_position_delete ON stock_positions",
    """
    CREATE TRIGGER trg_stock_position_delete
    BEFORE DELETE ON stock_positions
    FOR EACH ROW EXECUTE FUNCTION stock_prevent_position_delete()
    """,
]

_POSTGRES_DROP = [
    "DROP TRIGGER IF EXISTS trg_movement_event_immutability_update ON movement_events",
    "DROP TRIGGER IF EXISTS trg_movement_event_immutability_delete ON movement_events",
    "DROP TRIGGER IF EXISTS trg_stock_position_delete ON stock_positions",
    "DROP FUNCTION IF EXISTS stock_prevent_movement_event_mutation()",
    "DROP FUNCTION IF EXISTS stock_prevent_position_delete()",
]

_SQLITE_INSTALL = [
    """
    CREATE TRIGGER IF NOT EXISTS trg_movement_event_immutability_update
    BEFORE UPDATE ON movement_events
    BEGIN
        SELECT RAISE(ABORT, 'IMMUTABILITY_VIOLATION - movement_events are append-only');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_movement_event_immutability_delete
    BEFORE DELETE ON movement_events
    BEGIN
        SELECT RAISE(ABORT, 'IMMUTABILITY_VIOLATION - movement_events are append-only');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_stock_position_delete
    BEFORE DELETE ON stock_positions
    BEGIN
        SELECT RAISE(ABORT, 'IMMUTABILITY_VIOLATION - stock_positions cannot be deleted');
    END
    """,
]

_SQLITE_DROP = [
    f"DROP TRIGGER IF EXISTS {name}" for name in ALL_TRIGGER_NAMES
]


def _statements(engine: Engine, install: bool) -> list[str]:
    dialect = engine.dialect.name
    if dialect == "postgresql":
        return _POSTGRES_INSTALL if install else _POSTGRES_DROP
    if dialect == "sqlite":
        return _SQLITE_INSTALL if install else _SQLITE_DROP
    raise ValueError(f"Unsupported dialect for immutability triggers: {dialect}")


def _execute_all(engine: Engine, statements: list[str]) -> None:
    with engine.connect() as conn:
        for statement in statements:
            conn.execute(text(statement))
        conn.commit()


# =============================================================================
# Public API
# =============================================================================


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level immutability triggers.

    Preconditions: Tables must exist (call after create_all()).
    Postconditions: Every trigger in ALL_TRIGGER_NAMES is installed.
        Installation is idempotent.
    """
    _execute_all(engine, _statements(engine, install=True))
    logger.info(
        "immutability_triggers_installed",
        extra={"dialect": engine.dialect.name, "count": len(ALL_TRIGGER_NAMES)},
    )


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove database-level immutability triggers.

    WARNING: Only for test teardown and migrations.  Re-install immediately.
    """
    _execute_all(engine, _statements(engine, install=False))


def get_installed_triggers(engine: Engine) -> list[str]:
    """Get the sorted list of installed immutability triggers."""
    names = ", ".join(f"'{name}'" for name in ALL_TRIGGER_NAMES)
    if engine.dialect.name == "postgresql":
        check_sql = f"SELECT tgname FROM pg_trigger WHERE tgname IN ({names}) ORDER BY tgname"
    else:
        check_sql = (
            "SELECT name FROM sqlite_master "
            f"WHERE type = 'trigger' AND name IN ({names}) ORDER BY name"
        )

    with engine.connect() as conn:
        return [row[0] for row in conn.execute(text(check_sql))]


def triggers_installed(engine: Engine) -> bool:
    """Check if all immutability triggers are installed."""
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)


def get_missing_triggers(engine: Engine) -> list[str]:
    """Get triggers that should be installed but aren't."""
    installed = set(get_installed_triggers(engine))
    return sorted(set(ALL_TRIGGER_NAMES) - installed)
