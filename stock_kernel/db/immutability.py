"""
ORM-Level Immutability Enforcement (layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

The movement event log is the source of truth for every stock quantity.  A
position's cached quantity is only trustworthy while it can be recomputed
from an untouched history, so:

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications made through SQLAlchemy sessions
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/triggers.py (database triggers)
    - Catches raw SQL, bulk statements, direct console access

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | Rule                                   | Why
----------------|----------------------------------------|---------------------------
MovementEvent   | No UPDATE, no DELETE, ever             | History is append-only
StockPosition   | No DELETE; key columns never change    | Events reference the key

Corrections are new compensating events (ADJUST), never edits.

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent, called at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_POSITION_KEY_FIELDS = ("item_id", "outlet_key", "outlet_id")


def _check_movement_event_update(mapper, connection, target):
    """MovementEvent rows are immutable from creation."""
    logger.error(
        "immutability_violation_blocked",
        extra={"entity": "MovementEvent", "entity_id": str(target.id), "op": "update"},
    )
    raise ImmutabilityViolationError(
        entity_type="MovementEvent",
        entity_id=str(target.id),
        reason="movement events are append-only; record a compensating ADJUST instead",
    )


def _check_movement_event_delete(mapper, connection, target):
    """MovementEvent rows can never be deleted."""
    logger.error(
        "immutability_violation_blocked",
        extra={"entity": "MovementEvent", "entity_id": str(target.id), "op": "delete"},
    )
    raise ImmutabilityViolationError(
        entity_type="MovementEvent",
        entity_id=str(target.id),
        reason="movement events cannot be deleted",
    )


def _check_stock_position_update(mapper, connection, target):
    """Quantity and summary fields may change; the position key may not."""
    for field in _POSITION_KEY_FIELDS:
        history = get_history(target, field)
        if history.deleted and history.added and history.deleted[0] != history.added[0]:
            raise ImmutabilityViolationError(
                entity_type="StockPosition",
                entity_id=str(target.id),
                reason=f"position key field '{field}' cannot change",
            )


def _check_stock_position_delete(mapper, connection, target):
    """StockPosition rows are never deleted while events reference the key."""
    raise ImmutabilityViolationError(
        entity_type="StockPosition",
        entity_id=str(target.id),
        reason="stock positions cannot be deleted; events reference this key",
    )


def _listeners():
    from stock_kernel.models.movement import MovementEvent
    from stock_kernel.models.position import StockPosition

    return [
        (MovementEvent, "before_update", _check_movement_event_update),
        (MovementEvent, "before_delete", _check_movement_event_delete),
        (StockPosition, "before_update", _check_stock_position_update),
        (StockPosition, "before_delete", _check_stock_position_delete),
    ]


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are left as they are.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only for tests that must exercise the database trigger layer
    on its own.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)


def immutability_listeners_registered() -> bool:
    """True when every immutability listener is active."""
    return all(
        event.contains(target, event_name, listener_fn)
        for target, event_name, listener_fn in _listeners()
    )
