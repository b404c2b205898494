"""
Quantity Projector -- derive stock quantities from movement history.

Responsibility:
    Folds a stream of movement events into the quantity each position holds.
    This is the replay path: the position cache is only trusted because this
    function can recompute it from the append-only event store at any time.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Accepts anything that
    looks like a movement (MovementRecord or the MovementEvent ORM row): it
    needs ``id``, ``kind``, ``direction`` and ``quantity``, plus ``item_id``
    and ``outlet_id`` for ``project_positions``.

Invariants enforced:
    - RECEIVE / TRANSFER_IN contribute +quantity; ISSUE / RETURN /
      TRANSFER_OUT contribute -quantity; ADJUST contributes +/-quantity per
      its direction.
    - Idempotent over event ids: a record seen twice is counted once.
    - Order independent: the result is a plain sum.
    - A negative projection is an integrity violation.  It is reported,
      never clamped to zero.

Failure modes:
    - IntegrityViolationError on a non-positive quantity, a kind/direction
      mismatch, or a negative projected quantity.
"""

from collections import defaultdict
from collections.abc import Iterable
from typing import Any

from stock_kernel.domain.dtos import (
    FIXED_DIRECTIONS,
    MovementDirection,
    MovementKind,
    PositionKey,
)
from stock_kernel.exceptions import IntegrityViolationError


def signed_contribution(
    kind: MovementKind | str,
    quantity: int,
    direction: MovementDirection | str,
    *,
    key: PositionKey | None = None,
) -> int:
    """
    Signed effect of a single event on its position.

    Raises:
        IntegrityViolationError: quantity is not a positive integer, or the
            direction contradicts the kind.
    """
    kind = MovementKind(kind)
    direction = MovementDirection(direction)
    item_id = key.item_id if key else None
    outlet_id = key.outlet_id if key else None

    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise IntegrityViolationError(
            item_id=item_id,
            outlet_id=outlet_id,
            cached=None,
            projected=None,
            reason=f"{kind.value} event carries non-positive quantity {quantity!r}",
        )

    expected = FIXED_DIRECTIONS.get(kind)
    if expected is not None and direction != expected:
        raise IntegrityViolationError(
            item_id=item_id,
            outlet_id=outlet_id,
            cached=None,
            projected=None,
            reason=f"{kind.value} event must be '{expected.value}', got '{direction.value}'",
        )

    return quantity if direction == MovementDirection.IN else -quantity


def _key_of(event: Any) -> PositionKey:
    return PositionKey.of(event.item_id, event.outlet_id)


def project(events: Iterable[Any], *, key: PositionKey | None = None) -> int:
    """
    Current quantity of one position given its (pre-filtered) events.

    Args:
        events: The position's movement events, in any order.
        key: Position identity, used only to describe failures.

    Returns:
        Sum of signed contributions, each distinct event id counted once.
    """
    seen = set()
    total = 0
    for event in events:
        if event.id in seen:
            continue
        seen.add(event.id)
        total += signed_contribution(event.kind, event.quantity, event.direction, key=key)

    if total < 0:
        raise IntegrityViolationError(
            item_id=key.item_id if key else None,
            outlet_id=key.outlet_id if key else None,
            cached=None,
            projected=total,
            reason="event history projects to a negative quantity",
        )
    return total


def project_positions(events: Iterable[Any]) -> dict[PositionKey, int]:
    """
    Project every position present in an arbitrary event stream.

    Returns:
        Mapping of PositionKey to projected quantity.  Positions with no
        events do not appear.
    """
    grouped: dict[PositionKey, list[Any]] = defaultdict(list)
    seen = set()
    for event in events:
        if event.id in seen:
            continue
        seen.add(event.id)
        grouped[_key_of(event)].append(event)

    return {key: project(group, key=key) for key, group in sorted(grouped.items())}
