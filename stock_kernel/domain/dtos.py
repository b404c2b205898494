"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the movement vocabulary (MovementKind, MovementDirection) and the
    immutable data structures that cross the service / selector boundary:
    PositionKey, MovementRecord, PositionSnapshot, TransferResult,
    ClassifiedPosition, ReplayCheck and DailyMovementSummary.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the service and selector layers (never from domain logic).

Invariants enforced:
    - Domain logic accepts and returns DTOs, never ORM entities.
    - Timestamps leaving the kernel are timezone-aware UTC.

Data flow:
    MovementEvent (ORM) -> MovementRecord -> projector / history views
    StockPosition (ORM) -> PositionSnapshot -> alerts -> ClassifiedPosition
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from stock_kernel.db.types import CENTRAL_OUTLET_KEY, as_utc, outlet_from_key, outlet_key

if TYPE_CHECKING:
    from stock_kernel.models.movement import MovementEvent as MovementEventModel
    from stock_kernel.models.position import StockPosition as StockPositionModel


class MovementKind(str, Enum):
    """What kind of stock-moving occurrence an event records."""

    RECEIVE = "receive"
    ISSUE = "issue"
    RETURN = "return"
    ADJUST = "adjust"
    TRANSFER_OUT = "transfer_out"
    TRANSFER_IN = "transfer_in"


class MovementDirection(str, Enum):
    """Sign of an event's contribution to its position."""

    IN = "in"
    OUT = "out"


# Kinds whose direction is fixed.  ADJUST may carry either direction.
FIXED_DIRECTIONS: dict[MovementKind, MovementDirection] = {
    MovementKind.RECEIVE: MovementDirection.IN,
    MovementKind.TRANSFER_IN: MovementDirection.IN,
    MovementKind.ISSUE: MovementDirection.OUT,
    MovementKind.RETURN: MovementDirection.OUT,
    MovementKind.TRANSFER_OUT: MovementDirection.OUT,
}


@dataclass(frozen=True, order=True)
class PositionKey:
    """
    Identity of one stock position.

    Ordering is the global lock order: ascending (item_id, outlet_key), with
    central stock ("") sorting before every named outlet.
    """

    item_id: str
    outlet_key: str = CENTRAL_OUTLET_KEY

    @classmethod
    def of(cls, item_id: str, outlet_id: str | None) -> PositionKey:
        return cls(item_id=item_id, outlet_key=outlet_key(outlet_id))

    @property
    def outlet_id(self) -> str | None:
        return outlet_from_key(self.outlet_key)

    def __str__(self) -> str:
        return f"{self.item_id}@{self.outlet_id or 'central'}"


@dataclass(frozen=True)
class MovementRecord:
    """
    Read-side view of one appended movement event.

    Guarantees:
        - Immutable (frozen dataclass).
        - ``quantity`` is positive; the sign lives in ``direction``.
    """

    id: UUID
    item_id: str
    kind: MovementKind
    direction: MovementDirection
    quantity: int
    outlet_id: str | None
    position_seq: int
    created_at: datetime
    source_outlet_id: str | None = None
    dest_outlet_id: str | None = None
    correlation_id: UUID | None = None
    batch_number: str | None = None
    manufacture_date: date | None = None
    expiry_date: date | None = None
    reference: str | None = None
    remarks: str | None = None
    reason: str | None = None
    recipient_id: str | None = None
    actor_id: str | None = None

    @property
    def key(self) -> PositionKey:
        return PositionKey.of(self.item_id, self.outlet_id)

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.direction == MovementDirection.IN else -self.quantity

    @classmethod
    def from_model(cls, model: MovementEventModel) -> MovementRecord:
        """Create a MovementRecord from a MovementEvent ORM instance."""
        return cls(
            id=model.id,
            item_id=model.item_id,
            kind=MovementKind(model.kind),
            direction=MovementDirection(model.direction),
            quantity=model.quantity,
            outlet_id=model.outlet_id,
            position_seq=model.position_seq,
            created_at=as_utc(model.created_at),
            source_outlet_id=model.source_outlet_id,
            dest_outlet_id=model.dest_outlet_id,
            correlation_id=model.correlation_id,
            batch_number=model.batch_number,
            manufacture_date=model.manufacture_date,
            expiry_date=model.expiry_date,
            reference=model.reference,
            remarks=model.remarks,
            reason=model.reason,
            recipient_id=model.recipient_id,
            actor_id=model.actor_id,
        )


@dataclass(frozen=True)
class PositionSnapshot:
    """
    Point-in-time copy of one cached stock position.

    ``minimum_level`` is the per-position threshold as stored (None when the
    configured default applies).
    """

    item_id: str
    outlet_id: str | None
    quantity: int
    version: int
    last_updated: datetime
    minimum_level: int | None = None
    batch_number: str | None = None
    manufacture_date: date | None = None
    expiry_date: date | None = None
    on_hold: bool = False
    hold_reason: str | None = None

    @property
    def key(self) -> PositionKey:
        return PositionKey.of(self.item_id, self.outlet_id)

    @classmethod
    def from_model(cls, model: StockPositionModel) -> PositionSnapshot:
        """Create a PositionSnapshot from a StockPosition ORM instance."""
        return cls(
            item_id=model.item_id,
            outlet_id=model.outlet_id,
            quantity=model.quantity,
            version=model.version,
            last_updated=as_utc(model.last_updated),
            minimum_level=model.minimum_level,
            batch_number=model.batch_number,
            manufacture_date=model.manufacture_date,
            expiry_date=model.expiry_date,
            on_hold=model.on_hold,
            hold_reason=model.hold_reason,
        )


@dataclass(frozen=True)
class TransferResult:
    """Outcome of one committed transfer: both sides after the move."""

    transfer_id: UUID
    source: PositionSnapshot
    destination: PositionSnapshot


class StockStatus(str, Enum):
    """Reorder classification of a position."""

    OK = "ok"
    LOW = "low"
    OUT = "out"


class ExpiryStatus(str, Enum):
    """Shelf-life classification of a position's current lot."""

    FRESH = "fresh"
    EXPIRING = "expiring"
    EXPIRED = "expired"


@dataclass(frozen=True)
class ClassifiedPosition:
    """
    A position snapshot with its derived alert statuses.

    Computed at read time; never persisted.  ``expiry_status`` is None when
    the position carries no expiry date.
    """

    position: PositionSnapshot
    stock_status: StockStatus
    expiry_status: ExpiryStatus | None
    effective_minimum_level: int
    days_to_expiry: int | None = None

    @property
    def key(self) -> PositionKey:
        return self.position.key

    @property
    def item_id(self) -> str:
        return self.position.item_id

    @property
    def outlet_id(self) -> str | None:
        return self.position.outlet_id

    @property
    def quantity(self) -> int:
        return self.position.quantity


@dataclass(frozen=True)
class ReplayCheck:
    """Comparison of a cached quantity with the replay of its events."""

    item_id: str
    outlet_id: str | None
    cached: int | None
    projected: int
    event_count: int

    @property
    def is_consistent(self) -> bool:
        return self.projected >= 0 and self.cached == self.projected

    @property
    def key(self) -> PositionKey:
        return PositionKey.of(self.item_id, self.outlet_id)


@dataclass(frozen=True)
class DailyMovementSummary:
    """
    Storekeeper dashboard counters for one calendar day (UTC).

    ``received`` / ``issued`` / ``returned`` / ``transferred`` are unit totals
    of the events created that day; transfers are counted once per transfer
    (the outbound side).
    """

    day: date
    total_positions: int
    low_stock_count: int
    received: int
    issued: int
    returned: int
    transferred: int
