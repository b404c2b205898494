"""
Module: stock_kernel.models.movement
Responsibility: ORM persistence for the append-only stock movement log -- the
    source of truth for every stock quantity.
Architecture position: Kernel > Models.  May import from db/ and domain/dtos.py.

Invariants enforced:
    - Immutability: no UPDATE or DELETE (db/immutability.py + db/triggers.py).
    - quantity > 0 (CHECK constraint).  The sign of the contribution lives in
      ``direction``, never in ``quantity``.
    - (item_id, outlet_key, position_seq) is unique: two concurrent writers
      can never append the same step of one position's history.
    - direction is consistent with kind (CHECK constraint): RECEIVE and
      TRANSFER_IN are "in"; ISSUE, RETURN and TRANSFER_OUT are "out"; ADJUST
      may be either.

Failure modes:
    - IntegrityError on a duplicate position_seq (lost race) or a CHECK
      violation.
    - ImmutabilityViolationError on any UPDATE/DELETE through the ORM.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Index,
    String,
    UniqueConstraint,
    case,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString
from stock_kernel.domain.dtos import MovementDirection, MovementKind


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class MovementEvent(Base):
    """
    One immutable record of a stock-quantity-changing occurrence.

    Contract:
        Created only by StockLedgerService in response to a validated command.
        Never updated or deleted by any actor.

    Guarantees:
        - ``outlet_key`` identifies the position this event contributes to
          ("" for central stock; ``outlet_id`` is NULL in that case).
        - ``source_outlet_id`` / ``dest_outlet_id`` describe the movement
          endpoints (NULL = central warehouse).
        - TRANSFER_OUT / TRANSFER_IN pairs share ``correlation_id``.
    """

    __tablename__ = "movement_events"

    __table_args__ = (
        UniqueConstraint(
            "item_id", "outlet_key", "position_seq", name="uq_movement_position_seq"
        ),
        CheckConstraint("quantity > 0", name="ck_movement_quantity_positive"),
        CheckConstraint(
            "(kind IN ('receive', 'transfer_in') AND direction = 'in') OR "
            "(kind IN ('issue', 'return', 'transfer_out') AND direction = 'out') OR "
            "(kind = 'adjust')",
            name="ck_movement_kind_direction",
        ),
        Index("idx_movement_item_created", "item_id", "created_at"),
        Index("idx_movement_position", "item_id", "outlet_key"),
        Index("idx_movement_correlation", "correlation_id"),
        Index("idx_movement_created", "created_at"),
    )

    item_id: Mapped[str] = mapped_column(String(64), nullable=False)

    kind: Mapped[MovementKind] = mapped_column(
        SAEnum(
            MovementKind,
            name="movement_kind",
            native_enum=False,
            length=20,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )

    direction: Mapped[MovementDirection] = mapped_column(
        SAEnum(
            MovementDirection,
            name="movement_direction",
            native_enum=False,
            length=3,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Position this event contributes to
    outlet_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    outlet_key: Mapped[str] = mapped_column(String(64), nullable=False)

    # Position version after this event was applied
    position_seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Movement endpoints (NULL = central warehouse)
    source_outlet_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    dest_outlet_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Shared by both sides of a transfer
    correlation_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Lot tracking
    batch_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    manufacture_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Audit metadata
    reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    remarks: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    reason: Mapped[str | None] = mapped_column(String(200), nullable=True)
    recipient_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<MovementEvent {self.kind.value} {self.direction.value}{self.quantity} "
            f"item={self.item_id} outlet={self.outlet_id or 'central'}>"
        )

    @property
    def signed_quantity(self) -> int:
        """Contribution of this event to its position (+ in, - out)."""
        if self.direction == MovementDirection.IN:
            return self.quantity
        return -self.quantity


def signed_quantity_sum():
    """SQL aggregate of signed event contributions (0 when no rows match)."""
    return func.coalesce(
        func.sum(
            case(
                (MovementEvent.direction == MovementDirection.IN, MovementEvent.quantity),
                else_=-MovementEvent.quantity,
            )
        ),
        0,
    )
