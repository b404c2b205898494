"""
Module: stock_kernel.models.position
Responsibility: ORM persistence for the denormalized stock position cache,
    one row per (item, outlet).
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - quantity == sum of signed contributions of the position's events.  The
      event store wins any disagreement; the cache is rebuildable by replay
      (ReplayService).
    - quantity >= 0 (CHECK constraint).
    - (item_id, outlet_key) is unique.  outlet_key is "" for central stock.
    - ``version`` is the optimistic lock: every UPDATE is issued as
      ``... WHERE id = ? AND version = ?``; a concurrent writer that loaded an
      older version fails with StaleDataError and its unit of work is retried.
    - Rows are never deleted (db/immutability.py + db/triggers.py).

Failure modes:
    - StaleDataError on a concurrent update (retried by StockLedger).
    - IntegrityError on duplicate position creation (retried by StockLedger).
"""

from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class StockPosition(Base):
    """
    Cached current quantity for one (item, outlet) pair.

    Contract:
        Created on the first movement for the key, updated on every later
        movement, never deleted.  ``on_hold`` is set when an integrity
        violation is detected and blocks every command until the position is
        rebuilt from its events.
    """

    __tablename__ = "stock_positions"

    __table_args__ = (
        UniqueConstraint("item_id", "outlet_key", name="uq_stock_position_key"),
        CheckConstraint("quantity >= 0", name="ck_stock_position_non_negative"),
        Index("idx_stock_position_outlet", "outlet_key"),
        Index("idx_stock_position_expiry", "expiry_date"),
    )

    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    outlet_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    outlet_key: Mapped[str] = mapped_column(String(64), nullable=False)

    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Per-position reorder threshold; NULL falls back to the configured default
    minimum_level: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # Most recent lot summary
    batch_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    manufacture_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    on_hold: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hold_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<StockPosition item={self.item_id} outlet={self.outlet_id or 'central'} "
            f"qty={self.quantity} v{self.version}>"
        )
