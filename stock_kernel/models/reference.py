"""
Module: stock_kernel.models.reference
Responsibility: Identifier-only registries of the items and outlets the ledger
    is allowed to key stock rows by.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - item_id / outlet_id are unique (UNIQUE constraints).
    - Only identifiers and an active flag are stored.  Product names,
      categories, units and outlet addresses belong to the catalog, not here.

Failure modes:
    - IntegrityError on duplicate identifier (surfaced by ReferenceService as
      DuplicateReferenceError).
"""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import RegistryBase


class StockItem(RegistryBase):
    """A catalog item the ledger may hold stock of."""

    __tablename__ = "stock_items"

    __table_args__ = (
        UniqueConstraint("item_id", name="uq_stock_item_id"),
    )

    item_id: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<StockItem {self.item_id}{'' if self.is_active else ' (inactive)'}>"


class StockOutlet(RegistryBase):
    """A stock-holding location (shop, van, rep).  Central warehouse is implicit."""

    __tablename__ = "stock_outlets"

    __table_args__ = (
        UniqueConstraint("outlet_id", name="uq_stock_outlet_id"),
    )

    outlet_id: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<StockOutlet {self.outlet_id}{'' if self.is_active else ' (inactive)'}>"
