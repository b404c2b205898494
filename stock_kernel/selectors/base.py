"""
Module: stock_kernel.selectors.base
Responsibility: Read-side base for stock queries and the outlet-filter
    convention they share.
Architecture position: Kernel > Selectors.  May import from db/, domain/ and
    models/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only: selectors never add, delete, flush, commit or lock rows, so
      reads never block a storekeeper's write.
    - Selectors return frozen DTOs, never ORM rows.

Outlet filters take three shapes: an outlet id, ``None`` for central stock,
or ``ANY_OUTLET`` for every position of the item.
"""

from sqlalchemy import ColumnElement, true
from sqlalchemy.orm import Session

from stock_kernel.db.types import outlet_key


class _AnyOutlet:
    def __repr__(self) -> str:
        return "ANY_OUTLET"


ANY_OUTLET = _AnyOutlet()


class BaseSelector:
    """Holds the caller's session; the caller owns its transaction."""

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def outlet_clause(column, outlet_id) -> ColumnElement[bool]:
        """WHERE clause on an ``outlet_key`` column for an outlet filter."""
        if outlet_id is ANY_OUTLET:
            return true()
        return column == outlet_key(outlet_id)
