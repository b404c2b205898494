"""
BaseService -- shared plumbing for the write-side stock services.

Services take the caller's Session and only ever flush.  StockLedger (or a
test) owns commit and rollback, so a command that fails half way leaves no
event and no cache change behind.

Position rows are always read with ``populate_existing`` so that a retried
command never trusts a quantity cached in the identity map.
"""

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import PositionKey
from stock_kernel.models.movement import MovementEvent
from stock_kernel.models.position import StockPosition


class BaseService:
    """Session + clock holder.  Never commits."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    def _load_position(self, key: PositionKey, lock: bool = False) -> StockPosition | None:
        # FOR UPDATE on PostgreSQL; SQLite ignores it and relies on the version column.
        stmt = select(StockPosition).where(
            StockPosition.item_id == key.item_id,
            StockPosition.outlet_key == key.outlet_key,
        )
        if lock:
            stmt = stmt.with_for_update()
        return self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()

    @staticmethod
    def _events_of(key: PositionKey) -> Select:
        return select(MovementEvent).where(
            MovementEvent.item_id == key.item_id,
            MovementEvent.outlet_key == key.outlet_key,
        )
