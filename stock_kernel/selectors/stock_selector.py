"""
Module: stock_kernel.selectors.stock_selector
Responsibility: Read-only stock views for the presentation layer: movement
    history, low-stock and expiring lists, single positions, transfer pairs,
    replayed quantities and the daily storekeeper summary.
Architecture position: Kernel > Selectors.  May import from db/, domain/,
    models/ and selectors/base.py.

Invariants enforced:
    - No locks and no writes: reads never block writers and tolerate the
      bounded staleness of the cache.
    - History order: created_at descending, then position_seq descending.
    - Alert statuses are derived at read time by domain.alerts, never stored.

Failure modes:
    - None specific.  Unknown items / outlets yield empty results.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import func, select

from stock_kernel.domain.alerts import AlertThresholds, classify, require_non_negative
from stock_kernel.domain.clock import utc_day_bounds
from stock_kernel.domain.dtos import (
    ClassifiedPosition,
    DailyMovementSummary,
    ExpiryStatus,
    MovementKind,
    MovementRecord,
    PositionSnapshot,
    StockStatus,
)
from stock_kernel.models.movement import MovementEvent, signed_quantity_sum
from stock_kernel.models.position import StockPosition
from stock_kernel.selectors.base import ANY_OUTLET, BaseSelector

_ALERT_STOCK = (StockStatus.LOW, StockStatus.OUT)
_ALERT_EXPIRY = (ExpiryStatus.EXPIRING, ExpiryStatus.EXPIRED)


class StockSelector(BaseSelector):
    """
    Selector for stock queries.

    Contract:
        Every method returns DTOs built from the current committed state (or
        the caller's transaction view).  ``now`` and ``thresholds`` come from
        the caller so that classification is reproducible.
    """

    def __init__(self, session, thresholds: AlertThresholds | None = None):
        super().__init__(session)
        self.thresholds = thresholds or AlertThresholds()

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def history(
        self,
        item_id: str,
        outlet_id=ANY_OUTLET,
        limit: int | None = None,
        kinds: list[MovementKind] | None = None,
    ) -> list[MovementRecord]:
        """Movement history for an item, newest first.

        Args:
            item_id: Item to report on.
            outlet_id: Restrict to one position (None = central).  By default
                every position of the item is included.
            limit: Maximum number of records.
            kinds: Restrict to these movement kinds.
        """
        stmt = select(MovementEvent).where(
            MovementEvent.item_id == item_id,
            self.outlet_clause(MovementEvent.outlet_key, outlet_id),
        )
        if kinds:
            stmt = stmt.where(MovementEvent.kind.in_(kinds))
        stmt = stmt.order_by(
            MovementEvent.created_at.desc(),
            MovementEvent.position_seq.desc(),
            MovementEvent.outlet_key.desc(),
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [MovementRecord.from_model(e) for e in self.session.execute(stmt).scalars()]

    def transfer_events(self, correlation_id: UUID) -> list[MovementRecord]:
        """Both sides of one transfer (TRANSFER_OUT first)."""
        events = self.session.execute(
            select(MovementEvent).where(MovementEvent.correlation_id == correlation_id)
        ).scalars()
        records = [MovementRecord.from_model(e) for e in events]
        return sorted(records, key=lambda r: r.kind != MovementKind.TRANSFER_OUT)

    def replayed_quantity(self, item_id: str, outlet_id: str | None) -> int:
        """Signed sum of the position's events, computed in SQL."""
        return self.session.execute(
            select(signed_quantity_sum()).where(
                MovementEvent.item_id == item_id,
                self.outlet_clause(MovementEvent.outlet_key, outlet_id),
            )
        ).scalar_one()

    # -------------------------------------------------------------------------
    # Positions
    # -------------------------------------------------------------------------

    def get_position(self, item_id: str, outlet_id: str | None) -> PositionSnapshot | None:
        position = self.session.execute(
            select(StockPosition).where(
                StockPosition.item_id == item_id,
                self.outlet_clause(StockPosition.outlet_key, outlet_id),
            )
        ).scalar_one_or_none()
        return PositionSnapshot.from_model(position) if position is not None else None

    def list_positions(self, outlet_id=ANY_OUTLET) -> list[PositionSnapshot]:
        stmt = (
            select(StockPosition)
            .where(self.outlet_clause(StockPosition.outlet_key, outlet_id))
            .order_by(StockPosition.item_id, StockPosition.outlet_key)
        )
        return [PositionSnapshot.from_model(p) for p in self.session.execute(stmt).scalars()]

    def classified_positions(
        self,
        now: datetime | date,
        outlet_id=ANY_OUTLET,
        threshold_override: int | None = None,
        window_days: int | None = None,
    ) -> list[ClassifiedPosition]:
        require_non_negative("threshold_override", threshold_override)
        require_non_negative("window_days", window_days)
        return [
            classify(
                snapshot,
                now,
                self.thresholds,
                minimum_level_override=threshold_override,
                window_days_override=window_days,
            )
            for snapshot in self.list_positions(outlet_id)
        ]

    def low_stock(
        self,
        now: datetime | date,
        threshold_override: int | None = None,
        outlet_id=ANY_OUTLET,
    ) -> list[ClassifiedPosition]:
        """Positions classified LOW or OUT, emptiest first."""
        rows = [
            row
            for row in self.classified_positions(
                now, outlet_id, threshold_override=threshold_override
            )
            if row.stock_status in _ALERT_STOCK
        ]
        return sorted(rows, key=lambda r: (r.quantity, r.item_id, r.outlet_id or ""))

    def expiring(
        self,
        now: datetime | date,
        window_days: int | None = None,
        outlet_id=ANY_OUTLET,
    ) -> list[ClassifiedPosition]:
        """Positions classified EXPIRING or EXPIRED, soonest expiry first."""
        rows = [
            row
            for row in self.classified_positions(now, outlet_id, window_days=window_days)
            if row.expiry_status in _ALERT_EXPIRY
        ]
        return sorted(
            rows,
            key=lambda r: (r.position.expiry_date, r.item_id, r.outlet_id or ""),
        )

    # -------------------------------------------------------------------------
    # Dashboard
    # -------------------------------------------------------------------------

    def _units_on(self, day: date, kind: MovementKind) -> int:
        start, end = utc_day_bounds(day)
        return self.session.execute(
            select(func.coalesce(func.sum(MovementEvent.quantity), 0)).where(
                MovementEvent.kind == kind,
                MovementEvent.created_at >= start,
                MovementEvent.created_at < end,
            )
        ).scalar_one()

    def daily_summary(self, day: date) -> DailyMovementSummary:
        """Storekeeper dashboard counters for one UTC calendar day."""
        classified = self.classified_positions(day)
        return DailyMovementSummary(
            day=day,
            total_positions=len(classified),
            low_stock_count=sum(1 for r in classified if r.stock_status in _ALERT_STOCK),
            received=self._units_on(day, MovementKind.RECEIVE),
            issued=self._units_on(day, MovementKind.ISSUE),
            returned=self._units_on(day, MovementKind.RETURN),
            transferred=self._units_on(day, MovementKind.TRANSFER_OUT),
        )
