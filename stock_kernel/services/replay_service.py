"""
ReplayService -- reconcile the position cache with the event store.

Responsibility:
    Recomputes position quantities from movement history (the projector),
    reports mismatches, places positions on hold and rebuilds the cache.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - The event store is authoritative.  A rebuild only ever moves the cache
      towards the projection, never the other way round.
    - A negative projection is never written to the cache; the position stays
      (or is put) on hold instead.

Failure modes:
    - IntegrityViolationError from ``rebuild_position`` when the history
      projects to a negative quantity.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select

from stock_kernel.domain.dtos import PositionKey, PositionSnapshot, ReplayCheck
from stock_kernel.domain.projector import project
from stock_kernel.exceptions import IntegrityViolationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.movement import MovementEvent
from stock_kernel.models.position import StockPosition
from stock_kernel.services.base import BaseService

logger = get_logger("services.replay")


class ReplayService(BaseService):
    """Verifies and rebuilds cached positions from their events."""

    def _events(self, key: PositionKey) -> list[MovementEvent]:
        stmt = self._events_of(key).order_by(MovementEvent.position_seq)
        return list(self.session.execute(stmt).scalars())

    def _all_keys(self) -> list[PositionKey]:
        event_keys = self.session.execute(
            select(MovementEvent.item_id, MovementEvent.outlet_key).distinct()
        ).all()
        position_keys = self.session.execute(
            select(StockPosition.item_id, StockPosition.outlet_key)
        ).all()
        return sorted(
            {PositionKey(item_id, key) for item_id, key in [*event_keys, *position_keys]}
        )

    def _check(self, key: PositionKey, position: StockPosition | None) -> ReplayCheck:
        events = self._events(key)
        try:
            projected = project(events, key=key)
        except IntegrityViolationError as exc:
            if exc.projected is None:
                raise
            projected = exc.projected
        return ReplayCheck(
            item_id=key.item_id,
            outlet_id=key.outlet_id,
            cached=position.quantity if position is not None else None,
            projected=projected,
            event_count=len(events),
        )

    def verify_position(self, item_id: str, outlet_id: str | None) -> ReplayCheck:
        """Compare one cached position with the replay of its events.

        A position with neither a cache row nor events replays to 0 with
        ``cached=None`` and is reported as inconsistent.
        """
        key = PositionKey.of(item_id, outlet_id)
        return self._check(key, self._load_position(key))

    def verify_all(self) -> list[ReplayCheck]:
        """Return the checks of every inconsistent position."""
        mismatches = []
        for key in self._all_keys():
            check = self._check(key, self._load_position(key))
            if not check.is_consistent:
                mismatches.append(check)
        logger.info(
            "replay_verification_completed",
            extra={"inconsistent_count": len(mismatches)},
        )
        return mismatches

    def place_hold(self, keys: Iterable[PositionKey], reason: str) -> int:
        """
        Flag positions as on hold.

        Returns:
            Number of positions newly placed on hold.  Missing positions are
            skipped.
        """
        held = 0
        for key in sorted(set(keys)):
            position = self._load_position(key, lock=True)
            if position is None or position.on_hold:
                continue
            position.on_hold = True
            position.hold_reason = reason[:500]
            held += 1
            logger.warning(
                "position_placed_on_hold",
                extra={
                    "item_id": key.item_id,
                    "outlet_id": key.outlet_id,
                    "hold_reason": reason,
                },
            )
        self.session.flush()
        return held

    def rebuild_position(self, item_id: str, outlet_id: str | None) -> PositionSnapshot:
        """
        Replace the cached quantity with the projection and clear any hold.

        Raises:
            IntegrityViolationError: the history projects to a negative
                quantity.  The cache is left untouched.
        """
        key = PositionKey.of(item_id, outlet_id)
        position = self._load_position(key, lock=True)
        projected = project(self._events(key), key=key)

        if position is None:
            position = StockPosition(
                item_id=key.item_id,
                outlet_id=key.outlet_id,
                outlet_key=key.outlet_key,
                quantity=projected,
                last_updated=self.clock.now(),
                on_hold=False,
            )
            self.session.add(position)
            previous = None
        else:
            previous = position.quantity
            position.quantity = projected
            position.on_hold = False
            position.hold_reason = None
            position.last_updated = self.clock.now()
        self.session.flush()

        logger.info(
            "position_rebuilt",
            extra={
                "item_id": key.item_id,
                "outlet_id": key.outlet_id,
                "previous_quantity": previous,
                "quantity": projected,
            },
        )
        return PositionSnapshot.from_model(position)

    def rebuild_all(self) -> list[ReplayCheck]:
        """
        Rebuild every inconsistent or held position.

        Positions whose history projects negative are placed on hold and left
        as they are.

        Returns:
            The checks of the positions that needed attention, taken before
            the rebuild.
        """
        repaired = []
        for key in self._all_keys():
            position = self._load_position(key)
            check = self._check(key, position)
            held = position is not None and position.on_hold
            if check.is_consistent and not held:
                continue
            repaired.append(check)
            if check.projected < 0:
                logger.error(
                    "position_rebuild_refused",
                    extra={
                        "item_id": key.item_id,
                        "outlet_id": key.outlet_id,
                        "projected": check.projected,
                    },
                )
                self.place_hold([key], "event history projects to a negative quantity")
                continue
            self.rebuild_position(key.item_id, key.outlet_id)

        logger.info("replay_rebuild_completed", extra={"repaired_count": len(repaired)})
        return repaired
