"""
StockLedgerService -- validate and apply stock movement commands.

Responsibility:
    Turns Receive / Issue / Return / Adjust / Transfer commands into appended
    MovementEvent rows and keeps the StockPosition cache synchronized with
    them, all inside the caller's transaction.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.  Driven by
    stock_services.StockLedger, which owns commit/rollback and retries.

Invariants enforced:
    - Validate before write: quantity, references, same-outlet transfers and
      available stock are checked before any event is appended.
    - Cache == replay: every touched position's cached quantity equals the
      signed sum of its events when the command finishes (checked against the
      event store when ``verify_replay`` is on).
    - No oversell: issue / return / transfer-out require the locked cached
      quantity to cover the request.  The CHECK constraint on
      ``stock_positions.quantity`` is the last line of defence.
    - Lock order: a command touching several positions locks them in
      ascending (item_id, outlet_key) order.
    - Transfer atomicity: TRANSFER_OUT and TRANSFER_IN share a correlation
      id and are flushed in the same transaction.
    - Held positions accept no command.

Failure modes:
    - InvalidQuantityError, SameOutletTransferError, UnknownReferenceError:
      bad command, nothing written.
    - InsufficientStockError: nothing written.
    - PositionOnHoldError: nothing written.
    - IntegrityViolationError: cache / replay mismatch detected after write;
      the caller must roll back and place the position on hold.
    - StaleDataError / IntegrityError: lost a race with a concurrent writer;
      the caller rolls back and retries.

Usage:
    service = StockLedgerService(session, clock)
    snapshot = service.receive("42", None, 100, actor_id="storekeeper-1")
    session.commit()
"""

from __future__ import annotations

from datetime import date
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.db.types import outlet_key
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import (
    FIXED_DIRECTIONS,
    MovementDirection,
    MovementKind,
    PositionKey,
    PositionSnapshot,
    TransferResult,
)
from stock_kernel.exceptions import (
    InsufficientStockError,
    IntegrityViolationError,
    InvalidQuantityError,
    PositionOnHoldError,
    SameOutletTransferError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.movement import MovementEvent, signed_quantity_sum
from stock_kernel.models.position import StockPosition
from stock_kernel.services.base import BaseService
from stock_kernel.services.reference_service import ReferenceService

logger = get_logger("services.stock_ledger")


def _require_positive(quantity: object) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantityError(quantity, "quantity must be an integer")
    if quantity <= 0:
        raise InvalidQuantityError(quantity)
    return quantity


class StockLedgerService(BaseService):
    """
    Applies movement commands to the event store and the position cache.

    Contract:
        Every public method validates, locks, appends and updates within the
        caller's transaction and returns DTOs.  Nothing is committed here.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        verify_replay: bool = True,
        references: ReferenceService | None = None,
    ):
        super().__init__(session, clock)
        self.verify_replay = verify_replay
        self.references = references or ReferenceService(session, self.clock)

    # -------------------------------------------------------------------------
    # Position access
    # -------------------------------------------------------------------------

    def _lock_positions(self, keys: list[PositionKey]) -> dict[PositionKey, StockPosition | None]:
        locked: dict[PositionKey, StockPosition | None] = {}
        for key in sorted(set(keys)):
            locked[key] = self._load_position(key, lock=True)
        return locked

    def _new_position(self, key: PositionKey) -> StockPosition:
        position = StockPosition(
            item_id=key.item_id,
            outlet_id=key.outlet_id,
            outlet_key=key.outlet_key,
            quantity=0,
            last_updated=self.clock.now(),
            on_hold=False,
        )
        self.session.add(position)
        return position

    @staticmethod
    def _ensure_not_held(key: PositionKey, position: StockPosition | None) -> None:
        if position is not None and position.on_hold:
            raise PositionOnHoldError(key.item_id, key.outlet_id, position.hold_reason)

    @staticmethod
    def _require_available(
        key: PositionKey, position: StockPosition | None, requested: int
    ) -> StockPosition:
        available = position.quantity if position is not None else 0
        if position is None or available < requested:
            logger.info(
                "insufficient_stock",
                extra={
                    "item_id": key.item_id,
                    "outlet_id": key.outlet_id,
                    "available": available,
                    "requested": requested,
                },
            )
            raise InsufficientStockError(key.item_id, key.outlet_id, available, requested)
        return position

    # -------------------------------------------------------------------------
    # Event append
    # -------------------------------------------------------------------------

    def _apply(
        self,
        position: StockPosition,
        kind: MovementKind,
        quantity: int,
        direction: MovementDirection | None = None,
        **attributes,
    ) -> MovementEvent:
        """Update the cache, flush it, then append the event at the new version."""
        direction = direction or FIXED_DIRECTIONS[kind]
        delta = quantity if direction == MovementDirection.IN else -quantity
        now = self.clock.now()

        position.quantity = position.quantity + delta
        position.last_updated = now
        self.session.flush()

        event = MovementEvent(
            item_id=position.item_id,
            outlet_id=position.outlet_id,
            outlet_key=position.outlet_key,
            kind=kind,
            direction=direction,
            quantity=quantity,
            position_seq=position.version,
            created_at=now,
            **attributes,
        )
        self.session.add(event)
        self.session.flush()
        return event

    def _verify(self, position: StockPosition) -> None:
        if not self.verify_replay:
            return
        projected = self.session.execute(
            select(signed_quantity_sum()).where(
                MovementEvent.item_id == position.item_id,
                MovementEvent.outlet_key == position.outlet_key,
            )
        ).scalar_one()
        if projected != position.quantity or projected < 0:
            logger.error(
                "integrity_violation_detected",
                extra={
                    "item_id": position.item_id,
                    "outlet_id": position.outlet_id,
                    "cached": position.quantity,
                    "projected": projected,
                },
            )
            raise IntegrityViolationError(
                item_id=position.item_id,
                outlet_id=position.outlet_id,
                cached=position.quantity,
                projected=projected,
                reason="cached quantity does not match event replay",
            )

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def receive(
        self,
        item_id: str,
        outlet_id: str | None,
        quantity: int,
        *,
        batch_number: str | None = None,
        manufacture_date: date | None = None,
        expiry_date: date | None = None,
        minimum_level: int | None = None,
        reference: str | None = None,
        remarks: str | None = None,
        actor_id: str | None = None,
    ) -> PositionSnapshot:
        """
        Record incoming stock at a position (central when outlet_id is None).

        Postconditions:
            - One RECEIVE event appended; cached quantity increased by
              ``quantity``.
            - The position exists (created when missing).
            - Supplied lot attributes and minimum_level replace the position
              summary.
        """
        _require_positive(quantity)
        if minimum_level is not None and (
            isinstance(minimum_level, bool)
            or not isinstance(minimum_level, int)
            or minimum_level < 0
        ):
            raise InvalidQuantityError(minimum_level, "minimum level must be a non-negative integer")
        self.references.require_item(item_id)
        self.references.require_outlet(outlet_id)

        key = PositionKey.of(item_id, outlet_id)
        position = self._load_position(key, lock=True)
        self._ensure_not_held(key, position)
        if position is None:
            position = self._new_position(key)

        if batch_number is not None:
            position.batch_number = batch_number
        if manufacture_date is not None:
            position.manufacture_date = manufacture_date
        if expiry_date is not None:
            position.expiry_date = expiry_date
        if minimum_level is not None:
            position.minimum_level = minimum_level

        event = self._apply(
            position,
            MovementKind.RECEIVE,
            quantity,
            dest_outlet_id=outlet_id,
            batch_number=batch_number,
            manufacture_date=manufacture_date,
            expiry_date=expiry_date,
            reference=reference,
            remarks=remarks,
            actor_id=actor_id,
        )
        self._verify(position)

        logger.info(
            "stock_received",
            extra={
                "item_id": item_id,
                "outlet_id": outlet_id,
                "quantity": quantity,
                "event_id": str(event.id),
                "new_quantity": position.quantity,
            },
        )
        return PositionSnapshot.from_model(position)

    def issue(
        self,
        item_id: str,
        outlet_id: str | None,
        quantity: int,
        *,
        actor_id: str | None = None,
        recipient_id: str | None = None,
        reference: str | None = None,
        remarks: str | None = None,
    ) -> PositionSnapshot:
        """
        Record stock leaving a position to a recipient.

        Raises:
            InsufficientStockError: cached quantity < quantity.  No event is
                appended.
        """
        _require_positive(quantity)
        self.references.require_item(item_id)
        self.references.require_outlet(outlet_id)

        key = PositionKey.of(item_id, outlet_id)
        position = self._load_position(key, lock=True)
        self._ensure_not_held(key, position)
        position = self._require_available(key, position, quantity)

        event = self._apply(
            position,
            MovementKind.ISSUE,
            quantity,
            source_outlet_id=outlet_id,
            recipient_id=recipient_id,
            reference=reference,
            remarks=remarks,
            actor_id=actor_id,
        )
        self._verify(position)

        logger.info(
            "stock_issued",
            extra={
                "item_id": item_id,
                "outlet_id": outlet_id,
                "quantity": quantity,
                "recipient_id": recipient_id,
                "event_id": str(event.id),
                "new_quantity": position.quantity,
            },
        )
        return PositionSnapshot.from_model(position)

    def return_stock(
        self,
        item_id: str,
        outlet_id: str | None,
        quantity: int,
        *,
        reason: str | None = None,
        actor_id: str | None = None,
        remarks: str | None = None,
    ) -> PositionSnapshot:
        """
        Record stock leaving a position as a return (damaged, expired, ...).

        Stock-decreasing: same availability precondition as ``issue``.
        """
        _require_positive(quantity)
        self.references.require_item(item_id)
        self.references.require_outlet(outlet_id)

        key = PositionKey.of(item_id, outlet_id)
        position = self._load_position(key, lock=True)
        self._ensure_not_held(key, position)
        position = self._require_available(key, position, quantity)

        event = self._apply(
            position,
            MovementKind.RETURN,
            quantity,
            source_outlet_id=outlet_id,
            reason=reason,
            remarks=remarks,
            actor_id=actor_id,
        )
        self._verify(position)

        logger.info(
            "stock_returned",
            extra={
                "item_id": item_id,
                "outlet_id": outlet_id,
                "quantity": quantity,
                "reason": reason,
                "event_id": str(event.id),
                "new_quantity": position.quantity,
            },
        )
        return PositionSnapshot.from_model(position)

    def adjust(
        self,
        item_id: str,
        outlet_id: str | None,
        new_quantity: int,
        *,
        reason: str | None = None,
        actor_id: str | None = None,
        remarks: str | None = None,
    ) -> PositionSnapshot | None:
        """
        Set a position to a counted quantity.

        Appends one ADJUST event carrying |new - current| and the matching
        direction.  When the count already matches, nothing is appended and
        the position is returned unchanged.  A missing position is created on
        a non-zero count; counting zero where no position exists creates
        nothing and returns None.
        """
        if isinstance(new_quantity, bool) or not isinstance(new_quantity, int) or new_quantity < 0:
            raise InvalidQuantityError(new_quantity, "new quantity must be a non-negative integer")
        self.references.require_item(item_id)
        self.references.require_outlet(outlet_id)

        key = PositionKey.of(item_id, outlet_id)
        position = self._load_position(key, lock=True)
        self._ensure_not_held(key, position)

        current = position.quantity if position is not None else 0
        if new_quantity == current:
            logger.info(
                "stock_adjust_noop",
                extra={"item_id": item_id, "outlet_id": outlet_id, "quantity": new_quantity},
            )
            return PositionSnapshot.from_model(position) if position is not None else None

        if position is None:
            position = self._new_position(key)
            self.session.flush()

        delta = new_quantity - position.quantity

        direction = MovementDirection.IN if delta > 0 else MovementDirection.OUT
        event = self._apply(
            position,
            MovementKind.ADJUST,
            abs(delta),
            direction,
            source_outlet_id=outlet_id if delta < 0 else None,
            dest_outlet_id=outlet_id if delta > 0 else None,
            reason=reason,
            remarks=remarks,
            actor_id=actor_id,
        )
        self._verify(position)

        logger.info(
            "stock_adjusted",
            extra={
                "item_id": item_id,
                "outlet_id": outlet_id,
                "delta": delta,
                "event_id": str(event.id),
                "new_quantity": position.quantity,
            },
        )
        return PositionSnapshot.from_model(position)

    def transfer(
        self,
        item_id: str,
        from_outlet_id: str | None,
        to_outlet_id: str | None,
        quantity: int,
        *,
        actor_id: str | None = None,
        reference: str | None = None,
        remarks: str | None = None,
        transfer_id: UUID | None = None,
    ) -> TransferResult:
        """
        Move stock between two positions of the same item.

        Postconditions:
            - TRANSFER_OUT at the source and TRANSFER_IN at the destination,
              both carrying ``transfer_id`` as their correlation id.
            - Source decreased and destination increased by ``quantity``.
            - Destination created when missing; it inherits the source's lot
              summary.

        Raises:
            SameOutletTransferError: from_outlet_id == to_outlet_id.
            InsufficientStockError: source cached quantity < quantity.
        """
        _require_positive(quantity)
        if outlet_key(from_outlet_id) == outlet_key(to_outlet_id):
            raise SameOutletTransferError(item_id, from_outlet_id)
        self.references.require_item(item_id)
        self.references.require_outlet(from_outlet_id)
        self.references.require_outlet(to_outlet_id)

        transfer_id = transfer_id or uuid4()
        source_key = PositionKey.of(item_id, from_outlet_id)
        dest_key = PositionKey.of(item_id, to_outlet_id)

        locked = self._lock_positions([source_key, dest_key])
        for key, position in locked.items():
            self._ensure_not_held(key, position)
        source = self._require_available(source_key, locked[source_key], quantity)
        destination = locked[dest_key]
        if destination is None:
            destination = self._new_position(dest_key)

        # Lot summary follows the goods
        if source.batch_number is not None or source.expiry_date is not None:
            destination.batch_number = source.batch_number
            destination.manufacture_date = source.manufacture_date
            destination.expiry_date = source.expiry_date

        shared = dict(
            source_outlet_id=from_outlet_id,
            dest_outlet_id=to_outlet_id,
            correlation_id=transfer_id,
            batch_number=source.batch_number,
            manufacture_date=source.manufacture_date,
            expiry_date=source.expiry_date,
            reference=reference,
            remarks=remarks,
            actor_id=actor_id,
        )
        # Apply in lock order so the writes follow the same global ordering
        sides = sorted(
            [
                (source_key, source, MovementKind.TRANSFER_OUT),
                (dest_key, destination, MovementKind.TRANSFER_IN),
            ],
            key=lambda side: side[0],
        )
        for _, position, kind in sides:
            self._apply(position, kind, quantity, **shared)
        self._verify(source)
        self._verify(destination)

        logger.info(
            "transfer_completed",
            extra={
                "item_id": item_id,
                "transfer_id": str(transfer_id),
                "from_outlet_id": from_outlet_id,
                "to_outlet_id": to_outlet_id,
                "quantity": quantity,
                "source_quantity": source.quantity,
                "destination_quantity": destination.quantity,
            },
        )
        return TransferResult(
            transfer_id=transfer_id,
            source=PositionSnapshot.from_model(source),
            destination=PositionSnapshot.from_model(destination),
        )
