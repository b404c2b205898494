"""
ReferenceService -- registry of known items and outlets.

Responsibility:
    Registers and deactivates item / outlet identifiers, and answers the
    "is this identifier known and active?" question for every command.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - Commands never key stock rows by an unregistered or inactive
      identifier.
    - The central warehouse (outlet_id None) always exists and cannot be
      registered or deactivated.

Failure modes:
    - DuplicateReferenceError on re-registration.
    - UnknownReferenceError for an unknown / inactive identifier.
"""

from sqlalchemy import select

from stock_kernel.exceptions import DuplicateReferenceError, UnknownReferenceError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.reference import StockItem, StockOutlet
from stock_kernel.services.base import BaseService

logger = get_logger("services.reference")

ITEM = "item"
OUTLET = "outlet"


class ReferenceService(BaseService):
    """Registers items and outlets and validates references to them."""

    def _get_item(self, item_id: str) -> StockItem | None:
        return self.session.execute(
            select(StockItem).where(StockItem.item_id == item_id)
        ).scalar_one_or_none()

    def _get_outlet(self, outlet_id: str) -> StockOutlet | None:
        return self.session.execute(
            select(StockOutlet).where(StockOutlet.outlet_id == outlet_id)
        ).scalar_one_or_none()

    def register_item(self, item_id: str, actor_id: str | None = None) -> StockItem:
        """Register a new item identifier.

        Raises:
            DuplicateReferenceError: The identifier is already registered.
        """
        if not item_id:
            raise UnknownReferenceError(ITEM, item_id)
        if self._get_item(item_id) is not None:
            raise DuplicateReferenceError(ITEM, item_id)

        item = StockItem(
            item_id=item_id,
            is_active=True,
            created_at=self.clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(item)
        self.session.flush()
        logger.info("item_registered", extra={"item_id": item_id})
        return item

    def register_outlet(self, outlet_id: str, actor_id: str | None = None) -> StockOutlet:
        """Register a new outlet identifier.

        Raises:
            DuplicateReferenceError: The identifier is already registered.
        """
        if not outlet_id:
            raise UnknownReferenceError(OUTLET, outlet_id)
        if self._get_outlet(outlet_id) is not None:
            raise DuplicateReferenceError(OUTLET, outlet_id)

        outlet = StockOutlet(
            outlet_id=outlet_id,
            is_active=True,
            created_at=self.clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(outlet)
        self.session.flush()
        logger.info("outlet_registered", extra={"outlet_id": outlet_id})
        return outlet

    def deactivate_item(self, item_id: str) -> StockItem:
        item = self._get_item(item_id)
        if item is None:
            raise UnknownReferenceError(ITEM, item_id)
        item.is_active = False
        self.session.flush()
        logger.info("item_deactivated", extra={"item_id": item_id})
        return item

    def deactivate_outlet(self, outlet_id: str) -> StockOutlet:
        outlet = self._get_outlet(outlet_id)
        if outlet is None:
            raise UnknownReferenceError(OUTLET, outlet_id)
        outlet.is_active = False
        self.session.flush()
        logger.info("outlet_deactivated", extra={"outlet_id": outlet_id})
        return outlet

    def require_item(self, item_id: str) -> None:
        """Raise UnknownReferenceError unless the item is registered and active."""
        item = self._get_item(item_id) if item_id else None
        if item is None or not item.is_active:
            raise UnknownReferenceError(ITEM, item_id)

    def require_outlet(self, outlet_id: str | None) -> None:
        """Raise UnknownReferenceError unless the outlet is central or active."""
        if outlet_id is None:
            return
        outlet = self._get_outlet(outlet_id) if outlet_id else None
        if outlet is None or not outlet.is_active:
            raise UnknownReferenceError(OUTLET, outlet_id)
