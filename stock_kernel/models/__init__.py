"""Domain models for the stock kernel."""

from stock_kernel.models.movement import (
    MovementDirection,
    MovementEvent,
    MovementKind,
    signed_quantity_sum,
)
from stock_kernel.models.position import StockPosition
from stock_kernel.models.reference import StockItem, StockOutlet

__all__ = [
    "MovementDirection",
    "MovementEvent",
    "MovementKind",
    "signed_quantity_sum",
    "StockPosition",
    "StockItem",
    "StockOutlet",
]
