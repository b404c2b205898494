"""Database layer - engine, base classes, types, and immutability."""

from stock_kernel.db.base import Base, RegistryBase, UUIDString
from stock_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
)
from stock_kernel.db.types import CENTRAL_OUTLET_KEY, ItemRef, OutletRef, Quantity

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "create_tables",
    "Base",
    "RegistryBase",
    "UUIDString",
    "ItemRef",
    "OutletRef",
    "Quantity",
    "CENTRAL_OUTLET_KEY",
]
