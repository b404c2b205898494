"""
Module: stock_kernel.db.types
Responsibility: Annotated column type aliases and key helpers shared by every
    model, service and selector.
Architecture position: Kernel > DB.  MUST NOT import from models/, domain/,
    services/ or selectors/.

Invariants enforced:
    - The central warehouse is represented by ``outlet_id = None`` in every
      public API and by ``CENTRAL_OUTLET_KEY`` ("") in the non-null
      ``outlet_key`` column, so that uniqueness constraints treat central stock
      as a single position (NULLs are distinct in UNIQUE constraints).
"""

from datetime import UTC, datetime
from typing import Annotated

from sqlalchemy import BigInteger, String

# Opaque catalog / location identifiers
ItemRef = Annotated[str, String(64)]
OutletRef = Annotated[str, String(64)]

# Whole-unit stock quantity
Quantity = Annotated[int, BigInteger]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

# Free text for remarks
LongText = Annotated[str, String(2000)]

CENTRAL_OUTLET_KEY = ""


def outlet_key(outlet_id: str | None) -> str:
    """Map a nullable outlet id to its non-null storage key."""
    if outlet_id is None:
        return CENTRAL_OUTLET_KEY
    return outlet_id


def outlet_from_key(key: str) -> str | None:
    """Inverse of ``outlet_key``."""
    if key == CENTRAL_OUTLET_KEY:
        return None
    return key


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize a datetime loaded from the database to aware UTC.

    SQLite returns naive datetimes for DateTime(timezone=True) columns; every
    timestamp the kernel writes is UTC, so a naive value is UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
