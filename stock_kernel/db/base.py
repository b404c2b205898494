"""
Module: stock_kernel.db.base
Responsibility: Declarative bases for the stock tables.
Architecture position: Kernel > DB.  Every model imports from here; this
    module imports nothing from models/, services/, selectors/ or domain/.

Column conventions:
    - ``id``: uuid4, stored as a 36-character string so SQLite and
      PostgreSQL share one schema.
    - ``int`` -> BigInteger.  Stock is counted in whole units.
    - ``datetime`` -> DateTime(timezone=True); ``date`` -> Date (lot dates).
    - Timestamps come from an injected Clock, never a server default, so
      replayed and tested histories are deterministic.
"""

from datetime import date, datetime
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Boolean, Date, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID <-> String(36).  Accepts UUID instances or their string form on bind."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value if isinstance(value, UUID) else UUID(str(value)))

    def process_result_value(self, value, dialect):
        return UUID(value) if value is not None else None


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        date: Date,
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class RegistryBase(Base):
    """
    Abstract base for reference registries (items, outlets).

    Rows are deactivated, never deleted: historical events keep pointing at
    them.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_by_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
