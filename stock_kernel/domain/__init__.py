"""Pure domain layer: movement vocabulary, DTOs, projection and alerting."""

from stock_kernel.domain.alerts import AlertThresholds, classify
from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.dtos import (
    ClassifiedPosition,
    DailyMovementSummary,
    ExpiryStatus,
    MovementDirection,
    MovementKind,
    MovementRecord,
    PositionKey,
    PositionSnapshot,
    ReplayCheck,
    StockStatus,
    TransferResult,
)
from stock_kernel.domain.projector import project, project_positions, signed_contribution

__all__ = [
    "AlertThresholds",
    "ClassifiedPosition",
    "Clock",
    "DailyMovementSummary",
    "DeterministicClock",
    "ExpiryStatus",
    "MovementDirection",
    "MovementKind",
    "MovementRecord",
    "PositionKey",
    "PositionSnapshot",
    "ReplayCheck",
    "StockStatus",
    "SystemClock",
    "TransferResult",
    "classify",
    "project",
    "project_positions",
    "signed_contribution",
]
