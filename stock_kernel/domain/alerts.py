"""
Alerting Evaluator -- classify positions for reorder and shelf-life alerts.

Responsibility:
    Derives StockStatus {OK, LOW, OUT} and ExpiryStatus {FRESH, EXPIRING,
    EXPIRED} for a position snapshot.  Results are computed at read time and
    never persisted.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  "Today" is supplied by
    the caller (from an injected Clock), never read from the system.

Invariants enforced:
    - OUT iff quantity == 0.
    - LOW iff 0 < quantity < effective minimum level.
    - Effective minimum level: explicit override, else the position's own
      ``minimum_level``, else ``AlertThresholds.default_minimum_level``.
    - Expiry is compared by calendar date: EXPIRED if expiry < today,
      EXPIRING if today <= expiry <= today + window, FRESH otherwise.
      A position with no expiry date has no expiry status.

Failure modes:
    - ValueError on negative thresholds, windows or overrides.
"""

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from stock_kernel.domain.dtos import (
    ClassifiedPosition,
    ExpiryStatus,
    PositionSnapshot,
    StockStatus,
)

DEFAULT_MINIMUM_LEVEL = 5
DEFAULT_EXPIRY_WINDOW_DAYS = 7


def require_non_negative(name: str, value: int | None) -> None:
    """Raise ValueError for a negative threshold or window.  None is unset."""
    if value is not None and value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")


@dataclass(frozen=True)
class AlertThresholds:
    """Configured alert thresholds."""

    default_minimum_level: int = DEFAULT_MINIMUM_LEVEL
    expiry_window_days: int = DEFAULT_EXPIRY_WINDOW_DAYS

    def __post_init__(self) -> None:
        require_non_negative("default_minimum_level", self.default_minimum_level)
        require_non_negative("expiry_window_days", self.expiry_window_days)

    @classmethod
    def from_settings(cls, settings) -> "AlertThresholds":
        return cls(
            default_minimum_level=settings.default_minimum_level,
            expiry_window_days=settings.expiry_window_days,
        )


def _as_date(now: datetime | date) -> date:
    if isinstance(now, datetime):
        if now.tzinfo is not None:
            now = now.astimezone(UTC)
        return now.date()
    return now


def effective_minimum_level(
    snapshot: PositionSnapshot,
    thresholds: AlertThresholds,
    override: int | None = None,
) -> int:
    if override is not None:
        return override
    if snapshot.minimum_level is not None:
        return snapshot.minimum_level
    return thresholds.default_minimum_level


def evaluate_stock_status(quantity: int, minimum_level: int) -> StockStatus:
    if quantity == 0:
        return StockStatus.OUT
    if quantity < minimum_level:
        return StockStatus.LOW
    return StockStatus.OK


def evaluate_expiry_status(
    expiry_date: date | None,
    today: date,
    window_days: int,
) -> ExpiryStatus | None:
    if expiry_date is None:
        return None
    if expiry_date < today:
        return ExpiryStatus.EXPIRED
    if expiry_date <= today + timedelta(days=window_days):
        return ExpiryStatus.EXPIRING
    return ExpiryStatus.FRESH


def classify(
    snapshot: PositionSnapshot,
    now: datetime | date,
    thresholds: AlertThresholds | None = None,
    *,
    minimum_level_override: int | None = None,
    window_days_override: int | None = None,
) -> ClassifiedPosition:
    """
    Classify one position.

    Args:
        snapshot: The cached position.
        now: Current time (or date) from the caller's Clock.
        thresholds: Configured thresholds; defaults apply when omitted.
        minimum_level_override: Replaces every per-position minimum level.
        window_days_override: Replaces the configured expiry window.
    """
    require_non_negative("minimum_level_override", minimum_level_override)
    require_non_negative("window_days_override", window_days_override)
    thresholds = thresholds or AlertThresholds()
    today = _as_date(now)
    window = (
        window_days_override
        if window_days_override is not None
        else thresholds.expiry_window_days
    )
    minimum = effective_minimum_level(snapshot, thresholds, minimum_level_override)

    days_to_expiry = None
    if snapshot.expiry_date is not None:
        days_to_expiry = (snapshot.expiry_date - today).days

    return ClassifiedPosition(
        position=snapshot,
        stock_status=evaluate_stock_status(snapshot.quantity, minimum),
        expiry_status=evaluate_expiry_status(snapshot.expiry_date, today, window),
        effective_minimum_level=minimum,
        days_to_expiry=days_to_expiry,
    )


__all__ = [
    "AlertThresholds",
    "ClassifiedPosition",
    "ExpiryStatus",
    "StockStatus",
    "classify",
    "effective_minimum_level",
    "evaluate_expiry_status",
    "evaluate_stock_status",
]
