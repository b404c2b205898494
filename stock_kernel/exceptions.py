"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger (storekeeper screens, rep apps, batch scripts) need to
react to failures precisely: show "only 20 left" for an insufficient issue,
retry a conflicting write, or page someone when a position's cache no longer
matches its history.  None of that should depend on parsing message text.

Every exception in this module:
  1. Has its own class (catch by type, not message)
  2. Carries a CODE class attribute (machine-readable, API-safe)
  3. Stores its context as attributes (available, requested, item_id, ...)

Example:
    try:
        ledger.issue("42", "outlet-b", 25, actor_id="rep-7")
    except InsufficientStockError as e:
        render_error(code=e.code, available=e.available, requested=e.requested)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidQuantityError
    |   +-- SameOutletTransferError
    |
    +-- ReferenceDataError
    |   +-- UnknownReferenceError
    |   +-- DuplicateReferenceError
    |
    +-- StockLevelError
    |   +-- InsufficientStockError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError
    |
    +-- LedgerIntegrityError
    |   +-- IntegrityViolationError
    |   +-- PositionOnHoldError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                    | When Raised
----------------|-------------------------|---------------------------------------
Validation      | INVALID_QUANTITY        | quantity <= 0, or negative adjust target
                | SAME_OUTLET_TRANSFER    | transfer source == destination
----------------|-------------------------|---------------------------------------
Reference       | UNKNOWN_REFERENCE       | item / outlet not registered or inactive
                | DUPLICATE_REFERENCE     | identifier already registered
----------------|-------------------------|---------------------------------------
Stock level     | INSUFFICIENT_STOCK      | requested exceeds available
----------------|-------------------------|---------------------------------------
Concurrency     | CONCURRENCY_CONFLICT    | conflict retries exhausted
----------------|-------------------------|---------------------------------------
Integrity       | INTEGRITY_VIOLATION     | negative projection / cache != replay
                | POSITION_ON_HOLD        | position awaiting reconciliation
----------------|-------------------------|---------------------------------------
Immutability    | IMMUTABILITY_VIOLATION  | update/delete of an event, position delete

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Validation, reference and stock-level errors are raised BEFORE any event
   is written.  Nothing needs undoing.

2. ConcurrencyConflictError means the ledger already retried the command
   ``max_conflict_retries`` times.  The caller may resubmit.

3. IntegrityViolationError is fatal for the affected position(s).  The
   position is placed on hold and every further command against it raises
   PositionOnHoldError until it is rebuilt from the event store:

    except IntegrityViolationError as e:
        alert_operations(e.item_id, e.outlet_id, e.cached, e.projected)

===============================================================================
"""


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Validation exceptions


class ValidationError(StockKernelError):
    """Base exception for command validation failures."""

    code: str = "VALIDATION_ERROR"


class InvalidQuantityError(ValidationError):
    """Quantity is zero, negative, or not an integer."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: object, reason: str = "quantity must be a positive integer"):
        self.quantity = quantity
        self.reason = reason
        super().__init__(f"Invalid quantity {quantity!r}: {reason}")


class SameOutletTransferError(ValidationError):
    """Transfer source and destination are the same position."""

    code: str = "SAME_OUTLET_TRANSFER"

    def __init__(self, item_id: str, outlet_id: str | None):
        self.item_id = item_id
        self.outlet_id = outlet_id
        super().__init__(
            f"Cannot transfer item {item_id} from {outlet_id or 'central'} to itself"
        )


# Reference data exceptions


class ReferenceDataError(StockKernelError):
    """Base exception for item / outlet reference errors."""

    code: str = "REFERENCE_DATA_ERROR"


class UnknownReferenceError(ReferenceDataError):
    """Item or outlet identifier is not registered, or is inactive."""

    code: str = "UNKNOWN_REFERENCE"

    def __init__(self, reference_type: str, reference_id: str):
        self.reference_type = reference_type
        self.reference_id = reference_id
        super().__init__(f"Unknown {reference_type}: {reference_id}")


class DuplicateReferenceError(ReferenceDataError):
    """Identifier is already registered."""

    code: str = "DUPLICATE_REFERENCE"

    def __init__(self, reference_type: str, reference_id: str):
        self.reference_type = reference_type
        self.reference_id = reference_id
        super().__init__(f"{reference_type} already registered: {reference_id}")


# Stock level exceptions


class StockLevelError(StockKernelError):
    """Base exception for stock level precondition failures."""

    code: str = "STOCK_LEVEL_ERROR"


class InsufficientStockError(StockLevelError):
    """Requested quantity exceeds the quantity available at the position."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        item_id: str,
        outlet_id: str | None,
        available: int,
        requested: int,
    ):
        self.item_id = item_id
        self.outlet_id = outlet_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for item {item_id} at {outlet_id or 'central'}: "
            f"available={available}, requested={requested}"
        )


# Concurrency exceptions


class ConcurrencyError(StockKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """Conflicting concurrent updates persisted after all retries."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, operation: str, attempts: int, last_error: str | None = None):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Concurrency conflict on {operation}: gave up after {attempts} attempts"
            + (f" ({last_error})" if last_error else "")
        )


# Integrity exceptions


class LedgerIntegrityError(StockKernelError):
    """Base exception for cache / event-store integrity errors."""

    code: str = "LEDGER_INTEGRITY_ERROR"


class IntegrityViolationError(LedgerIntegrityError):
    """
    Cached quantity disagrees with the event history, or the history
    projects to a negative quantity.

    Never corrected silently: the position is placed on hold pending a
    replay-based rebuild.
    """

    code: str = "INTEGRITY_VIOLATION"

    def __init__(
        self,
        item_id: str | None,
        outlet_id: str | None,
        cached: int | None,
        projected: int | None,
        reason: str,
    ):
        self.item_id = item_id
        self.outlet_id = outlet_id
        self.cached = cached
        self.projected = projected
        self.reason = reason
        super().__init__(
            f"Integrity violation for item {item_id} at {outlet_id or 'central'}: "
            f"{reason} (cached={cached}, projected={projected})"
        )


class PositionOnHoldError(LedgerIntegrityError):
    """Position is on hold pending reconciliation; writes are refused."""

    code: str = "POSITION_ON_HOLD"

    def __init__(self, item_id: str, outlet_id: str | None, hold_reason: str | None):
        self.item_id = item_id
        self.outlet_id = outlet_id
        self.hold_reason = hold_reason
        super().__init__(
            f"Position for item {item_id} at {outlet_id or 'central'} is on hold"
            + (f": {hold_reason}" if hold_reason else "")
        )


# Immutability exceptions


class ImmutabilityError(StockKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Movement events are immutable from creation; stock positions may be
    updated but never deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
