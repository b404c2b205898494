"""
StockLedger -- command / query API of the multi-outlet stock ledger.

Responsibility:
    The public entry point callers (storekeeper screens, rep apps, scripts)
    use.  Every command runs as one unit of work: open a session, call the
    flush-only kernel services, commit.  The facade owns commit / rollback,
    conflict retries and the integrity-hold protocol.

Architecture position:
    Services -- sits above ``stock_kernel`` and ``stock_config``.  Kernel
    services never commit; this module is the only place commands commit.

Invariants enforced:
    - Atomic command: a failed attempt is rolled back whole, so no partial
      event or cache change is ever visible.
    - Bounded retry: stale versions, duplicate position inserts, deadlocks,
      serialization failures and SQLite lock timeouts are retried up to
      ``max_conflict_retries`` times with linear backoff, then surfaced as
      ConcurrencyConflictError.
    - Integrity hold: when a command detects that a cache disagrees with its
      history, the command is rolled back, the position is placed on hold in a
      separate transaction, and the IntegrityViolationError is re-raised.
    - Reads use their own session and never take locks.

Usage:
    ledger = StockLedger.from_config()
    ledger.register_item("42")
    ledger.register_outlet("outlet-b")
    ledger.receive("42", None, 100, actor_id="storekeeper-1")
    ledger.transfer("42", None, "outlet-b", 30, actor_id="storekeeper-1")
    ledger.issue("42", "outlet-b", 25, actor_id="rep-7")
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from stock_config import LedgerSettings, get_active_config
from stock_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from stock_kernel.db.immutability import register_immutability_listeners
from stock_kernel.domain.alerts import AlertThresholds
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    ClassifiedPosition,
    DailyMovementSummary,
    MovementRecord,
    PositionKey,
    PositionSnapshot,
    ReplayCheck,
    TransferResult,
)
from stock_kernel.exceptions import ConcurrencyConflictError, IntegrityViolationError
from stock_kernel.logging_config import LogContext, configure_logging, get_logger
from stock_kernel.selectors.stock_selector import ANY_OUTLET, StockSelector
from stock_kernel.services.reference_service import ReferenceService
from stock_kernel.services.replay_service import ReplayService
from stock_kernel.services.stock_ledger_service import StockLedgerService

logger = get_logger("services.ledger")

T = TypeVar("T")

# PostgreSQL SQLSTATEs worth retrying: deadlock, serialization, unique race
_RETRYABLE_SQLSTATES = frozenset({"40P01", "40001", "23505"})


def is_retryable(exc: BaseException) -> bool:
    """True when ``exc`` is a transient conflict with a concurrent writer."""
    if isinstance(exc, StaleDataError):
        return True
    if not isinstance(exc, DBAPIError):
        return False
    if getattr(exc.orig, "pgcode", None) in _RETRYABLE_SQLSTATES:
        return True
    message = str(exc.orig).lower()
    return (
        "unique constraint failed" in message
        or "database is locked" in message
        or "deadlock detected" in message
    )


class StockLedger:
    """
    Command / query facade over the stock kernel.

    Contract:
        Each command commits exactly once on success.  Validation, reference,
        stock-level and hold errors propagate unchanged after rollback.

    Non-goals:
        - Does NOT authenticate or authorize callers; ``actor_id`` is
          recorded as given.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or LedgerSettings()
        self._clock = clock or SystemClock()
        self._thresholds = AlertThresholds.from_settings(self._settings)
        register_immutability_listeners()

    @classmethod
    def from_config(
        cls,
        config_path: Path | str | None = None,
        clock: Clock | None = None,
        create_schema: bool = False,
    ) -> StockLedger:
        """Build a ledger from the active configuration set."""
        settings = get_active_config(config_path)
        configure_logging(level=settings.log_level)
        init_engine_from_url(
            settings.database_url,
            echo=settings.echo_sql,
            lock_timeout_seconds=settings.lock_timeout_seconds,
        )
        if create_schema:
            create_tables()

        return cls(get_session_factory(), settings=settings, clock=clock)

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    @property
    def thresholds(self) -> AlertThresholds:
        return self._thresholds

    # -------------------------------------------------------------------------
    # Unit of work
    # -------------------------------------------------------------------------

    def _ledger_service(self, session: Session) -> StockLedgerService:
        return StockLedgerService(
            session,
            self._clock,
            verify_replay=self._settings.verify_replay_on_write,
        )

    def _run_command(
        self,
        operation: str,
        work: Callable[[Session], T],
        keys: list[PositionKey],
    ) -> T:
        attempts = self._settings.max_conflict_retries
        last_error: BaseException | None = None

        for attempt in range(1, attempts + 1):
            session = self._session_factory()
            try:
                result = work(session)
                session.commit()
                return result
            except IntegrityViolationError as exc:
                session.rollback()
                self._hold_after_violation(exc, keys)
                raise
            except (StaleDataError, DBAPIError) as exc:
                session.rollback()
                if not is_retryable(exc):
                    raise
                last_error = exc
                logger.warning(
                    "concurrency_conflict_retry",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "max_attempts": attempts,
                        "error_type": type(exc).__name__,
                    },
                )
                if attempt < attempts:
                    time.sleep(self._settings.conflict_backoff_seconds * attempt)
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

        logger.error(
            "concurrency_conflict_exhausted",
            extra={"operation": operation, "attempts": attempts},
        )
        raise ConcurrencyConflictError(
            operation,
            attempts,
            last_error=f"{type(last_error).__name__}: {last_error}" if last_error else None,
        )

    def _hold_after_violation(
        self, exc: IntegrityViolationError, keys: list[PositionKey]
    ) -> None:
        if exc.item_id is not None:
            keys = [PositionKey.of(exc.item_id, exc.outlet_id)]
        logger.error(
            "integrity_violation_hold",
            extra={
                "positions": [str(key) for key in keys],
                "cached": exc.cached,
                "projected": exc.projected,
            },
        )
        session = self._session_factory()
        try:
            ReplayService(session, self._clock).place_hold(keys, exc.reason)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _read(self, query: Callable[[StockSelector], T]) -> T:
        with self._session_factory() as session:
            return query(StockSelector(session, self._thresholds))

    def _write(self, work: Callable[[Session], T]) -> T:
        session = self._session_factory()
        try:
            result = work(session)
            session.commit()
            return result
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

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
        """Record incoming stock (central when ``outlet_id`` is None)."""
        with LogContext.bind(
            correlation_id=str(uuid4()), actor_id=actor_id, item_id=item_id, outlet_id=outlet_id
        ):
            return self._run_command(
                "receive",
                lambda s: self._ledger_service(s).receive(
                    item_id,
                    outlet_id,
                    quantity,
                    batch_number=batch_number,
                    manufacture_date=manufacture_date,
                    expiry_date=expiry_date,
                    minimum_level=minimum_level,
                    reference=reference,
                    remarks=remarks,
                    actor_id=actor_id,
                ),
                [PositionKey.of(item_id, outlet_id)],
            )

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
        """Issue stock from a position; fails without writing when short."""
        with LogContext.bind(
            correlation_id=str(uuid4()), actor_id=actor_id, item_id=item_id, outlet_id=outlet_id
        ):
            return self._run_command(
                "issue",
                lambda s: self._ledger_service(s).issue(
                    item_id,
                    outlet_id,
                    quantity,
                    actor_id=actor_id,
                    recipient_id=recipient_id,
                    reference=reference,
                    remarks=remarks,
                ),
                [PositionKey.of(item_id, outlet_id)],
            )

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
        """Remove returned (damaged, expired, ...) units from a position."""
        with LogContext.bind(
            correlation_id=str(uuid4()), actor_id=actor_id, item_id=item_id, outlet_id=outlet_id
        ):
            return self._run_command(
                "return",
                lambda s: self._ledger_service(s).return_stock(
                    item_id,
                    outlet_id,
                    quantity,
                    reason=reason,
                    actor_id=actor_id,
                    remarks=remarks,
                ),
                [PositionKey.of(item_id, outlet_id)],
            )

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
        """Set a position to a counted quantity (None if nothing exists to count)."""
        with LogContext.bind(
            correlation_id=str(uuid4()), actor_id=actor_id, item_id=item_id, outlet_id=outlet_id
        ):
            return self._run_command(
                "adjust",
                lambda s: self._ledger_service(s).adjust(
                    item_id,
                    outlet_id,
                    new_quantity,
                    reason=reason,
                    actor_id=actor_id,
                    remarks=remarks,
                ),
                [PositionKey.of(item_id, outlet_id)],
            )

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
    ) -> TransferResult:
        """Move stock between two positions atomically."""
        transfer_id = uuid4()
        with LogContext.bind(
            correlation_id=str(transfer_id),
            transfer_id=str(transfer_id),
            actor_id=actor_id,
            item_id=item_id,
        ):
            return self._run_command(
                "transfer",
                lambda s: self._ledger_service(s).transfer(
                    item_id,
                    from_outlet_id,
                    to_outlet_id,
                    quantity,
                    actor_id=actor_id,
                    reference=reference,
                    remarks=remarks,
                    transfer_id=transfer_id,
                ),
                [
                    PositionKey.of(item_id, from_outlet_id),
                    PositionKey.of(item_id, to_outlet_id),
                ],
            )

    # -------------------------------------------------------------------------
    # Reference data
    # -------------------------------------------------------------------------

    def register_item(self, item_id: str, actor_id: str | None = None) -> None:
        self._write(
            lambda s: ReferenceService(s, self._clock).register_item(item_id, actor_id),
        )

    def register_outlet(self, outlet_id: str, actor_id: str | None = None) -> None:
        self._write(
            lambda s: ReferenceService(s, self._clock).register_outlet(outlet_id, actor_id),
        )

    def deactivate_item(self, item_id: str) -> None:
        self._write(
            lambda s: ReferenceService(s, self._clock).deactivate_item(item_id),
        )

    def deactivate_outlet(self, outlet_id: str) -> None:
        self._write(
            lambda s: ReferenceService(s, self._clock).deactivate_outlet(outlet_id),
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_history(
        self,
        item_id: str,
        outlet_id=ANY_OUTLET,
        limit: int | None = None,
    ) -> list[MovementRecord]:
        """Movement history for an item, newest first."""
        return self._read(lambda q: q.history(item_id, outlet_id, limit=limit))

    def get_position(self, item_id: str, outlet_id: str | None) -> PositionSnapshot | None:
        return self._read(lambda q: q.get_position(item_id, outlet_id))

    def get_positions(self, outlet_id=ANY_OUTLET) -> list[PositionSnapshot]:
        return self._read(lambda q: q.list_positions(outlet_id))

    def get_transfer(self, transfer_id: UUID) -> list[MovementRecord]:
        return self._read(lambda q: q.transfer_events(transfer_id))

    def get_low_stock(self, threshold_override: int | None = None) -> list[ClassifiedPosition]:
        """Positions at or below their reorder threshold (LOW or OUT)."""
        now = self._clock.now()
        return self._read(lambda q: q.low_stock(now, threshold_override=threshold_override))

    def get_expiring(self, window_days: int | None = None) -> list[ClassifiedPosition]:
        """Positions whose lot is EXPIRING or EXPIRED."""
        now = self._clock.now()
        return self._read(lambda q: q.expiring(now, window_days=window_days))

    def get_daily_summary(self, day: date | None = None) -> DailyMovementSummary:
        day = day or self._clock.today()
        return self._read(lambda q: q.daily_summary(day))

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    def verify_position(self, item_id: str, outlet_id: str | None) -> ReplayCheck:
        with self._session_factory() as session:
            return ReplayService(session, self._clock).verify_position(item_id, outlet_id)

    def verify_all(self) -> list[ReplayCheck]:
        with self._session_factory() as session:
            return ReplayService(session, self._clock).verify_all()

    def rebuild_position(self, item_id: str, outlet_id: str | None) -> PositionSnapshot:
        """Reset a position's cache to its replayed quantity and clear its hold."""
        return self._run_command(
            "rebuild_position",
            lambda s: ReplayService(s, self._clock).rebuild_position(item_id, outlet_id),
            [],
        )

    def rebuild_all(self) -> list[ReplayCheck]:
        return self._run_command(
            "rebuild_all",
            lambda s: ReplayService(s, self._clock).rebuild_all(),
            [],
        )
