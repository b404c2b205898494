"""
Tests for ReplayService -- cache verification, holds and rebuilds.

The event store is authoritative: most tests here corrupt the cache (never
the history) and checks that the service reports and repairs it.
"""

import pytest
from sqlalchemy import select

from stock_kernel.domain.dtos import MovementDirection, MovementKind, PositionKey
from stock_kernel.exceptions import IntegrityViolationError
from stock_kernel.models.movement import MovementEvent
from stock_kernel.models.position import StockPosition
from tests.conftest import ITEM, OUTLET_A, OUTLET_B


def corrupt(session, outlet_key: str, quantity: int) -> None:
    position = session.execute(
        select(StockPosition).where(
            StockPosition.item_id == ITEM, StockPosition.outlet_key == outlet_key
        )
    ).scalar_one()
    position.quantity = quantity
    session.flush()


@pytest.fixture
def stocked(ledger_service, session, references):
    """100 received centrally, 30 moved to outlet-b, 25 issued there."""
    ledger_service.receive(ITEM, None, 100)
    ledger_service.transfer(ITEM, None, OUTLET_B, 30)
    ledger_service.issue(ITEM, OUTLET_B, 25)
    session.commit()


@pytest.mark.usefixtures("stocked")
class TestVerify:

    def test_consistent_positions(self, replay_service):
        check = replay_service.verify_position(ITEM, OUTLET_B)
        assert check.is_consistent
        assert check.cached == check.projected == 5
        assert check.event_count == 2
        assert replay_service.verify_all() == []

    def test_drift_reported(self, replay_service, session):
        corrupt(session, OUTLET_B, 9)
        check = replay_service.verify_position(ITEM, OUTLET_B)
        assert not check.is_consistent
        assert (check.cached, check.projected) == (9, 5)

        mismatches = replay_service.verify_all()
        assert [m.key for m in mismatches] == [PositionKey.of(ITEM, OUTLET_B)]

    def test_unknown_position(self, replay_service):
        check = replay_service.verify_position(ITEM, OUTLET_A)
        assert check.cached is None
        assert check.projected == 0
        assert check.event_count == 0


@pytest.mark.usefixtures("stocked")
class TestHoldAndRebuild:

    def test_place_hold_counts_new_holds(self, replay_service):
        keys = [PositionKey.of(ITEM, OUTLET_B), PositionKey.of(ITEM, OUTLET_A)]
        assert replay_service.place_hold(keys, "audit") == 1
        assert replay_service.place_hold(keys, "audit") == 0
        assert replay_service.verify_position(ITEM, OUTLET_B).is_consistent

    def test_rebuild_position_restores_projection(self, replay_service, session):
        corrupt(session, OUTLET_B, 9)
        replay_service.place_hold([PositionKey.of(ITEM, OUTLET_B)], "drift")

        snapshot = replay_service.rebuild_position(ITEM, OUTLET_B)
        assert snapshot.quantity == 5
        assert not snapshot.on_hold
        assert snapshot.hold_reason is None
        assert replay_service.verify_all() == []

    def test_rebuild_all_repairs_and_releases(self, replay_service, session):
        corrupt(session, "", 1)
        replay_service.place_hold([PositionKey.of(ITEM, OUTLET_B)], "precaution")

        repaired = replay_service.rebuild_all()
        assert {c.key for c in repaired} == {
            PositionKey.of(ITEM, None),
            PositionKey.of(ITEM, OUTLET_B),
        }
        central = replay_service.verify_position(ITEM, None)
        assert central.cached == central.projected == 70
        held = session.execute(
            select(StockPosition).where(StockPosition.on_hold.is_(True))
        ).scalars().all()
        assert held == []

    def test_rebuild_all_is_noop_when_consistent(self, replay_service):
        assert replay_service.rebuild_all() == []

    def test_rebuild_position_without_events(self, replay_service):
        snapshot = replay_service.rebuild_position(ITEM, OUTLET_A)
        assert snapshot.quantity == 0


class TestNegativeHistory:

    @pytest.fixture
    def overdrawn(self, ledger_service, session, deterministic_clock, references):
        """Central history that projects below zero (an event written around the service)."""
        ledger_service.receive(ITEM, None, 10)
        session.add(
            MovementEvent(
                item_id=ITEM,
                outlet_id=None,
                outlet_key="",
                kind=MovementKind.ISSUE,
                direction=MovementDirection.OUT,
                quantity=25,
                position_seq=1000,
                created_at=deterministic_clock.now(),
            )
        )
        session.commit()

    @pytest.mark.usefixtures("overdrawn")
    def test_rebuild_position_refuses(self, replay_service):
        with pytest.raises(IntegrityViolationError) as exc_info:
            replay_service.rebuild_position(ITEM, None)
        assert exc_info.value.projected == -15

    @pytest.mark.usefixtures("overdrawn")
    def test_rebuild_all_holds_instead(self, replay_service, session):
        repaired = replay_service.rebuild_all()
        assert [c.projected for c in repaired] == [-15]

        position = session.execute(
            select(StockPosition).where(StockPosition.outlet_key == "")
        ).scalar_one()
        assert position.on_hold
        assert position.quantity == 10
