"""
Tests for StockSelector -- history, positions, alerts and the dashboard.

Covers:
- history(): newest first, per-outlet filter, kinds filter, limit
- transfer_events(): both sides, outbound first
- low_stock(): default and per-position minimum, override, OUT positions
- expiring(): window, expired lots, ordering
- daily_summary(): unit totals restricted to one UTC day
"""

from datetime import date, timedelta

import pytest

from stock_kernel.domain.dtos import ExpiryStatus, MovementKind, StockStatus
from tests.conftest import ITEM, OUTLET_A, OUTLET_B

OTHER_ITEM = "43"


@pytest.fixture
def two_items(reference_service, references, session):
    reference_service.register_item(OTHER_ITEM)
    session.commit()


@pytest.mark.usefixtures("references")
class TestHistory:

    def test_newest_first(self, ledger_service, stock_selector, deterministic_clock):
        ledger_service.receive(ITEM, None, 100)
        deterministic_clock.advance(60)
        ledger_service.transfer(ITEM, None, OUTLET_B, 30)
        deterministic_clock.advance(60)
        ledger_service.issue(ITEM, OUTLET_B, 25)

        kinds = [r.kind for r in stock_selector.history(ITEM)]
        assert kinds[0] == MovementKind.ISSUE
        assert kinds[-1] == MovementKind.RECEIVE
        assert set(kinds[1:3]) == {MovementKind.TRANSFER_IN, MovementKind.TRANSFER_OUT}

    def test_same_instant_ordered_by_sequence(self, ledger_service, stock_selector):
        ledger_service.receive(ITEM, OUTLET_A, 1)
        ledger_service.receive(ITEM, OUTLET_A, 2)
        ledger_service.receive(ITEM, OUTLET_A, 3)
        assert [r.quantity for r in stock_selector.history(ITEM, OUTLET_A)] == [3, 2, 1]

    def test_filters(self, ledger_service, stock_selector):
        ledger_service.receive(ITEM, None, 50)
        ledger_service.transfer(ITEM, None, OUTLET_A, 10)
        ledger_service.issue(ITEM, OUTLET_A, 4)

        central = stock_selector.history(ITEM, None)
        assert {r.outlet_id for r in central} == {None}
        assert len(central) == 2

        issues = stock_selector.history(ITEM, kinds=[MovementKind.ISSUE])
        assert [r.quantity for r in issues] == [4]
        assert len(stock_selector.history(ITEM, limit=2)) == 2

    def test_history_records_are_utc(self, ledger_service, stock_selector):
        ledger_service.receive(ITEM, None, 5)
        record = stock_selector.history(ITEM)[0]
        assert record.created_at.utcoffset() == timedelta(0)

    def test_transfer_events(self, ledger_service, stock_selector):
        ledger_service.receive(ITEM, None, 50)
        result = ledger_service.transfer(ITEM, None, OUTLET_A, 10)
        out_side, in_side = stock_selector.transfer_events(result.transfer_id)
        assert out_side.kind == MovementKind.TRANSFER_OUT
        assert out_side.outlet_id is None
        assert in_side.kind == MovementKind.TRANSFER_IN
        assert in_side.outlet_id == OUTLET_A

    def test_replayed_quantity(self, ledger_service, stock_selector):
        ledger_service.receive(ITEM, OUTLET_A, 10)
        ledger_service.adjust(ITEM, OUTLET_A, 7)
        assert stock_selector.replayed_quantity(ITEM, OUTLET_A) == 7
        assert stock_selector.replayed_quantity(ITEM, OUTLET_B) == 0


@pytest.mark.usefixtures("two_items")
class TestLowStock:

    def test_default_minimum(self, ledger_service, stock_selector, deterministic_clock):
        ledger_service.receive(ITEM, OUTLET_A, 4)
        ledger_service.receive(OTHER_ITEM, OUTLET_A, 5)
        ledger_service.receive(ITEM, OUTLET_B, 3)
        ledger_service.issue(ITEM, OUTLET_B, 3)

        rows = stock_selector.low_stock(deterministic_clock.now())
        assert [(r.outlet_id, r.quantity, r.stock_status) for r in rows] == [
            (OUTLET_B, 0, StockStatus.OUT),
            (OUTLET_A, 4, StockStatus.LOW),
        ]

    def test_position_minimum_and_override(self, ledger_service, stock_selector, deterministic_clock):
        ledger_service.receive(ITEM, OUTLET_A, 8, minimum_level=10)
        ledger_service.receive(OTHER_ITEM, OUTLET_A, 8)

        rows = stock_selector.low_stock(deterministic_clock.now())
        assert [(r.item_id, r.effective_minimum_level) for r in rows] == [(ITEM, 10)]

        rows = stock_selector.low_stock(deterministic_clock.now(), threshold_override=9)
        assert {r.item_id for r in rows} == {ITEM, OTHER_ITEM}

    def test_outlet_filter(self, ledger_service, stock_selector, deterministic_clock):
        ledger_service.receive(ITEM, OUTLET_A, 1)
        ledger_service.receive(ITEM, None, 1)
        rows = stock_selector.low_stock(deterministic_clock.now(), outlet_id=None)
        assert [r.outlet_id for r in rows] == [None]


@pytest.mark.usefixtures("two_items")
class TestExpiring:

    def test_window_and_ordering(self, ledger_service, stock_selector, deterministic_clock):
        today = deterministic_clock.today()
        ledger_service.receive(ITEM, OUTLET_A, 10, expiry_date=today + timedelta(days=7))
        ledger_service.receive(ITEM, OUTLET_B, 10, expiry_date=today - timedelta(days=1))
        ledger_service.receive(OTHER_ITEM, OUTLET_A, 10, expiry_date=today + timedelta(days=8))
        ledger_service.receive(OTHER_ITEM, OUTLET_B, 10)

        rows = stock_selector.expiring(deterministic_clock.now())
        assert [(r.item_id, r.outlet_id, r.expiry_status) for r in rows] == [
            (ITEM, OUTLET_B, ExpiryStatus.EXPIRED),
            (ITEM, OUTLET_A, ExpiryStatus.EXPIRING),
        ]
        assert rows[1].days_to_expiry == 7

    def test_custom_window(self, ledger_service, stock_selector, deterministic_clock):
        today = deterministic_clock.today()
        ledger_service.receive(ITEM, OUTLET_A, 10, expiry_date=today + timedelta(days=20))
        assert stock_selector.expiring(deterministic_clock.now()) == []
        assert len(stock_selector.expiring(deterministic_clock.now(), window_days=30)) == 1


@pytest.mark.usefixtures("references")
class TestDailySummary:

    def test_counts_one_day(self, ledger_service, stock_selector, deterministic_clock):
        ledger_service.receive(ITEM, None, 100)
        ledger_service.transfer(ITEM, None, OUTLET_B, 30)
        ledger_service.issue(ITEM, OUTLET_B, 25)
        ledger_service.return_stock(ITEM, OUTLET_B, 2, reason="Damaged")

        deterministic_clock.advance_days(1)
        ledger_service.receive(ITEM, None, 7)

        summary = stock_selector.daily_summary(date(2024, 1, 1))
        assert summary.received == 100
        assert summary.transferred == 30
        assert summary.issued == 25
        assert summary.returned == 2
        assert summary.total_positions == 2
        # outlet-b holds 3 < 5
        assert summary.low_stock_count == 1

        assert stock_selector.daily_summary(date(2024, 1, 2)).received == 7

    def test_empty_day(self, stock_selector):
        summary = stock_selector.daily_summary(date(2023, 6, 1))
        assert (summary.received, summary.issued, summary.total_positions) == (0, 0, 0)
