"""
Alerting evaluator tests.

Covers stock status (OUT / LOW / OK with per-position and default minimum
levels, plus an override) and date-based expiry status at the window edges.
"""

from datetime import UTC, date, datetime, timedelta

import pytest

from stock_kernel.domain.alerts import (
    AlertThresholds,
    classify,
    evaluate_expiry_status,
    evaluate_stock_status,
)
from stock_kernel.domain.dtos import ExpiryStatus, PositionKey, PositionSnapshot, StockStatus

TODAY = date(2024, 6, 10)
NOW = datetime(2024, 6, 10, 15, 30, tzinfo=UTC)


def snapshot(quantity, minimum_level=None, expiry_date=None):
    return PositionSnapshot(
        item_id="42",
        outlet_id="outlet-b",
        quantity=quantity,
        version=1,
        last_updated=NOW,
        minimum_level=minimum_level,
        expiry_date=expiry_date,
    )


class TestStockStatus:

    @pytest.mark.parametrize(
        "quantity,minimum,expected",
        [
            (0, 5, StockStatus.OUT),
            (1, 5, StockStatus.LOW),
            (4, 5, StockStatus.LOW),
            (5, 5, StockStatus.OK),
            (0, 0, StockStatus.OUT),
            (1, 0, StockStatus.OK),
        ],
    )
    def test_thresholds(self, quantity, minimum, expected):
        assert evaluate_stock_status(quantity, minimum) == expected

    def test_default_minimum_applies_without_position_level(self):
        result = classify(snapshot(4), NOW)
        assert result.stock_status == StockStatus.LOW
        assert result.effective_minimum_level == 5

    def test_position_level_wins_over_default(self):
        result = classify(snapshot(8, minimum_level=10), NOW)
        assert result.stock_status == StockStatus.LOW
        assert result.effective_minimum_level == 10

    def test_override_wins_over_position_level(self):
        result = classify(snapshot(8, minimum_level=10), NOW, minimum_level_override=3)
        assert result.stock_status == StockStatus.OK

    def test_classified_row_carries_position_key(self):
        assert classify(snapshot(0), NOW).key == PositionKey.of("42", "outlet-b")

    def test_configured_default(self):
        result = classify(snapshot(8), NOW, AlertThresholds(default_minimum_level=20))
        assert result.stock_status == StockStatus.LOW


class TestExpiryStatus:

    def test_no_expiry_date_has_no_status(self):
        assert evaluate_expiry_status(None, TODAY, 7) is None
        assert classify(snapshot(10), NOW).expiry_status is None

    @pytest.mark.parametrize(
        "offset_days,expected",
        [
            (-1, ExpiryStatus.EXPIRED),
            (0, ExpiryStatus.EXPIRING),
            (7, ExpiryStatus.EXPIRING),
            (8, ExpiryStatus.FRESH),
        ],
    )
    def test_window_edges(self, offset_days, expected):
        expiry = TODAY + timedelta(days=offset_days)
        assert evaluate_expiry_status(expiry, TODAY, 7) == expected

    def test_expiring_today_is_not_expired(self):
        result = classify(snapshot(10, expiry_date=TODAY), NOW)
        assert result.expiry_status == ExpiryStatus.EXPIRING
        assert result.days_to_expiry == 0

    def test_window_override(self):
        result = classify(
            snapshot(10, expiry_date=TODAY + timedelta(days=20)),
            NOW,
            window_days_override=30,
        )
        assert result.expiry_status == ExpiryStatus.EXPIRING


class TestAlertThresholds:

    def test_negative_values_rejected(self):
        with pytest.raises(ValueError):
            AlertThresholds(default_minimum_level=-1)
        with pytest.raises(ValueError):
            AlertThresholds(expiry_window_days=-1)

    def test_negative_overrides_rejected(self):
        with pytest.raises(ValueError, match="window_days_override"):
            classify(snapshot(10, expiry_date=TODAY), NOW, window_days_override=-1)
        with pytest.raises(ValueError, match="minimum_level_override"):
            classify(snapshot(10), NOW, minimum_level_override=-1)
