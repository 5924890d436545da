"""
Tests for alert severity banding.
"""

from decimal import Decimal

import pytest

from pharmacy_engines.severity import SeverityBands, classify_expiry, classify_stock
from pharmacy_kernel.domain.types import AlertSeverity, AlertType


class TestStockClassification:

    @pytest.mark.parametrize(
        "current, expected",
        [
            (25, AlertSeverity.CRITICAL),
            (26, AlertSeverity.HIGH),
            (50, AlertSeverity.HIGH),
            (51, AlertSeverity.MEDIUM),
            (75, AlertSeverity.MEDIUM),
            (76, AlertSeverity.LOW),
            (99, AlertSeverity.LOW),
        ],
    )
    def test_low_stock_ratio_boundaries(self, current, expected):
        result = classify_stock(current, 100)

        assert result.alert_type == AlertType.LOW_STOCK
        assert result.severity == expected

    @pytest.mark.parametrize("current", [0, -3])
    def test_zero_or_negative_is_out_of_stock(self, current):
        result = classify_stock(current, 100)

        assert result.alert_type == AlertType.OUT_OF_STOCK
        assert result.severity == AlertSeverity.CRITICAL

    def test_out_of_stock_even_with_zero_minimum(self):
        assert classify_stock(0, 0).alert_type == AlertType.OUT_OF_STOCK

    @pytest.mark.parametrize("current", [100, 150])
    def test_at_or_above_minimum_is_no_alert(self, current):
        assert classify_stock(current, 100) is None

    def test_exact_quarter_lands_in_critical(self):
        assert classify_stock(1, 4).severity == AlertSeverity.CRITICAL


class TestExpiryClassification:

    @pytest.mark.parametrize(
        "days, expected",
        [
            (0, AlertSeverity.HIGH),
            (7, AlertSeverity.HIGH),
            (8, AlertSeverity.MEDIUM),
            (15, AlertSeverity.MEDIUM),
            (16, AlertSeverity.LOW),
            (30, AlertSeverity.LOW),
        ],
    )
    def test_expiring_soon_day_boundaries(self, days, expected):
        result = classify_expiry(days)

        assert result.alert_type == AlertType.EXPIRING_SOON
        assert result.severity == expected
        assert result.days_until_expiry == days

    def test_beyond_horizon_is_no_alert(self):
        assert classify_expiry(31) is None

    def test_past_expiry_is_expired_critical(self):
        result = classify_expiry(-1)

        assert result.alert_type == AlertType.EXPIRED
        assert result.severity == AlertSeverity.CRITICAL


class TestSeverityBands:

    def test_custom_horizon(self):
        bands = SeverityBands(expiry_horizon_days=60)

        assert classify_expiry(45, bands).severity == AlertSeverity.LOW

    def test_unordered_ratio_bands_rejected(self):
        with pytest.raises(ValueError):
            SeverityBands(critical_ratio=Decimal("0.6"), high_ratio=Decimal("0.5"))

    def test_day_bands_beyond_horizon_rejected(self):
        with pytest.raises(ValueError):
            SeverityBands(medium_days=40, expiry_horizon_days=30)
