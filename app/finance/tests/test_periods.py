"""
Tests for billing periods and rent proration.
"""

import datetime
from decimal import Decimal

import pytest
from freezegun import freeze_time

from finance.periods import Period, parse_period, prorate_rent, resolve_period

REFERENCE = datetime.date(2025, 9, 20)


class TestPeriod:
    """Tests for the Period value type."""

    def test_label_and_bounds(self):
        period = Period(2025, 2)

        assert period.label == "2025-02"
        assert str(period) == "2025-02"
        assert period.start == datetime.date(2025, 2, 1)
        assert period.end == datetime.date(2025, 2, 28)

    def test_next_and_previous_wrap_years(self):
        assert Period(2025, 12).next() == Period(2026, 1)
        assert Period(2026, 1).previous() == Period(2025, 12)

    def test_ordering(self):
        assert Period(2025, 9) < Period(2025, 10) < Period(2026, 1)

    def test_contains(self):
        assert Period(2025, 9).contains(REFERENCE)
        assert not Period(2025, 10).contains(REFERENCE)

    def test_rejects_invalid_month(self):
        with pytest.raises(ValueError):
            Period(2025, 13)

    @freeze_time("2025-09-20 12:00:00")
    def test_current(self):
        assert Period.current() == Period(2025, 9)


class TestParsePeriod:
    """Tests for parse_period()."""

    @pytest.mark.parametrize(
        "label,expected",
        [
            ("2025-09", Period(2025, 9)),
            ("2025/9", Period(2025, 9)),
            (" 2025.10 ", Period(2025, 10)),
            ("September 2025", Period(2025, 9)),
            ("sep 2025", Period(2025, 9)),
            ("Sept-2025", Period(2025, 9)),
            ("Oct. 2026", Period(2026, 10)),
            ("December, 2025", Period(2025, 12)),
        ],
    )
    def test_labels_with_year(self, label, expected):
        assert parse_period(label, REFERENCE) == expected

    def test_month_name_takes_reference_year(self):
        assert parse_period("march", REFERENCE) == Period(2025, 3)
        assert parse_period("March", datetime.date(2026, 1, 5)) == Period(2026, 3)

    @pytest.mark.parametrize("label", [None, "", "next term", "2025-13", "13/2025", "Smarch 2025"])
    def test_unreadable_labels(self, label):
        assert parse_period(label, REFERENCE) is None

    @freeze_time("2025-11-03 12:00:00")
    def test_resolve_period_falls_back_to_current(self):
        assert resolve_period("whenever") == Period(2025, 11)
        assert resolve_period("2025-09") == Period(2025, 9)


class TestProrateRent:
    """Tests for prorate_rent()."""

    def test_first_day_is_full_rent(self):
        assert prorate_rent(Decimal("180.00"), datetime.date(2025, 9, 1)) == Decimal("180.00")

    def test_mid_month_start(self):
        """19 of 31 October days at 180.00 a month."""
        assert prorate_rent(Decimal("180.00"), datetime.date(2025, 10, 13)) == Decimal(
            "110.32"
        )

    def test_last_day(self):
        """One day of a 28 day February."""
        assert prorate_rent(Decimal("280.00"), datetime.date(2025, 2, 28)) == Decimal("10.00")
