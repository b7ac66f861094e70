"""
Tests for the standard chart of accounts.
"""

import pytest

from finance.ledger import chart


class TestStandardAccounts:
    """Tests for the account definitions and lookup tables."""

    def test_codes_are_unique_and_typed(self):
        types = {chart.ASSET, chart.LIABILITY, chart.EQUITY, chart.INCOME, chart.EXPENSE}

        for code, spec in chart.STANDARD_ACCOUNTS.items():
            assert spec.code == code
            assert spec.type in types

    def test_lookup_tables_point_into_chart(self):
        targets = (
            set(chart.PAYMENT_METHOD_ACCOUNTS.values())
            | set(chart.PETTY_CASH_ROLE_ACCOUNTS.values())
            | chart.CASH_EQUIVALENT_CODES
        )

        assert targets <= set(chart.STANDARD_ACCOUNTS)

    def test_petty_cash_counts_as_cash(self):
        assert chart.PETTY_CASH_PROPERTY_MANAGER in chart.CASH_EQUIVALENT_CODES
        assert chart.ACCOUNTS_RECEIVABLE not in chart.CASH_EQUIVALENT_CODES
        assert chart.DEFERRED_INCOME not in chart.CASH_EQUIVALENT_CODES


class TestVendorAccountCodes:
    """Tests for the per-vendor payable range."""

    @pytest.mark.parametrize(
        "sequence,expected", [(1, "200001"), (42, "200042"), (999, "200999")]
    )
    def test_vendor_account_code(self, sequence, expected):
        assert chart.vendor_account_code(sequence) == expected

    @pytest.mark.parametrize(
        "code,expected",
        [
            ("200001", True),
            ("200999", True),
            ("2000", False),
            ("2200", False),
            ("20000A", False),
            ("1100", False),
        ],
    )
    def test_is_vendor_account_code(self, code, expected):
        assert chart.is_vendor_account_code(code) is expected
