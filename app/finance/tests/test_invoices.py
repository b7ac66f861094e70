"""
Tests for student invoices and invoice payments.
"""

import datetime
from decimal import Decimal

import pytest
from freezegun import freeze_time

from core.exceptions import ValidationError
from finance.events import InvoiceIssuance, InvoiceLine, InvoicePayment, StudentPayment
from finance.ledger import chart
from finance.ledger.balances import balances
from finance.ledger.exceptions import MissingResidenceError
from finance.ledger.models import TransactionType
from finance.services.accounting_service import post_event


@pytest.fixture
def invoice(debtor):
    return InvoiceIssuance(
        invoice_id="INV-1",
        student_id=debtor.student_id,
        residence=None,
        date=datetime.date(2025, 10, 1),
        lines=[
            InvoiceLine(description="October rent", amount="180.00", period="2025-10"),
            InvoiceLine(description="Admin fee", amount="20.00", kind="admin_fee"),
        ],
    )


class TestIssue:
    """Tests for InvoiceService.issue()."""

    def test_bills_receivable(self, invoice, debtor):
        result = post_event(invoice)

        lines = [
            (line.account_code, line.debit, line.credit, line.period or "")
            for line in result.entry.lines.all()
        ]
        assert lines == [
            ("1100", Decimal("180.00"), Decimal("0.00"), "2025-10"),
            ("4000", Decimal("0.00"), Decimal("180.00"), "2025-10"),
            ("1100", Decimal("20.00"), Decimal("0.00"), ""),
            ("4100", Decimal("0.00"), Decimal("20.00"), ""),
        ]
        assert result.entry.transaction.type == TransactionType.INVOICE
        assert result.entry.residence_id == debtor.residence_id
        assert balances.get_student_receivable_balance(debtor.student_id) == Decimal("200.00")

    def test_rebuilds_debtor(self, invoice, debtor):
        post_event(invoice)

        debtor.refresh_from_db()
        assert debtor.total_owed == Decimal("200.00")

    def test_issued_twice_posts_once(self, invoice):
        post_event(invoice)

        assert post_event(invoice).duplicate is True

    def test_student_without_lease_needs_residence(self, db):
        with pytest.raises(MissingResidenceError):
            post_event(
                InvoiceIssuance(
                    invoice_id="INV-2",
                    student_id="walk-in",
                    residence=None,
                    lines=[InvoiceLine(description="Laundry", amount="5", kind="other")],
                )
            )

    def test_invalid_line_kind(self):
        with pytest.raises(ValidationError):
            InvoiceLine(description="Parking", amount="10", kind="parking")

    @freeze_time("2025-10-05 12:00:00")
    def test_invoiced_rent_counts_as_accrued(self, invoice, debtor):
        """A payment for an invoiced month settles the invoice first."""
        post_event(invoice)

        result = post_event(
            StudentPayment(
                payment_id="PAY-1",
                student_id=debtor.student_id,
                residence=debtor.residence_id,
                amount="200.00",
                date=datetime.date(2025, 10, 5),
                payment_month="October 2025",
                components={"rent": "200.00"},
            )
        )

        credits = [
            (line.account_code, line.credit)
            for line in result.entry.lines.all()
            if line.credit > 0
        ]
        assert credits == [
            (chart.ACCOUNTS_RECEIVABLE, Decimal("180.00")),
            (chart.DEFERRED_INCOME, Decimal("20.00")),
        ]


class TestRecordPayment:
    """Tests for InvoiceService.record_payment()."""

    def test_settles_receivable(self, invoice, debtor):
        post_event(invoice)

        result = post_event(
            InvoicePayment(
                payment_id="IP-1",
                invoice_id="INV-1",
                student_id=debtor.student_id,
                residence=None,
                amount="150.00",
                method="Ecocash",
            )
        )

        debit = result.entry.lines.all()[0]
        assert (debit.account_code, debit.debit) == ("1003", Decimal("150.00"))
        assert balances.get_student_receivable_balance(debtor.student_id) == Decimal("50.00")
        debtor.refresh_from_db()
        assert debtor.total_paid == Decimal("150.00")
        assert debtor.current_balance == Decimal("50.00")
