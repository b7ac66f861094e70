"""
Student invoices.

    InvoiceIssuance   Dr 1100 / Cr 4000 (rent), 4100 (admin fee), 2020 (deposit)
    InvoicePayment    Dr cash or bank / Cr 1100

Rent lines are tagged with their billing period so that they count as the
period's accrued rent when payments are allocated.
"""

from __future__ import annotations

from core.services import BaseService
from finance.events import InvoiceIssuance, InvoicePayment
from finance.exceptions import DebtorNotFound
from finance.ledger import chart
from finance.ledger.models import EntrySource, TransactionType
from finance.ledger.posting import posting_engine
from finance.ledger.resolver import resolver
from finance.ledger.types import Line, PostingRequest, PostingResult
from finance.models import Debtor
from finance.periods import parse_period
from finance.services.debtor_service import DebtorService

INVOICE_LINE_ACCOUNTS = {
    "rent": chart.RENTAL_INCOME,
    "admin_fee": chart.ADMIN_FEE_INCOME,
    "deposit": chart.TENANT_DEPOSITS_HELD,
    "other": chart.RENTAL_INCOME,
}


def _student_id(student) -> str:
    return str(getattr(student, "pk", student))


def _debtor_of(student) -> Debtor | None:
    try:
        return DebtorService.get_debtor(student)
    except DebtorNotFound:
        return None


class InvoiceService(BaseService):
    """Posts invoices and invoice payments against a student's receivable."""

    @classmethod
    def issue(cls, event: InvoiceIssuance) -> PostingResult:
        debtor = _debtor_of(event.student_id)
        lines: list[Line] = []
        for invoice_line in event.lines:
            period = parse_period(invoice_line.period, event.date)
            label = period.label if period and invoice_line.kind == "rent" else ""
            lines += [
                Line.debit_line(
                    chart.ACCOUNTS_RECEIVABLE,
                    invoice_line.amount,
                    invoice_line.description,
                    period=label,
                ),
                Line.credit_line(
                    INVOICE_LINE_ACCOUNTS[invoice_line.kind],
                    invoice_line.amount,
                    invoice_line.description,
                    period=label,
                ),
            ]

        with cls.atomic():
            result = posting_engine.post(
                PostingRequest(
                    source=EntrySource.INVOICE,
                    source_id=event.invoice_id,
                    lines=lines,
                    residence=event.residence or (debtor.residence_id if debtor else None),
                    date=event.date,
                    description=f"Invoice {event.invoice_id}",
                    transaction_type=TransactionType.INVOICE,
                    reference=event.invoice_id,
                    created_by=event.created_by,
                    metadata={
                        "student_id": _student_id(event.student_id),
                        "invoice_id": event.invoice_id,
                        "amount": str(event.total),
                    },
                )
            )
            if debtor is not None and not result.duplicate:
                DebtorService.rebuild(debtor)
        return result

    @classmethod
    def record_payment(cls, event: InvoicePayment) -> PostingResult:
        debtor = _debtor_of(event.student_id)
        with cls.atomic():
            result = posting_engine.post(
                PostingRequest(
                    source=EntrySource.INVOICE_PAYMENT,
                    source_id=event.payment_id,
                    lines=[
                        Line.debit_line(
                            resolver.resolve_payment_account(event.method),
                            event.amount,
                            f"Payment {event.payment_id} received",
                        ),
                        Line.credit_line(
                            chart.ACCOUNTS_RECEIVABLE,
                            event.amount,
                            f"Invoice {event.invoice_id} settled",
                        ),
                    ],
                    residence=event.residence or (debtor.residence_id if debtor else None),
                    date=event.date,
                    description=f"Payment {event.payment_id} for invoice {event.invoice_id}",
                    transaction_type=TransactionType.PAYMENT,
                    reference=event.invoice_id,
                    created_by=event.created_by,
                    metadata={
                        "student_id": _student_id(event.student_id),
                        "invoice_id": event.invoice_id,
                        "payment_id": event.payment_id,
                        "amount": str(event.amount),
                        "method": event.method,
                    },
                )
            )
            if debtor is not None and not result.duplicate:
                DebtorService.rebuild(debtor)
        return result
