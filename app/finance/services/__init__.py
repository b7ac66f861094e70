"""
Finance services.

This module provides:
- AccountingService: Entry point posting business events
- PaymentAllocator: Student payment classification and allocation
- AccrualService: Lease start and monthly rent accruals
- ExpenseService: Maintenance and supply accruals, vendor and expense payments
- InvoiceService: Student invoices and their payments
- PettyCashService: Custodian allocations, spends and replenishments
- DebtorService: Lease records and the receivable projection

Usage:
    from finance.services import post_event, get_student_receivable_balance

    result = post_event(StudentPayment(...))
    get_student_receivable_balance(student.id)
"""

from finance.services.accounting_service import (
    AccountingService,
    get_account_balance,
    get_debtor_position,
    get_petty_cash_balance,
    get_student_receivable_balance,
    get_trial_balance,
    get_vendor_payable_balance,
    list_transactions,
    post_event,
    post_event_payload,
    reverse_entry,
)
from finance.services.accrual_service import AccrualService
from finance.services.allocation import AllocationPlan, PaymentAllocator
from finance.services.debtor_service import DebtorService
from finance.services.expense_service import ExpenseService
from finance.services.invoice_service import InvoiceService
from finance.services.petty_cash_service import PettyCashService

__all__ = [
    "AccountingService",
    "AccrualService",
    "AllocationPlan",
    "DebtorService",
    "ExpenseService",
    "InvoiceService",
    "PaymentAllocator",
    "PettyCashService",
    "get_account_balance",
    "get_debtor_position",
    "get_petty_cash_balance",
    "get_student_receivable_balance",
    "get_trial_balance",
    "get_vendor_payable_balance",
    "list_transactions",
    "post_event",
    "post_event_payload",
    "reverse_entry",
]
