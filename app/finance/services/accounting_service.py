"""
Accounting service: the public entry point of the finance core.

Collaborators (maintenance, payments, petty cash, scheduled jobs) hand
business events to post_event() and read derived balances through the query
functions below. Nothing else writes to the ledger.

Posting:
    post_event(event)                  -> PostingResult
    post_event_payload(kind, payload)  -> PostingResult
    reverse_entry(entry, reason)       -> PostingResult

Queries:
    get_account_balance(account_code)
    get_vendor_payable_balance(vendor_id)
    get_student_receivable_balance(student_id)
    get_debtor_position(student_id)
    get_petty_cash_balance(user)
    list_transactions(filters)
    get_trial_balance()

A repeated event is not an error: the result carries the entry posted the
first time with duplicate=True.

Usage:
    from finance.services.accounting_service import post_event

    result = post_event(StudentPayment(...))
    if result.duplicate:
        logger.info("Payment already recorded")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from core.exceptions import ValidationError
from finance import events
from finance.ledger.balances import balances
from finance.ledger.posting import posting_engine
from finance.services.accrual_service import AccrualService
from finance.services.allocation import PaymentAllocator
from finance.services.expense_service import ExpenseService
from finance.services.invoice_service import InvoiceService
from finance.services.petty_cash_service import PettyCashService

if TYPE_CHECKING:
    from finance.ledger.models import TransactionEntry
    from finance.ledger.types import PostingResult

logger = logging.getLogger(__name__)


class AccountingService:
    """
    Dispatches business events to the service that posts them.

    All methods are class methods - no instance state is maintained.
    """

    HANDLERS: dict[type[events.Event], Callable[[Any], PostingResult]] = {
        events.MaintenanceApproval: ExpenseService.approve_maintenance,
        events.SupplyPurchaseApproval: ExpenseService.approve_supply_purchase,
        events.VendorPayment: ExpenseService.pay_vendor,
        events.ExpensePayment: ExpenseService.pay_expense,
        events.StudentPayment: PaymentAllocator.allocate,
        events.InvoiceIssuance: InvoiceService.issue,
        events.InvoicePayment: InvoiceService.record_payment,
        events.LeaseStartAccrual: AccrualService.accrue_lease_start,
        events.MonthlyRentAccrual: AccrualService.accrue_rent,
        events.PettyCashAllocationRequest: PettyCashService.allocate,
        events.PettyCashUsageApproval: PettyCashService.approve_usage,
        events.PettyCashReplenishment: PettyCashService.replenish,
    }

    @classmethod
    def post_event(cls, event: events.Event) -> PostingResult:
        """
        Post one business event.

        Args:
            event: Any event dataclass from finance.events

        Returns:
            PostingResult with the booked entry, or the existing entry and
            duplicate=True when the event was posted before

        Raises:
            ValidationError: On an unknown event type or invalid lines
            NotFoundError: When a referenced record cannot be found and no
                fallback exists
            InsufficientFundsError: When a petty cash spend is not covered
        """
        handler = cls.HANDLERS.get(type(event))
        if handler is None:
            raise ValidationError(
                f"No handler for event {type(event).__name__}",
                error_code="UNKNOWN_EVENT",
                details={"event": type(event).__name__},
            )

        logger.debug(f"Posting {event.kind} event", extra={"kind": event.kind})
        try:
            result = handler(event)
        except Exception:
            logger.exception(
                f"Failed to post {event.kind} event",
                extra={"kind": event.kind},
            )
            raise

        if result.duplicate:
            logger.info(
                f"{event.kind} event already posted as {result.entry.idempotency_key}",
                extra={"kind": event.kind, "entry_id": str(result.entry.id)},
            )
        return result

    @classmethod
    def post_event_payload(cls, kind: str, payload: dict[str, Any]) -> PostingResult:
        """Build the event for kind from a plain dict and post it."""
        return cls.post_event(events.parse_event(kind, payload))

    @staticmethod
    def reverse_entry(
        entry: TransactionEntry,
        reason: str = "",
        created_by=None,
    ) -> PostingResult:
        """Offset a posted entry; see PostingEngine.reverse."""
        return posting_engine.reverse(entry, reason=reason, created_by=created_by)


# =============================================================================
# Module-level interface
# =============================================================================

post_event = AccountingService.post_event
post_event_payload = AccountingService.post_event_payload
reverse_entry = AccountingService.reverse_entry

get_account_balance = balances.get_account_balance
get_vendor_payable_balance = balances.get_vendor_payable_balance
get_student_receivable_balance = balances.get_student_receivable_balance
get_debtor_position = balances.get_debtor_position
get_petty_cash_balance = balances.get_petty_cash_balance
list_transactions = balances.list_transactions
get_trial_balance = balances.get_trial_balance
