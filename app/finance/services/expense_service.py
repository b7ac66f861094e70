"""
Expense accruals and payables settlement.

Maintenance approvals and supply purchases are accrued: the expense account
is debited and the supplier's own payable sub-ledger (200xxx) credited, so
every vendor's balance can be read from its account alone. Items paid on
the spot credit the payment account instead. Settlement debits the exact
liability the accrual credited.

    MaintenanceApproval      Dr 50xx  / Cr 200xxx (or cash when paid immediately)
    SupplyPurchaseApproval   Dr 5011  / Cr 200xxx
    VendorPayment            Dr 200xxx / Cr cash or bank
    ExpensePayment           Dr liability of the expense / Cr cash or bank

Usage:
    from finance.services.expense_service import ExpenseService

    result = ExpenseService.approve_maintenance(MaintenanceApproval(...))
    [entry.source_id for entry in result.related]

    ExpenseService.pay_expense(ExpensePayment(expense_id="EXP20250903A1B2C3", method="Bank"))
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError as DjangoValidationError

from django_fsm import TransitionNotAllowed

from core.exceptions import ValidationError
from core.services import BaseService
from finance.events import (
    ExpensePayment,
    MaintenanceApproval,
    MaintenanceItem,
    Quotation,
    SupplyPurchaseApproval,
    VendorPayment,
)
from finance.exceptions import ExpenseNotFound, InvalidStateTransitionError
from finance.ledger import chart
from finance.ledger.duplicates import find_duplicate
from finance.ledger.models import EntrySource, TransactionType
from finance.ledger.posting import posting_engine
from finance.ledger.resolver import resolver
from finance.ledger.types import ZERO, Line, PostingRequest, PostingResult
from finance.models import Expense, ExpenseSourceType
from finance.models.expense import generate_expense_id
from finance.state_machines import ExpensePaymentStatus

if TYPE_CHECKING:
    from finance.ledger.resolver import ResolvedPayable


@dataclass
class CostedItem:
    """A maintenance item with its cost and supplier settled."""

    index: int
    description: str
    category: str
    amount: Decimal
    quotation: Quotation | None
    paid_immediately: bool = False
    payment_method: str = ""


def costed_items(event: MaintenanceApproval) -> list[CostedItem]:
    """
    Items of a maintenance approval that carry a cost.

    Items without a quotation of their own take the supplier of the
    request's selected quotation. A request with no items but a selected
    quotation is accrued as a single item.
    """
    request_quotation = event.selected_quotation
    items = event.items
    if not items and request_quotation is not None:
        items = [
            MaintenanceItem(
                description=event.title or f"Maintenance request {event.request_id}",
                category=event.request_category,
                quotations=[request_quotation],
            )
        ]

    costed = []
    for index, item in enumerate(items):
        if item.cost <= 0:
            continue
        costed.append(
            CostedItem(
                index=index,
                description=item.description,
                category=item.category,
                amount=item.cost,
                quotation=item.selected_quotation or request_quotation,
                paid_immediately=item.paid_immediately,
                payment_method=item.payment_method,
            )
        )
    return costed


class ExpenseService(BaseService):
    """
    Accrues and settles supplier costs.

    All methods are class methods - no instance state is maintained.
    """

    @staticmethod
    def get_expense(expense_id) -> Expense:
        """
        Get an expense by its expense_id or primary key.

        Raises:
            ExpenseNotFound: If no expense matches
        """
        expense = Expense.objects.filter(expense_id=str(expense_id)).first()
        if expense is None:
            try:
                expense = Expense.objects.filter(pk=expense_id).first()
            except (DjangoValidationError, ValueError, TypeError):
                expense = None
        if expense is None:
            raise ExpenseNotFound(
                f"Expense {expense_id} not found",
                details={"expense_id": str(expense_id)},
            )
        return expense

    @staticmethod
    def _payable_for(quotation: Quotation | None) -> ResolvedPayable:
        if quotation is None:
            return resolver.resolve_vendor_payable()
        return resolver.resolve_vendor_payable(
            vendor_id=quotation.vendor_id,
            vendor_name=quotation.vendor_name,
        )

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    @classmethod
    def approve_maintenance(cls, event: MaintenanceApproval) -> PostingResult:
        """
        Accrue every costed item of an approved maintenance request.

        Each item gets its own posting and Expense, keyed by request and
        item index, so approving the same request twice posts nothing new.
        The whole approval is one database transaction.

        Returns:
            PostingResult of the first item; related holds every item's
            entry, subject the Expense records

        Raises:
            ValidationError: If no item carries a cost, or on a missing
                residence
        """
        items = costed_items(event)
        if not items:
            raise ValidationError(
                f"Maintenance request {event.request_id} has no costed items",
                error_code="NO_COSTED_ITEMS",
                details={"request_id": event.request_id},
            )

        results: list[PostingResult] = []
        expenses: list[Expense] = []
        with cls.atomic():
            for item in items:
                result, expense = cls._accrue_item(event, item)
                results.append(result)
                expenses.append(expense)

        posted = [r for r in results if not r.duplicate]
        cls.get_logger().info(
            f"Approved maintenance request {event.request_id}: "
            f"{len(posted)} item(s) accrued, {len(results) - len(posted)} already posted",
            extra={
                "request_id": event.request_id,
                "items": len(results),
                "total": str(sum((item.amount for item in items), ZERO)),
            },
        )
        return PostingResult(
            entry=results[0].entry,
            duplicate=not posted,
            related=[r.entry for r in results],
            subject=expenses,
        )

    @classmethod
    def _accrue_item(
        cls,
        event: MaintenanceApproval,
        item: CostedItem,
    ) -> tuple[PostingResult, Expense]:
        existing = (
            Expense.objects.select_related("transaction")
            .filter(
                source_type=ExpenseSourceType.MAINTENANCE_REQUEST,
                source_id=event.request_id,
                item_index=item.index,
                transaction__isnull=False,
            )
            .first()
        )
        if existing is not None:
            entry = existing.transaction.entry
            cls.get_logger().info(
                f"Expense {existing.expense_id} already accrued, skipping",
                extra={"expense_id": existing.expense_id, "request_id": event.request_id},
            )
            return PostingResult(entry=entry, duplicate=True), existing

        expense_code = resolver.resolve_expense_account(
            item.description,
            item.category,
            request_category=event.request_category,
            request_type=event.request_type,
        )
        payable = cls._payable_for(item.quotation)
        if item.paid_immediately:
            liability_code = resolver.resolve_payment_account(item.payment_method)
        else:
            liability_code = payable.account_code
        expense_id = generate_expense_id()
        category = item.category or event.request_category

        result = posting_engine.post(
            PostingRequest(
                source=EntrySource.EXPENSE_ACCRUAL,
                source_id=event.request_id,
                idempotency_key=(
                    f"{EntrySource.EXPENSE_ACCRUAL}:{event.request_id}:{item.index}"
                ),
                lines=[
                    Line.debit_line(expense_code, item.amount, item.description),
                    Line.credit_line(liability_code, item.amount, item.description),
                ],
                residence=event.residence,
                date=event.date,
                description=f"Maintenance: {item.description}",
                transaction_type=TransactionType.APPROVAL,
                reference=event.request_id,
                created_by=event.created_by,
                metadata={
                    "request_id": event.request_id,
                    "item_index": str(item.index),
                    "amount": str(item.amount),
                    "expense_id": expense_id,
                    "vendor_id": str(payable.vendor.id) if payable.vendor else "",
                    "category": category,
                    "liability_account_code": liability_code,
                    "description": item.description,
                },
            )
        )
        if result.duplicate:
            expense = Expense.objects.filter(transaction=result.transaction).first()
            if expense is not None:
                return result, expense

        expense = Expense(
            expense_id=expense_id,
            residence_id=result.entry.residence_id,
            category=category,
            description=item.description,
            amount=item.amount,
            vendor=payable.vendor,
            vendor_specific_account=(
                payable.account_code if payable.is_vendor_specific else ""
            ),
            liability_account_code=liability_code,
            expense_account_code=expense_code,
            transaction=result.transaction,
            source_type=ExpenseSourceType.MAINTENANCE_REQUEST,
            source_id=event.request_id,
            item_index=item.index,
        )
        if item.paid_immediately:
            expense.mark_paid(payment_method=item.payment_method, paid_date=result.entry.date)
        expense.save()
        return result, expense

    # -------------------------------------------------------------------------
    # Supplies
    # -------------------------------------------------------------------------

    @classmethod
    def approve_supply_purchase(cls, event: SupplyPurchaseApproval) -> PostingResult:
        """
        Accrue an approved supply purchase as one posting.

        Each item debits its resolved expense account; the supplier's
        payable is credited with the total.
        """
        key = f"{EntrySource.SUPPLY_PURCHASE}:{event.purchase_id}"
        existing = find_duplicate(EntrySource.SUPPLY_PURCHASE, event.purchase_id, key)
        if existing is not None:
            return PostingResult(entry=existing, duplicate=True)

        payable = resolver.resolve_vendor_payable(
            vendor_id=event.vendor_id,
            vendor_name=event.vendor_name,
        )
        total = sum((item.amount for item in event.items), ZERO)
        expense_codes = [
            resolver.resolve_expense_account(item.description, item.category)
            for item in event.items
        ]
        lines = [
            Line.debit_line(code, item.amount, item.description)
            for item, code in zip(event.items, expense_codes)
        ]
        lines.append(
            Line.credit_line(
                payable.account_code, total, f"Supplies purchase {event.purchase_id}"
            )
        )

        with cls.atomic():
            result = posting_engine.post(
                PostingRequest(
                    source=EntrySource.SUPPLY_PURCHASE,
                    source_id=event.purchase_id,
                    idempotency_key=key,
                    lines=lines,
                    residence=event.residence,
                    date=event.date,
                    description=f"Supplies purchase {event.purchase_id}",
                    transaction_type=TransactionType.SUPPLY_PURCHASE,
                    reference=event.purchase_id,
                    created_by=event.created_by,
                    metadata={
                        "purchase_id": event.purchase_id,
                        "amount": str(total),
                        "vendor_id": str(payable.vendor.id) if payable.vendor else "",
                        "liability_account_code": payable.account_code,
                    },
                )
            )
            if result.duplicate:
                return result
            result.subject = [
                Expense.objects.create(
                    residence_id=result.entry.residence_id,
                    category=item.category,
                    description=item.description,
                    amount=item.amount,
                    vendor=payable.vendor,
                    vendor_specific_account=(
                        payable.account_code if payable.is_vendor_specific else ""
                    ),
                    liability_account_code=payable.account_code,
                    expense_account_code=code,
                    transaction=result.transaction,
                    source_type=ExpenseSourceType.SUPPLY_PURCHASE,
                    source_id=event.purchase_id,
                    item_index=index,
                )
                for index, (item, code) in enumerate(zip(event.items, expense_codes))
            ]
        return result

    # -------------------------------------------------------------------------
    # Settlement
    # -------------------------------------------------------------------------

    @classmethod
    def pay_vendor(cls, event: VendorPayment) -> PostingResult:
        """
        Pay down a vendor's payable sub-ledger.

        Expenses listed in expense_ids are marked paid.

        Raises:
            ExpenseNotFound: If a listed expense does not exist
            ValidationError: If a listed expense is owed on another payable,
                or the amount does not cover the pending listed expenses
        """
        key = f"{EntrySource.VENDOR_PAYMENT}:{event.payment_id}"
        existing = find_duplicate(EntrySource.VENDOR_PAYMENT, event.payment_id, key)
        if existing is not None:
            return PostingResult(entry=existing, duplicate=True)

        payable = resolver.resolve_vendor_payable(
            vendor_id=event.vendor_id,
            vendor_name=event.vendor_name,
        )
        cash_code = resolver.resolve_payment_account(event.method)

        with cls.atomic():
            expenses = [cls.get_expense(expense_id) for expense_id in event.expense_ids]
            cls._check_vendor_expenses(event, payable.account_code, expenses)
            result = posting_engine.post(
                PostingRequest(
                    source=EntrySource.VENDOR_PAYMENT,
                    source_id=event.payment_id,
                    idempotency_key=key,
                    lines=[
                        Line.debit_line(
                            payable.account_code, event.amount, "Payable settled"
                        ),
                        Line.credit_line(cash_code, event.amount, "Vendor paid"),
                    ],
                    residence=event.residence,
                    date=event.date,
                    description=f"Vendor payment {event.payment_id}",
                    transaction_type=TransactionType.VENDOR_PAYMENT,
                    reference=event.payment_id,
                    created_by=event.created_by,
                    metadata={
                        "payment_id": event.payment_id,
                        "amount": str(event.amount),
                        "vendor_id": str(payable.vendor.id) if payable.vendor else "",
                        "liability_account_code": payable.account_code,
                        "expense_ids": [expense.expense_id for expense in expenses],
                    },
                )
            )
            for expense in expenses:
                if expense.payment_status == ExpensePaymentStatus.PENDING:
                    expense.mark_paid(payment_method=event.method, paid_date=result.entry.date)
                    expense.save(
                        update_fields=[
                            "payment_status",
                            "payment_method",
                            "paid_date",
                            "updated_at",
                        ]
                    )
            result.subject = expenses
        return result

    @classmethod
    def _check_vendor_expenses(
        cls,
        event: VendorPayment,
        account_code: str,
        expenses: list[Expense],
    ) -> None:
        """Listed expenses must be owed on this payable and covered by the amount."""
        for expense in expenses:
            owed_on = cls.liability_code_of(expense)
            if owed_on != account_code:
                raise ValidationError(
                    f"Expense {expense.expense_id} is owed on {owed_on}, "
                    f"not on {account_code}",
                    error_code="EXPENSE_VENDOR_MISMATCH",
                    details={
                        "expense_id": expense.expense_id,
                        "liability_account_code": owed_on,
                        "payment_account_code": account_code,
                    },
                )
        pending = sum(
            (
                expense.amount
                for expense in expenses
                if expense.payment_status == ExpensePaymentStatus.PENDING
            ),
            ZERO,
        )
        if pending > event.amount:
            raise ValidationError(
                f"Vendor payment {event.payment_id} of {event.amount} does not "
                f"cover the listed expenses ({pending})",
                error_code="PAYMENT_SHORT_OF_EXPENSES",
                details={
                    "payment_id": event.payment_id,
                    "amount": str(event.amount),
                    "expenses_total": str(pending),
                },
            )

    @staticmethod
    def liability_code_of(expense: Expense) -> str:
        """Liability account the expense's accrual credited."""
        if expense.liability_account_code:
            return expense.liability_account_code
        if expense.vendor_specific_account:
            return expense.vendor_specific_account
        return chart.ACCOUNTS_PAYABLE

    @classmethod
    def pay_expense(cls, event: ExpensePayment) -> PostingResult:
        """
        Settle one accrued expense.

        Debits the liability the accrual credited, credits the payment
        account and marks the expense paid. Paying an already paid expense
        returns the original payment.

        Raises:
            ExpenseNotFound: If the expense does not exist
            InvalidStateTransitionError: If the expense was settled some
                other way
            ValidationError: If an amount is given that differs from the
                expense amount
        """
        key = f"{EntrySource.EXPENSE_PAYMENT}:{event.expense_id}"
        with cls.atomic():
            expense = Expense.objects.select_for_update().get(
                pk=cls.get_expense(event.expense_id).pk
            )
            if expense.payment_status != ExpensePaymentStatus.PENDING:
                existing = find_duplicate(EntrySource.EXPENSE_PAYMENT, expense.expense_id, key)
                if existing is not None:
                    return PostingResult(entry=existing, duplicate=True, subject=expense)
                raise InvalidStateTransitionError(
                    f"Expense {expense.expense_id} is already {expense.payment_status}",
                    details={
                        "expense_id": expense.expense_id,
                        "status": expense.payment_status,
                    },
                )

            liability_code = cls.liability_code_of(expense)
            if liability_code == chart.ACCOUNTS_PAYABLE and expense.vendor_id:
                cls.get_logger().warning(
                    f"Expense {expense.expense_id} has no vendor account, "
                    "settling general accounts payable",
                    extra={"expense_id": expense.expense_id},
                )
            amount = expense.amount
            if event.amount is not None and event.amount != amount:
                raise ValidationError(
                    f"Payment of {event.amount} does not match expense "
                    f"{expense.expense_id} of {amount}",
                    error_code="AMOUNT_MISMATCH",
                    details={
                        "expense_id": expense.expense_id,
                        "amount": str(event.amount),
                        "expense_amount": str(amount),
                    },
                )
            cash_code = resolver.resolve_payment_account(event.method)

            result = posting_engine.post(
                PostingRequest(
                    source=EntrySource.EXPENSE_PAYMENT,
                    source_id=expense.expense_id,
                    idempotency_key=key,
                    lines=[
                        Line.debit_line(liability_code, amount, expense.description),
                        Line.credit_line(cash_code, amount, expense.description),
                    ],
                    residence=expense.residence_id,
                    date=event.date,
                    description=f"Payment of expense {expense.expense_id}",
                    transaction_type=TransactionType.PAYMENT,
                    reference=expense.expense_id,
                    created_by=event.created_by,
                    metadata={
                        "expense_id": expense.expense_id,
                        "amount": str(amount),
                        "liability_account_code": liability_code,
                        "method": event.method,
                    },
                )
            )
            try:
                expense.mark_paid(payment_method=event.method, paid_date=result.entry.date)
            except TransitionNotAllowed as e:
                raise InvalidStateTransitionError(
                    f"Expense {expense.expense_id} cannot be marked paid",
                    details={"expense_id": expense.expense_id},
                ) from e
            expense.save(
                update_fields=["payment_status", "payment_method", "paid_date", "updated_at"]
            )

        cls.get_logger().info(
            f"Paid expense {expense.expense_id}",
            extra={
                "expense_id": expense.expense_id,
                "amount": str(amount),
                "liability_account_code": liability_code,
            },
        )
        result.subject = expense
        return result
