"""
Expense model for accrued obligations.

An Expense is created when a maintenance or supply request is approved
(or a petty-cash spend has no prior accrual). It remembers the exact
liability account its accrual credited, so the later payment can debit
that same account.

Usage:
    from finance.models import Expense
    from finance.state_machines import ExpensePaymentStatus

    expense = Expense.objects.get(expense_id="EXP-...")
    expense.liability_account_code  # "200001" for a vendor, "2000" otherwise

    expense.mark_paid(payment_method="Bank Transfer")  # Pending -> Paid
    expense.save()
"""

from __future__ import annotations

import secrets

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from finance.ledger.models import money_field
from finance.state_machines import ExpensePaymentStatus


class ExpenseSourceType(models.TextChoices):
    """Business object an expense originates from."""

    MAINTENANCE_REQUEST = "maintenance_request", "Maintenance Request"
    SUPPLY_PURCHASE = "supply_purchase", "Supply Purchase"
    PETTY_CASH = "petty_cash", "Petty Cash"


def generate_expense_id() -> str:
    """Return a human-readable expense reference (EXP + date + suffix)."""
    stamp = timezone.now().strftime("%Y%m%d")
    return f"EXP{stamp}{secrets.token_hex(3).upper()}"


class Expense(UUIDPrimaryKeyMixin, BaseModel):
    """
    An accrued (pending) or settled (paid) obligation.

    State Flow:
        PENDING -> PAID

    Fields:
        expense_id: Human-readable reference
        residence: Property the expense belongs to
        category: Expense category (maintenance, cleaning, ...)
        description: What was bought or done
        amount: Amount accrued
        payment_status: Pending or Paid (managed by FSM)
        vendor: Supplier, when known
        vendor_specific_account: Vendor sub-ledger code used for the accrual
        liability_account_code: Exact account credited by the accrual
        expense_account_code: Expense account debited by the accrual
        transaction: Accrual transaction (back-reference)
        source_type / source_id / item_index: Originating request and item
        paid_date / payment_method: Settlement details
    """

    expense_id = models.CharField(
        max_length=40,
        unique=True,
        default=generate_expense_id,
        help_text="Human-readable expense reference",
    )
    residence = models.ForeignKey(
        "properties.Residence",
        on_delete=models.PROTECT,
        related_name="expenses",
        help_text="Residence the expense belongs to",
    )
    category = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Expense category",
    )
    description = models.TextField(
        blank=True,
        default="",
        help_text="What was bought or done",
    )
    amount = money_field(help_text="Amount accrued")
    payment_status = FSMField(
        default=ExpensePaymentStatus.PENDING,
        choices=ExpensePaymentStatus.choices,
        db_index=True,
        help_text="Payment status (managed by FSM)",
    )
    vendor = models.ForeignKey(
        "finance.Vendor",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="expenses",
        help_text="Supplier, when known",
    )
    vendor_specific_account = models.CharField(
        max_length=20,
        null=True,
        blank=True,
        help_text="Vendor sub-ledger account credited by the accrual",
    )
    liability_account_code = models.CharField(
        max_length=20,
        null=True,
        blank=True,
        help_text="Exact account credited by the accrual",
    )
    expense_account_code = models.CharField(
        max_length=20,
        null=True,
        blank=True,
        help_text="Expense account debited by the accrual",
    )
    transaction = models.ForeignKey(
        "finance.Transaction",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="expenses",
        help_text="Accrual transaction for this expense",
    )
    source_type = models.CharField(
        max_length=40,
        choices=ExpenseSourceType.choices,
        default=ExpenseSourceType.MAINTENANCE_REQUEST,
        help_text="Kind of business object the expense came from",
    )
    source_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Identifier of the originating request",
    )
    item_index = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Index of the request item this expense accrues",
    )
    paid_date = models.DateField(
        null=True,
        blank=True,
        help_text="Date the expense was settled",
    )
    payment_method = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="How the expense was settled",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["source_type", "source_id"], name="expense_source_idx"),
            models.Index(fields=["vendor", "payment_status"], name="expense_vendor_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="expense_amount_positive",
            ),
            models.UniqueConstraint(
                fields=["source_type", "source_id", "item_index"],
                name="unique_expense_per_request_item",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation."""
        return f"Expense({self.expense_id}, {self.payment_status}, {self.amount})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=payment_status,
        source=ExpensePaymentStatus.PENDING,
        target=ExpensePaymentStatus.PAID,
    )
    def mark_paid(self, payment_method: str = "", paid_date=None):
        """
        Record settlement of the expense.

        Args:
            payment_method: Payment method used
            paid_date: Settlement date (defaults to today)
        """
        self.payment_method = payment_method or self.payment_method
        self.paid_date = paid_date or timezone.localdate()

    @property
    def is_paid(self) -> bool:
        """Whether the expense has been settled."""
        return self.payment_status == ExpensePaymentStatus.PAID
