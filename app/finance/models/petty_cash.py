"""
Petty cash models: custodian allocations and the spends against them.

Usage:
    from finance.models import PettyCashAllocation, PettyCashUsage

    allocation = PettyCashAllocation.objects.get(user=custodian, status="active")
    allocation.remaining_amount  # allocated - used, recomputed on save

    usage = PettyCashUsage.objects.create(
        allocation=allocation,
        amount=Decimal("25.00"),
        description="Cleaning detergent",
    )
    usage.approve(approved_by=finance_user)  # pending -> approved
    usage.save()
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from finance.ledger.models import ZERO, money_field
from finance.state_machines import PettyCashAllocationStatus, PettyCashUsageStatus


class PettyCashAllocation(UUIDPrimaryKeyMixin, BaseModel):
    """
    Cash entrusted to a custodian.

    remaining_amount is a projection of allocated_amount - used_amount,
    recomputed on every save; recalculate() rebuilds used_amount from the
    approved usages.

    State Flow:
        ACTIVE -> INACTIVE -> ACTIVE
        ACTIVE/INACTIVE -> CLOSED

    Fields:
        user: Custodian
        residence: Residence the allocation was posted against
        allocated_amount: Total allocated including replenishments
        used_amount: Total of approved usages
        remaining_amount: allocated_amount - used_amount
        status: active, inactive or closed (managed by FSM)
        role_account_code: Petty cash account debited at allocation
        transaction: Allocation posting
        notes: Free-form notes
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="petty_cash_allocations",
        help_text="Custodian holding the cash",
    )
    residence = models.ForeignKey(
        "properties.Residence",
        on_delete=models.PROTECT,
        related_name="petty_cash_allocations",
        help_text="Residence the allocation was posted against",
    )
    allocated_amount = money_field(default=ZERO, help_text="Total allocated")
    used_amount = money_field(default=ZERO, help_text="Total approved spend")
    remaining_amount = money_field(
        default=ZERO,
        help_text="Allocated minus used (recomputed on save)",
    )
    status = FSMField(
        default=PettyCashAllocationStatus.ACTIVE,
        choices=PettyCashAllocationStatus.choices,
        db_index=True,
        help_text="Allocation status (managed by FSM)",
    )
    role_account_code = models.CharField(
        max_length=20,
        help_text="Petty cash account holding this allocation",
    )
    transaction = models.ForeignKey(
        "finance.Transaction",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="+",
        help_text="Allocation posting",
    )
    notes = models.TextField(blank=True, default="", help_text="Notes")

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "status"], name="petty_alloc_user_status_idx"),
        ]

    def __str__(self) -> str:
        """Return string representation."""
        return (
            f"PettyCashAllocation({self.user_id}, {self.status}, "
            f"remaining={self.remaining_amount})"
        )

    def save(self, *args, **kwargs):
        """Recompute remaining_amount before every save."""
        self.remaining_amount = self.allocated_amount - self.used_amount
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "remaining_amount" not in update_fields:
            kwargs["update_fields"] = [*update_fields, "remaining_amount"]
        super().save(*args, **kwargs)

    def recalculate(self) -> Decimal:
        """
        Rebuild used_amount from approved usages and save.

        Returns:
            The new remaining amount
        """
        used = self.usages.filter(status=PettyCashUsageStatus.APPROVED).aggregate(
            total=models.Sum("amount")
        )["total"]
        self.used_amount = used or ZERO
        self.save(update_fields=["used_amount", "updated_at"])
        return self.remaining_amount

    @property
    def is_active(self) -> bool:
        """Whether spends may be requested against this allocation."""
        return self.status == PettyCashAllocationStatus.ACTIVE

    def can_cover(self, amount: Decimal) -> bool:
        """Whether remaining funds cover amount."""
        return self.remaining_amount >= amount

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PettyCashAllocationStatus.ACTIVE,
        target=PettyCashAllocationStatus.INACTIVE,
    )
    def deactivate(self):
        """Suspend the allocation."""

    @transition(
        field=status,
        source=PettyCashAllocationStatus.INACTIVE,
        target=PettyCashAllocationStatus.ACTIVE,
    )
    def reactivate(self):
        """Resume a suspended allocation."""

    @transition(
        field=status,
        source=[PettyCashAllocationStatus.ACTIVE, PettyCashAllocationStatus.INACTIVE],
        target=PettyCashAllocationStatus.CLOSED,
    )
    def close(self, notes: str = ""):
        """Close the allocation for good."""
        if notes:
            self.notes = f"{self.notes}\n{notes}".strip()


class PettyCashUsage(UUIDPrimaryKeyMixin, BaseModel):
    """
    One spend against an allocation.

    State Flow:
        PENDING -> APPROVED
        PENDING -> REJECTED

    Fields:
        allocation: Allocation the money comes from
        amount: Amount spent
        category: Expense category
        description: What was bought
        status: pending, approved or rejected (managed by FSM)
        expense: Accrued expense this spend settles, if any
        source_id: Originating request id, used to locate prior accruals
        transaction: Posting made on approval
        approved_by: Approver
        rejection_reason: Why the spend was rejected
        usage_date: Date of the spend
    """

    allocation = models.ForeignKey(
        PettyCashAllocation,
        on_delete=models.PROTECT,
        related_name="usages",
        help_text="Allocation the money comes from",
    )
    amount = money_field(help_text="Amount spent")
    category = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Expense category",
    )
    description = models.TextField(
        blank=True,
        default="",
        help_text="What was bought",
    )
    status = FSMField(
        default=PettyCashUsageStatus.PENDING,
        choices=PettyCashUsageStatus.choices,
        db_index=True,
        help_text="Usage status (managed by FSM)",
    )
    expense = models.ForeignKey(
        "finance.Expense",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="petty_cash_usages",
        help_text="Accrued expense settled by this spend",
    )
    source_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Originating request id",
    )
    transaction = models.ForeignKey(
        "finance.Transaction",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="+",
        help_text="Posting made on approval",
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="User who approved the spend",
    )
    rejection_reason = models.TextField(
        blank=True,
        default="",
        help_text="Why the spend was rejected",
    )
    usage_date = models.DateField(
        default=timezone.localdate,
        help_text="Date of the spend",
    )

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="petty_cash_usage_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation."""
        return f"PettyCashUsage({self.amount}, {self.status})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PettyCashUsageStatus.PENDING,
        target=PettyCashUsageStatus.APPROVED,
    )
    def approve(self, approved_by=None):
        """Approve the spend."""
        self.approved_by = approved_by

    @transition(
        field=status,
        source=PettyCashUsageStatus.PENDING,
        target=PettyCashUsageStatus.REJECTED,
    )
    def reject(self, reason: str = ""):
        """Reject the spend; nothing is posted."""
        self.rejection_reason = reason
