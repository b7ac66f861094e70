"""
Debtor model: per-student receivable projection.

The Debtor row holds lease terms (rent, fees, lease dates) and a cached
view of the student's position. The cached figures are a projection of the
posted ledger, not a source of truth; DebtorService.rebuild() recomputes
them from TransactionEntry rows at any time.
"""

from __future__ import annotations

import secrets
from decimal import Decimal

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from finance.ledger.models import ZERO, money_field


def generate_debtor_code() -> str:
    """Return a debtor reference such as DR3F9A1C."""
    return f"DR{secrets.token_hex(3).upper()}"


class Debtor(UUIDPrimaryKeyMixin, BaseModel):
    """
    A student's lease terms and cached receivable position.

    Fields:
        student: The student (one debtor per student)
        residence: Residence the lease is for
        debtor_code: Human-readable reference
        monthly_rent / admin_fee / deposit: Contracted amounts
        lease_start_date / lease_end_date: Lease term
        current_balance: Positive = owed to the property,
            negative = credit or advance held (projection)
        total_owed / total_paid: Lifetime totals (projection)
        monthly_payments: Per-period paid components, e.g.
            {"2025-09": {"rent": "110.32", "admin": "0.00", "deposit": "0.00"}}
        last_reconciled_at: When the projection was last rebuilt
        is_active: Whether monthly rent should still be accrued
    """

    student = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="debtor",
        help_text="Student this debtor record tracks",
    )
    residence = models.ForeignKey(
        "properties.Residence",
        on_delete=models.PROTECT,
        related_name="debtors",
        help_text="Residence of the lease",
    )
    debtor_code = models.CharField(
        max_length=20,
        unique=True,
        default=generate_debtor_code,
        help_text="Human-readable debtor reference",
    )
    monthly_rent = money_field(default=ZERO, help_text="Contracted monthly rent")
    admin_fee = money_field(default=ZERO, help_text="One-off administration fee")
    deposit = money_field(default=ZERO, help_text="Refundable security deposit")
    lease_start_date = models.DateField(
        null=True,
        blank=True,
        help_text="First day of the lease",
    )
    lease_end_date = models.DateField(
        null=True,
        blank=True,
        help_text="Last day of the lease",
    )
    current_balance = money_field(
        default=ZERO,
        help_text="Cached position: positive owed, negative credit held",
    )
    total_owed = money_field(default=ZERO, help_text="Cached lifetime charges")
    total_paid = money_field(default=ZERO, help_text="Cached lifetime payments")
    monthly_payments = models.JSONField(
        default=dict,
        blank=True,
        help_text="Per-period paid components keyed by YYYY-MM",
    )
    last_reconciled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the projection was last rebuilt from the ledger",
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether monthly rent is still accrued",
    )

    class Meta:
        ordering = ["debtor_code"]

    def __str__(self) -> str:
        """Return string representation."""
        return f"Debtor({self.debtor_code}, balance={self.current_balance})"

    def paid_for_period(self, period: str, component: str = "rent") -> Decimal:
        """Cached amount paid toward one component of a period."""
        paid = self.monthly_payments.get(period, {}).get(component, "0")
        return Decimal(str(paid))

    def has_lease_covering(self, period_start, period_end) -> bool:
        """Whether the lease overlaps the date range."""
        if self.lease_start_date is None or self.lease_start_date > period_end:
            return False
        return self.lease_end_date is None or self.lease_end_date >= period_start
