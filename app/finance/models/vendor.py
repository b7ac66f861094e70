"""
Vendor model.

A vendor is a supplier whose payables are tracked on a dedicated Liability
sub-ledger account (code ``200NNN``), separate from the general Accounts
Payable account. The account is created on first use by the resolver.

Usage:
    from finance.models import Vendor

    vendor = Vendor.objects.create(
        vendor_code="V25001",
        business_name="Acme Plumbing",
        category="plumbing",
    )
    resolver.ensure_vendor_account(vendor)
    vendor.chart_of_accounts_code  # "200001"
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class Vendor(UUIDPrimaryKeyMixin, BaseModel):
    """
    A supplier of goods or services.

    Fields:
        vendor_code: Business identifier, unique
        business_name: Registered trading name, used for fuzzy lookups
        category: Trade category (plumbing, cleaning, supplies, ...)
        chart_of_accounts_code: Payable sub-ledger account code
        expense_account_code: Default expense account for this vendor's work
        is_active: Whether the vendor is still used
    """

    vendor_code = models.CharField(
        max_length=50,
        unique=True,
        help_text="Business identifier of the vendor",
    )
    business_name = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Registered trading name",
    )
    category = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Trade category",
    )
    chart_of_accounts_code = models.CharField(
        max_length=20,
        null=True,
        blank=True,
        unique=True,
        help_text="Code of this vendor's payable sub-ledger account",
    )
    expense_account_code = models.CharField(
        max_length=20,
        null=True,
        blank=True,
        help_text="Default expense account for this vendor's work",
    )
    is_active = models.BooleanField(
        default=True,
        help_text="Whether this vendor is in use",
    )

    class Meta:
        ordering = ["business_name"]

    def __str__(self) -> str:
        """Return string representation."""
        return f"{self.business_name} ({self.vendor_code})"
