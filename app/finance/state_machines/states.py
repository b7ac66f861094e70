"""
State enums for finance models.

These are Django TextChoices for database storage, driven by django-fsm
transitions on the models.

State Machines Overview:

Expense:
    pending → paid

PettyCashAllocation:
    active ⇄ inactive
    active/inactive → closed

PettyCashUsage:
    pending → approved
    pending → rejected

No state changes automatically; every transition is a deliberate call.
"""

from django.db import models


class ExpensePaymentStatus(models.TextChoices):
    """
    Payment status of an accrued expense.

    Terminal states: PAID

    State Flow:
        PENDING → PAID (vendor payment, expense payment or petty-cash spend)
    """

    PENDING = "Pending", "Pending"
    PAID = "Paid", "Paid"


class PettyCashAllocationStatus(models.TextChoices):
    """
    States for a custodian's petty-cash allocation.

    Terminal states: CLOSED

    State Flow:
        ACTIVE → INACTIVE (suspend)
        INACTIVE → ACTIVE (reactivate)
        ACTIVE/INACTIVE → CLOSED
    """

    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"
    CLOSED = "closed", "Closed"


class PettyCashUsageStatus(models.TextChoices):
    """
    States for one spend against an allocation.

    Terminal states: APPROVED, REJECTED

    State Flow:
        PENDING → APPROVED
        PENDING → REJECTED
    """

    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
