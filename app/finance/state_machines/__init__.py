"""
State machine enums for finance models.

This module defines the state enums used by finance models with django-fsm.
"""

from finance.state_machines.states import (
    ExpensePaymentStatus,
    PettyCashAllocationStatus,
    PettyCashUsageStatus,
)

__all__ = [
    "ExpensePaymentStatus",
    "PettyCashAllocationStatus",
    "PettyCashUsageStatus",
]
