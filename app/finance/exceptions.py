"""
Finance-specific exceptions.

Ledger validation errors (unbalanced entries, missing residence, unknown
accounts) live in finance.ledger.exceptions; this module holds the errors
raised by the finance services around the ledger.

Exception Hierarchy:
    NotFoundError (core)
    ├── VendorNotFound - Vendor lookup failed
    ├── ExpenseNotFound - Expense lookup failed
    ├── DebtorNotFound - No debtor record for a student
    └── AllocationNotFound - Petty cash allocation lookup failed
    ConflictError (core)
    ├── InsufficientFundsError - Petty cash spend exceeds the remaining allocation
    ├── LockAcquisitionError - Per-student allocation lock not acquired in time
    └── InvalidStateTransitionError - Workflow transition not allowed

A duplicate event is not an error: posting returns the existing entry with
PostingResult.duplicate set.

Usage:
    from finance.exceptions import InsufficientFundsError

    raise InsufficientFundsError(
        allocation_id=allocation.id,
        required=Decimal("50.00"),
        available=allocation.remaining_amount,
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import ConflictError, NotFoundError

if TYPE_CHECKING:
    from decimal import Decimal
    from typing import Any


class VendorNotFound(NotFoundError):
    """Raised when a vendor cannot be found by id."""

    default_error_code: str = "VENDOR_NOT_FOUND"


class ExpenseNotFound(NotFoundError):
    """Raised when an expense cannot be found."""

    default_error_code: str = "EXPENSE_NOT_FOUND"


class DebtorNotFound(NotFoundError):
    """Raised when a student has no debtor record."""

    default_error_code: str = "DEBTOR_NOT_FOUND"


class AllocationNotFound(NotFoundError):
    """Raised when a petty cash allocation cannot be found."""

    default_error_code: str = "ALLOCATION_NOT_FOUND"


class InsufficientFundsError(ConflictError):
    """
    Raised when a petty cash spend exceeds the remaining allocation.

    The usage is rejected and nothing is posted.

    Attributes:
        allocation_id: Allocation the spend was requested against
        required: Amount requested
        available: Remaining amount at the time of the check
    """

    default_error_code: str = "INSUFFICIENT_FUNDS"

    def __init__(
        self,
        allocation_id: Any,
        required: Decimal,
        available: Decimal,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.allocation_id = allocation_id
        self.required = required
        self.available = available

        full_details = {
            "allocation_id": str(allocation_id),
            "required": str(required),
            "available": str(available),
        }
        if details:
            full_details.update(details)

        super().__init__(
            message=message
            or f"Insufficient petty cash: requested {required}, available {available}",
            details=full_details,
        )


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    Another worker is allocating a payment for the same student; the
    caller may retry later.
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a workflow transition is not allowed from the current state.

    Wraps django-fsm's TransitionNotAllowed, e.g. approving a usage that
    was already rejected or paying an expense twice.
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"
