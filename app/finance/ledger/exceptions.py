"""
Ledger-specific exceptions for posting and balance operations.

Exception Hierarchy:
    ValidationError (core)
    ├── UnbalancedEntryError - Debits and credits differ
    ├── InvalidLineError - A line is negative, empty or two-sided
    ├── MissingResidenceError - Posting without a residence
    ├── InactiveAccount - Posting to a deactivated account
    └── ImmutableEntryError - Attempt to change a posted entry
    NotFoundError (core)
    └── AccountNotFound - Unknown account code

Nothing is persisted when any of these is raised: posting validates
before writing and writes inside one atomic block.

Usage:
    from finance.ledger.exceptions import UnbalancedEntryError, AccountNotFound

    raise AccountNotFound(
        "Account 9999 not found",
        details={"account_code": "9999"},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import NotFoundError, ValidationError

if TYPE_CHECKING:
    from decimal import Decimal
    from typing import Any


class UnbalancedEntryError(ValidationError):
    """
    Raised when the lines of a posting do not balance.

    This always indicates a programming error in the code that built the
    lines; the entry is never written.

    Attributes:
        total_debit: Sum of debit lines
        total_credit: Sum of credit lines
    """

    default_error_code: str = "UNBALANCED_ENTRY"

    def __init__(
        self,
        total_debit: Decimal,
        total_credit: Decimal,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize with the mismatching totals.

        Args:
            total_debit: Sum of debit lines
            total_credit: Sum of credit lines
            error_code: Optional custom error code
            details: Optional additional error context
        """
        self.total_debit = total_debit
        self.total_credit = total_credit

        full_details = {
            "total_debit": str(total_debit),
            "total_credit": str(total_credit),
        }
        if details:
            full_details.update(details)

        super().__init__(
            message=(
                f"Entry does not balance: debits {total_debit}, "
                f"credits {total_credit}"
            ),
            error_code=error_code,
            details=full_details,
        )


class InvalidLineError(ValidationError):
    """Raised when a line has a negative amount, no amount, or both sides set."""

    default_error_code: str = "INVALID_LINE"


class MissingResidenceError(ValidationError):
    """
    Raised when a posting has no residence.

    Only petty-cash operations may fall back to the default residence;
    every other posting must name one.
    """

    default_error_code: str = "RESIDENCE_REQUIRED"


class InactiveAccount(ValidationError):
    """Raised when a posting references a deactivated account."""

    default_error_code: str = "INACTIVE_ACCOUNT"


class ImmutableEntryError(ValidationError):
    """
    Raised when code tries to modify or delete a posted entry.

    Corrections are made by posting an offsetting entry (see
    PostingEngine.reverse).
    """

    default_error_code: str = "IMMUTABLE_ENTRY"


class AccountNotFound(NotFoundError):
    """
    Raised when an account code is neither persisted nor part of the
    standard chart.

    Example:
        raise AccountNotFound(
            f"Account {code} not found",
            details={"account_code": code},
        )
    """

    default_error_code: str = "ACCOUNT_NOT_FOUND"
