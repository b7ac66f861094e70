"""
Base exception classes for application-wide error handling.

This module provides the exception hierarchy shared by every app in the
project. Each error carries a machine-readable code and a details dict so
callers (API layers, Celery tasks, management commands) can react to the
error kind without parsing message text.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input or invariant violations, nothing persisted
    ├── NotFoundError - Referenced record does not exist
    └── ConflictError - State conflicts (locks, transitions, exhausted funds)

Usage:
    from core.exceptions import ValidationError, NotFoundError

    # Raise with message only
    raise ValidationError("Residence is required")

    # Raise with error code and details
    raise NotFoundError(
        "Vendor not found",
        error_code="VENDOR_NOT_FOUND",
        details={"vendor_id": str(vendor_id)},
    )

    # Convert to dict for a response body or task result
    try:
        ...
    except BaseApplicationError as e:
        payload = e.to_dict()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (ids, amounts, field errors)

    Example:
        try:
            accounting.post_event(event)
        except NotFoundError as e:
            logger.warning(f"Lookup failed: {e.error_code}")
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to a serializable dictionary.

        Returns:
            Dict with error, error_code, and details keys

        Example:
            {
                "error": "Entry does not balance",
                "error_code": "UNBALANCED_ENTRY",
                "details": {"total_debit": "100.00", "total_credit": "90.00"}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails or an invariant would be broken.

    Use for:
    - Missing required references (residence, account)
    - Amounts that are negative or do not add up
    - Entries whose debits and credits differ

    Example:
        raise ValidationError(
            "Payment components do not sum to the payment amount",
            error_code="COMPONENT_MISMATCH",
            details={"amount": "300.00", "components": "280.00"},
        )
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """
    Raised when a referenced record is not found.

    Some callers catch this to take a fallback path (general payable
    account, default residence for petty cash); everywhere else it is
    fatal.

    Example:
        residence = Residence.objects.filter(id=residence_id).first()
        if not residence:
            raise NotFoundError(
                f"Residence {residence_id} not found",
                error_code="RESIDENCE_NOT_FOUND",
                details={"residence_id": str(residence_id)},
            )
    """

    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current state.

    Use for:
    - Lock contention
    - Invalid state transitions
    - Spending more than an allocation holds

    Example:
        if usage.status != PettyCashUsageStatus.PENDING:
            raise ConflictError(
                f"Cannot approve usage in {usage.status} status",
                error_code="INVALID_STATE_TRANSITION",
                details={"current_status": usage.status, "action": "approve"},
            )
    """

    default_error_code: str = "CONFLICT"
