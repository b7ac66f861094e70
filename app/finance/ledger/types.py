"""
Data types for ledger operations.

Types:
    to_money: Normalize an amount to a two-place Decimal
    Line: One debit or credit line to be posted
    PostingRequest: Everything the posting engine needs for one event
    PostingResult: The booked (or pre-existing) entry
    TransactionFilters: Filters for listing postings
    TrialBalanceRow / TrialBalance: Per-account totals

Usage:
    from finance.ledger.types import Line, PostingRequest

    request = PostingRequest(
        source=EntrySource.VENDOR_PAYMENT,
        source_id="VP-0042",
        residence=residence,
        lines=[
            Line.debit_line("200001", "450.00", "Settle Acme Plumbing"),
            Line.credit_line("1001", "450.00", "Bank transfer"),
        ],
    )
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from .exceptions import InvalidLineError

if TYPE_CHECKING:
    from .models import TransactionEntry

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """
    Convert value to a Decimal rounded half-up to two places.

    Accepts Decimal, int and numeric strings. Floats are rejected so binary
    rounding never reaches the ledger.

    Raises:
        TypeError: If value is a float
        InvalidLineError: If value is not numeric
    """
    if isinstance(value, float):
        raise TypeError("Monetary amounts must be Decimal, int or str, not float")
    if value is None or value == "":
        return ZERO
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as e:
        raise InvalidLineError(
            f"Invalid amount {value!r}",
            details={"amount": str(value)},
        ) from e
    if not amount.is_finite():
        raise InvalidLineError(
            f"Invalid amount {value!r}",
            details={"amount": str(value)},
        )
    return amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass
class Line:
    """
    One line of a posting.

    Exactly one of debit and credit must be positive.

    Attributes:
        account_code: Code of the account affected
        debit: Debit amount (default 0)
        credit: Credit amount (default 0)
        description: Line narrative
        period: Billing period (YYYY-MM) the line relates to
    """

    account_code: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str = ""
    period: str = ""

    def __post_init__(self) -> None:
        """Normalize amounts and enforce single-sided, positive lines."""
        self.debit = to_money(self.debit)
        self.credit = to_money(self.credit)
        if not self.account_code:
            raise InvalidLineError("Line is missing an account code")
        if self.debit < 0 or self.credit < 0:
            raise InvalidLineError(
                "Line amounts must not be negative",
                details={"account_code": self.account_code},
            )
        if (self.debit > 0) == (self.credit > 0):
            raise InvalidLineError(
                "Line must have exactly one of debit or credit",
                details={
                    "account_code": self.account_code,
                    "debit": str(self.debit),
                    "credit": str(self.credit),
                },
            )

    @classmethod
    def debit_line(
        cls, account_code: str, amount: Any, description: str = "", period: str = ""
    ) -> Line:
        """Build a debit line."""
        return cls(
            account_code=account_code, debit=amount, description=description, period=period
        )

    @classmethod
    def credit_line(
        cls, account_code: str, amount: Any, description: str = "", period: str = ""
    ) -> Line:
        """Build a credit line."""
        return cls(
            account_code=account_code, credit=amount, description=description, period=period
        )

    def mirrored(self) -> Line:
        """The same line with debit and credit swapped."""
        return Line(
            account_code=self.account_code,
            debit=self.credit,
            credit=self.debit,
            description=self.description,
            period=self.period,
        )


@dataclass
class PostingRequest:
    """
    Parameters for posting one business event.

    Required Attributes:
        source: Producing subsystem (EntrySource value)
        source_id: Identifier of the originating business object
        lines: Balanced debit/credit lines

    Optional Attributes:
        residence: Residence instance or id; required unless
            allow_default_residence is set
        date: Economic date (defaults to today)
        description: Header/entry description
        transaction_type: Header classification (TransactionType value)
        reference: Originating business object reference for the header
        created_by: User triggering the posting
        metadata: Free-form JSON context stored on the entry
        idempotency_key: Unique key (defaults to "{source}:{source_id}")
        duplicate_match: Metadata keys/values for the recency-window guard
        allow_default_residence: Fall back to the default residence
            (petty cash only)
        status: Entry status to write (posted by default)
        reversal_of: Entry offset by this posting
    """

    source: str
    source_id: str
    lines: list[Line]
    residence: Any = None
    date: datetime.date | None = None
    description: str = ""
    transaction_type: str = "payment"
    reference: str = ""
    created_by: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)
    idempotency_key: str | None = None
    duplicate_match: dict[str, Any] | None = None
    allow_default_residence: bool = False
    status: str = "posted"
    reversal_of: TransactionEntry | None = None

    def __post_init__(self) -> None:
        """Validate identity fields and derive the idempotency key."""
        if not self.source:
            raise ValueError("source is required")
        if self.source_id is None or str(self.source_id) == "":
            raise ValueError("source_id is required")
        self.source_id = str(self.source_id)
        if not self.idempotency_key:
            self.idempotency_key = f"{self.source}:{self.source_id}"

    @property
    def total_debit(self) -> Decimal:
        """Sum of debit lines."""
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credit(self) -> Decimal:
        """Sum of credit lines."""
        return sum((line.credit for line in self.lines), ZERO)


@dataclass
class PostingResult:
    """
    Outcome of posting an event.

    Attributes:
        entry: The booked entry, or the pre-existing one for a duplicate
        duplicate: True when nothing was written because the event had
            already been posted
        related: All entries produced by the event, for events that post
            more than once (e.g. one accrual per maintenance item)
        subject: Business record created or updated alongside the posting
            (an Expense, a PettyCashAllocation, ...), if any
    """

    entry: TransactionEntry
    duplicate: bool = False
    related: list[TransactionEntry] = field(default_factory=list)
    subject: Any = None

    def __post_init__(self) -> None:
        if not self.related:
            self.related = [self.entry]

    @property
    def transaction(self):
        """Header of the primary entry."""
        return self.entry.transaction


@dataclass
class TransactionFilters:
    """
    Filters for listing postings.

    Attributes:
        date_from / date_to: Inclusive economic date range
        residence: Residence instance or id
        basis: "accrual" (all booked entries) or "cash" (entries touching a
            cash-equivalent account)
        source: Only entries from this source
        statuses: Statuses to include (booked statuses by default)
    """

    date_from: datetime.date | None = None
    date_to: datetime.date | None = None
    residence: Any = None
    basis: str = "accrual"
    source: str | None = None
    statuses: tuple[str, ...] = ("posted", "reversed")

    BASES = ("accrual", "cash")

    def __post_init__(self) -> None:
        if self.basis not in self.BASES:
            raise ValueError(f"basis must be one of {self.BASES}")
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")


@dataclass
class TrialBalanceRow:
    """Debit/credit totals of one account."""

    account_code: str
    account_name: str
    account_type: str
    total_debit: Decimal
    total_credit: Decimal

    @property
    def balance(self) -> Decimal:
        """Debit-positive net of the account."""
        return self.total_debit - self.total_credit


@dataclass
class TrialBalance:
    """All account totals; balanced when debits equal credits overall."""

    rows: list[TrialBalanceRow]

    @property
    def total_debit(self) -> Decimal:
        return sum((row.total_debit for row in self.rows), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((row.total_credit for row in self.rows), ZERO)

    @property
    def balanced(self) -> bool:
        return self.total_debit == self.total_credit
