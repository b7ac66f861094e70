"""
Business events accepted by the accounting service.

Each event kind is its own dataclass carrying only what its posting needs.
Collaborators build one and hand it to post_event(); callers holding a
plain dict use post_event_payload(kind, payload), which builds the
dataclass through parse_event().

Event kinds:
    MaintenanceApproval         Accrue approved maintenance items
    SupplyPurchaseApproval      Accrue an approved supply purchase
    VendorPayment               Pay a vendor's payable sub-ledger
    ExpensePayment              Pay one accrued expense
    StudentPayment              Allocate a student payment across periods
    InvoiceIssuance             Bill a student
    InvoicePayment              Settle an invoice
    LeaseStartAccrual           Accrue first-month rent, admin fee and deposit
    MonthlyRentAccrual          Accrue one month of rent
    PettyCashAllocationRequest  Fund a custodian
    PettyCashUsageApproval      Approve a spend against an allocation
    PettyCashReplenishment      Top up an allocation

Usage:
    from finance.events import StudentPayment, PaymentComponents

    event = StudentPayment(
        payment_id="PAY-2025-0091",
        student_id=student.id,
        residence=residence.id,
        amount=Decimal("380.00"),
        method="Ecocash",
        date=date(2025, 9, 3),
        payment_month="September 2025",
        components=PaymentComponents(rent="180.00", admin_fee="20.00", deposit="180.00"),
    )
"""

from __future__ import annotations

import dataclasses
import datetime
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, ClassVar

from core.exceptions import ValidationError
from finance.ledger.types import ZERO, to_money


def _optional_money(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return to_money(value)


def _to_date(value: Any) -> datetime.date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        return datetime.date.fromisoformat(str(value)[:10])
    except ValueError as e:
        raise ValidationError(
            f"Invalid date {value!r}",
            error_code="INVALID_DATE",
            details={"date": str(value)},
        ) from e


def _require(value: Any, name: str, kind: str) -> None:
    if value is None or value == "":
        raise ValidationError(
            f"{kind} requires {name}",
            error_code="MISSING_FIELD",
            details={"kind": kind, "field": name},
        )


def _require_positive(amount: Decimal, name: str, kind: str) -> None:
    if amount <= 0:
        raise ValidationError(
            f"{kind} {name} must be positive",
            error_code="INVALID_AMOUNT",
            details={"kind": kind, "field": name, "amount": str(amount)},
        )


@dataclass
class Event:
    """Base class of all events; ``kind`` tags the concrete type."""

    kind: ClassVar[str] = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Event:
        """Build the event from a dict, ignoring unknown keys."""
        names = {f.name for f in dataclasses.fields(cls) if f.init}
        return cls(**{key: value for key, value in payload.items() if key in names})


# =============================================================================
# Maintenance and supplies
# =============================================================================


@dataclass
class Quotation:
    """A supplier quote; the selected one fixes cost and vendor."""

    amount: Decimal
    vendor_id: Any = None
    vendor_name: str = ""
    is_selected: bool = True

    def __post_init__(self) -> None:
        self.amount = to_money(self.amount)


@dataclass
class MaintenanceItem:
    """
    One item of a maintenance request.

    Cost comes from the item's selected quotation when present, otherwise
    from estimated_cost.
    """

    description: str
    estimated_cost: Decimal | None = None
    category: str = ""
    quotations: list[Quotation] = field(default_factory=list)
    paid_immediately: bool = False
    payment_method: str = ""

    def __post_init__(self) -> None:
        self.estimated_cost = _optional_money(self.estimated_cost)
        self.quotations = [
            q if isinstance(q, Quotation) else Quotation(**q) for q in self.quotations
        ]

    @property
    def selected_quotation(self) -> Quotation | None:
        return next((q for q in self.quotations if q.is_selected), None)

    @property
    def cost(self) -> Decimal:
        quotation = self.selected_quotation
        if quotation is not None:
            return quotation.amount
        return self.estimated_cost or ZERO


@dataclass
class MaintenanceApproval(Event):
    """
    A maintenance request approved by finance.

    Items without their own quotation inherit the vendor of the
    request-level selected quotation. A request with no items but a
    selected quotation accrues the quotation as one item.
    """

    kind: ClassVar[str] = "maintenance_approval"

    request_id: str
    residence: Any
    items: list[MaintenanceItem] = field(default_factory=list)
    quotations: list[Quotation] = field(default_factory=list)
    title: str = ""
    request_type: str = "maintenance"
    request_category: str = ""
    date: datetime.date | None = None
    created_by: Any = None

    def __post_init__(self) -> None:
        _require(self.request_id, "request_id", self.kind)
        self.request_id = str(self.request_id)
        self.items = [
            item if isinstance(item, MaintenanceItem) else MaintenanceItem(**item)
            for item in self.items
        ]
        self.quotations = [
            q if isinstance(q, Quotation) else Quotation(**q) for q in self.quotations
        ]
        self.date = _to_date(self.date)

    @property
    def selected_quotation(self) -> Quotation | None:
        return next((q for q in self.quotations if q.is_selected), None)


@dataclass
class SupplyItem:
    """One line of a supply purchase (amount is the line total)."""

    description: str
    amount: Decimal
    category: str = "supplies"

    def __post_init__(self) -> None:
        self.amount = to_money(self.amount)


@dataclass
class SupplyPurchaseApproval(Event):
    """An approved purchase of supplies from one vendor."""

    kind: ClassVar[str] = "supply_purchase_approval"

    purchase_id: str
    residence: Any
    items: list[SupplyItem]
    vendor_id: Any = None
    vendor_name: str = ""
    date: datetime.date | None = None
    created_by: Any = None

    def __post_init__(self) -> None:
        _require(self.purchase_id, "purchase_id", self.kind)
        self.purchase_id = str(self.purchase_id)
        self.items = [
            item if isinstance(item, SupplyItem) else SupplyItem(**item)
            for item in self.items
        ]
        if not self.items:
            raise ValidationError(
                "Supply purchase has no items",
                error_code="MISSING_FIELD",
                details={"kind": self.kind, "field": "items"},
            )
        self.date = _to_date(self.date)


# =============================================================================
# Payables
# =============================================================================


@dataclass
class VendorPayment(Event):
    """Payment of a vendor's outstanding payable."""

    kind: ClassVar[str] = "vendor_payment"

    payment_id: str
    residence: Any
    amount: Decimal
    vendor_id: Any = None
    vendor_name: str = ""
    method: str = ""
    expense_ids: list[str] = field(default_factory=list)
    date: datetime.date | None = None
    created_by: Any = None

    def __post_init__(self) -> None:
        _require(self.payment_id, "payment_id", self.kind)
        self.payment_id = str(self.payment_id)
        self.amount = to_money(self.amount)
        _require_positive(self.amount, "amount", self.kind)
        self.expense_ids = [str(expense_id) for expense_id in self.expense_ids]
        self.date = _to_date(self.date)


@dataclass
class ExpensePayment(Event):
    """Payment of one accrued expense; amount defaults to the expense amount."""

    kind: ClassVar[str] = "expense_payment"

    expense_id: str
    method: str = ""
    amount: Decimal | None = None
    date: datetime.date | None = None
    created_by: Any = None

    def __post_init__(self) -> None:
        _require(self.expense_id, "expense_id", self.kind)
        self.expense_id = str(self.expense_id)
        self.amount = _optional_money(self.amount)
        self.date = _to_date(self.date)


# =============================================================================
# Student receivables
# =============================================================================


@dataclass
class PaymentComponents:
    """Breakdown of a student payment."""

    rent: Decimal = ZERO
    admin_fee: Decimal = ZERO
    deposit: Decimal = ZERO

    def __post_init__(self) -> None:
        self.rent = to_money(self.rent)
        self.admin_fee = to_money(self.admin_fee)
        self.deposit = to_money(self.deposit)
        for name in ("rent", "admin_fee", "deposit"):
            if getattr(self, name) < 0:
                raise ValidationError(
                    f"Payment component {name} must not be negative",
                    error_code="INVALID_AMOUNT",
                    details={"field": name},
                )

    @property
    def total(self) -> Decimal:
        return self.rent + self.admin_fee + self.deposit


@dataclass
class StudentPayment(Event):
    """
    Money received from a student.

    payment_month is the billing period the student declared, in any form
    parse_period() accepts. Without components the whole amount is treated
    as rent by the single-amount rules.
    """

    kind: ClassVar[str] = "student_payment"

    payment_id: str
    student_id: Any
    residence: Any
    amount: Decimal
    method: str = ""
    date: datetime.date | None = None
    payment_month: str = ""
    components: PaymentComponents | None = None
    created_by: Any = None

    def __post_init__(self) -> None:
        _require(self.payment_id, "payment_id", self.kind)
        _require(self.student_id, "student_id", self.kind)
        self.payment_id = str(self.payment_id)
        self.amount = to_money(self.amount)
        _require_positive(self.amount, "amount", self.kind)
        if isinstance(self.components, dict):
            self.components = PaymentComponents(**self.components)
        if self.components is not None and self.components.total != self.amount:
            raise ValidationError(
                "Payment components do not add up to the payment amount",
                error_code="COMPONENT_MISMATCH",
                details={
                    "payment_id": self.payment_id,
                    "amount": str(self.amount),
                    "components_total": str(self.components.total),
                },
            )
        self.date = _to_date(self.date)


@dataclass
class InvoiceLine:
    """One charge on an invoice; kind is rent, admin_fee, deposit or other."""

    description: str
    amount: Decimal
    kind: str = "rent"
    period: str = ""

    KINDS: ClassVar[tuple[str, ...]] = ("rent", "admin_fee", "deposit", "other")

    def __post_init__(self) -> None:
        self.amount = to_money(self.amount)
        if self.kind not in self.KINDS:
            raise ValidationError(
                f"Unknown invoice line kind {self.kind!r}",
                error_code="INVALID_INVOICE_LINE",
                details={"kind": self.kind},
            )


@dataclass
class InvoiceIssuance(Event):
    """An invoice billed to a student."""

    kind: ClassVar[str] = "invoice_issuance"

    invoice_id: str
    student_id: Any
    residence: Any
    lines: list[InvoiceLine]
    date: datetime.date | None = None
    created_by: Any = None

    def __post_init__(self) -> None:
        _require(self.invoice_id, "invoice_id", self.kind)
        _require(self.student_id, "student_id", self.kind)
        self.invoice_id = str(self.invoice_id)
        self.lines = [
            line if isinstance(line, InvoiceLine) else InvoiceLine(**line)
            for line in self.lines
        ]
        if not self.lines:
            raise ValidationError(
                "Invoice has no lines",
                error_code="MISSING_FIELD",
                details={"kind": self.kind, "field": "lines"},
            )
        self.date = _to_date(self.date)

    @property
    def total(self) -> Decimal:
        return sum((line.amount for line in self.lines), ZERO)


@dataclass
class InvoicePayment(Event):
    """Money received against an invoice."""

    kind: ClassVar[str] = "invoice_payment"

    payment_id: str
    invoice_id: str
    student_id: Any
    residence: Any
    amount: Decimal
    method: str = ""
    date: datetime.date | None = None
    created_by: Any = None

    def __post_init__(self) -> None:
        _require(self.payment_id, "payment_id", self.kind)
        _require(self.student_id, "student_id", self.kind)
        self.payment_id = str(self.payment_id)
        self.invoice_id = str(self.invoice_id)
        self.amount = to_money(self.amount)
        _require_positive(self.amount, "amount", self.kind)
        self.date = _to_date(self.date)


@dataclass
class LeaseStartAccrual(Event):
    """
    Lease inception: first-month rent (prorated), admin fee and deposit.

    prorated_rent overrides the computed first-month rent.
    """

    kind: ClassVar[str] = "lease_start_accrual"

    student_id: Any
    prorated_rent: Decimal | None = None
    date: datetime.date | None = None
    created_by: Any = None

    def __post_init__(self) -> None:
        _require(self.student_id, "student_id", self.kind)
        self.prorated_rent = _optional_money(self.prorated_rent)
        self.date = _to_date(self.date)


@dataclass
class MonthlyRentAccrual(Event):
    """One month of rent for one student; amount defaults to monthly_rent."""

    kind: ClassVar[str] = "monthly_rent_accrual"

    student_id: Any
    period: str
    amount: Decimal | None = None
    date: datetime.date | None = None
    created_by: Any = None

    def __post_init__(self) -> None:
        _require(self.student_id, "student_id", self.kind)
        _require(self.period, "period", self.kind)
        self.amount = _optional_money(self.amount)
        self.date = _to_date(self.date)


# =============================================================================
# Petty cash
# =============================================================================


@dataclass
class PettyCashAllocationRequest(Event):
    """Fund a custodian's petty cash from a bank or cash account."""

    kind: ClassVar[str] = "petty_cash_allocation"

    request_id: str
    user: Any
    amount: Decimal
    method: str = "Cash"
    residence: Any = None
    date: datetime.date | None = None
    notes: str = ""
    created_by: Any = None

    def __post_init__(self) -> None:
        _require(self.request_id, "request_id", self.kind)
        _require(self.user, "user", self.kind)
        self.request_id = str(self.request_id)
        self.amount = to_money(self.amount)
        _require_positive(self.amount, "amount", self.kind)
        self.date = _to_date(self.date)


@dataclass
class PettyCashUsageApproval(Event):
    """Approve a pending spend against an allocation."""

    kind: ClassVar[str] = "petty_cash_usage_approval"

    usage_id: Any
    approved_by: Any = None
    residence: Any = None
    date: datetime.date | None = None

    def __post_init__(self) -> None:
        _require(self.usage_id, "usage_id", self.kind)
        self.date = _to_date(self.date)


@dataclass
class PettyCashReplenishment(Event):
    """Top up an existing allocation."""

    kind: ClassVar[str] = "petty_cash_replenishment"

    replenishment_id: str
    allocation_id: Any
    amount: Decimal
    method: str = "Cash"
    date: datetime.date | None = None
    created_by: Any = None

    def __post_init__(self) -> None:
        _require(self.replenishment_id, "replenishment_id", self.kind)
        _require(self.allocation_id, "allocation_id", self.kind)
        self.replenishment_id = str(self.replenishment_id)
        self.amount = to_money(self.amount)
        _require_positive(self.amount, "amount", self.kind)
        self.date = _to_date(self.date)


EVENT_TYPES: dict[str, type[Event]] = {
    event_type.kind: event_type
    for event_type in (
        MaintenanceApproval,
        SupplyPurchaseApproval,
        VendorPayment,
        ExpensePayment,
        StudentPayment,
        InvoiceIssuance,
        InvoicePayment,
        LeaseStartAccrual,
        MonthlyRentAccrual,
        PettyCashAllocationRequest,
        PettyCashUsageApproval,
        PettyCashReplenishment,
    )
}


def parse_event(kind: str, payload: dict[str, Any]) -> Event:
    """
    Build the event dataclass for kind from a plain dict.

    Raises:
        ValidationError: If kind is unknown or a required field is missing
    """
    event_type = EVENT_TYPES.get(kind)
    if event_type is None:
        raise ValidationError(
            f"Unknown event kind {kind!r}",
            error_code="UNKNOWN_EVENT",
            details={"kind": kind, "known": sorted(EVENT_TYPES)},
        )
    try:
        return event_type.from_payload(payload)
    except TypeError as e:
        raise ValidationError(
            f"Invalid {kind} payload: {e}",
            error_code="INVALID_PAYLOAD",
            details={"kind": kind},
        ) from e
