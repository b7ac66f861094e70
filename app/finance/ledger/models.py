"""
Ledger models for double-entry bookkeeping.

This module defines the persisted ledger:
- Account: An entry in the chart of accounts
- Transaction: Header describing one business event
- TransactionEntry: The posting for that event (totals, source, status)
- LineEntry: One debit or credit line of a posting

Every posting debits and credits accounts by equal totals. Balances are
never stored: they are derived by aggregating the lines of booked entries.

Usage:
    from finance.ledger.models import Account, TransactionEntry

    receivable = Account.objects.get(code="1100")
    balance = receivable.get_balance()  # Decimal, normal-side signed

    entry = TransactionEntry.objects.get(idempotency_key="payment:PAY-001")
    for line in entry.lines.all():
        print(line.account_code, line.debit, line.credit)
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models
from django.db.models import F, Q, Sum, Value
from django.db.models.functions import Coalesce

from core.exceptions import ValidationError
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from . import chart
from .exceptions import ImmutableEntryError

if TYPE_CHECKING:
    import datetime

MONEY_MAX_DIGITS = 14
MONEY_DECIMAL_PLACES = 2
ZERO = Decimal("0.00")


def money_field(**kwargs) -> models.DecimalField:
    """DecimalField configured for monetary amounts."""
    kwargs.setdefault("max_digits", MONEY_MAX_DIGITS)
    kwargs.setdefault("decimal_places", MONEY_DECIMAL_PLACES)
    return models.DecimalField(**kwargs)


def money_sum(field_name: str) -> Coalesce:
    output = models.DecimalField(
        max_digits=MONEY_MAX_DIGITS + 4, decimal_places=MONEY_DECIMAL_PLACES
    )
    return Coalesce(Sum(field_name), Value(ZERO), output_field=output)


# =============================================================================
# Choices
# =============================================================================


class AccountType(models.TextChoices):
    """
    Account classes of the chart.

    Asset and Expense balances grow on the debit side; Liability, Equity
    and Income balances grow on the credit side.
    """

    ASSET = chart.ASSET, "Asset"
    LIABILITY = chart.LIABILITY, "Liability"
    EQUITY = chart.EQUITY, "Equity"
    INCOME = chart.INCOME, "Income"
    EXPENSE = chart.EXPENSE, "Expense"


class EntryStatus(models.TextChoices):
    """
    Lifecycle of a TransactionEntry.

    Values:
        DRAFT: Built but not booked; excluded from balances
        POSTED: Booked; immutable
        REVERSED: Booked and later offset by a reversal entry
    """

    DRAFT = "draft", "Draft"
    POSTED = "posted", "Posted"
    REVERSED = "reversed", "Reversed"


# Statuses whose lines count toward balances. A reversed entry still counts:
# its reversal entry carries the offsetting lines.
BOOKED_STATUSES = (EntryStatus.POSTED, EntryStatus.REVERSED)


class EntrySource(models.TextChoices):
    """Subsystem that produced an entry."""

    EXPENSE_ACCRUAL = "expense_accrual", "Expense Accrual"
    EXPENSE_PAYMENT = "expense_payment", "Expense Payment"
    SUPPLY_PURCHASE = "supply_purchase", "Supply Purchase"
    VENDOR_PAYMENT = "vendor_payment", "Vendor Payment"
    PAYMENT = "payment", "Student Payment"
    INVOICE = "invoice", "Invoice"
    INVOICE_PAYMENT = "invoice_payment", "Invoice Payment"
    LEASE_START = "lease_start", "Lease Start Accrual"
    RENTAL_ACCRUAL = "rental_accrual", "Monthly Rent Accrual"
    DEFERRED_INCOME_RELEASE = "deferred_income_release", "Deferred Income Release"
    PETTY_CASH_ALLOCATION = "petty_cash_allocation", "Petty Cash Allocation"
    PETTY_CASH_EXPENSE = "petty_cash_expense", "Petty Cash Expense"
    PETTY_CASH_REPLENISHMENT = "petty_cash_replenishment", "Petty Cash Replenishment"
    REVERSAL = "reversal", "Reversal"
    MANUAL = "manual", "Manual"


class TransactionType(models.TextChoices):
    """Business classification of a transaction header."""

    APPROVAL = "approval", "Approval"
    PAYMENT = "payment", "Payment"
    ADVANCE_PAYMENT = "advance_payment", "Advance Payment"
    DEBT_SETTLEMENT = "debt_settlement", "Debt Settlement"
    CURRENT_PAYMENT = "current_payment", "Current Payment"
    ACCRUAL = "accrual", "Accrual"
    INVOICE = "invoice", "Invoice"
    VENDOR_PAYMENT = "vendor_payment", "Vendor Payment"
    SUPPLY_PURCHASE = "supply_purchase", "Supply Purchase"
    PETTY_CASH_ALLOCATION = "petty_cash_allocation", "Petty Cash Allocation"
    PETTY_CASH_EXPENSE = "petty_cash_expense", "Petty Cash Expense"
    PETTY_CASH_REPLENISHMENT = "petty_cash_replenishment", "Petty Cash Replenishment"
    REVERSAL = "reversal", "Reversal"
    ADJUSTMENT = "adjustment", "Adjustment"


# =============================================================================
# Account
# =============================================================================


class Account(UUIDPrimaryKeyMixin, BaseModel):
    """
    An account of the chart.

    Accounts are created lazily by the resolver (standard chart entries and
    vendor sub-ledgers) and are never deleted, only deactivated. The type
    cannot change once any line references the account.

    Fields:
        code: Unique, stable identifier (e.g. "1100", "200001")
        name: Display name
        type: Asset, Liability, Equity, Income or Expense
        category: Grouping label (e.g. "Current Assets")
        description: Optional longer description
        parent_code: Optional parent account code (vendor accounts -> 2000)
        is_active: Inactive accounts reject new postings

    Example:
        ar = Account.objects.get(code="1100")
        ar.get_balance()  # Decimal('350.00')
    """

    code = models.CharField(
        max_length=20,
        unique=True,
        help_text="Unique account code",
    )
    name = models.CharField(
        max_length=200,
        help_text="Account display name",
    )
    type = models.CharField(
        max_length=20,
        choices=AccountType.choices,
        help_text="Account class; fixed once lines reference the account",
    )
    category = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Grouping label",
    )
    description = models.TextField(
        blank=True,
        default="",
        help_text="Longer description of what the account holds",
    )
    parent_code = models.CharField(
        max_length=20,
        null=True,
        blank=True,
        db_index=True,
        help_text="Code of the parent account, if any",
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether this account accepts new postings",
    )

    class Meta:
        ordering = ["code"]
        indexes = [
            models.Index(fields=["type", "code"], name="account_type_code_idx"),
        ]

    def __str__(self) -> str:
        """Return string representation."""
        return f"{self.code} - {self.name}"

    def save(self, *args, **kwargs):
        """Refuse to change the type of an account that has lines."""
        if not self._state.adding:
            previous_type = (
                Account.objects.filter(pk=self.pk)
                .values_list("type", flat=True)
                .first()
            )
            if (
                previous_type is not None
                and previous_type != self.type
                and self.lines.exists()
            ):
                raise ValidationError(
                    f"Account {self.code} type cannot change once postings reference it",
                    error_code="ACCOUNT_TYPE_LOCKED",
                    details={
                        "account_code": self.code,
                        "current_type": previous_type,
                        "requested_type": self.type,
                    },
                )
        super().save(*args, **kwargs)

    @property
    def is_debit_normal(self) -> bool:
        """Whether the balance of this account grows with debits."""
        return self.type in chart.DEBIT_NORMAL_TYPES

    def get_totals(
        self,
        as_of: datetime.date | None = None,
        residence_id=None,
    ) -> tuple[Decimal, Decimal]:
        """
        Sum debits and credits of booked lines on this account.

        Args:
            as_of: Only include entries dated on or before this date
            residence_id: Only include entries of this residence

        Returns:
            (total_debit, total_credit)
        """
        lines = self.lines.filter(entry__status__in=BOOKED_STATUSES)
        if as_of is not None:
            lines = lines.filter(entry__date__lte=as_of)
        if residence_id is not None:
            lines = lines.filter(entry__residence_id=residence_id)
        totals = lines.aggregate(debit=money_sum("debit"), credit=money_sum("credit"))
        return totals["debit"], totals["credit"]

    def get_balance(
        self,
        as_of: datetime.date | None = None,
        residence_id=None,
    ) -> Decimal:
        """
        Compute the balance from booked lines.

        The sign follows the account's normal side: a positive balance on an
        asset means debits exceed credits, on a liability that credits
        exceed debits.

        Returns:
            Balance rounded to two decimal places
        """
        debit, credit = self.get_totals(as_of=as_of, residence_id=residence_id)
        balance = debit - credit if self.is_debit_normal else credit - debit
        return balance.quantize(Decimal("0.01"))


# =============================================================================
# Transaction header
# =============================================================================


class Transaction(UUIDPrimaryKeyMixin, BaseModel):
    """
    Header for one business event.

    Owns exactly one TransactionEntry (``transaction.entry``). Header and
    entry are always written in the same database transaction.

    Fields:
        transaction_id: Human-readable reference (e.g. TXN20250901A1B2C3)
        date: Economic date of the event (not the creation time)
        description: What happened
        type: Business classification (payment, advance_payment, ...)
        reference: Identifier of the originating business object
        residence: Property the event belongs to (required)
        created_by: User who triggered the event, if known
    """

    transaction_id = models.CharField(
        max_length=40,
        unique=True,
        help_text="Human-readable transaction reference",
    )
    date = models.DateField(
        db_index=True,
        help_text="Economic date of the event",
    )
    description = models.TextField(
        blank=True,
        default="",
        help_text="Description of the business event",
    )
    type = models.CharField(
        max_length=40,
        choices=TransactionType.choices,
        db_index=True,
        help_text="Business classification of the event",
    )
    reference = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Identifier of the originating business object",
    )
    residence = models.ForeignKey(
        "properties.Residence",
        on_delete=models.PROTECT,
        related_name="transactions",
        help_text="Residence the event is attributed to",
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="User who triggered the event",
    )

    class Meta:
        ordering = ["-date", "-created_at"]

    def __str__(self) -> str:
        """Return string representation."""
        return f"{self.transaction_id} ({self.get_type_display()})"


# =============================================================================
# Transaction entry
# =============================================================================


class TransactionEntry(UUIDPrimaryKeyMixin, BaseModel):
    """
    The balanced posting for one Transaction.

    Entries are immutable once posted. The only permitted changes are the
    status flips draft -> posted and posted -> reversed; corrections are
    made by posting an offsetting entry.

    Fields:
        transaction: Owning header (one-to-one)
        date: Economic date (copied from the header for querying)
        description: What was posted
        residence: Property (copied from the header for querying)
        total_debit / total_credit: Always equal, and equal to line sums
        source: Producing subsystem (expense_accrual, payment, ...)
        source_id: Identifier of the originating business object
        status: draft, posted or reversed
        metadata: Free-form context (period, student id, settlement info)
        idempotency_key: Unique key; a second post with the same key
            returns this entry instead of writing again
        reversal_of: For reversal entries, the entry being offset
        created_by: User who triggered the posting

    Constraints:
        - total_debit == total_credit
        - idempotency_key unique
    """

    transaction = models.OneToOneField(
        Transaction,
        on_delete=models.PROTECT,
        related_name="entry",
        help_text="Owning transaction header",
    )
    date = models.DateField(
        db_index=True,
        help_text="Economic date of the posting",
    )
    description = models.TextField(
        blank=True,
        default="",
        help_text="Description of the posting",
    )
    residence = models.ForeignKey(
        "properties.Residence",
        on_delete=models.PROTECT,
        related_name="transaction_entries",
        help_text="Residence the posting is attributed to",
    )
    total_debit = money_field(help_text="Sum of debit lines")
    total_credit = money_field(help_text="Sum of credit lines")
    source = models.CharField(
        max_length=40,
        choices=EntrySource.choices,
        help_text="Subsystem that produced this posting",
    )
    source_id = models.CharField(
        max_length=255,
        help_text="Identifier of the originating business object",
    )
    status = models.CharField(
        max_length=20,
        choices=EntryStatus.choices,
        default=EntryStatus.POSTED,
        db_index=True,
        help_text="draft, posted or reversed",
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Context such as billing period, student id, settlement details",
    )
    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Unique key to prevent duplicate postings",
    )
    reversal_of = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="reversals",
        help_text="Entry offset by this reversal",
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="User who triggered the posting",
    )

    ALLOWED_STATUS_CHANGES = frozenset(
        {
            (EntryStatus.DRAFT, EntryStatus.POSTED),
            (EntryStatus.POSTED, EntryStatus.REVERSED),
        }
    )

    class Meta:
        ordering = ["-date", "-created_at"]
        verbose_name_plural = "transaction entries"
        indexes = [
            models.Index(fields=["source", "source_id"], name="entry_source_idx"),
            models.Index(fields=["residence", "date"], name="entry_residence_date_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(total_debit=F("total_credit")),
                name="transaction_entry_balanced",
            ),
            models.CheckConstraint(
                condition=Q(total_debit__gte=0),
                name="transaction_entry_total_non_negative",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation."""
        return f"{self.get_source_display()} {self.source_id}: {self.total_debit}"

    def save(self, *args, **kwargs):
        """
        Save, enforcing immutability of persisted entries.

        A persisted entry can only be saved with
        ``update_fields=["status", "updated_at"]`` and only for an allowed
        status change.

        Raises:
            ImmutableEntryError: On any other modification
        """
        if not self._state.adding:
            update_fields = kwargs.get("update_fields")
            if update_fields is None or not set(update_fields) <= {"status", "updated_at"}:
                raise ImmutableEntryError(
                    f"Entry {self.id} is immutable; post an offsetting entry instead",
                    details={"entry_id": str(self.id)},
                )
            previous = (
                TransactionEntry.objects.filter(pk=self.pk)
                .values_list("status", flat=True)
                .first()
            )
            if (
                previous != self.status
                and (previous, self.status) not in self.ALLOWED_STATUS_CHANGES
            ):
                raise ImmutableEntryError(
                    f"Entry {self.id} cannot move from {previous} to {self.status}",
                    details={
                        "entry_id": str(self.id),
                        "current_status": previous,
                        "requested_status": self.status,
                    },
                )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        """Refuse to delete booked entries."""
        if self.status in BOOKED_STATUSES:
            raise ImmutableEntryError(
                f"Entry {self.id} is booked and cannot be deleted",
                details={"entry_id": str(self.id), "status": self.status},
            )
        return super().delete(*args, **kwargs)

    @property
    def is_balanced(self) -> bool:
        """
        Check totals against each other and against the lines.

        Returns:
            True when total_debit == total_credit == sum(debits) == sum(credits)
        """
        debit = sum((line.debit for line in self.lines.all()), ZERO)
        credit = sum((line.credit for line in self.lines.all()), ZERO)
        return self.total_debit == self.total_credit == debit == credit

    def lines_for(self, account_code: str) -> list[LineEntry]:
        """Lines of this entry that touch account_code."""
        return [line for line in self.lines.all() if line.account_code == account_code]


class LineEntry(UUIDPrimaryKeyMixin, models.Model):
    """
    One debit or credit line of a TransactionEntry.

    Exactly one of debit/credit is positive; the other is zero.

    Fields:
        entry: Owning posting
        position: Order of the line within the posting
        account: Account affected
        account_code / account_type: Copies of the account's code and type
            at posting time
        debit / credit: Amounts (non-negative, one side only)
        description: Line narrative
        period: Billing period tag for rent, receivable and deferred income lines
    """

    entry = models.ForeignKey(
        TransactionEntry,
        on_delete=models.CASCADE,
        related_name="lines",
        help_text="Posting this line belongs to",
    )
    position = models.PositiveIntegerField(
        default=0,
        help_text="Order of the line within the posting",
    )
    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="lines",
        help_text="Account affected by this line",
    )
    account_code = models.CharField(
        max_length=20,
        db_index=True,
        help_text="Account code at posting time",
    )
    account_type = models.CharField(
        max_length=20,
        choices=AccountType.choices,
        help_text="Account type at posting time",
    )
    debit = money_field(default=ZERO, help_text="Debit amount")
    credit = money_field(default=ZERO, help_text="Credit amount")
    description = models.CharField(
        max_length=500,
        blank=True,
        default="",
        help_text="Line narrative",
    )
    period = models.CharField(
        max_length=7,
        blank=True,
        default="",
        db_index=True,
        help_text="Billing period (YYYY-MM) the line relates to, if any",
    )

    class Meta:
        ordering = ["entry", "position"]
        constraints = [
            models.CheckConstraint(
                condition=Q(debit__gte=0) & Q(credit__gte=0),
                name="line_entry_amounts_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(debit=0) | Q(credit=0),
                name="line_entry_single_sided",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation."""
        side = f"Dr {self.debit}" if self.debit else f"Cr {self.credit}"
        return f"{self.account_code} {side}"

    @property
    def amount(self) -> Decimal:
        """The non-zero side of the line."""
        return self.debit or self.credit
