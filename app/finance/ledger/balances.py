"""
Balance queries over posted entries.

Balances are never stored in the ledger: every figure here is an aggregate
of the lines of booked entries (posted or reversed; a reversal entry
carries the offsetting lines). Reads are single aggregate queries, so they
see a consistent snapshot while postings are being written. Nothing here
is cached.

Usage:
    from finance.ledger.balances import balances

    balances.get_account_balance("1100")                  # Decimal("350.00")
    balances.get_vendor_payable_balance(vendor.id)        # Decimal("450.00")
    balances.get_student_receivable_balance(student.id)   # Decimal("180.00")

    entries = balances.list_transactions(
        TransactionFilters(date_from=date(2025, 9, 1), basis="cash")
    )
"""

from __future__ import annotations

import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db.models import Q

from . import chart
from .exceptions import AccountNotFound
from .models import BOOKED_STATUSES, Account, LineEntry, TransactionEntry, money_sum
from .types import ZERO, TransactionFilters, TrialBalance, TrialBalanceRow

if TYPE_CHECKING:
    from django.db.models import QuerySet


def _residence_id(residence):
    return getattr(residence, "pk", residence)


def _booked_lines(
    as_of: datetime.date | None = None,
    residence=None,
) -> QuerySet[LineEntry]:
    lines = LineEntry.objects.filter(entry__status__in=BOOKED_STATUSES)
    if as_of is not None:
        lines = lines.filter(entry__date__lte=as_of)
    if residence is not None:
        lines = lines.filter(entry__residence_id=_residence_id(residence))
    return lines


def _debit_minus_credit(lines: QuerySet[LineEntry]) -> Decimal:
    totals = lines.aggregate(debit=money_sum("debit"), credit=money_sum("credit"))
    return (totals["debit"] - totals["credit"]).quantize(Decimal("0.01"))


class BalanceService:
    """
    Read-only queries deriving balances from posted lines.

    All methods are static - no instance state is maintained.
    """

    @staticmethod
    def get_account_balance(
        account_code: str,
        as_of: datetime.date | None = None,
        residence=None,
    ) -> Decimal:
        """
        Balance of an account, signed on its normal side.

        A chart account that has never been used has a zero balance.

        Args:
            account_code: Account code
            as_of: Only include entries dated on or before this date
            residence: Residence instance or id to restrict to

        Returns:
            Decimal balance (positive when the account holds its normal side)

        Raises:
            AccountNotFound: If the code is neither persisted nor in the chart
        """
        account = Account.objects.filter(code=account_code).first()
        if account is None:
            if account_code in chart.STANDARD_ACCOUNTS:
                return ZERO
            raise AccountNotFound(
                f"Account {account_code} not found",
                details={"account_code": account_code},
            )
        return account.get_balance(as_of=as_of, residence_id=_residence_id(residence))

    @staticmethod
    def get_vendor_payable_balance(vendor_id, as_of: datetime.date | None = None) -> Decimal:
        """
        Amount owed to one vendor, from its payable sub-ledger only.

        Raises:
            VendorNotFound: If the vendor does not exist
        """
        from .resolver import resolver

        vendor = resolver.get_vendor(vendor_id)
        if not vendor.chart_of_accounts_code:
            return ZERO
        return BalanceService.get_account_balance(vendor.chart_of_accounts_code, as_of)

    @staticmethod
    def get_student_receivable_balance(
        student_id,
        as_of: datetime.date | None = None,
    ) -> Decimal:
        """
        Accounts Receivable attributable to one student.

        Sums AR lines of entries tagged with the student's id. Positive means
        the student owes money.
        """
        lines = _booked_lines(as_of).filter(
            account_code=chart.ACCOUNTS_RECEIVABLE,
            entry__metadata__student_id=str(student_id),
        )
        return _debit_minus_credit(lines)

    @staticmethod
    def get_deferred_income_held(
        student_id,
        period: str | None = None,
        as_of: datetime.date | None = None,
    ) -> Decimal:
        """
        Advance payments held for a student, optionally for one period.

        Deferred income lines are tagged with the period they were
        received for; per-period totals filter on that tag.
        """
        lines = _booked_lines(as_of).filter(
            account_code=chart.DEFERRED_INCOME,
            entry__metadata__student_id=str(student_id),
        )
        if period:
            lines = lines.filter(period=period)
        return -_debit_minus_credit(lines)

    @staticmethod
    def get_debtor_position(student_id, as_of: datetime.date | None = None) -> Decimal:
        """
        Net position of a student: receivable minus advances held.

        Positive means the student owes money, negative that the property
        holds credit for the student.
        """
        receivable = BalanceService.get_student_receivable_balance(student_id, as_of)
        held = BalanceService.get_deferred_income_held(student_id, as_of=as_of)
        return receivable - held

    @staticmethod
    def get_petty_cash_balance(user, as_of: datetime.date | None = None) -> Decimal:
        """
        Cash held by a petty cash custodian.

        Sums the petty cash account lines of entries tagged with the
        custodian's id.
        """
        custodian_id = str(getattr(user, "pk", user))
        petty_cash_codes = set(chart.PETTY_CASH_ROLE_ACCOUNTS.values()) | {
            chart.PETTY_CASH_GENERAL
        }
        lines = _booked_lines(as_of).filter(
            account_code__in=petty_cash_codes,
            entry__metadata__custodian_id=custodian_id,
        )
        return _debit_minus_credit(lines)

    @staticmethod
    def list_transactions(filters: TransactionFilters | None = None) -> list[TransactionEntry]:
        """
        Entries matching filters, oldest first, with lines prefetched.

        The cash basis keeps only entries with a line on a cash-equivalent
        account; the accrual basis keeps every entry.
        """
        filters = filters or TransactionFilters()
        entries = TransactionEntry.objects.select_related(
            "transaction", "residence"
        ).filter(status__in=filters.statuses)
        if filters.date_from:
            entries = entries.filter(date__gte=filters.date_from)
        if filters.date_to:
            entries = entries.filter(date__lte=filters.date_to)
        if filters.residence is not None:
            entries = entries.filter(residence_id=_residence_id(filters.residence))
        if filters.source:
            entries = entries.filter(source=filters.source)
        if filters.basis == "cash":
            entries = entries.filter(
                Q(lines__account_code__in=chart.CASH_EQUIVALENT_CODES)
            ).distinct()
        return list(
            entries.prefetch_related("lines").order_by("date", "created_at")
        )

    @staticmethod
    def get_trial_balance(
        as_of: datetime.date | None = None,
        residence=None,
    ) -> TrialBalance:
        """
        Debit and credit totals of every account with booked lines.

        The trial balance is balanced whenever every posting is.
        """
        totals = (
            _booked_lines(as_of, residence)
            .values("account_code", "account__name", "account__type")
            .annotate(debit=money_sum("debit"), credit=money_sum("credit"))
            .order_by("account_code")
        )
        return TrialBalance(
            rows=[
                TrialBalanceRow(
                    account_code=row["account_code"],
                    account_name=row["account__name"],
                    account_type=row["account__type"],
                    total_debit=row["debit"],
                    total_credit=row["credit"],
                )
                for row in totals
            ]
        )


# Singleton instance for convenience
# Usage: from finance.ledger.balances import balances
balances = BalanceService()
