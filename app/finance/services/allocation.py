"""
Student payment classification and allocation.

Turns a StudentPayment into balanced lines: the cash account is debited for
the whole amount and the credits are split between Accounts Receivable
(1100), Deferred Income (2200) and, for the single-amount fallback,
Rental Income (4000).

Algorithm (per payment):
    1. Debit the payment method's cash account for the full amount.
    2. Admin fee and deposit components credit Accounts Receivable up to
       what is still owed for them (the lease start charge, or the lease
       terms before it is posted). Anything paid beyond that joins the rent.
    3. The declared month fixes the target period. Relative to the current
       period it is an advance (later), current (same) or past-due
       (earlier) payment.
    4. The accrued rent for a period comes from posted rent accruals and
       invoiced rent for the student; without any, from the lease's monthly
       rent (prorated in the lease's first month). Posted accruals always
       win.
    5. Rent already allocated to the period by earlier payments is
       subtracted, giving the remaining need.
    6. Unless the payment is a forced advance, accrued periods before the
       target that are still owed are settled first, oldest first.
    7. min(rent, need) settles the target period.
    8. The excess moves on to the following periods: periods up to the
       current one are settled against the receivable, and whatever is
       left is held as Deferred Income for the first period not settled.
    9. A settling slice credits Accounts Receivable when its period is not
       after the current period, and Deferred Income (tagged with the
       period) otherwise. A payment made before the lease starts, or in a
       month before its target month, is a forced advance: it never
       settles arrears and every slice goes to Deferred Income.
   10. Without a component breakdown the whole amount follows the
       single-amount rules: advance or ambiguous -> Deferred Income,
       past-due -> Accounts Receivable, current -> Accounts Receivable up
       to what the student owes (the rest is held for the next period),
       otherwise Rental Income.

Payments for one student are allocated under a per-student Redis lock, so
two concurrent payments cannot both fill the same period's need.

Usage:
    from finance.services.allocation import PaymentAllocator

    result = PaymentAllocator.allocate(StudentPayment(...))
    result.entry.metadata["rent_allocations"]  # {"2025-09": "110.32"}
"""

from __future__ import annotations

import datetime
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from django.utils import timezone

from core.services import BaseService
from finance.events import StudentPayment
from finance.ledger import chart
from finance.ledger.balances import balances
from finance.ledger.duplicates import find_duplicate
from finance.ledger.models import (
    EntrySource,
    EntryStatus,
    LineEntry,
    TransactionEntry,
    TransactionType,
    money_sum,
)
from finance.ledger.posting import posting_engine
from finance.ledger.resolver import resolver
from finance.ledger.types import ZERO, Line, PostingRequest, PostingResult, to_money
from finance.locks import student_allocation_lock
from finance.periods import Period, parse_period, prorate_rent
from finance.services.debtor_service import DebtorService

if TYPE_CHECKING:
    from finance.models import Debtor

ADVANCE = "advance"
CURRENT = "current"
PAST_DUE = "past_due"

RENT_ACCRUAL_SOURCES = (
    EntrySource.RENTAL_ACCRUAL,
    EntrySource.LEASE_START,
    EntrySource.INVOICE,
)


@dataclass
class RentSlice:
    """Part of a rent payment credited against one period."""

    period: Period
    amount: Decimal
    account_code: str
    is_excess: bool = False


@dataclass
class AllocationPlan:
    """
    Classification and lines of one student payment.

    Attributes:
        target: Period the payment was declared for
        classification: advance, current or past_due
        forced_advance: Paid before the lease or before the target month
        period_was_parsed: False when the declared month was unreadable
        lines: Balanced lines (cash debit first)
        rent_allocations: Rent credited per period label
        fees_settled: Admin fee and deposit credited against the receivable
    """

    payment: StudentPayment
    current: Period
    target: Period
    classification: str
    forced_advance: bool
    period_was_parsed: bool = True
    lines: list[Line] = field(default_factory=list)
    slices: list[RentSlice] = field(default_factory=list)
    rent_allocations: dict[str, Decimal] = field(
        default_factory=lambda: defaultdict(lambda: ZERO)
    )
    fees_settled: dict[str, Decimal] = field(default_factory=dict)

    @property
    def deferred_amount(self) -> Decimal:
        return sum(
            (line.credit for line in self.lines if line.account_code == chart.DEFERRED_INCOME),
            ZERO,
        )

    @property
    def receivable_amount(self) -> Decimal:
        return sum(
            (
                line.credit
                for line in self.lines
                if line.account_code == chart.ACCOUNTS_RECEIVABLE
            ),
            ZERO,
        )

    @property
    def settles_past_periods(self) -> bool:
        return any(
            line.account_code == chart.ACCOUNTS_RECEIVABLE
            and line.period
            and line.period < self.current.label
            for line in self.lines
        )

    @property
    def transaction_type(self) -> str:
        if self.deferred_amount > 0:
            return TransactionType.ADVANCE_PAYMENT
        if self.settles_past_periods:
            return TransactionType.DEBT_SETTLEMENT
        return TransactionType.CURRENT_PAYMENT


class PaymentAllocator(BaseService):
    """
    Classifies student payments and posts their allocation.

    All methods are class methods - no instance state is maintained.
    """

    # -------------------------------------------------------------------------
    # Period figures
    # -------------------------------------------------------------------------

    @staticmethod
    def posted_rent_accrual(student_id, period: Period) -> Decimal:
        """Rent receivable debited for the period by posted accruals."""
        total = LineEntry.objects.filter(
            entry__source__in=RENT_ACCRUAL_SOURCES,
            entry__status=EntryStatus.POSTED,
            entry__metadata__student_id=str(student_id),
            account_code=chart.ACCOUNTS_RECEIVABLE,
            period=period.label,
        ).aggregate(total=money_sum("debit"))["total"]
        return to_money(total)

    @staticmethod
    def contracted_rent(debtor: Debtor, period: Period) -> Decimal:
        """
        Rent the lease implies for the period.

        Zero outside the lease, prorated from the start day in the lease's
        first month, the monthly rent otherwise.
        """
        start = debtor.lease_start_date
        if start is not None:
            start_period = Period.from_date(start)
            if period < start_period:
                return ZERO
            if period == start_period:
                return prorate_rent(debtor.monthly_rent, start)
        end = debtor.lease_end_date
        if end is not None and period > Period.from_date(end):
            return ZERO
        return to_money(debtor.monthly_rent)

    @staticmethod
    def _posted_payments(student_id):
        return TransactionEntry.objects.filter(
            source=EntrySource.PAYMENT,
            status=EntryStatus.POSTED,
            metadata__student_id=str(student_id),
        ).values_list("metadata", flat=True)

    @classmethod
    def rent_paid(cls, student_id, period: Period) -> Decimal:
        """Rent allocated to the period by earlier posted payments."""
        total = ZERO
        for metadata in cls._posted_payments(student_id):
            total += to_money((metadata.get("rent_allocations") or {}).get(period.label))
        return total

    @staticmethod
    def fee_charged(debtor: Debtor, fee: str) -> Decimal:
        """
        Once-off charge for a fee ("admin_fee" or "deposit").

        The amount posted by the lease start accrual; the lease terms until
        that accrual exists.
        """
        charged = (
            TransactionEntry.objects.filter(
                source=EntrySource.LEASE_START,
                status=EntryStatus.POSTED,
                metadata__student_id=str(debtor.student_id),
            )
            .values_list("metadata", flat=True)
            .first()
        )
        if charged is not None:
            return to_money(charged.get(fee))
        return to_money(getattr(debtor, fee))

    @classmethod
    def fee_outstanding(cls, debtor: Debtor, fee: str) -> Decimal:
        """Part of a once-off fee not yet settled by posted payments."""
        paid = ZERO
        for metadata in cls._posted_payments(debtor.student_id):
            paid += to_money((metadata.get("fees_settled") or {}).get(fee))
        return max(cls.fee_charged(debtor, fee) - paid, ZERO)

    @classmethod
    def accrued_rent(cls, debtor: Debtor, period: Period) -> Decimal:
        """Accrued rent for the period; posted accruals win over the lease estimate."""
        posted = cls.posted_rent_accrual(debtor.student_id, period)
        if posted > 0:
            return posted
        return cls.contracted_rent(debtor, period)

    @classmethod
    def remaining_need(cls, debtor: Debtor, period: Period) -> Decimal:
        """Rent still to be paid for the period (never negative)."""
        need = cls.accrued_rent(debtor, period) - cls.rent_paid(debtor.student_id, period)
        return max(need, ZERO)

    @classmethod
    def arrears_before(cls, debtor: Debtor, target: Period) -> list[tuple[Period, Decimal]]:
        """
        Accrued periods before target with rent still owed, oldest first.

        Only periods with a posted accrual count; the lease estimate is
        never treated as arrears.
        """
        labels = (
            LineEntry.objects.filter(
                entry__source__in=RENT_ACCRUAL_SOURCES,
                entry__status=EntryStatus.POSTED,
                entry__metadata__student_id=str(debtor.student_id),
                account_code=chart.ACCOUNTS_RECEIVABLE,
                period__lt=target.label,
            )
            .exclude(period="")
            .values_list("period", flat=True)
            .distinct()
            .order_by("period")
        )
        arrears = []
        for label in labels:
            period = parse_period(label)
            owed = cls.posted_rent_accrual(debtor.student_id, period) - cls.rent_paid(
                debtor.student_id, period
            )
            if owed > 0:
                arrears.append((period, owed))
        return arrears

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    @staticmethod
    def classify(target: Period, current: Period) -> str:
        if target > current:
            return ADVANCE
        if target == current:
            return CURRENT
        return PAST_DUE

    @staticmethod
    def is_forced_advance(
        debtor: Debtor,
        payment_date: datetime.date,
        target: Period,
    ) -> bool:
        """Paid before the lease starts, or in a month before the target month."""
        if debtor.lease_start_date is not None and payment_date < debtor.lease_start_date:
            return True
        return Period.from_date(payment_date) < target

    @staticmethod
    def _slice_account(period: Period, plan: AllocationPlan) -> str:
        if plan.forced_advance or period > plan.current:
            return chart.DEFERRED_INCOME
        return chart.ACCOUNTS_RECEIVABLE

    # -------------------------------------------------------------------------
    # Planning
    # -------------------------------------------------------------------------

    @classmethod
    def plan(
        cls,
        payment: StudentPayment,
        debtor: Debtor,
        today: datetime.date | None = None,
    ) -> AllocationPlan:
        """
        Classify a payment and build its lines without writing anything.

        Args:
            payment: The student payment
            debtor: The student's debtor record
            today: Date fixing the current period (defaults to today)

        Returns:
            AllocationPlan whose lines balance to the payment amount
        """
        today = today or timezone.localdate()
        payment_date = payment.date or today
        current = Period.from_date(today)

        parsed = parse_period(payment.payment_month, payment_date)
        target = parsed or current
        if parsed is None:
            cls.get_logger().warning(
                f"Unparseable payment month {payment.payment_month!r} on "
                f"{payment.payment_id}, using {current.label}",
                extra={
                    "payment_id": payment.payment_id,
                    "payment_month": payment.payment_month,
                },
            )

        plan = AllocationPlan(
            payment=payment,
            current=current,
            target=target,
            classification=cls.classify(target, current),
            forced_advance=cls.is_forced_advance(debtor, payment_date, target),
            period_was_parsed=parsed is not None,
        )

        cash_code = resolver.resolve_payment_account(payment.method)
        plan.lines.append(
            Line.debit_line(
                cash_code,
                payment.amount,
                f"Payment {payment.payment_id} received",
            )
        )

        if payment.components is None:
            cls._plan_single_amount(plan, debtor)
        else:
            cls._plan_components(plan, debtor)
        return plan

    @classmethod
    def _plan_components(cls, plan: AllocationPlan, debtor: Debtor) -> None:
        components = plan.payment.components
        unapplied = ZERO
        for fee, label in (("admin_fee", "Admin fee"), ("deposit", "Deposit")):
            amount = getattr(components, fee)
            if amount <= 0:
                continue
            settled = min(amount, cls.fee_outstanding(debtor, fee))
            if settled > 0:
                plan.fees_settled[fee] = settled
                plan.lines.append(
                    Line.credit_line(chart.ACCOUNTS_RECEIVABLE, settled, f"{label} settled")
                )
            unapplied += amount - settled

        rent = components.rent + unapplied
        if rent > 0:
            cls._allocate_rent(plan, debtor, rent)

    @classmethod
    def _allocate_rent(cls, plan: AllocationPlan, debtor: Debtor, rent: Decimal) -> None:
        remaining = rent

        if not plan.forced_advance:
            for period, owed in cls.arrears_before(debtor, plan.target):
                if remaining <= 0:
                    break
                settled = min(remaining, owed)
                plan.slices.append(RentSlice(period, settled, chart.ACCOUNTS_RECEIVABLE))
                remaining -= settled

        settled = min(remaining, cls.remaining_need(debtor, plan.target))
        if settled > 0:
            plan.slices.append(
                RentSlice(plan.target, settled, cls._slice_account(plan.target, plan))
            )
            remaining -= settled

        following = plan.target.next()
        while remaining > 0 and not plan.forced_advance and following <= plan.current:
            settled = min(remaining, cls.remaining_need(debtor, following))
            if settled > 0:
                plan.slices.append(
                    RentSlice(following, settled, chart.ACCOUNTS_RECEIVABLE, is_excess=True)
                )
                remaining -= settled
            following = following.next()

        if remaining > 0:
            plan.slices.append(
                RentSlice(following, remaining, chart.DEFERRED_INCOME, is_excess=True)
            )

        for rent_slice in plan.slices:
            cls._credit(plan, rent_slice.account_code, rent_slice.amount, rent_slice.period)

    @classmethod
    def _plan_single_amount(cls, plan: AllocationPlan, debtor: Debtor) -> None:
        amount = plan.payment.amount

        if plan.forced_advance or plan.classification == ADVANCE or not plan.period_was_parsed:
            cls._credit(plan, chart.DEFERRED_INCOME, amount, plan.target)
        elif plan.classification == PAST_DUE:
            cls._credit(plan, chart.ACCOUNTS_RECEIVABLE, amount, plan.target)
        else:
            owed = balances.get_student_receivable_balance(debtor.student_id)
            if owed > 0:
                settled = min(amount, owed)
                cls._credit(plan, chart.ACCOUNTS_RECEIVABLE, settled, plan.target)
                if amount > settled:
                    cls._credit(
                        plan, chart.DEFERRED_INCOME, amount - settled, plan.target.next()
                    )
            else:
                cls._credit(plan, chart.RENTAL_INCOME, amount, plan.target)

    @staticmethod
    def _credit(plan: AllocationPlan, code: str, amount: Decimal, period: Period) -> None:
        label = period.label
        if code == chart.DEFERRED_INCOME:
            description = f"Rent received in advance for {label}"
        elif code == chart.RENTAL_INCOME:
            description = f"Rental income for {label}"
        else:
            description = f"Rent settled for {label}"
        plan.rent_allocations[label] += amount
        plan.lines.append(Line.credit_line(code, amount, description, period=label))

    # -------------------------------------------------------------------------
    # Posting
    # -------------------------------------------------------------------------

    @staticmethod
    def _metadata(plan: AllocationPlan, debtor: Debtor) -> dict:
        payment = plan.payment
        components = payment.components
        return {
            "student_id": str(debtor.student_id),
            "debtor_id": str(debtor.id),
            "payment_id": payment.payment_id,
            "payment_month": payment.payment_month,
            "target_period": plan.target.label,
            "classification": plan.classification,
            "forced_advance": plan.forced_advance,
            "amount": str(payment.amount),
            "method": payment.method,
            "components": (
                {
                    "rent": str(components.rent),
                    "admin_fee": str(components.admin_fee),
                    "deposit": str(components.deposit),
                }
                if components is not None
                else None
            ),
            "rent_allocations": {
                label: str(amount) for label, amount in plan.rent_allocations.items()
            },
            "fees_settled": {fee: str(amount) for fee, amount in plan.fees_settled.items()},
            "receivable_settled": str(plan.receivable_amount),
            "deferred": str(plan.deferred_amount),
        }

    @classmethod
    def allocate(
        cls,
        payment: StudentPayment,
        today: datetime.date | None = None,
    ) -> PostingResult:
        """
        Allocate and post a student payment.

        Idempotent per payment_id: a repeated payment returns the first
        posting. The Debtor projection is rebuilt after posting.

        Raises:
            DebtorNotFound: If the student has no debtor record
            LockAcquisitionError: If another allocation for the student
                holds the lock past the timeout
            ValidationError: On invalid lines or a missing residence
        """
        key = f"{EntrySource.PAYMENT}:{payment.payment_id}"
        existing = find_duplicate(EntrySource.PAYMENT, payment.payment_id, key)
        if existing is not None:
            return PostingResult(entry=existing, duplicate=True)

        debtor = DebtorService.get_debtor(payment.student_id)

        with student_allocation_lock(debtor.student_id):
            with cls.atomic():
                plan = cls.plan(payment, debtor, today=today)
                result = posting_engine.post(
                    PostingRequest(
                        source=EntrySource.PAYMENT,
                        source_id=payment.payment_id,
                        idempotency_key=key,
                        lines=plan.lines,
                        residence=payment.residence or debtor.residence_id,
                        date=payment.date,
                        description=(
                            f"Payment {payment.payment_id} for {plan.target.label}"
                        ),
                        transaction_type=plan.transaction_type,
                        reference=payment.payment_id,
                        created_by=payment.created_by,
                        metadata=cls._metadata(plan, debtor),
                    )
                )
                if not result.duplicate:
                    DebtorService.rebuild(debtor)

        cls.get_logger().info(
            f"Allocated payment {payment.payment_id} as {plan.transaction_type}",
            extra={
                "payment_id": payment.payment_id,
                "student_id": str(debtor.student_id),
                "target_period": plan.target.label,
                "receivable_settled": str(plan.receivable_amount),
                "deferred": str(plan.deferred_amount),
            },
        )
        result.subject = debtor
        return result
