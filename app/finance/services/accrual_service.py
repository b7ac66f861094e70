"""
Rent accruals and deferred income release.

Receivables are recognized in two steps:

    LeaseStartAccrual   first-month rent (prorated), admin fee and deposit
                        Dr 1100  / Cr 4000, 4100, 2020
    MonthlyRentAccrual  one month of rent
                        Dr 1100  / Cr 4000

Once a period has been accrued, money held for it in Deferred Income is
released against the receivable:

    Dr 2200 [period] / Cr 1100 [period]

Every posting is tagged with the student's id and the period, and keyed so
that accruing the same student and period twice is a no-op.

Usage:
    from finance.services.accrual_service import AccrualService

    AccrualService.accrue_lease_start(LeaseStartAccrual(student_id=student.id))
    AccrualService.accrue_rent(MonthlyRentAccrual(student_id=student.id, period="2025-10"))
    AccrualService.accrue_month("2025-10")  # every active lease
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ValidationError
from core.services import BaseService
from finance.events import LeaseStartAccrual, MonthlyRentAccrual
from finance.ledger import chart
from finance.ledger.balances import balances
from finance.ledger.models import EntrySource, TransactionType
from finance.ledger.posting import posting_engine
from finance.ledger.types import Line, PostingRequest, PostingResult, to_money
from finance.models import Debtor
from finance.periods import Period, parse_period, prorate_rent
from finance.services.debtor_service import DebtorService

if TYPE_CHECKING:
    from django.db.models import QuerySet


def _debtor_metadata(debtor: Debtor, period: Period, **extra) -> dict:
    return {
        "student_id": str(debtor.student_id),
        "debtor_id": str(debtor.id),
        "period": period.label,
        **{key: str(value) for key, value in extra.items()},
    }


class AccrualService(BaseService):
    """
    Posts rent accruals and deferred income releases.

    All methods are class methods - no instance state is maintained.
    """

    @classmethod
    def accrue_lease_start(cls, event: LeaseStartAccrual) -> PostingResult:
        """
        Recognize the charges due at lease inception.

        Posts first-month rent (prorated from the start day unless
        prorated_rent is given), the admin fee and the deposit against
        Accounts Receivable, then releases any advance already held for the
        first month.

        Raises:
            DebtorNotFound: If the student has no debtor record
            ValidationError: If the lease has no start date
        """
        debtor = DebtorService.get_debtor(event.student_id)
        start = debtor.lease_start_date
        if start is None:
            raise ValidationError(
                f"Debtor {debtor.debtor_code} has no lease start date",
                error_code="LEASE_NOT_STARTED",
                details={"debtor_id": str(debtor.id)},
            )
        period = Period.from_date(start)
        if event.prorated_rent is not None:
            rent = event.prorated_rent
        else:
            rent = prorate_rent(debtor.monthly_rent, start)
        admin_fee = to_money(debtor.admin_fee)
        deposit = to_money(debtor.deposit)

        lines: list[Line] = []
        if rent > 0:
            lines += [
                Line.debit_line(
                    chart.ACCOUNTS_RECEIVABLE,
                    rent,
                    f"Rent due for {period.label}",
                    period=period.label,
                ),
                Line.credit_line(
                    chart.RENTAL_INCOME,
                    rent,
                    f"Rental income for {period.label}",
                    period=period.label,
                ),
            ]
        if admin_fee > 0:
            lines += [
                Line.debit_line(chart.ACCOUNTS_RECEIVABLE, admin_fee, "Admin fee due"),
                Line.credit_line(chart.ADMIN_FEE_INCOME, admin_fee, "Admin fee income"),
            ]
        if deposit > 0:
            lines += [
                Line.debit_line(chart.ACCOUNTS_RECEIVABLE, deposit, "Deposit due"),
                Line.credit_line(chart.TENANT_DEPOSITS_HELD, deposit, "Deposit held"),
            ]

        with cls.atomic():
            result = posting_engine.post(
                PostingRequest(
                    source=EntrySource.LEASE_START,
                    source_id=str(debtor.id),
                    idempotency_key=f"{EntrySource.LEASE_START}:{debtor.id}",
                    lines=lines,
                    residence=debtor.residence_id,
                    date=event.date or start,
                    description=f"Lease start charges for {debtor.debtor_code}",
                    transaction_type=TransactionType.ACCRUAL,
                    reference=debtor.debtor_code,
                    created_by=event.created_by,
                    metadata=_debtor_metadata(
                        debtor, period, rent=rent, admin_fee=admin_fee, deposit=deposit
                    ),
                )
            )
            release = cls.release_deferred_income(debtor, period, created_by=event.created_by)
            if release is not None:
                result.related.append(release.entry)
            DebtorService.rebuild(debtor)

        if not result.duplicate:
            cls.get_logger().info(
                f"Accrued lease start charges for {debtor.debtor_code}",
                extra={
                    "debtor_id": str(debtor.id),
                    "period": period.label,
                    "rent": str(rent),
                    "admin_fee": str(admin_fee),
                    "deposit": str(deposit),
                },
            )
        result.subject = debtor
        return result

    @classmethod
    def accrue_rent(cls, event: MonthlyRentAccrual) -> PostingResult:
        """
        Recognize one month of rent for one student.

        The lease's first month is charged by the lease start accrual, so a
        monthly accrual for that month delegates to it.

        Raises:
            DebtorNotFound: If the student has no debtor record
            ValidationError: If the period is unreadable, outside the
                lease, or the amount is not positive
        """
        period = parse_period(event.period)
        if period is None:
            raise ValidationError(
                f"Invalid period {event.period!r}",
                error_code="INVALID_PERIOD",
                details={"period": str(event.period)},
            )
        debtor = DebtorService.get_debtor(event.student_id)

        if debtor.lease_start_date and period == Period.from_date(debtor.lease_start_date):
            return cls.accrue_lease_start(
                LeaseStartAccrual(
                    student_id=debtor.student_id,
                    prorated_rent=event.amount,
                    date=event.date,
                    created_by=event.created_by,
                )
            )

        if not debtor.has_lease_covering(period.start, period.end):
            raise ValidationError(
                f"Debtor {debtor.debtor_code} has no lease covering {period.label}",
                error_code="NO_LEASE_FOR_PERIOD",
                details={"debtor_id": str(debtor.id), "period": period.label},
            )

        amount = event.amount if event.amount is not None else to_money(debtor.monthly_rent)
        if amount <= 0:
            raise ValidationError(
                f"Rent for {period.label} must be positive",
                error_code="INVALID_AMOUNT",
                details={"debtor_id": str(debtor.id), "amount": str(amount)},
            )

        with cls.atomic():
            result = posting_engine.post(
                PostingRequest(
                    source=EntrySource.RENTAL_ACCRUAL,
                    source_id=f"{debtor.id}:{period.label}",
                    idempotency_key=(
                        f"{EntrySource.RENTAL_ACCRUAL}:{debtor.id}:{period.label}"
                    ),
                    lines=[
                        Line.debit_line(
                            chart.ACCOUNTS_RECEIVABLE,
                            amount,
                            f"Rent due for {period.label}",
                            period=period.label,
                        ),
                        Line.credit_line(
                            chart.RENTAL_INCOME,
                            amount,
                            f"Rental income for {period.label}",
                            period=period.label,
                        ),
                    ],
                    residence=debtor.residence_id,
                    date=event.date or period.start,
                    description=f"Rent for {period.label} ({debtor.debtor_code})",
                    transaction_type=TransactionType.ACCRUAL,
                    reference=debtor.debtor_code,
                    created_by=event.created_by,
                    metadata=_debtor_metadata(debtor, period, amount=amount),
                )
            )
            release = cls.release_deferred_income(debtor, period, created_by=event.created_by)
            if release is not None:
                result.related.append(release.entry)
            DebtorService.rebuild(debtor)

        result.subject = debtor
        return result

    @classmethod
    def release_deferred_income(
        cls,
        debtor: Debtor,
        period: Period,
        created_by=None,
    ) -> PostingResult | None:
        """
        Apply advances held for an accrued period to its receivable.

        Returns:
            The release posting, or None when nothing is held
        """
        held = balances.get_deferred_income_held(debtor.student_id, period.label)
        if held <= 0:
            return None

        result = posting_engine.post(
            PostingRequest(
                source=EntrySource.DEFERRED_INCOME_RELEASE,
                source_id=f"{debtor.id}:{period.label}",
                idempotency_key=(
                    f"{EntrySource.DEFERRED_INCOME_RELEASE}:{debtor.id}:{period.label}"
                ),
                lines=[
                    Line.debit_line(
                        chart.DEFERRED_INCOME,
                        held,
                        f"Advance applied to {period.label}",
                        period=period.label,
                    ),
                    Line.credit_line(
                        chart.ACCOUNTS_RECEIVABLE,
                        held,
                        f"Rent settled for {period.label} from advance",
                        period=period.label,
                    ),
                ],
                residence=debtor.residence_id,
                date=period.start,
                description=f"Deferred income released for {period.label}",
                transaction_type=TransactionType.ADJUSTMENT,
                reference=debtor.debtor_code,
                created_by=created_by,
                metadata=_debtor_metadata(debtor, period, amount=held),
            )
        )
        cls.get_logger().info(
            f"Released {held} deferred income for {debtor.debtor_code} {period.label}",
            extra={
                "debtor_id": str(debtor.id),
                "period": period.label,
                "amount": str(held),
                "duplicate": result.duplicate,
            },
        )
        return result

    @staticmethod
    def debtors_for_period(period: Period) -> QuerySet[Debtor]:
        """Active debtors whose lease overlaps the period."""
        return (
            Debtor.objects.filter(
                is_active=True,
                lease_start_date__isnull=False,
                lease_start_date__lte=period.end,
            )
            .exclude(lease_end_date__lt=period.start)
            .order_by("debtor_code")
        )

    @classmethod
    def accrue_month(cls, period: Period | str | None = None) -> dict[str, int]:
        """
        Accrue rent for every active lease in a period.

        A failure for one debtor is logged and does not stop the others.

        Args:
            period: Period or label (defaults to the current period)

        Returns:
            Counts of posted, duplicate and failed accruals
        """
        if period is None:
            period = Period.current()
        elif not isinstance(period, Period):
            parsed = parse_period(period)
            if parsed is None:
                raise ValidationError(
                    f"Invalid period {period!r}",
                    error_code="INVALID_PERIOD",
                    details={"period": str(period)},
                )
            period = parsed

        counts = {"posted": 0, "duplicate": 0, "failed": 0}
        for debtor in cls.debtors_for_period(period):
            try:
                result = cls.accrue_rent(
                    MonthlyRentAccrual(student_id=debtor.student_id, period=period.label)
                )
            except BaseApplicationError as e:
                counts["failed"] += 1
                cls.get_logger().error(
                    f"Rent accrual failed for {debtor.debtor_code}: {e.message}",
                    extra={
                        "debtor_id": str(debtor.id),
                        "period": period.label,
                        "error_code": e.error_code,
                    },
                )
                continue
            counts["duplicate" if result.duplicate else "posted"] += 1

        cls.get_logger().info(
            f"Accrued rent for {period.label}",
            extra={"period": period.label, **counts},
        )
        return counts

