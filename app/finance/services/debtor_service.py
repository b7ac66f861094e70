"""
Debtor service: lease records and the receivable projection.

The Debtor row caches a student's position for fast display. It is rebuilt
from posted entries after every posting that concerns the student and can
be rebuilt for everyone at any time (rebuild_all_debtors task). The
authoritative figures are always the ledger's.

Usage:
    from finance.services.debtor_service import DebtorService

    debtor = DebtorService.open_lease(
        student=student,
        residence=residence,
        monthly_rent=Decimal("180.00"),
        lease_start_date=date(2025, 9, 13),
    )
    DebtorService.rebuild(debtor)
    debtor.current_balance  # derived from postings
"""

from __future__ import annotations

import datetime
from collections import defaultdict
from decimal import Decimal
from typing import TYPE_CHECKING

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone

from core.services import BaseService
from finance.exceptions import DebtorNotFound
from finance.ledger import chart
from finance.ledger.balances import balances
from finance.ledger.models import EntrySource, EntryStatus, LineEntry, TransactionEntry, money_sum
from finance.ledger.types import ZERO, to_money
from finance.models import Debtor
from properties.services import get_residence

if TYPE_CHECKING:
    from typing import Any

CHARGE_SOURCES = (EntrySource.LEASE_START, EntrySource.RENTAL_ACCRUAL, EntrySource.INVOICE)
RECEIPT_SOURCES = (EntrySource.PAYMENT, EntrySource.INVOICE_PAYMENT)


class DebtorService(BaseService):
    """Lease records and their ledger-derived projection."""

    @classmethod
    def get_debtor(cls, student: Any) -> Debtor:
        """
        Debtor record of a student.

        Args:
            student: Debtor, User, or the student's id

        Raises:
            DebtorNotFound: If the student has no debtor record
        """
        if isinstance(student, Debtor):
            return student
        student_id = getattr(student, "pk", student)
        try:
            return Debtor.objects.select_related("student", "residence").get(
                student_id=student_id
            )
        except (Debtor.DoesNotExist, DjangoValidationError, ValueError):
            raise DebtorNotFound(
                f"No debtor record for student {student_id}",
                details={"student_id": str(student_id)},
            )

    @classmethod
    def open_lease(
        cls,
        student: Any,
        residence: Any,
        monthly_rent: Decimal,
        lease_start_date: datetime.date,
        lease_end_date: datetime.date | None = None,
        admin_fee: Decimal = ZERO,
        deposit: Decimal = ZERO,
    ) -> Debtor:
        """
        Create or update the debtor record for a lease.

        Accruals are not posted here; post a LeaseStartAccrual event once the
        lease is confirmed.
        """
        user = student
        if not hasattr(student, "pk"):
            user = get_user_model().objects.get(pk=student)
        debtor, created = Debtor.objects.update_or_create(
            student=user,
            defaults={
                "residence": get_residence(residence),
                "monthly_rent": to_money(monthly_rent),
                "admin_fee": to_money(admin_fee),
                "deposit": to_money(deposit),
                "lease_start_date": lease_start_date,
                "lease_end_date": lease_end_date,
                "is_active": True,
            },
        )
        cls.get_logger().info(
            f"{'Opened' if created else 'Updated'} lease for debtor {debtor.debtor_code}",
            extra={
                "debtor_id": str(debtor.id),
                "student_id": str(user.pk),
                "monthly_rent": str(debtor.monthly_rent),
            },
        )
        return debtor

    # -------------------------------------------------------------------------
    # Projection
    # -------------------------------------------------------------------------

    @staticmethod
    def _student_entries(student_id, sources) -> Any:
        return TransactionEntry.objects.filter(
            source__in=sources,
            status=EntryStatus.POSTED,
            metadata__student_id=str(student_id),
        )

    @classmethod
    def compute_monthly_payments(cls, student_id) -> dict[str, dict[str, str]]:
        """
        Per-period paid components from posted payment entries.

        Rent is taken from each payment's per-period rent allocation; the
        admin fee and deposit actually settled are attributed to the
        payment's target period.
        """
        totals: dict[str, dict[str, Decimal]] = defaultdict(
            lambda: {"rent": ZERO, "admin": ZERO, "deposit": ZERO}
        )
        for metadata in cls._student_entries(student_id, (EntrySource.PAYMENT,)).values_list(
            "metadata", flat=True
        ):
            for period, amount in (metadata.get("rent_allocations") or {}).items():
                totals[period]["rent"] += to_money(amount)
            fees = metadata.get("fees_settled") or {}
            target = metadata.get("target_period")
            if target:
                totals[target]["admin"] += to_money(fees.get("admin_fee"))
                totals[target]["deposit"] += to_money(fees.get("deposit"))
        return {
            period: {name: str(value) for name, value in parts.items()}
            for period, parts in sorted(totals.items())
        }

    @classmethod
    def rebuild(cls, debtor: Debtor) -> Debtor:
        """
        Recompute the cached position of a debtor from posted entries.

        Updates current_balance (receivable minus advances held),
        total_owed (receivable charges), total_paid (receipts) and
        monthly_payments.
        """
        student_id = debtor.student_id
        owed = LineEntry.objects.filter(
            entry__in=cls._student_entries(student_id, CHARGE_SOURCES),
            account_code=chart.ACCOUNTS_RECEIVABLE,
        ).aggregate(total=money_sum("debit"))["total"]
        paid = cls._student_entries(student_id, RECEIPT_SOURCES).aggregate(
            total=money_sum("total_debit")
        )["total"]

        debtor.total_owed = to_money(owed)
        debtor.total_paid = to_money(paid)
        debtor.current_balance = balances.get_debtor_position(student_id)
        debtor.monthly_payments = cls.compute_monthly_payments(student_id)
        debtor.last_reconciled_at = timezone.now()
        debtor.save(
            update_fields=[
                "total_owed",
                "total_paid",
                "current_balance",
                "monthly_payments",
                "last_reconciled_at",
                "updated_at",
            ]
        )
        return debtor

    @classmethod
    def rebuild_all(cls) -> int:
        """Rebuild every debtor; returns how many were rebuilt."""
        count = 0
        for debtor in Debtor.objects.all().iterator():
            cls.rebuild(debtor)
            count += 1
        cls.get_logger().info(f"Rebuilt {count} debtor projections", extra={"count": count})
        return count
