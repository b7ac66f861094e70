"""
Tests for DebtorService.
"""

import datetime
from decimal import Decimal

import pytest
from freezegun import freeze_time

from finance.events import LeaseStartAccrual, PaymentComponents, StudentPayment
from finance.exceptions import DebtorNotFound
from finance.models import Debtor
from finance.services.accounting_service import post_event
from finance.services.debtor_service import DebtorService
from finance.tests.factories import DebtorFactory


class TestOpenLease:
    """Tests for DebtorService.open_lease()."""

    def test_creates_debtor(self, student, residence):
        debtor = DebtorService.open_lease(
            student=student,
            residence=residence.id,
            monthly_rent="180",
            lease_start_date=datetime.date(2025, 9, 13),
            deposit=Decimal("180"),
        )

        assert debtor.student == student
        assert debtor.residence == residence
        assert debtor.monthly_rent == Decimal("180.00")
        assert debtor.deposit == Decimal("180.00")
        assert debtor.admin_fee == Decimal("0.00")
        assert debtor.is_active is True

    def test_updates_existing_lease(self, debtor):
        updated = DebtorService.open_lease(
            student=debtor.student_id,
            residence=debtor.residence,
            monthly_rent=Decimal("200.00"),
            lease_start_date=datetime.date(2025, 9, 13),
        )

        assert updated.pk == debtor.pk
        assert updated.monthly_rent == Decimal("200.00")
        assert Debtor.objects.count() == 1


class TestGetDebtor:
    """Tests for DebtorService.get_debtor()."""

    @pytest.mark.parametrize("lookup", ["instance", "user", "user_id"])
    def test_lookups(self, debtor, lookup):
        student = {
            "instance": debtor,
            "user": debtor.student,
            "user_id": debtor.student_id,
        }[lookup]

        assert DebtorService.get_debtor(student).pk == debtor.pk

    @pytest.mark.parametrize("student_id", ["not-a-uuid", "00000000-0000-0000-0000-000000000000"])
    def test_missing_debtor(self, db, student_id):
        with pytest.raises(DebtorNotFound) as exc_info:
            DebtorService.get_debtor(student_id)

        assert exc_info.value.details == {"student_id": student_id}


class TestProjection:
    """Tests for the ledger-derived debtor figures."""

    @pytest.fixture
    def paid_up(self, debtor_with_fees):
        with freeze_time("2025-09-20 12:00:00"):
            self._pay_in_full(debtor_with_fees)
        return debtor_with_fees

    @staticmethod
    def _pay_in_full(debtor_with_fees):
        post_event(LeaseStartAccrual(student_id=debtor_with_fees.student_id))
        post_event(
            StudentPayment(
                payment_id="PAY-1",
                student_id=debtor_with_fees.student_id,
                residence=debtor_with_fees.residence_id,
                amount="380.00",
                date=datetime.date(2025, 9, 20),
                payment_month="September 2025",
                components=PaymentComponents(rent="180", admin_fee="20", deposit="180"),
            )
        )

    def test_monthly_payments(self, paid_up):
        assert DebtorService.compute_monthly_payments(paid_up.student_id) == {
            "2025-09": {"rent": "180.00", "admin": "20.00", "deposit": "180.00"},
        }

    def test_rebuild(self, paid_up):
        Debtor.objects.filter(pk=paid_up.pk).update(
            total_owed=Decimal("0"), total_paid=Decimal("0"), current_balance=Decimal("999")
        )
        paid_up.refresh_from_db()

        DebtorService.rebuild(paid_up)

        paid_up.refresh_from_db()
        assert paid_up.total_owed == Decimal("380.00")
        assert paid_up.total_paid == Decimal("380.00")
        assert paid_up.current_balance == Decimal("0.00")
        assert paid_up.paid_for_period("2025-09", "deposit") == Decimal("180.00")
        assert paid_up.last_reconciled_at is not None

    def test_student_without_postings(self, debtor):
        DebtorService.rebuild(debtor)

        assert debtor.total_owed == Decimal("0.00")
        assert debtor.monthly_payments == {}

    def test_rebuild_all(self, paid_up):
        DebtorFactory()

        assert DebtorService.rebuild_all() == 2
