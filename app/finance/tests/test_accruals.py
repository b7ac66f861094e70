"""
Tests for rent accruals and deferred income release.
"""

import datetime
from decimal import Decimal

import pytest
from freezegun import freeze_time

from core.exceptions import ValidationError
from finance.events import LeaseStartAccrual, MonthlyRentAccrual, StudentPayment
from finance.exceptions import DebtorNotFound
from finance.ledger import chart
from finance.ledger.balances import balances
from finance.ledger.models import EntrySource, TransactionEntry, TransactionType
from finance.periods import Period
from finance.services.accounting_service import post_event
from finance.services.accrual_service import AccrualService
from finance.tests.factories import DebtorFactory


def _lines(entry):
    return [
        (line.account_code, line.debit, line.credit, line.period or "")
        for line in entry.lines.all()
    ]


class TestLeaseStartAccrual:
    """Tests for AccrualService.accrue_lease_start()."""

    def test_rent_admin_fee_and_deposit(self, debtor_with_fees):
        result = post_event(LeaseStartAccrual(student_id=debtor_with_fees.student_id))

        entry = result.entry
        assert _lines(entry) == [
            ("1100", Decimal("180.00"), Decimal("0.00"), "2025-09"),
            ("4000", Decimal("0.00"), Decimal("180.00"), "2025-09"),
            ("1100", Decimal("20.00"), Decimal("0.00"), ""),
            ("4100", Decimal("0.00"), Decimal("20.00"), ""),
            ("1100", Decimal("180.00"), Decimal("0.00"), ""),
            ("2020", Decimal("0.00"), Decimal("180.00"), ""),
        ]
        assert entry.source == EntrySource.LEASE_START
        assert entry.transaction.type == TransactionType.ACCRUAL
        assert entry.date == datetime.date(2025, 9, 1)
        assert balances.get_student_receivable_balance(
            debtor_with_fees.student_id
        ) == Decimal("380.00")

    def test_prorates_first_month(self, debtor):
        """13 to 30 September at 180.00 a month."""
        result = post_event(LeaseStartAccrual(student_id=debtor.student_id))

        assert result.entry.metadata["rent"] == "108.00"
        assert result.entry.lines_for(chart.RENTAL_INCOME)[0].amount == Decimal("108.00")

    def test_prorated_rent_override(self, debtor):
        result = post_event(
            LeaseStartAccrual(student_id=debtor.student_id, prorated_rent="110.32")
        )

        assert result.entry.total_debit == Decimal("110.32")

    def test_rebuilds_debtor(self, debtor_with_fees):
        post_event(LeaseStartAccrual(student_id=debtor_with_fees.student_id))

        debtor_with_fees.refresh_from_db()
        assert debtor_with_fees.total_owed == Decimal("380.00")
        assert debtor_with_fees.current_balance == Decimal("380.00")

    def test_posts_once(self, debtor):
        first = post_event(LeaseStartAccrual(student_id=debtor.student_id))
        second = post_event(LeaseStartAccrual(student_id=debtor.student_id))

        assert second.duplicate is True
        assert second.entry.pk == first.entry.pk

    def test_requires_lease_start(self, db):
        debtor = DebtorFactory(lease_start_date=None)

        with pytest.raises(ValidationError) as exc_info:
            post_event(LeaseStartAccrual(student_id=debtor.student_id))

        assert exc_info.value.error_code == "LEASE_NOT_STARTED"

    def test_unknown_student(self, db):
        with pytest.raises(DebtorNotFound):
            post_event(LeaseStartAccrual(student_id="not-a-student"))


class TestMonthlyRentAccrual:
    """Tests for AccrualService.accrue_rent()."""

    def test_accrues_monthly_rent(self, debtor):
        result = post_event(MonthlyRentAccrual(student_id=debtor.student_id, period="October 2025"))

        assert _lines(result.entry) == [
            ("1100", Decimal("180.00"), Decimal("0.00"), "2025-10"),
            ("4000", Decimal("0.00"), Decimal("180.00"), "2025-10"),
        ]
        assert result.entry.date == datetime.date(2025, 10, 1)
        assert result.entry.idempotency_key == f"rental_accrual:{debtor.id}:2025-10"

    def test_first_month_delegates_to_lease_start(self, debtor):
        result = post_event(MonthlyRentAccrual(student_id=debtor.student_id, period="2025-09"))

        assert result.entry.source == EntrySource.LEASE_START
        assert TransactionEntry.objects.count() == 1

    def test_invalid_period(self, debtor):
        with pytest.raises(ValidationError) as exc_info:
            post_event(MonthlyRentAccrual(student_id=debtor.student_id, period="soon"))

        assert exc_info.value.error_code == "INVALID_PERIOD"

    def test_period_outside_lease(self, debtor):
        with pytest.raises(ValidationError) as exc_info:
            post_event(MonthlyRentAccrual(student_id=debtor.student_id, period="2026-08"))

        assert exc_info.value.error_code == "NO_LEASE_FOR_PERIOD"

    @freeze_time("2025-09-20 12:00:00")
    def test_releases_advance_held_for_period(self, debtor):
        """Money already held for October settles October's rent."""
        post_event(
            StudentPayment(
                payment_id="PAY-1",
                student_id=debtor.student_id,
                residence=debtor.residence_id,
                amount="100.00",
                date=datetime.date(2025, 9, 20),
                payment_month="October 2025",
            )
        )

        result = post_event(MonthlyRentAccrual(student_id=debtor.student_id, period="2025-10"))

        release = result.related[-1]
        assert _lines(release) == [
            ("2200", Decimal("100.00"), Decimal("0.00"), "2025-10"),
            ("1100", Decimal("0.00"), Decimal("100.00"), "2025-10"),
        ]
        assert balances.get_student_receivable_balance(debtor.student_id) == Decimal("80.00")
        assert balances.get_deferred_income_held(debtor.student_id) == Decimal("0.00")

    def test_nothing_to_release(self, debtor):
        assert AccrualService.release_deferred_income(debtor, Period(2025, 10)) is None


class TestAccrueMonth:
    """Tests for AccrualService.accrue_month()."""

    @pytest.fixture
    def leases(self, debtor):
        return {
            "billed": debtor,
            "no_rent": DebtorFactory(monthly_rent=Decimal("0.00")),
            "inactive": DebtorFactory(is_active=False),
            "ended": DebtorFactory(lease_end_date=datetime.date(2025, 9, 30)),
            "not_started": DebtorFactory(lease_start_date=datetime.date(2025, 11, 1)),
        }

    def test_accrues_active_leases(self, leases):
        counts = AccrualService.accrue_month("2025-10")

        assert counts == {"posted": 1, "duplicate": 0, "failed": 1}
        billed = TransactionEntry.objects.get(source=EntrySource.RENTAL_ACCRUAL)
        assert billed.metadata["student_id"] == str(leases["billed"].student_id)

    def test_rerun_posts_nothing(self, leases):
        AccrualService.accrue_month(Period(2025, 10))

        counts = AccrualService.accrue_month("2025-10")

        assert counts == {"posted": 0, "duplicate": 1, "failed": 1}
        assert TransactionEntry.objects.filter(source=EntrySource.RENTAL_ACCRUAL).count() == 1

    def test_debtors_for_period(self, leases):
        codes = set(
            AccrualService.debtors_for_period(Period(2025, 10)).values_list(
                "debtor_code", flat=True
            )
        )

        assert codes == {leases["billed"].debtor_code, leases["no_rent"].debtor_code}

    def test_invalid_period(self, db):
        with pytest.raises(ValidationError):
            AccrualService.accrue_month("someday")
