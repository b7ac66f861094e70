"""
Tests for petty cash allocations, spends and replenishments.

A custodian's cash sits in the petty cash account of their role; property
managers use 1013.
"""

from decimal import Decimal

import pytest
from freezegun import freeze_time

from finance.events import (
    MaintenanceApproval,
    MaintenanceItem,
    PettyCashAllocationRequest,
    PettyCashReplenishment,
    PettyCashUsageApproval,
    Quotation,
)
from finance.exceptions import (
    AllocationNotFound,
    InsufficientFundsError,
    InvalidStateTransitionError,
)
from finance.ledger.balances import balances
from finance.ledger.models import EntrySource, TransactionEntry, TransactionType
from finance.models import Expense, ExpenseSourceType, PettyCashAllocation
from finance.services.accounting_service import post_event
from finance.services.petty_cash_service import PettyCashService
from finance.state_machines import PettyCashAllocationStatus, PettyCashUsageStatus


def _lines(entry):
    return [(line.account_code, line.debit, line.credit) for line in entry.lines.all()]


@pytest.fixture
def allocation(residence, custodian):
    """A 500.00 cash allocation to a property manager."""
    result = post_event(
        PettyCashAllocationRequest(request_id="PCA-1", user=custodian, amount="500.00")
    )
    return result.subject


@pytest.fixture
def accrued_expense(residence, vendor):
    """A pending 25.00 plumbing expense owed to the vendor."""
    result = post_event(
        MaintenanceApproval(
            request_id="MR-9",
            residence=residence.id,
            items=[
                MaintenanceItem(
                    description="Fix leaking pipe",
                    quotations=[Quotation(amount="25.00", vendor_id=vendor.id)],
                )
            ],
        )
    )
    return result.subject[0]


# =============================================================================
# Allocations
# =============================================================================


class TestAllocate:
    """Tests for PettyCashService.allocate()."""

    def test_funds_role_account(self, allocation, custodian, residence):
        entry = allocation.transaction.entry

        assert _lines(entry) == [
            ("1013", Decimal("500.00"), Decimal("0.00")),
            ("1002", Decimal("0.00"), Decimal("500.00")),
        ]
        assert entry.transaction.type == TransactionType.PETTY_CASH_ALLOCATION
        assert entry.residence == residence
        assert allocation.role_account_code == "1013"
        assert allocation.remaining_amount == Decimal("500.00")
        assert balances.get_petty_cash_balance(custodian) == Decimal("500.00")

    def test_repeat_returns_same_allocation(self, allocation, custodian):
        result = post_event(
            PettyCashAllocationRequest(request_id="PCA-1", user=custodian, amount="500.00")
        )

        assert result.duplicate is True
        assert result.subject.pk == allocation.pk
        assert PettyCashAllocation.objects.count() == 1

    def test_funding_method(self, residence, finance_user):
        result = post_event(
            PettyCashAllocationRequest(
                request_id="PCA-2",
                user=finance_user.id,
                amount="100",
                method="Bank Transfer",
            )
        )

        assert _lines(result.entry) == [
            ("1012", Decimal("100.00"), Decimal("0.00")),
            ("1001", Decimal("0.00"), Decimal("100.00")),
        ]


class TestReplenish:
    """Tests for PettyCashService.replenish()."""

    def test_tops_up_allocation(self, allocation, custodian):
        result = post_event(
            PettyCashReplenishment(
                replenishment_id="R-1", allocation_id=allocation.id, amount="200.00"
            )
        )

        allocation.refresh_from_db()
        assert result.entry.source == EntrySource.PETTY_CASH_REPLENISHMENT
        assert allocation.allocated_amount == Decimal("700.00")
        assert allocation.remaining_amount == Decimal("700.00")
        assert balances.get_petty_cash_balance(custodian) == Decimal("700.00")

    def test_repeat_is_duplicate(self, allocation):
        event = PettyCashReplenishment(
            replenishment_id="R-1", allocation_id=allocation.id, amount="200.00"
        )

        post_event(event)
        result = post_event(event)

        allocation.refresh_from_db()
        assert result.duplicate is True
        assert allocation.allocated_amount == Decimal("700.00")

    def test_closed_allocation(self, allocation):
        PettyCashService.close(allocation.id, notes="Term ended")

        with pytest.raises(InvalidStateTransitionError):
            post_event(
                PettyCashReplenishment(
                    replenishment_id="R-1", allocation_id=allocation.id, amount="50"
                )
            )

    def test_unknown_allocation(self, db):
        with pytest.raises(AllocationNotFound):
            post_event(
                PettyCashReplenishment(
                    replenishment_id="R-1", allocation_id="not-a-uuid", amount="50"
                )
            )


class TestAllocationTransitions:
    """Tests for deactivate, reactivate and close."""

    def test_deactivate_and_reactivate(self, allocation):
        assert PettyCashService.deactivate(allocation.id).status == (
            PettyCashAllocationStatus.INACTIVE
        )
        assert PettyCashService.reactivate(allocation.id).status == (
            PettyCashAllocationStatus.ACTIVE
        )

    def test_close_is_terminal(self, allocation):
        closed = PettyCashService.close(allocation.id, notes="Term ended")

        assert closed.status == PettyCashAllocationStatus.CLOSED
        with pytest.raises(InvalidStateTransitionError):
            PettyCashService.reactivate(allocation.id)

    def test_reactivate_active(self, allocation):
        with pytest.raises(InvalidStateTransitionError):
            PettyCashService.reactivate(allocation.id)


# =============================================================================
# Spends
# =============================================================================


class TestRequestUsage:
    """Tests for PettyCashService.request_usage()."""

    def test_records_pending_usage(self, allocation):
        usage = PettyCashService.request_usage(allocation, Decimal("40.00"), "Light bulbs")

        assert usage.status == PettyCashUsageStatus.PENDING
        assert not TransactionEntry.objects.filter(
            source=EntrySource.PETTY_CASH_EXPENSE
        ).exists()

    def test_insufficient_funds(self, allocation):
        with pytest.raises(InsufficientFundsError) as exc_info:
            PettyCashService.request_usage(allocation, Decimal("500.01"), "Generator")

        assert exc_info.value.required == Decimal("500.01")
        assert exc_info.value.available == Decimal("500.00")

    def test_inactive_allocation_has_no_funds(self, allocation):
        PettyCashService.deactivate(allocation.id)

        with pytest.raises(InsufficientFundsError) as exc_info:
            PettyCashService.request_usage(allocation.id, Decimal("1.00"), "Pens")

        assert exc_info.value.available == Decimal("0.00")


class TestApproveUsage:
    """Tests for PettyCashService.approve_usage()."""

    def test_new_expense(self, allocation, custodian, finance_user):
        """A spend with no accrual behind it books a paid expense."""
        usage = PettyCashService.request_usage(
            allocation, Decimal("40.00"), "Light bulbs", category="supplies"
        )

        result = post_event(
            PettyCashUsageApproval(usage_id=usage.id, approved_by=finance_user)
        )

        allocation.refresh_from_db()
        usage = result.subject
        assert _lines(result.entry) == [
            ("5011", Decimal("40.00"), Decimal("0.00")),
            ("1013", Decimal("0.00"), Decimal("40.00")),
        ]
        assert result.entry.metadata["settles_accrual"] is False
        assert usage.status == PettyCashUsageStatus.APPROVED
        assert usage.approved_by == finance_user
        assert usage.expense.source_type == ExpenseSourceType.PETTY_CASH
        assert usage.expense.is_paid
        assert allocation.used_amount == Decimal("40.00")
        assert allocation.remaining_amount == Decimal("460.00")
        assert balances.get_petty_cash_balance(custodian) == Decimal("460.00")

    def test_settlement_debits_accrued_liability(self, allocation, accrued_expense, vendor):
        """Spending against an accrual clears the same liability it credited."""
        accrual_entry = accrued_expense.transaction.entry
        credited = [line.account_code for line in accrual_entry.lines.all() if line.credit > 0]
        usage = PettyCashService.request_usage(
            allocation, Decimal("25.00"), "Fix leaking pipe", expense=accrued_expense
        )

        result = post_event(PettyCashUsageApproval(usage_id=usage.id))

        debited = [line.account_code for line in result.entry.lines.all() if line.debit > 0]
        assert debited == credited == ["200001"]
        assert result.entry.metadata["settles_accrual"] is True
        accrued_expense.refresh_from_db()
        assert accrued_expense.is_paid
        assert accrued_expense.payment_method == "Petty Cash"
        assert balances.get_vendor_payable_balance(vendor.id) == Decimal("0.00")

    def test_settlement_found_by_source_id(self, allocation, accrued_expense):
        """Without a back-reference the accrual is matched on id, amount and text."""
        usage = PettyCashService.request_usage(
            allocation, Decimal("25.00"), "fix leaking pipe", source_id="MR-9"
        )

        result = post_event(PettyCashUsageApproval(usage_id=usage.id))

        assert _lines(result.entry)[0][0] == accrued_expense.liability_account_code
        assert result.subject.expense == accrued_expense

    def test_source_id_with_other_amount_is_new_expense(self, allocation, accrued_expense):
        usage = PettyCashService.request_usage(
            allocation, Decimal("30.00"), "Fix leaking pipe", source_id="MR-9"
        )

        result = post_event(PettyCashUsageApproval(usage_id=usage.id))

        assert _lines(result.entry)[0][0] == "5007"
        accrued_expense.refresh_from_db()
        assert not accrued_expense.is_paid

    def test_linked_expense_already_paid(self, allocation, accrued_expense):
        first = PettyCashService.request_usage(
            allocation, Decimal("25.00"), "Fix leaking pipe", expense=accrued_expense
        )
        second = PettyCashService.request_usage(
            allocation, Decimal("25.00"), "Fix leaking pipe", expense=accrued_expense
        )
        post_event(PettyCashUsageApproval(usage_id=first.id))

        with pytest.raises(InvalidStateTransitionError):
            post_event(PettyCashUsageApproval(usage_id=second.id))

    def test_approving_twice_posts_once(self, allocation):
        usage = PettyCashService.request_usage(allocation, Decimal("10.00"), "Pens")

        first = post_event(PettyCashUsageApproval(usage_id=usage.id))
        second = post_event(PettyCashUsageApproval(usage_id=usage.id))

        allocation.refresh_from_db()
        assert second.duplicate is True
        assert second.entry.pk == first.entry.pk
        assert allocation.used_amount == Decimal("10.00")

    def test_resubmitted_spend_within_window_posts_once(self, allocation):
        """A second usage for the same spend is caught without sharing a key."""
        with freeze_time("2025-09-20 12:00:00") as frozen:
            first = PettyCashService.request_usage(allocation, Decimal("25.00"), "Bleach")
            second = PettyCashService.request_usage(allocation, Decimal("25.00"), "bleach ")
            original = post_event(PettyCashUsageApproval(usage_id=first.id))

            frozen.tick(30)
            retry = post_event(PettyCashUsageApproval(usage_id=second.id))

        allocation.refresh_from_db()
        second.refresh_from_db()
        assert retry.duplicate is True
        assert retry.entry.pk == original.entry.pk
        assert second.status == PettyCashUsageStatus.REJECTED
        assert allocation.used_amount == Decimal("25.00")
        assert TransactionEntry.objects.filter(
            source=EntrySource.PETTY_CASH_EXPENSE
        ).count() == 1

    def test_same_spend_after_window_posts_again(self, allocation, settings):
        settings.FINANCE_DUPLICATE_WINDOW_SECONDS = 60
        with freeze_time("2025-09-20 12:00:00") as frozen:
            first = PettyCashService.request_usage(allocation, Decimal("25.00"), "Bleach")
            second = PettyCashService.request_usage(allocation, Decimal("25.00"), "Bleach")
            post_event(PettyCashUsageApproval(usage_id=first.id))

            frozen.tick(61)
            result = post_event(PettyCashUsageApproval(usage_id=second.id))

        allocation.refresh_from_db()
        assert result.duplicate is False
        assert allocation.used_amount == Decimal("50.00")

    def test_funds_rechecked_at_approval(self, allocation):
        """Two pending spends cannot overdraw the allocation."""
        first = PettyCashService.request_usage(allocation, Decimal("300.00"), "Paint")
        second = PettyCashService.request_usage(allocation, Decimal("300.00"), "Paint")
        post_event(PettyCashUsageApproval(usage_id=first.id))

        with pytest.raises(InsufficientFundsError):
            post_event(PettyCashUsageApproval(usage_id=second.id))

        assert Expense.objects.filter(source_type=ExpenseSourceType.PETTY_CASH).count() == 1


class TestRejectUsage:
    """Tests for PettyCashService.reject_usage()."""

    def test_reject_posts_nothing(self, allocation):
        usage = PettyCashService.request_usage(allocation, Decimal("10.00"), "Pens")

        rejected = PettyCashService.reject_usage(usage.id, reason="No receipt")

        assert rejected.status == PettyCashUsageStatus.REJECTED
        assert rejected.rejection_reason == "No receipt"
        assert not TransactionEntry.objects.filter(
            source=EntrySource.PETTY_CASH_EXPENSE
        ).exists()

    def test_rejected_usage_cannot_be_approved(self, allocation):
        usage = PettyCashService.request_usage(allocation, Decimal("10.00"), "Pens")
        PettyCashService.reject_usage(usage.id)

        with pytest.raises(InvalidStateTransitionError):
            post_event(PettyCashUsageApproval(usage_id=usage.id))
        with pytest.raises(InvalidStateTransitionError):
            PettyCashService.reject_usage(usage.id)
