"""
Petty cash: custodian allocations, spends and replenishments.

Each custodian holds cash in the petty cash account of their role
(1011 admin, 1012 finance, 1013 property manager, 1014 maintenance,
1010 otherwise).

    Allocation      Dr 101x / Cr funding account (cash or bank)
    Replenishment   Dr 101x / Cr funding account
    Spend           Dr liability of a prior accrual / Cr 101x   (settlement)
                    Dr resolved expense account / Cr 101x       (new expense)

A spend settles an accrual when its Expense carries the accrual's
transaction, or when a posted accrual with the spend's source id, amount and
description can be found. Settlement debits the exact liability account the
accrual credited, so the supplier's payable is cleared.

Usage:
    from finance.services.petty_cash_service import PettyCashService

    result = PettyCashService.allocate(
        PettyCashAllocationRequest(request_id="PCA-7", user=custodian, amount="500")
    )
    allocation = result.subject

    usage = PettyCashService.request_usage(allocation, Decimal("40.00"), "Light bulbs")
    PettyCashService.approve_usage(PettyCashUsageApproval(usage_id=usage.id))
"""

from __future__ import annotations

import datetime
from decimal import Decimal
from typing import Any

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError

from django_fsm import TransitionNotAllowed

from core.exceptions import NotFoundError
from core.services import BaseService
from finance.events import (
    PettyCashAllocationRequest,
    PettyCashReplenishment,
    PettyCashUsageApproval,
)
from finance.exceptions import (
    AllocationNotFound,
    InsufficientFundsError,
    InvalidStateTransitionError,
)
from finance.ledger.duplicates import find_duplicate
from finance.ledger.models import EntrySource, EntryStatus, TransactionEntry, TransactionType
from finance.ledger.posting import posting_engine
from finance.ledger.resolver import resolver
from finance.ledger.types import ZERO, Line, PostingRequest, PostingResult, to_money
from finance.models import Expense, ExpenseSourceType, PettyCashAllocation, PettyCashUsage
from finance.state_machines import PettyCashAllocationStatus, PettyCashUsageStatus


def _get_user(user: Any):
    if user is None or hasattr(user, "pk"):
        return user
    try:
        return get_user_model().objects.get(pk=user)
    except (get_user_model().DoesNotExist, DjangoValidationError, ValueError):
        raise NotFoundError(
            f"User {user} not found",
            error_code="USER_NOT_FOUND",
            details={"user_id": str(user)},
        )


def _descriptions_match(accrued: str, spent: str) -> bool:
    accrued = (accrued or "").strip().lower()
    spent = (spent or "").strip().lower()
    if not spent:
        return True
    return accrued == spent or spent in accrued or accrued in spent


def _accrual_credit_code(entry: TransactionEntry) -> str | None:
    line = entry.lines.filter(credit__gt=0).order_by("position").first()
    return line.account_code if line else None


class PettyCashService(BaseService):
    """
    Manages petty cash allocations and the postings behind them.

    All methods are class methods - no instance state is maintained.
    """

    # -------------------------------------------------------------------------
    # Allocations
    # -------------------------------------------------------------------------

    @staticmethod
    def get_allocation(allocation_id) -> PettyCashAllocation:
        """
        Get an allocation by id.

        Raises:
            AllocationNotFound: If the allocation does not exist
        """
        if isinstance(allocation_id, PettyCashAllocation):
            return allocation_id
        try:
            return PettyCashAllocation.objects.select_related("user").get(pk=allocation_id)
        except (PettyCashAllocation.DoesNotExist, DjangoValidationError, ValueError):
            raise AllocationNotFound(
                f"Petty cash allocation {allocation_id} not found",
                details={"allocation_id": str(allocation_id)},
            )

    @staticmethod
    def active_allocation(user) -> PettyCashAllocation | None:
        """Most recent active allocation of a custodian, if any."""
        return (
            PettyCashAllocation.objects.filter(
                user_id=getattr(user, "pk", user),
                status=PettyCashAllocationStatus.ACTIVE,
            )
            .order_by("-created_at")
            .first()
        )

    @classmethod
    def allocate(cls, event: PettyCashAllocationRequest) -> PostingResult:
        """
        Fund a custodian's petty cash.

        Posts Dr role petty cash / Cr funding account and opens an
        allocation. Without a residence the default residence is used.

        Returns:
            PostingResult whose subject is the PettyCashAllocation
        """
        user = _get_user(event.user)
        role_code = resolver.resolve_petty_cash_account(user.role)
        funding_code = resolver.resolve_payment_account(event.method)

        with cls.atomic():
            result = posting_engine.post(
                PostingRequest(
                    source=EntrySource.PETTY_CASH_ALLOCATION,
                    source_id=event.request_id,
                    idempotency_key=f"{EntrySource.PETTY_CASH_ALLOCATION}:{event.request_id}",
                    lines=[
                        Line.debit_line(role_code, event.amount, "Petty cash allocated"),
                        Line.credit_line(funding_code, event.amount, "Petty cash funding"),
                    ],
                    residence=event.residence,
                    allow_default_residence=True,
                    date=event.date,
                    description=f"Petty cash allocation to {user.email}",
                    transaction_type=TransactionType.PETTY_CASH_ALLOCATION,
                    reference=event.request_id,
                    created_by=event.created_by,
                    metadata={
                        "custodian_id": str(user.pk),
                        "role": user.role,
                        "amount": str(event.amount),
                        "method": event.method,
                    },
                )
            )
            if result.duplicate:
                result.subject = PettyCashAllocation.objects.filter(
                    transaction=result.transaction
                ).first()
                return result

            result.subject = PettyCashAllocation.objects.create(
                user=user,
                residence_id=result.entry.residence_id,
                allocated_amount=event.amount,
                role_account_code=role_code,
                transaction=result.transaction,
                notes=event.notes,
            )

        cls.get_logger().info(
            f"Allocated {event.amount} petty cash to {user.email}",
            extra={
                "allocation_id": str(result.subject.id),
                "custodian_id": str(user.pk),
                "account_code": role_code,
            },
        )
        return result

    @classmethod
    def replenish(cls, event: PettyCashReplenishment) -> PostingResult:
        """
        Top up an allocation from a funding account.

        Raises:
            AllocationNotFound: If the allocation does not exist
            InvalidStateTransitionError: If the allocation is closed
        """
        key = f"{EntrySource.PETTY_CASH_REPLENISHMENT}:{event.replenishment_id}"
        with cls.atomic():
            allocation = PettyCashAllocation.objects.select_for_update().get(
                pk=cls.get_allocation(event.allocation_id).pk
            )
            existing = find_duplicate(
                EntrySource.PETTY_CASH_REPLENISHMENT, event.replenishment_id, key
            )
            if existing is not None:
                return PostingResult(entry=existing, duplicate=True, subject=allocation)
            if allocation.status == PettyCashAllocationStatus.CLOSED:
                raise InvalidStateTransitionError(
                    f"Allocation {allocation.id} is closed",
                    details={"allocation_id": str(allocation.id)},
                )

            result = posting_engine.post(
                PostingRequest(
                    source=EntrySource.PETTY_CASH_REPLENISHMENT,
                    source_id=event.replenishment_id,
                    idempotency_key=key,
                    lines=[
                        Line.debit_line(
                            allocation.role_account_code, event.amount, "Petty cash replenished"
                        ),
                        Line.credit_line(
                            resolver.resolve_payment_account(event.method),
                            event.amount,
                            "Petty cash funding",
                        ),
                    ],
                    residence=allocation.residence_id,
                    date=event.date,
                    description=f"Petty cash replenishment {event.replenishment_id}",
                    transaction_type=TransactionType.PETTY_CASH_REPLENISHMENT,
                    reference=event.replenishment_id,
                    created_by=event.created_by,
                    metadata={
                        "custodian_id": str(allocation.user_id),
                        "allocation_id": str(allocation.id),
                        "amount": str(event.amount),
                        "method": event.method,
                    },
                )
            )
            allocation.allocated_amount += event.amount
            allocation.save(update_fields=["allocated_amount", "updated_at"])

        result.subject = allocation
        return result

    @classmethod
    def _transition(cls, allocation_id, name: str, **kwargs) -> PettyCashAllocation:
        allocation = cls.get_allocation(allocation_id)
        try:
            getattr(allocation, name)(**kwargs)
        except TransitionNotAllowed as e:
            raise InvalidStateTransitionError(
                f"Cannot {name} allocation in status {allocation.status}",
                details={"allocation_id": str(allocation.id), "status": allocation.status},
            ) from e
        allocation.save()
        cls.get_logger().info(
            f"Allocation {allocation.id} is now {allocation.status}",
            extra={"allocation_id": str(allocation.id), "status": allocation.status},
        )
        return allocation

    @classmethod
    def deactivate(cls, allocation_id) -> PettyCashAllocation:
        """Suspend spending against an allocation."""
        return cls._transition(allocation_id, "deactivate")

    @classmethod
    def reactivate(cls, allocation_id) -> PettyCashAllocation:
        return cls._transition(allocation_id, "reactivate")

    @classmethod
    def close(cls, allocation_id, notes: str = "") -> PettyCashAllocation:
        return cls._transition(allocation_id, "close", notes=notes)

    # -------------------------------------------------------------------------
    # Spends
    # -------------------------------------------------------------------------

    @staticmethod
    def _check_funds(allocation: PettyCashAllocation, amount: Decimal) -> None:
        available = allocation.remaining_amount if allocation.is_active else ZERO
        if available < amount:
            raise InsufficientFundsError(
                allocation_id=allocation.id,
                required=amount,
                available=available,
                details={"status": allocation.status},
            )

    @classmethod
    def request_usage(
        cls,
        allocation,
        amount: Decimal,
        description: str = "",
        category: str = "",
        expense: Expense | None = None,
        source_id: str = "",
        usage_date: datetime.date | None = None,
    ) -> PettyCashUsage:
        """
        Record a pending spend against an allocation.

        Raises:
            AllocationNotFound: If the allocation does not exist
            InsufficientFundsError: If the allocation is not active or its
                remaining amount is below the spend
        """
        allocation = cls.get_allocation(allocation)
        amount = to_money(amount)
        cls._check_funds(allocation, amount)
        usage = PettyCashUsage(
            allocation=allocation,
            amount=amount,
            description=description,
            category=category,
            expense=expense,
            source_id=source_id or (expense.source_id if expense else ""),
        )
        if usage_date is not None:
            usage.usage_date = usage_date
        usage.save()
        return usage

    @staticmethod
    def get_usage(usage_id) -> PettyCashUsage:
        try:
            return PettyCashUsage.objects.get(pk=getattr(usage_id, "pk", usage_id))
        except (PettyCashUsage.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFoundError(
                f"Petty cash usage {usage_id} not found",
                error_code="USAGE_NOT_FOUND",
                details={"usage_id": str(usage_id)},
            )

    @classmethod
    def find_settled_accrual(
        cls,
        usage: PettyCashUsage,
    ) -> tuple[Expense | None, str | None]:
        """
        Locate the accrual a spend settles.

        Looks first at the usage's own Expense back-reference, then at
        posted expense accruals with the usage's source id, amount and
        description.

        Returns:
            (expense, liability account code), or (None, None) when the
            spend is a new expense

        Raises:
            InvalidStateTransitionError: If the linked expense is already paid
        """
        expense = usage.expense
        if expense is not None and expense.transaction_id:
            if expense.is_paid:
                raise InvalidStateTransitionError(
                    f"Expense {expense.expense_id} is already paid",
                    details={"expense_id": expense.expense_id, "usage_id": str(usage.id)},
                )
            code = expense.liability_account_code or _accrual_credit_code(
                expense.transaction.entry
            )
            return expense, code

        if not usage.source_id:
            return None, None

        accruals = TransactionEntry.objects.filter(
            source=EntrySource.EXPENSE_ACCRUAL,
            source_id=usage.source_id,
            status=EntryStatus.POSTED,
        ).order_by("created_at")
        for entry in accruals:
            metadata = entry.metadata or {}
            if to_money(metadata.get("amount")) != usage.amount:
                continue
            if not _descriptions_match(metadata.get("description", ""), usage.description):
                continue
            accrued = Expense.objects.filter(expense_id=metadata.get("expense_id")).first()
            if accrued is not None and accrued.is_paid:
                continue
            code = metadata.get("liability_account_code") or _accrual_credit_code(entry)
            return accrued, code
        return None, None

    @classmethod
    def approve_usage(cls, event: PettyCashUsageApproval) -> PostingResult:
        """
        Approve a pending spend and post it.

        Settles the accrued liability when one is found, otherwise books a
        new, already paid expense. Approving an approved usage returns the
        original posting. A second usage by the same custodian with the same
        amount and description, approved within
        FINANCE_DUPLICATE_WINDOW_SECONDS, is rejected and the first posting
        is returned.

        Returns:
            PostingResult whose subject is the PettyCashUsage

        Raises:
            InsufficientFundsError: If the allocation can no longer cover
                the spend
            InvalidStateTransitionError: If the usage was rejected or the
                accrued expense is already paid
        """
        usage_pk = cls.get_usage(event.usage_id).pk
        key = f"{EntrySource.PETTY_CASH_EXPENSE}:{usage_pk}"
        approver = _get_user(event.approved_by)

        with cls.atomic():
            usage = PettyCashUsage.objects.select_for_update().get(pk=usage_pk)
            if usage.status == PettyCashUsageStatus.APPROVED:
                existing = find_duplicate(EntrySource.PETTY_CASH_EXPENSE, str(usage.id), key)
                if existing is not None:
                    return PostingResult(entry=existing, duplicate=True, subject=usage)
            if usage.status != PettyCashUsageStatus.PENDING:
                raise InvalidStateTransitionError(
                    f"Usage {usage.id} is {usage.status}",
                    details={"usage_id": str(usage.id), "status": usage.status},
                )

            allocation = PettyCashAllocation.objects.select_for_update().get(
                pk=usage.allocation_id
            )
            cls._check_funds(allocation, usage.amount)

            expense, liability_code = cls.find_settled_accrual(usage)
            settles_accrual = liability_code is not None
            if settles_accrual:
                debit_code = liability_code
            else:
                debit_code = resolver.resolve_expense_account(usage.description, usage.category)

            result = posting_engine.post(
                PostingRequest(
                    source=EntrySource.PETTY_CASH_EXPENSE,
                    source_id=str(allocation.user_id),
                    idempotency_key=key,
                    duplicate_match={
                        "amount": usage.amount,
                        "description": usage.description,
                    },
                    lines=[
                        Line.debit_line(debit_code, usage.amount, usage.description),
                        Line.credit_line(
                            allocation.role_account_code, usage.amount, usage.description
                        ),
                    ],
                    residence=event.residence or allocation.residence_id,
                    allow_default_residence=True,
                    date=event.date or usage.usage_date,
                    description=f"Petty cash: {usage.description or usage.category}",
                    transaction_type=TransactionType.PETTY_CASH_EXPENSE,
                    reference=str(usage.id),
                    created_by=approver,
                    metadata={
                        "custodian_id": str(allocation.user_id),
                        "allocation_id": str(allocation.id),
                        "usage_id": str(usage.id),
                        "amount": str(usage.amount),
                        "description": usage.description,
                        "category": usage.category,
                        "settles_accrual": settles_accrual,
                        "expense_id": expense.expense_id if expense else "",
                        "debit_account_code": debit_code,
                    },
                )
            )

            if result.duplicate:
                # Same custodian, amount and description inside the window
                usage.reject(
                    reason=f"Duplicate of usage {result.entry.metadata.get('usage_id', '')}"
                )
                usage.save()
                cls.get_logger().warning(
                    f"Rejected petty cash usage {usage.id} as a duplicate",
                    extra={
                        "usage_id": str(usage.id),
                        "entry_id": str(result.entry.id),
                        "custodian_id": str(allocation.user_id),
                    },
                )
                result.subject = usage
                return result

            if expense is not None:
                expense.mark_paid(payment_method="Petty Cash", paid_date=result.entry.date)
                expense.save(
                    update_fields=["payment_status", "payment_method", "paid_date", "updated_at"]
                )
            elif not settles_accrual:
                expense = Expense(
                    residence_id=result.entry.residence_id,
                    category=usage.category,
                    description=usage.description,
                    amount=usage.amount,
                    liability_account_code=allocation.role_account_code,
                    expense_account_code=debit_code,
                    transaction=result.transaction,
                    source_type=ExpenseSourceType.PETTY_CASH,
                    source_id=str(usage.id),
                )
                expense.mark_paid(payment_method="Petty Cash", paid_date=result.entry.date)
                expense.save()

            usage.approve(approved_by=approver)
            usage.expense = expense
            usage.transaction = result.transaction
            usage.save()
            allocation.used_amount += usage.amount
            allocation.save(update_fields=["used_amount", "updated_at"])

        cls.get_logger().info(
            f"Approved petty cash usage {usage.id}",
            extra={
                "usage_id": str(usage.id),
                "allocation_id": str(allocation.id),
                "amount": str(usage.amount),
                "debit_account_code": debit_code,
                "settles_accrual": settles_accrual,
            },
        )
        result.subject = usage
        return result

    @classmethod
    def reject_usage(cls, usage_id, reason: str = "") -> PettyCashUsage:
        """
        Reject a pending spend; nothing is posted.

        Raises:
            InvalidStateTransitionError: If the usage is not pending
        """
        usage = cls.get_usage(usage_id)
        try:
            usage.reject(reason=reason)
        except TransitionNotAllowed as e:
            raise InvalidStateTransitionError(
                f"Usage {usage.id} is {usage.status}",
                details={"usage_id": str(usage.id), "status": usage.status},
            ) from e
        usage.save()
        return usage
