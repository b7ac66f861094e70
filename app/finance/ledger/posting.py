"""
Posting engine: writes balanced, immutable ledger entries.

Every business event becomes exactly one Transaction header, one
TransactionEntry and its LineEntry rows, written in one atomic block.
Nothing is written when validation fails.

Posting steps:
    1. Duplicate check (idempotency key, then optional recency window)
    2. Residence check (required; default residence only when allowed)
    3. Line checks (non-empty, balanced)
    4. Lock and validate accounts (seeded from the chart, must be active)
    5. Write header, entry and lines; a concurrent writer with the same
       key makes this call return the winner's entry as a duplicate

Usage:
    from finance.ledger.posting import posting_engine
    from finance.ledger.types import Line, PostingRequest

    result = posting_engine.post(PostingRequest(
        source=EntrySource.VENDOR_PAYMENT,
        source_id="VP-0042",
        residence=residence,
        lines=[
            Line.debit_line("200001", "450.00"),
            Line.credit_line("1001", "450.00"),
        ],
    ))
    result.duplicate  # False on first call, True on retries
"""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.utils import timezone

from properties.services import get_default_residence, get_residence

from .duplicates import find_duplicate
from .exceptions import (
    InactiveAccount,
    InvalidLineError,
    MissingResidenceError,
    UnbalancedEntryError,
)
from .models import (
    Account,
    EntrySource,
    EntryStatus,
    LineEntry,
    Transaction,
    TransactionEntry,
    TransactionType,
)
from .resolver import resolver
from .types import Line, PostingRequest, PostingResult

if TYPE_CHECKING:
    from properties.models import Residence

logger = logging.getLogger(__name__)


def generate_transaction_id(date) -> str:
    """Human-readable transaction reference: TXN + yyyymmdd + random suffix."""
    return f"TXN{date:%Y%m%d}{secrets.token_hex(3).upper()}"


class PostingEngine:
    """
    Writes ledger postings.

    All writes to Transaction, TransactionEntry and LineEntry go through
    this class. Methods are static - no instance state is maintained.
    """

    @staticmethod
    def _resolve_residence(request: PostingRequest) -> Residence:
        if request.residence:
            return get_residence(request.residence)
        if request.allow_default_residence:
            logger.warning(
                f"No residence on {request.source} {request.source_id}, "
                "falling back to default residence",
                extra={"source": request.source, "source_id": request.source_id},
            )
            return get_default_residence()
        raise MissingResidenceError(
            f"Residence is required to post {request.source} {request.source_id}",
            details={"source": request.source, "source_id": request.source_id},
        )

    @staticmethod
    def _validate_lines(request: PostingRequest) -> None:
        if not request.lines:
            raise InvalidLineError(
                "Posting has no lines",
                details={"source": request.source, "source_id": request.source_id},
            )
        total_debit = request.total_debit
        total_credit = request.total_credit
        if total_debit != total_credit:
            logger.error(
                f"Refusing unbalanced posting {request.idempotency_key}",
                extra={
                    "source": request.source,
                    "source_id": request.source_id,
                    "total_debit": str(total_debit),
                    "total_credit": str(total_credit),
                },
            )
            raise UnbalancedEntryError(
                total_debit,
                total_credit,
                details={"source": request.source, "source_id": request.source_id},
            )

    @staticmethod
    def _lock_accounts(codes: set[str]) -> dict[str, Account]:
        """Seed and lock every account, in code order to avoid deadlocks."""
        resolver.ensure_accounts(codes)
        accounts = {
            account.code: account
            for account in Account.objects.filter(code__in=codes)
            .select_for_update()
            .order_by("code")
        }
        for code in sorted(codes):
            if not accounts[code].is_active:
                raise InactiveAccount(
                    f"Account {code} is inactive",
                    details={"account_code": code},
                )
        return accounts

    @staticmethod
    def post(request: PostingRequest) -> PostingResult:
        """
        Post one business event.

        Idempotent: a request whose idempotency key (or, when
        duplicate_match is given, whose source, source_id and metadata
        within the recency window) was already posted returns the existing
        entry with duplicate=True.

        Args:
            request: Lines and context of the event

        Returns:
            PostingResult with the booked or pre-existing entry

        Raises:
            MissingResidenceError: If no residence was given and the default
                is not allowed
            ResidenceNotFound: If the residence does not exist
            InvalidLineError: If there are no lines
            UnbalancedEntryError: If debits and credits differ
            AccountNotFound: If a code is not in the chart
            InactiveAccount: If an account is deactivated
        """
        existing = find_duplicate(
            source=request.source,
            source_id=request.source_id,
            idempotency_key=request.idempotency_key,
            match=request.duplicate_match,
        )
        if existing is not None:
            return PostingResult(entry=existing, duplicate=True)

        residence = PostingEngine._resolve_residence(request)
        PostingEngine._validate_lines(request)
        date = request.date or timezone.localdate()

        with transaction.atomic():
            accounts = PostingEngine._lock_accounts(
                {line.account_code for line in request.lines}
            )
            try:
                with transaction.atomic():
                    entry = PostingEngine._write(request, residence, date, accounts)
            except IntegrityError:
                entry = (
                    TransactionEntry.objects.select_related("transaction")
                    .filter(idempotency_key=request.idempotency_key)
                    .first()
                )
                if entry is None:
                    raise
                logger.info(
                    f"Concurrent posting of {request.idempotency_key}, "
                    "returning existing entry",
                    extra={"idempotency_key": request.idempotency_key},
                )
                return PostingResult(entry=entry, duplicate=True)

        logger.info(
            f"Posted {request.source} {request.source_id}",
            extra={
                "source": request.source,
                "source_id": request.source_id,
                "entry_id": str(entry.id),
                "transaction_id": entry.transaction.transaction_id,
                "amount": str(entry.total_debit),
                "residence_id": str(residence.id),
            },
        )
        return PostingResult(entry=entry)

    @staticmethod
    def _write(
        request: PostingRequest,
        residence: Residence,
        date,
        accounts: dict[str, Account],
    ) -> TransactionEntry:
        header = Transaction.objects.create(
            transaction_id=generate_transaction_id(date),
            date=date,
            description=request.description,
            type=request.transaction_type,
            reference=request.reference or request.source_id,
            residence=residence,
            created_by=request.created_by,
        )
        entry = TransactionEntry.objects.create(
            transaction=header,
            date=date,
            description=request.description,
            residence=residence,
            total_debit=request.total_debit,
            total_credit=request.total_credit,
            source=request.source,
            source_id=request.source_id,
            status=request.status,
            metadata=request.metadata,
            idempotency_key=request.idempotency_key,
            reversal_of=request.reversal_of,
            created_by=request.created_by,
        )
        LineEntry.objects.bulk_create(
            [
                LineEntry(
                    entry=entry,
                    position=position,
                    account=accounts[line.account_code],
                    account_code=line.account_code,
                    account_type=accounts[line.account_code].type,
                    debit=line.debit,
                    credit=line.credit,
                    description=line.description or request.description,
                    period=line.period,
                )
                for position, line in enumerate(request.lines)
            ]
        )
        return entry

    @staticmethod
    def reverse(
        entry: TransactionEntry,
        reason: str = "",
        created_by=None,
        date=None,
    ) -> PostingResult:
        """
        Offset a posted entry with its mirror image.

        The reversal swaps every debit and credit, is keyed
        ``reversal:{original key}`` and flips the original to reversed.
        Reversing the same entry again returns the first reversal.

        Args:
            entry: Posted entry to offset
            reason: Why the entry is reversed
            created_by: User performing the reversal
            date: Economic date of the reversal (defaults to today)

        Returns:
            PostingResult for the reversal entry

        Raises:
            ImmutableEntryError: If the entry is a draft
        """
        key = f"reversal:{entry.idempotency_key}"
        existing = find_duplicate(EntrySource.REVERSAL, str(entry.id), key)
        if existing is not None:
            return PostingResult(entry=existing, duplicate=True)

        description = f"Reversal of {entry.transaction.transaction_id}"
        if reason:
            description = f"{description}: {reason}"
        lines = [
            Line(
                account_code=line.account_code,
                debit=line.credit,
                credit=line.debit,
                description=line.description,
                period=line.period,
            )
            for line in entry.lines.all()
        ]
        request = PostingRequest(
            source=EntrySource.REVERSAL,
            source_id=str(entry.id),
            lines=lines,
            residence=entry.residence,
            date=date,
            description=description,
            transaction_type=TransactionType.REVERSAL,
            reference=entry.transaction.transaction_id,
            created_by=created_by,
            metadata={
                **entry.metadata,
                "reversed_entry_id": str(entry.id),
                "reason": reason,
            },
            idempotency_key=key,
            reversal_of=entry,
        )

        with transaction.atomic():
            original = TransactionEntry.objects.select_for_update().get(pk=entry.pk)
            original.status = EntryStatus.REVERSED
            original.save(update_fields=["status", "updated_at"])
            result = PostingEngine.post(request)

        entry.status = EntryStatus.REVERSED
        logger.info(
            f"Reversed entry {entry.id}",
            extra={"entry_id": str(entry.id), "reversal_id": str(result.entry.id)},
        )
        return result


# Singleton instance for convenience
# Usage: from finance.ledger.posting import posting_engine
posting_engine = PostingEngine()
