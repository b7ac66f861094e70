"""
Tests for the posting engine.

Covers the balance invariant, idempotent posting, validation before any
write, residence handling, inactive accounts and reversals.
"""

import uuid
from decimal import Decimal

import pytest

from finance.ledger.balances import balances
from finance.ledger.exceptions import (
    AccountNotFound,
    InactiveAccount,
    InvalidLineError,
    MissingResidenceError,
    UnbalancedEntryError,
)
from finance.ledger.models import (
    Account,
    EntrySource,
    EntryStatus,
    LineEntry,
    Transaction,
    TransactionEntry,
    TransactionType,
)
from finance.ledger.posting import posting_engine
from finance.ledger.resolver import resolver
from finance.ledger.types import Line, PostingRequest
from properties.exceptions import ResidenceNotFound

RENT_ROWS = [("1002", "180.00", None), ("4000", None, "180.00")]


def _counts():
    return (
        Transaction.objects.count(),
        TransactionEntry.objects.count(),
        LineEntry.objects.count(),
    )


class TestPost:
    """Tests for PostingEngine.post()."""

    def test_writes_header_entry_and_lines(self, post_lines, residence):
        """One event should produce one header, one entry and its lines."""
        result = post_lines(
            EntrySource.INVOICE,
            "INV-1",
            RENT_ROWS,
            description="September rent",
            transaction_type=TransactionType.INVOICE,
            metadata={"student_id": "abc"},
        )

        entry = result.entry
        assert result.duplicate is False
        assert _counts() == (1, 1, 2)
        assert entry.idempotency_key == "invoice:INV-1"
        assert entry.residence == residence
        assert entry.transaction.residence == residence
        assert entry.transaction.type == TransactionType.INVOICE
        assert entry.transaction.transaction_id.startswith("TXN")
        assert entry.transaction.reference == "INV-1"
        assert entry.status == EntryStatus.POSTED
        assert entry.metadata == {"student_id": "abc"}
        assert entry.is_balanced

    def test_line_description_defaults_to_entry_description(self, post_lines):
        """Lines without a narrative take the entry description."""
        result = post_lines(EntrySource.MANUAL, "M-1", RENT_ROWS, description="Cash sale")

        assert {line.description for line in result.entry.lines.all()} == {"Cash sale"}

    def test_seeds_accounts_lazily(self, post_lines):
        """Chart accounts should be created on first use."""
        assert not Account.objects.filter(code="4000").exists()

        post_lines(EntrySource.MANUAL, "M-1", RENT_ROWS)

        account = Account.objects.get(code="4000")
        assert account.name == "Rental Income - Residential"
        assert account.type == "income"

    def test_same_key_posts_once(self, post_lines):
        """A second post with the same key returns the first entry."""
        first = post_lines(EntrySource.INVOICE, "INV-1", RENT_ROWS)
        second = post_lines(EntrySource.INVOICE, "INV-1", RENT_ROWS)

        assert second.duplicate is True
        assert second.entry.pk == first.entry.pk
        assert TransactionEntry.objects.count() == 1

    def test_explicit_key_overrides_default(self, post_lines):
        """Different keys for the same source id post twice."""
        post_lines(EntrySource.MANUAL, "M-1", RENT_ROWS, idempotency_key="a")
        post_lines(EntrySource.MANUAL, "M-1", RENT_ROWS, idempotency_key="b")

        assert TransactionEntry.objects.count() == 2

    def test_recency_window_catches_regenerated_key(self, post_lines):
        """A retry with a new key but the same discriminators is a duplicate."""
        first = post_lines(
            EntrySource.PETTY_CASH_EXPENSE,
            "U-1",
            RENT_ROWS,
            idempotency_key="attempt-1",
            metadata={"amount": "180.00"},
        )
        second = post_lines(
            EntrySource.PETTY_CASH_EXPENSE,
            "U-1",
            RENT_ROWS,
            idempotency_key="attempt-2",
            metadata={"amount": "180.00"},
            duplicate_match={"amount": Decimal("180")},
        )

        assert second.duplicate is True
        assert second.entry.pk == first.entry.pk


class TestPostValidation:
    """Invalid postings write nothing."""

    def test_unbalanced_lines_raise(self, post_lines):
        """Debits and credits must match."""
        with pytest.raises(UnbalancedEntryError) as exc_info:
            post_lines(
                EntrySource.MANUAL,
                "M-1",
                [("1002", "100.00", None), ("4000", None, "99.99")],
            )

        assert exc_info.value.total_debit == Decimal("100.00")
        assert exc_info.value.total_credit == Decimal("99.99")
        assert _counts() == (0, 0, 0)

    def test_empty_lines_raise(self, post_lines):
        """A posting needs at least one line."""
        with pytest.raises(InvalidLineError):
            post_lines(EntrySource.MANUAL, "M-1", [])

        assert _counts() == (0, 0, 0)

    def test_missing_residence_raises(self, db):
        """Only petty cash may post without a residence."""
        with pytest.raises(MissingResidenceError):
            posting_engine.post(
                PostingRequest(
                    source=EntrySource.MANUAL,
                    source_id="M-1",
                    lines=[Line.debit_line("1002", "5"), Line.credit_line("4000", "5")],
                )
            )

        assert _counts() == (0, 0, 0)

    def test_default_residence_when_allowed(self, residence):
        """allow_default_residence falls back to the earliest residence."""
        result = posting_engine.post(
            PostingRequest(
                source=EntrySource.PETTY_CASH_ALLOCATION,
                source_id="PCA-1",
                lines=[Line.debit_line("1013", "50"), Line.credit_line("1002", "50")],
                allow_default_residence=True,
            )
        )

        assert result.entry.residence == residence

    def test_unknown_residence_raises(self, post_lines):
        """A residence id that does not exist should raise."""
        with pytest.raises(ResidenceNotFound):
            post_lines(EntrySource.MANUAL, "M-1", RENT_ROWS, residence=uuid.uuid4())

    def test_unknown_account_raises(self, post_lines):
        """Codes outside the chart cannot be posted to."""
        with pytest.raises(AccountNotFound):
            post_lines(
                EntrySource.MANUAL,
                "M-1",
                [("1002", "10.00", None), ("9999", None, "10.00")],
            )

        assert _counts() == (0, 0, 0)

    def test_inactive_account_raises(self, post_lines):
        """Deactivated accounts reject postings."""
        resolver.get_or_create_account("4000")
        resolver.set_account_active("4000", False)

        with pytest.raises(InactiveAccount):
            post_lines(EntrySource.MANUAL, "M-1", RENT_ROWS)

        assert _counts() == (0, 0, 0)


class TestReverse:
    """Tests for PostingEngine.reverse()."""

    @pytest.fixture
    def original(self, post_lines):
        return post_lines(
            EntrySource.INVOICE,
            "INV-1",
            [("1100", "180.00", None), ("4000", None, "180.00")],
            metadata={"student_id": "s-1"},
        ).entry

    def test_reversal_mirrors_lines(self, original):
        """Every debit becomes a credit and vice versa."""
        result = posting_engine.reverse(original, reason="Billed in error")

        reversal = result.entry
        lines = {line.account_code: line for line in reversal.lines.all()}
        assert lines["1100"].credit == Decimal("180.00")
        assert lines["4000"].debit == Decimal("180.00")
        assert reversal.reversal_of == original
        assert reversal.source == EntrySource.REVERSAL
        assert reversal.transaction.type == TransactionType.REVERSAL
        assert "Billed in error" in reversal.description

    def test_original_flagged_and_balances_cancel(self, original):
        """The original is marked reversed and balances net to zero."""
        posting_engine.reverse(original)

        original.refresh_from_db()
        assert original.status == EntryStatus.REVERSED
        assert balances.get_account_balance("1100") == Decimal("0.00")
        assert balances.get_account_balance("4000") == Decimal("0.00")

    def test_reversal_keeps_student_tag(self, original):
        """Per-student balances see the offset too."""
        result = posting_engine.reverse(original)

        assert result.entry.metadata["student_id"] == "s-1"
        assert result.entry.metadata["reversed_entry_id"] == str(original.id)
        assert balances.get_student_receivable_balance("s-1") == Decimal("0.00")

    def test_reversing_twice_returns_first_reversal(self, original):
        """Reversal is idempotent."""
        first = posting_engine.reverse(original)
        second = posting_engine.reverse(original)

        assert second.duplicate is True
        assert second.entry.pk == first.entry.pk
        assert TransactionEntry.objects.filter(source=EntrySource.REVERSAL).count() == 1
