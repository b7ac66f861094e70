"""
Ledger - double-entry bookkeeping for the property finance core.

Every business event is posted as one balanced, immutable entry: a
Transaction header, a TransactionEntry and its debit/credit LineEntry rows.
Balances are always derived from posted lines, never stored.

Public API:
    Models:
        Account - An account of the chart
        Transaction - Header of one business event
        TransactionEntry - The balanced posting for a transaction
        LineEntry - One debit or credit line
        EntrySource, EntryStatus, TransactionType - Choices

    Services:
        resolver - AccountResolver singleton (account codes, vendor sub-ledgers)
        posting_engine - PostingEngine singleton (post, reverse)
        balances - BalanceService singleton (balances, listings, trial balance)
        find_duplicate - Duplicate guard

    Types:
        Line, PostingRequest, PostingResult, TransactionFilters, TrialBalance

    Exceptions:
        UnbalancedEntryError, InvalidLineError, MissingResidenceError,
        InactiveAccount, ImmutableEntryError, AccountNotFound

Usage:
    from finance.ledger import Line, PostingRequest, posting_engine

    result = posting_engine.post(PostingRequest(
        source=EntrySource.INVOICE,
        source_id="INV-1001",
        residence=residence,
        lines=[
            Line.debit_line("1100", "180.00"),
            Line.credit_line("4000", "180.00"),
        ],
        metadata={"student_id": str(student.id)},
    ))
"""

from .exceptions import (
    AccountNotFound,
    ImmutableEntryError,
    InactiveAccount,
    InvalidLineError,
    MissingResidenceError,
    UnbalancedEntryError,
)
from .models import (
    Account,
    AccountType,
    EntrySource,
    EntryStatus,
    LineEntry,
    Transaction,
    TransactionEntry,
    TransactionType,
)
from .types import (
    Line,
    PostingRequest,
    PostingResult,
    TransactionFilters,
    TrialBalance,
    TrialBalanceRow,
    to_money,
)
from .resolver import AccountResolver, ResolvedPayable, resolver
from .duplicates import find_duplicate
from .posting import PostingEngine, posting_engine
from .balances import BalanceService, balances

__all__ = [
    # Models
    "Account",
    "AccountType",
    "EntrySource",
    "EntryStatus",
    "LineEntry",
    "Transaction",
    "TransactionEntry",
    "TransactionType",
    # Services
    "AccountResolver",
    "BalanceService",
    "PostingEngine",
    "ResolvedPayable",
    "balances",
    "find_duplicate",
    "posting_engine",
    "resolver",
    # Types
    "Line",
    "PostingRequest",
    "PostingResult",
    "TransactionFilters",
    "TrialBalance",
    "TrialBalanceRow",
    "to_money",
    # Exceptions
    "AccountNotFound",
    "ImmutableEntryError",
    "InactiveAccount",
    "InvalidLineError",
    "MissingResidenceError",
    "UnbalancedEntryError",
]
