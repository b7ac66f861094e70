"""
Finance domain models.

This package contains the finance models and re-exports the ledger models
from finance.ledger so Django discovers them under the finance app:
- Account, Transaction, TransactionEntry, LineEntry: The ledger
- Vendor: Suppliers and their payable sub-ledger codes
- Expense: Accrued and settled obligations
- Debtor: Per-student lease terms and receivable projection
- PettyCashAllocation, PettyCashUsage: Custodian cash and spends
"""

from finance.ledger.models import Account, LineEntry, Transaction, TransactionEntry
from finance.models.debtor import Debtor
from finance.models.expense import Expense, ExpenseSourceType
from finance.models.petty_cash import PettyCashAllocation, PettyCashUsage
from finance.models.vendor import Vendor

__all__ = [
    "Account",
    "Debtor",
    "Expense",
    "ExpenseSourceType",
    "LineEntry",
    "PettyCashAllocation",
    "PettyCashUsage",
    "Transaction",
    "TransactionEntry",
    "Vendor",
]
