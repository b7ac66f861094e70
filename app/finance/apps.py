"""
Finance app configuration.

This app holds the double-entry ledger and the services that turn business
events into postings:
- Chart of accounts, account resolution and posting (finance.ledger)
- Student payment allocation across billing periods
- Expense and vendor payable sub-ledgers
- Petty cash allocations and spends
"""

from django.apps import AppConfig


class FinanceConfig(AppConfig):
    """Configuration for the finance application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "finance"
    verbose_name = "Finance"
