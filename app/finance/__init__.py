"""
Finance app: double-entry ledger and payment allocation.

This app handles:
- Chart of accounts and account resolution
- Balanced postings for every business event, posted exactly once
- Student payment allocation across past, current and future periods
- Expense accruals, vendor sub-ledgers and their settlement
- Petty cash allocations and spends
- Balances derived from posted entries

Related apps:
    - properties: Residence every posting is attributed to
    - authentication: Students and petty cash custodians

Usage:
    from finance.services import post_event, get_account_balance

    result = post_event(StudentPayment(...))
    get_account_balance("1100")
"""
