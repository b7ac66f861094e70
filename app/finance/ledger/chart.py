"""
Standard chart of accounts.

Data-only module: account codes, their names, types and categories, and the
lookup tables that map payment methods and custodian roles onto accounts.
Accounts are not created here; the resolver seeds them lazily from
STANDARD_ACCOUNTS the first time a posting needs them.

Code ranges:
    1000-1099  Cash, bank and petty cash (assets)
    1100-1199  Receivables (assets)
    2000-2999  Payables, deposits and deferred income (liabilities)
    200NNN     Per-vendor payable sub-ledgers (liabilities, under 2000)
    4000-4999  Income
    5000-5999  Expenses
"""

from __future__ import annotations

from dataclasses import dataclass

# =============================================================================
# Account Types
# =============================================================================

ASSET = "asset"
LIABILITY = "liability"
EQUITY = "equity"
INCOME = "income"
EXPENSE = "expense"

# Types whose balance grows on the debit side
DEBIT_NORMAL_TYPES = frozenset({ASSET, EXPENSE})


# =============================================================================
# Account Codes
# =============================================================================

BANK_MAIN = "1000"
BANK = "1001"
CASH = "1002"
ECOCASH = "1003"
INNBUCKS = "1004"
ONLINE_PAYMENTS = "1005"
CARD_PAYMENTS = "1006"
PAYPAL = "1007"

PETTY_CASH_GENERAL = "1010"
PETTY_CASH_ADMIN = "1011"
PETTY_CASH_FINANCE = "1012"
PETTY_CASH_PROPERTY_MANAGER = "1013"
PETTY_CASH_MAINTENANCE = "1014"

ACCOUNTS_RECEIVABLE = "1100"

ACCOUNTS_PAYABLE = "2000"
TENANT_DEPOSITS_HELD = "2020"
DEFERRED_INCOME = "2200"

RENTAL_INCOME = "4000"
ADMIN_FEE_INCOME = "4100"

UTILITIES = "5003"
PROPERTY_MAINTENANCE = "5007"
CLEANING_SERVICES = "5009"
MAINTENANCE_SUPPLIES = "5011"
GARDEN_LANDSCAPING = "5012"
SECURITY_SERVICES = "5014"
PROFESSIONAL_FEES = "5062"

VENDOR_ACCOUNT_PREFIX = "200"
VENDOR_ACCOUNT_SEQUENCE_WIDTH = 3


@dataclass(frozen=True)
class AccountSpec:
    """Definition of one account in the standard chart."""

    code: str
    name: str
    type: str
    category: str
    description: str = ""


_CURRENT_ASSETS = "Current Assets"
_PETTY_CASH = "Petty Cash"
_CURRENT_LIABILITIES = "Current Liabilities"
_OPERATING_REVENUE = "Operating Revenue"
_OPERATING_EXPENSES = "Operating Expenses"

STANDARD_ACCOUNTS: dict[str, AccountSpec] = {
    spec.code: spec
    for spec in (
        AccountSpec(BANK_MAIN, "Bank - Main Account", ASSET, _CURRENT_ASSETS),
        AccountSpec(BANK, "Bank Account", ASSET, _CURRENT_ASSETS),
        AccountSpec(CASH, "Cash on Hand", ASSET, _CURRENT_ASSETS),
        AccountSpec(ECOCASH, "Ecocash Wallet", ASSET, _CURRENT_ASSETS),
        AccountSpec(INNBUCKS, "Innbucks Wallet", ASSET, _CURRENT_ASSETS),
        AccountSpec(ONLINE_PAYMENTS, "Online Payment Account", ASSET, _CURRENT_ASSETS),
        AccountSpec(CARD_PAYMENTS, "MasterCard Account", ASSET, _CURRENT_ASSETS),
        AccountSpec(PAYPAL, "PayPal Account", ASSET, _CURRENT_ASSETS),
        AccountSpec(PETTY_CASH_GENERAL, "General Petty Cash", ASSET, _PETTY_CASH),
        AccountSpec(PETTY_CASH_ADMIN, "Admin Petty Cash", ASSET, _PETTY_CASH),
        AccountSpec(PETTY_CASH_FINANCE, "Finance Petty Cash", ASSET, _PETTY_CASH),
        AccountSpec(
            PETTY_CASH_PROPERTY_MANAGER,
            "Property Manager Petty Cash",
            ASSET,
            _PETTY_CASH,
        ),
        AccountSpec(
            PETTY_CASH_MAINTENANCE, "Maintenance Petty Cash", ASSET, _PETTY_CASH
        ),
        AccountSpec(
            ACCOUNTS_RECEIVABLE,
            "Accounts Receivable - Tenants",
            ASSET,
            _CURRENT_ASSETS,
            "Rent, fees and deposits owed by students",
        ),
        AccountSpec(
            ACCOUNTS_PAYABLE,
            "Accounts Payable",
            LIABILITY,
            _CURRENT_LIABILITIES,
            "Amounts owed to suppliers without a dedicated sub-ledger",
        ),
        AccountSpec(
            TENANT_DEPOSITS_HELD,
            "Tenant Deposits Held",
            LIABILITY,
            _CURRENT_LIABILITIES,
            "Security deposits refundable to students",
        ),
        AccountSpec(
            DEFERRED_INCOME,
            "Deferred Income - Tenant Advances",
            LIABILITY,
            _CURRENT_LIABILITIES,
            "Rent received for periods not yet earned",
        ),
        AccountSpec(
            RENTAL_INCOME, "Rental Income - Residential", INCOME, _OPERATING_REVENUE
        ),
        AccountSpec(
            ADMIN_FEE_INCOME, "Administrative Fees", INCOME, _OPERATING_REVENUE
        ),
        AccountSpec(UTILITIES, "Utilities", EXPENSE, _OPERATING_EXPENSES),
        AccountSpec(
            PROPERTY_MAINTENANCE, "Property Maintenance", EXPENSE, _OPERATING_EXPENSES
        ),
        AccountSpec(
            CLEANING_SERVICES, "Cleaning Services", EXPENSE, _OPERATING_EXPENSES
        ),
        AccountSpec(
            MAINTENANCE_SUPPLIES, "Maintenance Supplies", EXPENSE, _OPERATING_EXPENSES
        ),
        AccountSpec(
            GARDEN_LANDSCAPING, "Garden & Landscaping", EXPENSE, _OPERATING_EXPENSES
        ),
        AccountSpec(
            SECURITY_SERVICES, "Security Services", EXPENSE, _OPERATING_EXPENSES
        ),
        AccountSpec(
            PROFESSIONAL_FEES, "Professional Fees", EXPENSE, _OPERATING_EXPENSES
        ),
    )
}


# =============================================================================
# Lookup Tables
# =============================================================================

# Payment method (lower-cased) -> cash/bank account
PAYMENT_METHOD_ACCOUNTS: dict[str, str] = {
    "bank transfer": BANK,
    "bank": BANK,
    "cash": CASH,
    "ecocash": ECOCASH,
    "innbucks": INNBUCKS,
    "online payment": ONLINE_PAYMENTS,
    "online": ONLINE_PAYMENTS,
    "mastercard": CARD_PAYMENTS,
    "visa": CARD_PAYMENTS,
    "card": CARD_PAYMENTS,
    "paypal": PAYPAL,
}

# Custodian role -> petty cash account
PETTY_CASH_ROLE_ACCOUNTS: dict[str, str] = {
    "admin": PETTY_CASH_ADMIN,
    "finance_admin": PETTY_CASH_FINANCE,
    "finance_user": PETTY_CASH_FINANCE,
    "property_manager": PETTY_CASH_PROPERTY_MANAGER,
    "maintenance": PETTY_CASH_MAINTENANCE,
}

# Accounts whose movements are cash movements
CASH_EQUIVALENT_CODES = frozenset(
    {
        BANK_MAIN,
        BANK,
        CASH,
        ECOCASH,
        INNBUCKS,
        ONLINE_PAYMENTS,
        CARD_PAYMENTS,
        PAYPAL,
        PETTY_CASH_GENERAL,
        PETTY_CASH_ADMIN,
        PETTY_CASH_FINANCE,
        PETTY_CASH_PROPERTY_MANAGER,
        PETTY_CASH_MAINTENANCE,
    }
)


def vendor_account_code(sequence: int) -> str:
    """Return the payable sub-ledger code for the nth vendor (e.g. 200001)."""
    return f"{VENDOR_ACCOUNT_PREFIX}{sequence:0{VENDOR_ACCOUNT_SEQUENCE_WIDTH}d}"


def is_vendor_account_code(code: str) -> bool:
    """Whether code belongs to the per-vendor payable range."""
    return (
        code.startswith(VENDOR_ACCOUNT_PREFIX)
        and len(code) == len(VENDOR_ACCOUNT_PREFIX) + VENDOR_ACCOUNT_SEQUENCE_WIDTH
        and code.isdigit()
    )
