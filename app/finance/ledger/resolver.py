"""
Account resolution for business events.

Maps what happened (a description, a category, a request type, a payment
method, a custodian role, a vendor) onto account codes, creating accounts
lazily the first time they are needed.

Expense resolution order:
    1. Explicit category (CATEGORY_ACCOUNTS)
    2. Keyword rules over the description (EXPENSE_KEYWORD_RULES, first
       match wins)
    3. Request-level category, for operational requests
    4. Request type (REQUEST_TYPE_ACCOUNTS)
    5. Property Maintenance (5007)

Usage:
    from finance.ledger.resolver import resolver

    resolver.resolve_expense_account("Fix leaking pipe in block B")  # "5007"
    resolver.resolve_payment_account("Ecocash")                       # "1003"

    payable = resolver.resolve_vendor_payable(vendor_name="Acme Plumbing")
    payable.account_code        # "200001"
    payable.is_vendor_specific  # True
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError, transaction

from core.cache import LookupCache
from finance.exceptions import VendorNotFound

from . import chart
from .exceptions import AccountNotFound
from .models import Account

if TYPE_CHECKING:
    from collections.abc import Iterable

    from finance.models import Vendor

logger = logging.getLogger(__name__)


# =============================================================================
# Resolution tables
# =============================================================================


@dataclass(frozen=True)
class KeywordRule:
    """
    One row of the description keyword table.

    A rule matches when any keyword starts a word of the lower-cased
    description ("plumb" matches "plumbing", "tap" matches "taps").
    """

    name: str
    keywords: tuple[str, ...]
    account_code: str

    def matches(self, text: str) -> bool:
        return any(
            re.search(rf"\b{re.escape(keyword)}", text) for keyword in self.keywords
        )


# Utilities come first so "water bill" and "electricity bill" are not taken
# as plumbing or electrical work.
EXPENSE_KEYWORD_RULES: tuple[KeywordRule, ...] = (
    KeywordRule(
        "utilities",
        ("electricity bill", "water bill", "utility", "utilities", "internet",
         "wifi", "gas"),
        chart.UTILITIES,
    ),
    KeywordRule(
        "plumbing",
        ("pipe", "drain", "tap", "toilet", "sink", "shower", "bath", "water",
         "plumb", "leak", "geyser"),
        chart.PROPERTY_MAINTENANCE,
    ),
    KeywordRule(
        "electrical",
        ("wiring", "power", "light", "switch", "outlet", "circuit", "fuse",
         "breaker", "electric"),
        chart.PROPERTY_MAINTENANCE,
    ),
    KeywordRule(
        "hvac",
        ("air con", "conditioning", "heating", "ventilation", "fan", "hvac"),
        chart.PROPERTY_MAINTENANCE,
    ),
    KeywordRule(
        "cleaning",
        ("clean", "sanitize", "disinfect", "wash", "mop"),
        chart.CLEANING_SERVICES,
    ),
    KeywordRule(
        "security",
        ("guard", "camera", "alarm", "lock", "access"),
        chart.SECURITY_SERVICES,
    ),
    KeywordRule(
        "landscaping",
        ("garden", "lawn", "tree", "plant", "irrigation"),
        chart.GARDEN_LANDSCAPING,
    ),
    KeywordRule(
        "painting",
        ("paint", "wall", "ceiling"),
        chart.PROPERTY_MAINTENANCE,
    ),
    KeywordRule(
        "carpentry",
        ("carpentry", "wood", "door", "window", "cabinet", "shelf"),
        chart.PROPERTY_MAINTENANCE,
    ),
    KeywordRule(
        "supplies",
        ("fuel", "food", "supply", "supplies", "material", "part", "tool",
         "equipment", "hardware"),
        chart.MAINTENANCE_SUPPLIES,
    ),
    KeywordRule(
        "professional",
        ("service", "admin", "consult", "inspection", "assessment", "report"),
        chart.PROFESSIONAL_FEES,
    ),
)

CATEGORY_ACCOUNTS: dict[str, str] = {
    "maintenance": chart.PROPERTY_MAINTENANCE,
    "plumbing": chart.PROPERTY_MAINTENANCE,
    "electrical": chart.PROPERTY_MAINTENANCE,
    "hvac": chart.PROPERTY_MAINTENANCE,
    "painting": chart.PROPERTY_MAINTENANCE,
    "carpentry": chart.PROPERTY_MAINTENANCE,
    "cleaning": chart.CLEANING_SERVICES,
    "security": chart.SECURITY_SERVICES,
    "landscaping": chart.GARDEN_LANDSCAPING,
    "supplies": chart.MAINTENANCE_SUPPLIES,
    "utilities": chart.UTILITIES,
    "services": chart.PROFESSIONAL_FEES,
}

REQUEST_TYPE_ACCOUNTS: dict[str, str] = {
    "maintenance": chart.PROPERTY_MAINTENANCE,
    "student_maintenance": chart.PROPERTY_MAINTENANCE,
    "operational": chart.PROPERTY_MAINTENANCE,
    "financial": chart.PROFESSIONAL_FEES,
    "administrative": chart.PROFESSIONAL_FEES,
}

FALLBACK_EXPENSE_ACCOUNT = chart.PROPERTY_MAINTENANCE


def _normalize(value: str | None) -> str:
    return (value or "").strip().lower()


def match_keyword_rule(description: str | None) -> KeywordRule | None:
    """Return the first keyword rule matching description, if any."""
    text = _normalize(description)
    if not text:
        return None
    for rule in EXPENSE_KEYWORD_RULES:
        if rule.matches(text):
            return rule
    return None


@dataclass(frozen=True)
class ResolvedPayable:
    """
    Payable account for an accrual.

    Attributes:
        account_code: Vendor sub-ledger code, or 2000 when no vendor matched
        vendor: The matched vendor, if any
        is_vendor_specific: True when account_code is a vendor sub-ledger
    """

    account_code: str
    vendor: Vendor | None = None
    is_vendor_specific: bool = False


# =============================================================================
# Resolver
# =============================================================================


class AccountResolver:
    """
    Maps business context to account codes and creates accounts on demand.

    Accounts of the standard chart are seeded the first time they are
    requested; vendor sub-ledgers are created when a vendor is first
    resolved. Later resolutions are plain lookups.
    """

    MAX_CODE_ATTEMPTS = 3

    def __init__(self, vendor_cache: LookupCache | None = None) -> None:
        self.vendor_cache = vendor_cache or LookupCache("vendors")

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    @staticmethod
    def get_account(code: str) -> Account:
        """
        Get a persisted account by code.

        Raises:
            AccountNotFound: If no account has this code
        """
        try:
            return Account.objects.get(code=code)
        except Account.DoesNotExist:
            raise AccountNotFound(
                f"Account {code} not found",
                details={"account_code": code},
            )

    @staticmethod
    def get_or_create_account(code: str) -> Account:
        """
        Get an account, seeding it from the standard chart if needed.

        Args:
            code: Account code

        Returns:
            The persisted Account

        Raises:
            AccountNotFound: If the code is neither persisted nor part of
                the standard chart
        """
        account = Account.objects.filter(code=code).first()
        if account is not None:
            return account

        spec = chart.STANDARD_ACCOUNTS.get(code)
        if spec is None:
            raise AccountNotFound(
                f"Account {code} not found",
                details={"account_code": code},
            )

        account, created = Account.objects.get_or_create(
            code=spec.code,
            defaults={
                "name": spec.name,
                "type": spec.type,
                "category": spec.category,
                "description": spec.description,
            },
        )
        if created:
            logger.info(
                f"Seeded account {spec.code} ({spec.name})",
                extra={"account_code": spec.code},
            )
        return account

    def ensure_accounts(self, codes: Iterable[str]) -> dict[str, Account]:
        """Get or seed every code; returns a code -> Account map."""
        return {code: self.get_or_create_account(code) for code in set(codes)}

    @staticmethod
    def set_account_active(code: str, is_active: bool) -> Account:
        """
        Deactivate or reactivate an account.

        Inactive accounts keep their history but reject new postings.

        Raises:
            AccountNotFound: If the account does not exist
        """
        account = AccountResolver.get_account(code)
        account.is_active = is_active
        account.save(update_fields=["is_active", "updated_at"])
        return account

    # -------------------------------------------------------------------------
    # Expense, payment and petty cash accounts
    # -------------------------------------------------------------------------

    @staticmethod
    def resolve_expense_account(
        description: str | None,
        category: str | None = None,
        request_category: str | None = None,
        request_type: str | None = None,
    ) -> str:
        """
        Choose the expense account for a cost.

        Args:
            description: Free-text description of the item
            category: Explicit item or expense category
            request_category: Category of the whole request
            request_type: Request type (maintenance, operational, financial, ...)

        Returns:
            Expense account code
        """
        explicit = CATEGORY_ACCOUNTS.get(_normalize(category))
        if explicit:
            return explicit

        rule = match_keyword_rule(description)
        if rule is not None:
            return rule.account_code

        request_type = _normalize(request_type)
        if request_type == "operational":
            by_request_category = CATEGORY_ACCOUNTS.get(_normalize(request_category))
            if by_request_category:
                return by_request_category

        by_type = REQUEST_TYPE_ACCOUNTS.get(request_type)
        if by_type:
            return by_type

        return FALLBACK_EXPENSE_ACCOUNT

    @staticmethod
    def resolve_payment_account(method: str | None) -> str:
        """
        Map a payment method to its cash or bank account.

        Matching is case-insensitive; unknown methods use Cash on Hand.
        """
        name = _normalize(method) or _normalize(
            getattr(settings, "FINANCE_DEFAULT_PAYMENT_METHOD", "Cash")
        )
        code = chart.PAYMENT_METHOD_ACCOUNTS.get(name)
        if code is None:
            logger.warning(
                f"Unknown payment method {method!r}, using cash on hand",
                extra={"payment_method": method},
            )
            return chart.CASH
        return code

    @staticmethod
    def resolve_petty_cash_account(role: str | None) -> str:
        """Petty cash account for a custodian role (General Petty Cash otherwise)."""
        return chart.PETTY_CASH_ROLE_ACCOUNTS.get(
            _normalize(role), chart.PETTY_CASH_GENERAL
        )

    # -------------------------------------------------------------------------
    # Vendors
    # -------------------------------------------------------------------------

    def get_vendor(self, vendor_id) -> Vendor:
        """
        Get a vendor by UUID or vendor code.

        Raises:
            VendorNotFound: If no vendor matches
        """
        vendor = self._vendor_by_id(vendor_id)
        if vendor is None:
            raise VendorNotFound(
                f"Vendor {vendor_id} not found",
                details={"vendor_id": str(vendor_id)},
            )
        return vendor

    @staticmethod
    def _vendor_by_id(vendor_id) -> Vendor | None:
        from finance.models import Vendor

        if not vendor_id:
            return None
        if isinstance(vendor_id, Vendor):
            return vendor_id
        try:
            return Vendor.objects.get(id=uuid.UUID(str(vendor_id)))
        except (ValueError, Vendor.DoesNotExist):
            return Vendor.objects.filter(vendor_code=str(vendor_id)).first()

    def _vendor_by_name(self, vendor_name: str) -> Vendor | None:
        from finance.models import Vendor

        name = vendor_name.strip()
        if not name:
            return None

        cache_key = f"name:{name.lower()}"
        vendor_id = self.vendor_cache.get(cache_key)
        if vendor_id is not None:
            vendor = Vendor.objects.filter(id=vendor_id, is_active=True).first()
            if vendor is not None:
                return vendor
            self.vendor_cache.delete(cache_key)

        active = Vendor.objects.filter(is_active=True).order_by("created_at")
        vendor = (
            active.filter(business_name__iexact=name).first()
            or active.filter(business_name__icontains=name).first()
        )
        if vendor is None:
            lowered = name.lower()
            vendor = next(
                (
                    candidate
                    for candidate in active
                    if candidate.business_name
                    and candidate.business_name.lower() in lowered
                ),
                None,
            )

        if vendor is not None:
            self.vendor_cache.set(cache_key, vendor.id)
        return vendor

    def find_vendor(self, vendor_id=None, vendor_name: str | None = None) -> Vendor | None:
        """
        Look a vendor up by id, then by business name.

        Name matching is case-insensitive and accepts containment either way
        ("Acme" finds "Acme Plumbing Ltd", "Acme Plumbing Ltd (invoice 12)"
        finds "Acme Plumbing Ltd").
        """
        vendor = self._vendor_by_id(vendor_id)
        if vendor is None and vendor_name:
            vendor = self._vendor_by_name(vendor_name)
        return vendor

    def ensure_vendor_account(self, vendor: Vendor) -> Account:
        """
        Get or create the vendor's payable sub-ledger.

        Codes are allocated as 200 + a three-digit sequence (200001, 200002,
        ...) and stored on the vendor. Calling this again returns the same
        account.

        Returns:
            The vendor's Liability account
        """
        if vendor.chart_of_accounts_code:
            return self._get_or_create_vendor_account(
                vendor.chart_of_accounts_code, vendor
            )

        for attempt in range(self.MAX_CODE_ATTEMPTS):
            try:
                with transaction.atomic():
                    locked = type(vendor).objects.select_for_update().get(pk=vendor.pk)
                    if locked.chart_of_accounts_code:
                        vendor.chart_of_accounts_code = locked.chart_of_accounts_code
                        return self._get_or_create_vendor_account(
                            locked.chart_of_accounts_code, vendor
                        )
                    code = chart.vendor_account_code(self._next_vendor_sequence())
                    account = self._get_or_create_vendor_account(code, vendor)
                    locked.chart_of_accounts_code = code
                    locked.save(update_fields=["chart_of_accounts_code", "updated_at"])
                    vendor.chart_of_accounts_code = code
            except IntegrityError:
                logger.warning(
                    f"Vendor account code collision for {vendor.business_name}, retrying",
                    extra={"vendor_id": str(vendor.pk), "attempt": attempt + 1},
                )
                continue

            logger.info(
                f"Created payable sub-ledger {code} for {vendor.business_name}",
                extra={"vendor_id": str(vendor.pk), "account_code": code},
            )
            return account

        raise IntegrityError(
            f"Could not allocate a payable account code for vendor {vendor.pk}"
        )

    @staticmethod
    def _next_vendor_sequence() -> int:
        from finance.models import Vendor

        codes = set(
            Account.objects.filter(
                code__startswith=chart.VENDOR_ACCOUNT_PREFIX
            ).values_list("code", flat=True)
        )
        codes.update(
            Vendor.objects.exclude(chart_of_accounts_code__isnull=True).values_list(
                "chart_of_accounts_code", flat=True
            )
        )
        used = [
            int(code[len(chart.VENDOR_ACCOUNT_PREFIX):])
            for code in codes
            if code and chart.is_vendor_account_code(code)
        ]
        return max(used, default=0) + 1

    @staticmethod
    def _get_or_create_vendor_account(code: str, vendor: Vendor) -> Account:
        account, _ = Account.objects.get_or_create(
            code=code,
            defaults={
                "name": f"Accounts Payable - {vendor.business_name}",
                "type": chart.LIABILITY,
                "category": "Current Liabilities",
                "description": f"Payable sub-ledger for vendor {vendor.vendor_code}",
                "parent_code": chart.ACCOUNTS_PAYABLE,
            },
        )
        return account

    def resolve_vendor_payable(
        self,
        vendor_id=None,
        vendor_name: str | None = None,
    ) -> ResolvedPayable:
        """
        Payable account for a cost owed to a supplier.

        Returns the vendor's sub-ledger when the vendor is known, otherwise
        the general Accounts Payable account (logged as a warning).
        """
        vendor = self.find_vendor(vendor_id=vendor_id, vendor_name=vendor_name)
        if vendor is None:
            if vendor_id or vendor_name:
                logger.warning(
                    "Vendor not found, using general accounts payable",
                    extra={
                        "vendor_id": str(vendor_id) if vendor_id else None,
                        "vendor_name": vendor_name,
                    },
                )
            self.get_or_create_account(chart.ACCOUNTS_PAYABLE)
            return ResolvedPayable(account_code=chart.ACCOUNTS_PAYABLE)

        account = self.ensure_vendor_account(vendor)
        return ResolvedPayable(
            account_code=account.code,
            vendor=vendor,
            is_vendor_specific=True,
        )


# Singleton instance for convenience
# Usage: from finance.ledger.resolver import resolver
resolver = AccountResolver()
