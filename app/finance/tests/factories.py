"""
Factory Boy factories for finance test data.

Ledger rows (Transaction, TransactionEntry, LineEntry) are never built by
factories: tests create them through the posting engine so every entry is
balanced and keyed the way production postings are.

Usage:
    from finance.tests.factories import DebtorFactory, VendorFactory

    vendor = VendorFactory(business_name="Acme Plumbing")
    debtor = DebtorFactory(monthly_rent=Decimal("180.00"))
"""

import datetime
from decimal import Decimal

import factory

from authentication.models import UserRole
from authentication.tests.factories import UserFactory
from finance.models import Debtor, Expense, ExpenseSourceType, Vendor
from properties.tests.factories import ResidenceFactory


class VendorFactory(factory.django.DjangoModelFactory):
    """
    Factory for Vendor.

    Vendors start without a payable sub-ledger; the resolver allocates one
    on first use.
    """

    class Meta:
        model = Vendor
        skip_postgeneration_save = True

    vendor_code = factory.Sequence(lambda n: f"V{n:05d}")
    business_name = factory.Sequence(lambda n: f"Supplier {n} Ltd")
    category = "maintenance"
    is_active = True


class DebtorFactory(factory.django.DjangoModelFactory):
    """
    Factory for Debtor.

    Defaults to a 180.00 monthly lease starting on 13 September 2025.

    Examples:
        debtor = DebtorFactory()
        debtor = DebtorFactory(admin_fee=Decimal("20.00"), deposit=Decimal("180.00"))
    """

    class Meta:
        model = Debtor
        skip_postgeneration_save = True

    student = factory.SubFactory(UserFactory, role=UserRole.STUDENT)
    residence = factory.SubFactory(ResidenceFactory)
    monthly_rent = Decimal("180.00")
    admin_fee = Decimal("0.00")
    deposit = Decimal("0.00")
    lease_start_date = datetime.date(2025, 9, 13)
    lease_end_date = datetime.date(2026, 6, 30)
    is_active = True


class ExpenseFactory(factory.django.DjangoModelFactory):
    """
    Factory for a pending Expense without an accrual posting.

    Use ExpenseService to create expenses that carry their accrual.
    """

    class Meta:
        model = Expense
        skip_postgeneration_save = True

    residence = factory.SubFactory(ResidenceFactory)
    category = "maintenance"
    description = factory.Faker("sentence", nb_words=4)
    amount = Decimal("100.00")
    source_type = ExpenseSourceType.MAINTENANCE_REQUEST
    source_id = factory.Sequence(lambda n: f"MR-{n:04d}")
