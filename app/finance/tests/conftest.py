"""
Pytest fixtures for finance tests.

Time-sensitive tests freeze the clock in September 2025, the month the
default lease starts.

Usage:
    def test_payment(debtor, residence):
        result = post_event(StudentPayment(student_id=debtor.student_id, ...))
"""

import datetime
from decimal import Decimal

import pytest

from authentication.models import UserRole
from authentication.tests.factories import UserFactory
from finance.tests.factories import DebtorFactory, VendorFactory
from properties.tests.factories import ResidenceFactory


# =============================================================================
# Parties
# =============================================================================


@pytest.fixture
def residence(db):
    """Create a residence."""
    return ResidenceFactory(name="Belvedere House")


@pytest.fixture
def student(db):
    """Create a student user."""
    return UserFactory(role=UserRole.STUDENT)


@pytest.fixture
def custodian(db):
    """Create a property manager who holds petty cash."""
    return UserFactory(role=UserRole.PROPERTY_MANAGER)


@pytest.fixture
def finance_user(db):
    """Create a finance user who approves spends."""
    return UserFactory(role=UserRole.FINANCE_USER)


@pytest.fixture
def vendor(db):
    """Create a plumbing vendor."""
    return VendorFactory(business_name="Acme Plumbing Ltd", category="plumbing")


@pytest.fixture
def other_vendor(db):
    """Create a second, unrelated vendor."""
    return VendorFactory(business_name="Brightside Cleaning", category="cleaning")


# =============================================================================
# Leases
# =============================================================================


@pytest.fixture
def debtor(db, student, residence):
    """Student with a 180.00 lease starting 13 September 2025."""
    return DebtorFactory(
        student=student,
        residence=residence,
        monthly_rent=Decimal("180.00"),
        lease_start_date=datetime.date(2025, 9, 13),
        lease_end_date=datetime.date(2026, 6, 30),
    )


@pytest.fixture
def debtor_with_fees(db, residence):
    """Student with admin fee and deposit due at lease start."""
    return DebtorFactory(
        residence=residence,
        monthly_rent=Decimal("180.00"),
        admin_fee=Decimal("20.00"),
        deposit=Decimal("180.00"),
        lease_start_date=datetime.date(2025, 9, 1),
    )
