"""
Test configuration and fixtures for authentication tests.
"""

import pytest

from authentication.models import UserRole
from authentication.tests.factories import UserFactory


@pytest.fixture
def user(db):
    """Create a basic student user."""
    return UserFactory()


@pytest.fixture
def custodian(db):
    """Create a property manager who can hold petty cash."""
    return UserFactory(role=UserRole.PROPERTY_MANAGER)
