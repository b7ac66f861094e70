"""
Project-wide pytest fixtures.

Django itself is configured by the root conftest.py. App-specific fixtures
are defined in each app's tests/conftest.py.

Every test gets a fake Redis client for the allocation lock and starts with
empty lookup caches.
"""

import pytest


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full posting workflows)
    - test_services.py, test_tasks.py, test_posting.py, etc. → integration
    - test_models.py, test_periods.py, test_locks.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    # Filename patterns for each category
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_services.py",
        "test_tasks.py",
        "test_posting.py",
        "test_duplicates.py",
        "test_balances.py",
        "test_resolver.py",
        "test_allocation.py",
        "test_accruals.py",
        "test_expenses.py",
        "test_petty_cash.py",
        "test_invoices.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_managers.py",
        "test_periods.py",
        "test_locks.py",
        "test_events.py",
        "test_cache.py",
        "test_exceptions.py",
        "test_chart.py",
    ]

    for item in items:
        # Skip if test already has unit/integration/e2e marker
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filepath = str(item.fspath)
        filename = filepath.split("/")[-1]

        # Check patterns in priority order
        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            # Default: integration (safe for Django where most tests hit DB)
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def mock_redis(mocker):
    """
    Mock Redis client behind finance.locks.

    Locks are always free: set() succeeds and the release script reports
    the key as deleted. Tests needing contention override the return values.
    """
    mock_client = mocker.MagicMock()
    mock_client.set.return_value = True
    mock_client.get.return_value = None
    mock_client.eval.return_value = 1

    mocker.patch(
        "finance.locks.get_redis_connection",
        return_value=mock_client,
    )
    return mock_client


@pytest.fixture(autouse=True)
def clear_lookup_caches():
    """Keep cached residence and vendor ids from leaking between tests."""
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()
