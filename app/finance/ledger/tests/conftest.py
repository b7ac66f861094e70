"""
Pytest fixtures for ledger tests.

Usage:
    def test_post(post_lines):
        result = post_lines("invoice", "INV-1", [("1100", "180.00", ""), ("4000", "", "180.00")])
"""

import pytest

from finance.ledger.posting import posting_engine
from finance.ledger.types import Line, PostingRequest
from finance.tests.factories import VendorFactory
from properties.tests.factories import ResidenceFactory


@pytest.fixture
def residence(db):
    """Create a residence."""
    return ResidenceFactory(name="Belvedere House")


@pytest.fixture
def vendor(db):
    """Create a vendor without a payable sub-ledger."""
    return VendorFactory(business_name="Acme Plumbing Ltd", category="plumbing")


@pytest.fixture
def post_lines(residence):
    """
    Post lines given as (code, debit, credit) or (code, debit, credit, period)
    tuples.

    Extra keyword arguments are passed to PostingRequest.
    """

    def _post(source, source_id, rows, **kwargs):
        kwargs.setdefault("residence", residence)
        lines = [
            Line(
                account_code=row[0],
                debit=row[1] or "0",
                credit=row[2] or "0",
                period=row[3] if len(row) > 3 else "",
            )
            for row in rows
        ]
        return posting_engine.post(
            PostingRequest(source=source, source_id=source_id, lines=lines, **kwargs)
        )

    return _post
