"""
Tests for event dataclasses and payload parsing.
"""

import datetime
from decimal import Decimal

import pytest

from core.exceptions import ValidationError
from finance.events import (
    EVENT_TYPES,
    MaintenanceApproval,
    MaintenanceItem,
    PaymentComponents,
    StudentPayment,
    SupplyPurchaseApproval,
    VendorPayment,
    parse_event,
)


class TestParseEvent:
    """Tests for parse_event()."""

    def test_builds_typed_event(self):
        event = parse_event(
            "student_payment",
            {
                "payment_id": 91,
                "student_id": "s-1",
                "residence": "r-1",
                "amount": "380.00",
                "date": "2025-09-03T10:15:00",
                "payment_month": "September 2025",
                "components": {"rent": "180", "admin_fee": "20", "deposit": "180"},
                "unknown_field": "ignored",
            },
        )

        assert isinstance(event, StudentPayment)
        assert event.payment_id == "91"
        assert event.amount == Decimal("380.00")
        assert event.date == datetime.date(2025, 9, 3)
        assert event.components.total == Decimal("380.00")

    def test_unknown_kind(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_event("refund", {})

        assert exc_info.value.error_code == "UNKNOWN_EVENT"
        assert "student_payment" in exc_info.value.details["known"]

    def test_missing_argument(self):
        """A payload without a required field is an invalid payload."""
        with pytest.raises(ValidationError) as exc_info:
            parse_event("vendor_payment", {"payment_id": "VP-1"})

        assert exc_info.value.error_code == "INVALID_PAYLOAD"

    def test_every_kind_is_registered(self):
        assert len(EVENT_TYPES) == 12
        assert all(kind for kind in EVENT_TYPES)


class TestEventValidation:
    """Tests for per-event validation."""

    def test_amount_must_be_positive(self):
        with pytest.raises(ValidationError) as exc_info:
            VendorPayment(payment_id="VP-1", residence=None, amount="0")

        assert exc_info.value.error_code == "INVALID_AMOUNT"

    def test_required_field(self):
        with pytest.raises(ValidationError) as exc_info:
            StudentPayment(payment_id="P-1", student_id="", residence=None, amount="10")

        assert exc_info.value.details["field"] == "student_id"

    def test_invalid_date(self):
        with pytest.raises(ValidationError) as exc_info:
            VendorPayment(payment_id="VP-1", residence=None, amount="10", date="yesterday")

        assert exc_info.value.error_code == "INVALID_DATE"

    def test_negative_component(self):
        with pytest.raises(ValidationError):
            PaymentComponents(rent="-1")

    def test_supply_purchase_needs_items(self):
        with pytest.raises(ValidationError):
            SupplyPurchaseApproval(purchase_id="SP-1", residence=None, items=[])


class TestMaintenanceApproval:
    """Tests for maintenance item costs."""

    def test_item_cost_prefers_selected_quotation(self):
        item = MaintenanceItem(
            description="Fix leaking pipe",
            estimated_cost="120.00",
            quotations=[
                {"amount": "150.00", "vendor_name": "Acme", "is_selected": False},
                {"amount": "135.00", "vendor_name": "Bolt", "is_selected": True},
            ],
        )

        assert item.cost == Decimal("135.00")
        assert item.selected_quotation.vendor_name == "Bolt"

    def test_item_cost_falls_back_to_estimate(self):
        assert MaintenanceItem(description="Paint", estimated_cost="80").cost == Decimal("80.00")
        assert MaintenanceItem(description="Paint").cost == Decimal("0.00")

    def test_nested_dicts_are_converted(self):
        event = MaintenanceApproval(
            request_id=7,
            residence=None,
            items=[{"description": "Fix leaking pipe", "estimated_cost": "50"}],
            quotations=[{"amount": "50", "vendor_name": "Acme"}],
        )

        assert event.request_id == "7"
        assert isinstance(event.items[0], MaintenanceItem)
        assert event.selected_quotation.amount == Decimal("50.00")
