"""
Tests for the application exception hierarchy.
"""

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)


class TestBaseApplicationError:
    """Tests for BaseApplicationError."""

    def test_defaults(self):
        """Should fall back to the class error code and empty details."""
        error = ValidationError("Entry does not balance")

        assert error.message == "Entry does not balance"
        assert error.error_code == "VALIDATION_ERROR"
        assert error.details == {}
        assert str(error) == "[VALIDATION_ERROR] Entry does not balance"

    def test_to_dict_includes_details(self):
        """Details are included only when present."""
        error = ConflictError(
            "Insufficient petty cash",
            error_code="INSUFFICIENT_FUNDS",
            details={"available": "20.00"},
        )

        assert error.to_dict() == {
            "error": "Insufficient petty cash",
            "error_code": "INSUFFICIENT_FUNDS",
            "details": {"available": "20.00"},
        }
        assert "details" not in NotFoundError("Missing").to_dict()

    def test_hierarchy(self):
        """All application errors share one base class."""
        for cls in (ValidationError, NotFoundError, ConflictError):
            assert issubclass(cls, BaseApplicationError)
        assert NotFoundError("x").error_code == "NOT_FOUND"
        assert ConflictError("x").error_code == "CONFLICT"

    def test_repr(self):
        error = NotFoundError("Vendor missing", details={"vendor_id": "V1"})

        assert repr(error) == (
            "NotFoundError(message='Vendor missing', "
            "error_code='NOT_FOUND', details={'vendor_id': 'V1'})"
        )
