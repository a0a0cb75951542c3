"""
Tests for input validation functions.

Tests cover the validators module:
- String validation (required, length)
- Quantity parsing and positivity
- Normalization to the storage scale
- Whole-number detection
"""

from decimal import Decimal

import pytest

from src.utils import validators


class TestStringValidation:
    """Test string validation functions."""

    def test_validate_required_string_valid(self):
        """Test required string with valid input."""
        assert validators.validate_required_string("Test Value", "Test Field") == (True, "")

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_validate_required_string_empty(self, value):
        """Test required string with None, empty or blank input."""
        valid, error = validators.validate_required_string(value, "Test Field")
        assert not valid
        assert error == "Test Field: This field is required"

    def test_validate_string_length_exact_max(self):
        """Test string length at exact maximum."""
        assert validators.validate_string_length("A" * 100, 100, "Test Field")[0]

    def test_validate_string_length_too_long(self):
        """Test string exceeding max length."""
        valid, error = validators.validate_string_length("A" * 101, 100, "Test Field")
        assert not valid
        assert "100 characters" in error

    def test_sanitize_string(self):
        """Whitespace is stripped and blanks become None."""
        assert validators.sanitize_string("  Bay 4 ") == "Bay 4"
        assert validators.sanitize_string("   ") is None
        assert validators.sanitize_string(None) is None


class TestQuantityValidation:
    """Test quantity parsing and validation."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (30, Decimal("30")),
            ("12.5", Decimal("12.5")),
            (0.1, Decimal("0.1")),
            (Decimal("7"), Decimal("7")),
        ],
    )
    def test_to_decimal(self, value, expected):
        """Numbers and numeric strings convert without float noise."""
        assert validators.to_decimal(value) == expected

    @pytest.mark.parametrize("value", [None, True, "abc", "", "NaN", "Infinity"])
    def test_to_decimal_rejects(self, value):
        """Non-numbers, booleans and non-finite values give None."""
        assert validators.to_decimal(value) is None

    def test_positive_quantity_valid(self):
        """Positive quantities pass."""
        assert validators.validate_positive_quantity("0.001") == (True, "")

    @pytest.mark.parametrize("value", [0, -5, "0.000"])
    def test_positive_quantity_not_positive(self, value):
        """Zero and negatives are refused."""
        valid, error = validators.validate_positive_quantity(value, "Quantity")
        assert not valid
        assert error == "Quantity: Must be greater than zero"

    @pytest.mark.parametrize("value", ["0.0001", "0.0004"])
    def test_positive_quantity_rounding_to_zero(self, value):
        """Values that round to 0.000 at storage scale are not positive."""
        valid, error = validators.validate_positive_quantity(value, "Quantity")
        assert not valid
        assert error == "Quantity: Must be greater than zero"

    def test_positive_quantity_rounding_up(self):
        """0.0006 rounds to 0.001 and is accepted."""
        assert validators.validate_positive_quantity("0.0006")[0]

    def test_positive_quantity_column_maximum(self):
        """The largest storable value passes; anything above it does not."""
        assert validators.validate_positive_quantity("99999999999.999")[0]
        valid, error = validators.validate_positive_quantity("1e30", "Quantity")
        assert not valid
        assert "at most" in error

    def test_positive_quantity_not_a_number(self):
        """Text is not a valid number."""
        valid, error = validators.validate_positive_quantity("ten", "Quantity")
        assert not valid
        assert error == "Quantity: Must be a valid number"


class TestNormalization:
    """Test normalize_quantity and is_whole_number."""

    def test_normalize_quantity_scale(self):
        """Quantities are stored with three decimal places."""
        assert str(validators.normalize_quantity("12.5")) == "12.500"
        assert str(validators.normalize_quantity(30)) == "30.000"

    def test_normalize_quantity_rejects_text(self):
        """Non-numbers raise ValueError."""
        with pytest.raises(ValueError):
            validators.normalize_quantity("ten")

    def test_normalize_quantity_rejects_overflow(self):
        """Values beyond the column range raise ValueError, not a decimal error."""
        with pytest.raises(ValueError):
            validators.normalize_quantity("1e30")

    @pytest.mark.parametrize(
        "value,expected",
        [(Decimal("12"), True), (Decimal("12.000"), True), (Decimal("12.5"), False)],
    )
    def test_is_whole_number(self, value, expected):
        """Trailing zeros do not make a number fractional."""
        assert validators.is_whole_number(value) is expected
