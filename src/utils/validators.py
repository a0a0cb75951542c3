"""
Input validation functions for the Production Batch Tracker.

Validators return ``(is_valid, error_message)`` tuples so callers can collect
several field errors before raising a single ValidationError.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Tuple

from .constants import MAX_QUANTITY, QUANTITY_SCALE

ERROR_REQUIRED_FIELD = "This field is required"
ERROR_INVALID_NUMBER = "Must be a valid number"
ERROR_INVALID_POSITIVE = "Must be greater than zero"
ERROR_TOO_LARGE = f"Must be at most {MAX_QUANTITY}"


def validate_required_string(value: Optional[str], field_name: str = "Field") -> Tuple[bool, str]:
    """
    Validate that a string field is not empty.

    Args:
        value: The string value to validate
        field_name: Name of the field for error messages

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return False, f"{field_name}: {ERROR_REQUIRED_FIELD}"
    return True, ""


def validate_string_length(
    value: Optional[str], max_length: int, field_name: str = "Field"
) -> Tuple[bool, str]:
    """
    Validate that a string doesn't exceed maximum length.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value and len(value) > max_length:
        return False, f"{field_name}: Must be {max_length} characters or less"
    return True, ""


def to_decimal(value: Any) -> Optional[Decimal]:
    """Convert a numeric value to Decimal, or None if it is not numeric.

    Floats go through ``str`` so 0.1 stays 0.1. Booleans are rejected.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None
    if not result.is_finite():
        return None
    return result


def _quantize(number: Decimal) -> Decimal:
    return number.quantize(Decimal(1).scaleb(-QUANTITY_SCALE))


def validate_positive_quantity(value: Any, field_name: str = "Quantity") -> Tuple[bool, str]:
    """
    Validate that a value is a number strictly greater than zero.

    The check applies to the value as stored (rounded to QUANTITY_SCALE
    places), so 0.0001 is refused rather than stored as zero.

    Returns:
        Tuple of (is_valid, error_message)
    """
    number = to_decimal(value)
    if number is None:
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    if number > MAX_QUANTITY:
        return False, f"{field_name}: {ERROR_TOO_LARGE}"
    if number <= 0 or _quantize(number) <= 0:
        return False, f"{field_name}: {ERROR_INVALID_POSITIVE}"
    return True, ""


def normalize_quantity(value: Any) -> Decimal:
    """Round a validated quantity to the storage scale."""
    number = to_decimal(value)
    if number is None:
        raise ValueError(f"{value!r} is not a number")
    if abs(number) > MAX_QUANTITY:
        raise ValueError(f"{value!r} exceeds {MAX_QUANTITY}")
    return _quantize(number)


def is_whole_number(value: Decimal) -> bool:
    """True when the decimal has no fractional part."""
    return value == value.to_integral_value()


def sanitize_string(value: Optional[str]) -> Optional[str]:
    """
    Strip whitespace and convert empty strings to None.

    Args:
        value: String to sanitize

    Returns:
        Sanitized string, or None if empty
    """
    if value is None:
        return None
    value = str(value).strip()
    return value or None
