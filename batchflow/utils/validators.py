"""
Input validation functions for batchflow.

This module provides validation functions for workflow inputs including:
- Numeric validation (positive, non-negative)
- String validation (required fields)
- Choice validation (grades, statuses)

Validators return (is_valid, error_message) tuples so callers can collect
every problem with a payload before rejecting it.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Tuple

ERROR_REQUIRED_FIELD = "This field is required"
ERROR_INVALID_NUMBER = "Must be a valid number"
ERROR_INVALID_POSITIVE = "Must be greater than zero"
ERROR_INVALID_NON_NEGATIVE = "Cannot be negative"
ERROR_TOO_MANY_PLACES = "Must have at most {places} decimal places"


def parse_decimal(value: Any) -> Optional[Decimal]:
    """
    Parse a value to a Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1"), not its binary
    expansion. Returns None for None, empty strings, booleans and
    unparseable values.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def decimal_places(number: Decimal) -> int:
    """Digits after the decimal point, ignoring trailing zeros."""
    exponent = number.normalize().as_tuple().exponent
    return max(0, -exponent)


def validate_required_string(value: Optional[str], field_name: str = "Field") -> Tuple[bool, str]:
    """
    Validate that a string field is not empty.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return False, f"{field_name}: {ERROR_REQUIRED_FIELD}"
    return True, ""


def validate_positive_number(
    value: Any, field_name: str = "Field", max_places: Optional[int] = None
) -> Tuple[bool, str]:
    """
    Validate that a value is a positive number (> 0).

    With max_places, values finer than that many decimal places are
    rejected, so they cannot be cut short by a fixed-scale column.

    Returns:
        Tuple of (is_valid, error_message)
    """
    number = parse_decimal(value)
    if number is None:
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    if number <= 0:
        return False, f"{field_name}: {ERROR_INVALID_POSITIVE}"
    return _check_places(number, field_name, max_places)


def validate_non_negative_number(
    value: Any, field_name: str = "Field", max_places: Optional[int] = None
) -> Tuple[bool, str]:
    """
    Validate that a value is a non-negative number (>= 0).

    Returns:
        Tuple of (is_valid, error_message)
    """
    number = parse_decimal(value)
    if number is None:
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    if number < 0:
        return False, f"{field_name}: {ERROR_INVALID_NON_NEGATIVE}"
    return _check_places(number, field_name, max_places)


def _check_places(number: Decimal, field_name: str, max_places: Optional[int]) -> Tuple[bool, str]:
    if max_places is not None and decimal_places(number) > max_places:
        return False, f"{field_name}: {ERROR_TOO_MANY_PLACES.format(places=max_places)}"
    return True, ""


def validate_choice(value: Any, choices: Iterable[str], field_name: str = "Field") -> Tuple[bool, str]:
    """Validate that a value is one of `choices`."""
    choices = list(choices)
    if value not in choices:
        return False, f"{field_name}: Must be one of {', '.join(choices)}"
    return True, ""


def sanitize_string(value: Optional[str]) -> Optional[str]:
    """
    Strip whitespace and convert empty strings to None.
    """
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped if stripped else None
