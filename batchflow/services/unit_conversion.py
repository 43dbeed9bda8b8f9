"""
Unit conversion for packaging bulk stock into variant units.

Conversion Strategy:
- Mass units convert through grams (base unit)
- Volume units convert through milliliters (base unit)
- Count units convert through single items
- Any other unit is its own family with factor 1, so it only converts
  to itself

Converting across families (kg against ml, or a known unit against an
unknown one) raises IncompatibleUnitsError instead of silently mixing them.
All arithmetic is Decimal.
"""

from decimal import Decimal, ROUND_FLOOR
from typing import Tuple

from .exceptions import IncompatibleUnitsError, ValidationError
from ..utils.validators import parse_decimal

# ============================================================================
# Standard Conversion Tables
# ============================================================================

# Mass conversions to grams (base unit)
MASS_TO_GRAMS = {
    "mg": Decimal("0.001"),
    "g": Decimal("1"),
    "kg": Decimal("1000"),
    "t": Decimal("1000000"),
    "oz": Decimal("28.3495"),
    "lb": Decimal("453.592"),
}

# Volume conversions to milliliters (base unit)
VOLUME_TO_ML = {
    "ml": Decimal("1"),
    "cl": Decimal("10"),
    "l": Decimal("1000"),
    "fl oz": Decimal("29.5735"),
    "gal": Decimal("3785.41"),
}

# Count conversions to individual items (base unit)
COUNT_TO_ITEMS = {
    "pcs": Decimal("1"),
    "each": Decimal("1"),
    "unit": Decimal("1"),
    "units": Decimal("1"),
    "dozen": Decimal("12"),
}

_FAMILIES = (
    ("mass", MASS_TO_GRAMS),
    ("volume", VOLUME_TO_ML),
    ("count", COUNT_TO_ITEMS),
)

# Ratios are rounded to this many places before flooring, so a value like
# 119.99999999999999999999 from a non-terminating factor floors to 120
RATIO_PLACES = Decimal("0.000001")


def _normalize(unit: str) -> str:
    if unit is None:
        raise ValidationError(["unit: This field is required"])
    return str(unit).strip().lower()


def get_unit_family(unit: str) -> str:
    """
    Determine the family of a unit.

    Returns:
        "mass", "volume", "count", or "other:<unit>" for units outside the
        tables (each unknown unit is a family of its own)
    """
    name = _normalize(unit)
    for family, table in _FAMILIES:
        if name in table:
            return family
    return f"other:{name}"


def _factor(unit: str) -> Tuple[str, Decimal]:
    name = _normalize(unit)
    for family, table in _FAMILIES:
        if name in table:
            return family, table[name]
    return f"other:{name}", Decimal("1")


def to_base_quantity(quantity, unit: str) -> Decimal:
    """
    Convert a quantity to its family's base unit (g, ml or items).

    Unknown units pass through unchanged.

    Example:
        >>> to_base_quantity("0.5", "kg")
        Decimal('500.0')
    """
    value = _require_number(quantity, "quantity")
    _, factor = _factor(unit)
    return value * factor


def _require_number(value, field: str) -> Decimal:
    number = parse_decimal(value)
    if number is None:
        raise ValidationError([f"{field}: Must be a valid number"])
    return number


def _require_compatible(from_unit: str, to_unit: str) -> Tuple[Decimal, Decimal]:
    from_family, from_factor = _factor(from_unit)
    to_family, to_factor = _factor(to_unit)
    if from_family != to_family:
        raise IncompatibleUnitsError(from_unit, to_unit)
    return from_factor, to_factor


def units_compatible(unit1: str, unit2: str) -> bool:
    """True if quantities in the two units can be converted."""
    return get_unit_family(unit1) == get_unit_family(unit2)


def calculate_pack_ratio(bulk_quantity, bulk_unit: str, variant_size, variant_unit: str) -> Decimal:
    """
    Exact number of variant sizes in a bulk quantity, not floored.

    Example:
        >>> calculate_pack_ratio("1.2", "kg", "500", "g")
        Decimal('2.4')

    Raises:
        IncompatibleUnitsError: If the units belong to different families
        ValidationError: If a quantity is not a number or variant_size <= 0
    """
    bulk = _require_number(bulk_quantity, "bulk_quantity")
    size = _require_number(variant_size, "variant_size")
    if size <= 0:
        raise ValidationError(["variant_size: Must be greater than zero"])
    if bulk < 0:
        raise ValidationError(["bulk_quantity: Cannot be negative"])

    bulk_factor, variant_factor = _require_compatible(bulk_unit, variant_unit)
    return (bulk * bulk_factor) / (size * variant_factor)


def calculate_units_from_bulk(bulk_quantity, bulk_unit: str, variant_size, variant_unit: str) -> int:
    """
    Whole packaged units obtainable from a bulk quantity.

    Both sides are normalized to the family's base unit, then the ratio is
    floored.

    Args:
        bulk_quantity: Bulk amount (e.g. 60)
        bulk_unit: Unit of bulk_quantity (e.g. "kg")
        variant_size: Amount per packaged unit (e.g. 0.5)
        variant_unit: Unit of variant_size (e.g. "kg")

    Returns:
        Number of whole units (e.g. 120)

    Raises:
        IncompatibleUnitsError: If the units belong to different families
        ValidationError: If a quantity is not a number or variant_size <= 0
    """
    ratio = calculate_pack_ratio(bulk_quantity, bulk_unit, variant_size, variant_unit)
    ratio = ratio.quantize(RATIO_PLACES)
    return int(ratio.to_integral_value(rounding=ROUND_FLOOR))


def calculate_bulk_from_units(units, variant_size, variant_unit: str, target_bulk_unit: str) -> Decimal:
    """
    Bulk quantity consumed by a number of packaged units.

    Inverse of calculate_units_from_bulk().

    Example:
        >>> calculate_bulk_from_units(120, "0.5", "kg", "kg")
        Decimal('60.0')

    Raises:
        IncompatibleUnitsError: If the units belong to different families
        ValidationError: If a quantity is not a number or is negative
    """
    count = _require_number(units, "units")
    size = _require_number(variant_size, "variant_size")
    if count < 0:
        raise ValidationError(["units: Cannot be negative"])
    if size <= 0:
        raise ValidationError(["variant_size: Must be greater than zero"])

    variant_factor, bulk_factor = _require_compatible(variant_unit, target_bulk_unit)
    return (count * size * variant_factor) / bulk_factor
