"""Tests for bulk/unit conversion."""

from decimal import Decimal

import pytest

from batchflow.services.exceptions import IncompatibleUnitsError, ValidationError
from batchflow.services.unit_conversion import (
    calculate_bulk_from_units,
    calculate_pack_ratio,
    calculate_units_from_bulk,
    get_unit_family,
    to_base_quantity,
    units_compatible,
)


class TestUnitFamilies:
    @pytest.mark.parametrize(
        "unit, family",
        [("kg", "mass"), ("G", "mass"), ("l", "volume"), ("ml", "volume"), ("dozen", "count")],
    )
    def test_known_units(self, unit, family):
        assert get_unit_family(unit) == family

    def test_unknown_unit_is_its_own_family(self):
        assert get_unit_family("sack") == "other:sack"
        assert units_compatible("sack", "sack")
        assert not units_compatible("sack", "kg")

    def test_compatibility(self):
        assert units_compatible("kg", "g")
        assert not units_compatible("kg", "ml")

    def test_to_base_quantity(self):
        assert to_base_quantity("0.5", "kg") == Decimal("500")
        assert to_base_quantity(2, "l") == Decimal("2000")
        assert to_base_quantity(3, "sack") == Decimal("3")


class TestCalculateUnitsFromBulk:
    """Whole units obtainable from bulk material."""

    def test_same_unit(self):
        assert calculate_units_from_bulk(60, "kg", "0.5", "kg") == 120

    def test_cross_unit(self):
        assert calculate_units_from_bulk(60, "kg", 500, "g") == 120
        assert calculate_units_from_bulk(10, "l", 330, "ml") == 30

    def test_floors_partial_units(self):
        assert calculate_units_from_bulk("1.2", "kg", "0.5", "kg") == 2

    def test_non_terminating_factor_does_not_lose_a_unit(self):
        # 12 lb in 1/3 lb packs
        assert calculate_units_from_bulk(12, "lb", Decimal(1) / Decimal(3), "lb") == 36

    def test_incompatible_units(self):
        with pytest.raises(IncompatibleUnitsError):
            calculate_units_from_bulk(10, "kg", 500, "ml")

    def test_unknown_unit_only_matches_itself(self):
        assert calculate_units_from_bulk(10, "sack", 2, "sack") == 5
        with pytest.raises(IncompatibleUnitsError):
            calculate_units_from_bulk(10, "sack", 2, "kg")

    @pytest.mark.parametrize("size", [0, -1, "abc", None])
    def test_invalid_variant_size(self, size):
        with pytest.raises(ValidationError):
            calculate_units_from_bulk(10, "kg", size, "kg")

    def test_negative_bulk(self):
        with pytest.raises(ValidationError):
            calculate_units_from_bulk(-1, "kg", 1, "kg")


class TestCalculatePackRatio:
    def test_not_floored(self):
        assert calculate_pack_ratio("1.2", "kg", "0.5", "kg") == Decimal("2.4")
        assert calculate_pack_ratio("1.2", "kg", 500, "g") == Decimal("2.4")

    def test_incompatible_units(self):
        with pytest.raises(IncompatibleUnitsError):
            calculate_pack_ratio(1, "kg", 1, "l")


class TestCalculateBulkFromUnits:
    """Bulk consumed by a number of units."""

    def test_same_unit(self):
        assert calculate_bulk_from_units(120, "0.5", "kg", "kg") == Decimal("60")

    def test_cross_unit(self):
        assert calculate_bulk_from_units(120, 500, "g", "kg") == Decimal("60")

    def test_bulk_to_units_and_back_stays_within_one_pack(self):
        units = calculate_units_from_bulk(Decimal("7.3"), "kg", 250, "g")
        bulk = calculate_bulk_from_units(units, 250, "g", "kg")
        assert units == 29
        assert Decimal("7.3") - Decimal("0.25") < bulk <= Decimal("7.3")

    def test_negative_units(self):
        with pytest.raises(ValidationError):
            calculate_bulk_from_units(-5, 1, "kg", "kg")


class TestUnitsRoundTrip:
    """Units converted to bulk and back give the same whole number of units."""

    @pytest.mark.parametrize("units", [0, 1, 7, 120, 999])
    @pytest.mark.parametrize(
        "variant_size, variant_unit, bulk_unit",
        [
            ("0.5", "kg", "kg"),
            (250, "g", "kg"),
            ("1.5", "kg", "g"),
            (330, "ml", "l"),
            (Decimal(1) / Decimal(3), "lb", "lb"),
            (Decimal(1) / Decimal(3), "oz", "lb"),
        ],
    )
    def test_units_survive_bulk_conversion(self, units, variant_size, variant_unit, bulk_unit):
        bulk = calculate_bulk_from_units(units, variant_size, variant_unit, bulk_unit)
        assert calculate_units_from_bulk(bulk, bulk_unit, variant_size, variant_unit) == units
