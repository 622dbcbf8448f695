"""
Tests for the Specification Normalizer

Verifies:
- Raw subjects canonicalize into a UnitSpec
- Every validation problem is reported together
- Exact area wins over the bucketed range
- Homes never carry a building id
"""

import pytest
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.estimator import (
    AreaRange,
    GeographyLevel,
    InvalidSpecError,
    PropertyCategory,
    TransactionDirection,
    UnitSpec,
    normalize_spec,
)
from core.estimator.normalizer import extract_exact_sqft, parse_area_range, parse_exact_sqft


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def raw_subject():
    """Minimal valid condo subject."""
    return {
        "direction": "sale",
        "category": "condo",
        "bedrooms": 2,
        "bathrooms": 2,
        "area_range": "800-899",
        "community_id": "C1",
        "municipality_id": "M1",
    }


# =============================================================================
# Area Parsing
# =============================================================================

class TestAreaParsing:
    """Bucket ranges and exact area extraction."""

    def test_closed_range(self):
        assert parse_area_range("800-899") == AreaRange(800, 899)

    def test_open_range(self):
        bucket = parse_area_range("3000+")
        assert bucket.low == 3000
        assert bucket.high is None
        assert bucket.label == "3000+"

    def test_invalid_range_is_none(self):
        assert parse_area_range("899-800") is None
        assert parse_area_range("big") is None
        assert parse_area_range(None) is None

    def test_midpoints(self):
        assert AreaRange(800, 899).midpoint == 850
        assert AreaRange(0, 499).midpoint == 400
        assert AreaRange(3000).midpoint == 3250

    def test_exact_from_text_with_balcony(self):
        assert extract_exact_sqft("1,410 sq ft + balcony") == 1410

    def test_exact_from_number(self):
        assert extract_exact_sqft(845) == 845

    def test_exact_rejects_ranges_and_estimates(self):
        assert extract_exact_sqft("800-899") is None
        assert extract_exact_sqft("+ 120 balcony") is None
        assert extract_exact_sqft("950 (3rd party estimate)") is None

    def test_exact_out_of_bounds(self):
        assert extract_exact_sqft(50) is None
        assert extract_exact_sqft(12000) is None


# =============================================================================
# Normalization
# =============================================================================

class TestNormalizeSpec:
    """Canonical UnitSpec construction."""

    def test_valid_subject(self, raw_subject):
        spec = normalize_spec(raw_subject)

        assert spec.direction is TransactionDirection.SALE
        assert spec.category is PropertyCategory.CONDO
        assert spec.bedrooms == 2
        assert spec.area_range == AreaRange(800, 899)
        assert spec.exact_sqft is None
        assert spec.parking == 0
        assert spec.has_locker is False
        assert spec.narrowest_level is GeographyLevel.COMMUNITY

    def test_camel_case_keys(self):
        spec = normalize_spec({
            "transactionType": "For Lease",
            "propertyCategory": "Condo Apartment",
            "bedroomsTotal": 1,
            "livingAreaRange": "600-699",
            "buildingId": "B7",
            "currentListingId": "X1",
        })

        assert spec.direction is TransactionDirection.LEASE
        assert spec.category is PropertyCategory.CONDO
        assert spec.building_id == "B7"
        assert spec.exclude_id == "X1"

    def test_direction_argument_overrides(self, raw_subject):
        spec = normalize_spec(raw_subject, TransactionDirection.LEASE)
        assert spec.direction is TransactionDirection.LEASE

    def test_exact_area_wins(self, raw_subject):
        raw_subject["exact_sqft"] = 845
        spec = normalize_spec(raw_subject)

        assert spec.area_is_exact
        assert spec.representative_sqft == 845

    def test_home_drops_building_id(self):
        spec = normalize_spec({
            "direction": "sale",
            "category": "home",
            "subcategory": "Detached",
            "area_range": "2000-2499",
            "building_id": "B1",
            "community_id": "C1",
        })

        assert spec.building_id is None
        assert spec.narrowest_level is GeographyLevel.COMMUNITY

    def test_accepts_existing_unit_spec(self):
        original = UnitSpec(
            direction=TransactionDirection.SALE,
            category=PropertyCategory.CONDO,
            exact_sqft=700,
            building_id="B1",
        )
        assert normalize_spec(original) == original


class TestValidationErrors:
    """All problems are collected into one InvalidSpecError."""

    def test_missing_area(self, raw_subject):
        del raw_subject["area_range"]
        with pytest.raises(InvalidSpecError) as exc_info:
            normalize_spec(raw_subject)
        assert "either exact_sqft or area_range is required" in exc_info.value.errors

    def test_missing_geography(self, raw_subject):
        del raw_subject["community_id"]
        del raw_subject["municipality_id"]
        with pytest.raises(InvalidSpecError) as exc_info:
            normalize_spec(raw_subject)
        assert "at least one geography identifier is required" in exc_info.value.errors

    def test_home_with_only_building_id_is_invalid(self):
        with pytest.raises(InvalidSpecError):
            normalize_spec({
                "direction": "sale",
                "category": "home",
                "area_range": "2000-2499",
                "building_id": "B1",
            })

    def test_negative_counts(self, raw_subject):
        raw_subject["bedrooms"] = -1
        raw_subject["parking"] = -2
        with pytest.raises(InvalidSpecError) as exc_info:
            normalize_spec(raw_subject)
        assert "bedrooms cannot be negative" in exc_info.value.errors
        assert "parking cannot be negative" in exc_info.value.errors

    def test_unknown_direction_and_category(self, raw_subject):
        raw_subject["direction"] = "barter"
        raw_subject["category"] = "castle"
        with pytest.raises(InvalidSpecError) as exc_info:
            normalize_spec(raw_subject)
        assert len(exc_info.value.errors) == 2

    def test_missing_direction(self, raw_subject):
        del raw_subject["direction"]
        with pytest.raises(InvalidSpecError, match="direction is required"):
            normalize_spec(raw_subject)

    def test_non_numeric_count(self, raw_subject):
        raw_subject["bathrooms"] = "two"
        with pytest.raises(InvalidSpecError, match="bathrooms must be a whole number"):
            normalize_spec(raw_subject)

    @pytest.mark.parametrize("raw", ["1e400", "inf", "nan", 10 ** 400])
    def test_non_finite_count(self, raw_subject, raw):
        raw_subject["bedrooms"] = raw
        with pytest.raises(InvalidSpecError, match="bedrooms must be a whole number"):
            normalize_spec(raw_subject)

    @pytest.mark.parametrize("raw", [2.5, "-0.5"])
    def test_fractional_count(self, raw_subject, raw):
        raw_subject["bathrooms"] = raw
        with pytest.raises(InvalidSpecError, match="bathrooms must be a whole number"):
            normalize_spec(raw_subject)

    def test_whole_float_count_accepted(self, raw_subject):
        raw_subject["bathrooms"] = "2.0"
        assert normalize_spec(raw_subject).bathrooms == 2

    @pytest.mark.parametrize("raw", ["nan", "inf", "1e400"])
    def test_non_finite_amount(self, raw_subject, raw):
        raw_subject["tax_annual_amount"] = raw
        with pytest.raises(InvalidSpecError, match="tax_annual_amount must be numeric"):
            normalize_spec(raw_subject)


class TestExactArea:
    """Explicit exact areas carry no size bounds."""

    def test_large_home_accepted(self):
        spec = normalize_spec({
            "direction": "sale",
            "category": "home",
            "subcategory": "Detached",
            "bedrooms": 5,
            "exact_sqft": 6200,
            "community_id": "C1",
        })

        assert spec.exact_sqft == 6200
        assert spec.area_range is None

    def test_numeric_text(self):
        assert parse_exact_sqft("6,200") == 6200
        assert parse_exact_sqft(845.4) == 845

    def test_non_positive_or_non_finite_rejected(self):
        assert parse_exact_sqft(0) is None
        assert parse_exact_sqft(-120) is None
        assert parse_exact_sqft(float("inf")) is None
        assert parse_exact_sqft("nan") is None

    def test_free_text_still_bounded(self):
        assert parse_exact_sqft("approx 1,410 sq ft") == 1410
        assert extract_exact_sqft("12,000 sq ft lot") is None

    def test_maintenance_fee_alias(self, raw_subject):
        raw_subject["maintenanceFee"] = "612.50"
        assert normalize_spec(raw_subject).association_fee == 612.5
