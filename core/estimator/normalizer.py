"""
Specification Normalizer

Canonicalizes a raw subject description into a validated UnitSpec.
Pure validation/transform: no IO, no side effects. All problems are
collected and raised together as a single InvalidSpecError.
"""

from __future__ import annotations

import math
import re
from typing import Any, Mapping, Optional, Union

from .errors import InvalidSpecError
from .models import (
    AreaRange,
    PropertyCategory,
    TransactionDirection,
    UnitSpec,
)


# Accepted camelCase aliases for snake_case fields
_ALIASES = {
    "propertyCategory": "category",
    "property_category": "category",
    "propertySubtype": "subcategory",
    "property_subtype": "subcategory",
    "transactionType": "direction",
    "transaction_type": "direction",
    "bedroomsTotal": "bedrooms",
    "bathroomsTotal": "bathrooms",
    "exactSqft": "exact_sqft",
    "livingAreaRange": "area_range",
    "living_area_range": "area_range",
    "squareFootSource": "square_foot_source",
    "hasLocker": "has_locker",
    "frontage": "frontage_ft",
    "lotWidth": "frontage_ft",
    "buildingId": "building_id",
    "communityId": "community_id",
    "municipalityId": "municipality_id",
    "regionId": "region_id",
    "areaId": "region_id",
    "taxAnnualAmount": "tax_annual_amount",
    "associationFee": "association_fee",
    "maintenanceFee": "association_fee",
    "maintenance_fee": "association_fee",
    "excludeId": "exclude_id",
    "currentListingId": "exclude_id",
}

_RANGE_PATTERN = re.compile(r"^\s*(\d{1,5})\s*-\s*(\d{1,5})\s*$")
_OPEN_RANGE_PATTERN = re.compile(r"^\s*(\d{1,5})\s*\+\s*$")

MIN_EXACT_SQFT = 100
MAX_EXACT_SQFT = 5000


def parse_area_range(value: Any) -> Optional[AreaRange]:
    """
    Parse a bucketed area range such as "800-899" or "3000+".

    Returns None for empty or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, AreaRange):
        return value
    text = str(value).replace(",", "")
    match = _RANGE_PATTERN.match(text)
    if match:
        low, high = int(match.group(1)), int(match.group(2))
        if high < low:
            return None
        return AreaRange(low=low, high=high)
    match = _OPEN_RANGE_PATTERN.match(text)
    if match:
        return AreaRange(low=int(match.group(1)))
    return None


def extract_exact_sqft(source: Any) -> Optional[int]:
    """
    Extract an exact living area from free text.

    "1,410 sq ft + balcony" -> 1410. Pure ranges, balcony-only notes
    and third-party estimates are rejected, as are values outside
    MIN_EXACT_SQFT..MAX_EXACT_SQFT that are more likely lot sizes or
    typos than living areas.
    """
    if source is None:
        return None
    if isinstance(source, (int, float)):
        value = _positive_sqft(source)
        return value if value is not None and MIN_EXACT_SQFT <= value <= MAX_EXACT_SQFT else None

    cleaned = str(source).strip()
    if not cleaned or cleaned.startswith("+"):
        return None
    if re.search(r"3rd\s+party|outdoor space", cleaned, re.IGNORECASE):
        return None
    if _RANGE_PATTERN.match(cleaned) or _OPEN_RANGE_PATTERN.match(cleaned):
        return None

    # Ignore balcony/terrace additions after "+"
    before_plus = cleaned.split("+")[0]

    comma = re.search(r"(\d{1,2}),(\d{3})", before_plus)
    if comma:
        value = int(comma.group(1) + comma.group(2))
        if MIN_EXACT_SQFT <= value <= MAX_EXACT_SQFT:
            return value

    digits = re.search(r"(?<!\d)(\d{3,4})(?!\d)", before_plus)
    if digits:
        value = int(digits.group(1))
        if MIN_EXACT_SQFT <= value <= MAX_EXACT_SQFT:
            return value
    return None


def _positive_sqft(value: float) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return int(round(number))


def parse_exact_sqft(value: Any) -> Optional[int]:
    """
    Parse an explicitly supplied exact living area.

    Any positive number is taken as-is, with no size bounds, so large
    homes are accepted. Free text falls back to extract_exact_sqft.
    """
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return _positive_sqft(value)
    try:
        number = float(str(value).replace(",", "").strip())
    except ValueError:
        return extract_exact_sqft(value)
    return _positive_sqft(number)


def _canonical_keys(raw: Mapping[str, Any]) -> dict[str, Any]:
    return {_ALIASES.get(key, key): value for key, value in raw.items()}


def _clean_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_count(data: dict[str, Any], key: str, errors: list[str]) -> Optional[int]:
    raw = data.get(key)
    if raw is None or raw == "":
        return None
    try:
        number = float(raw)
    except (TypeError, ValueError, OverflowError):
        number = math.nan
    if isinstance(raw, bool) or not math.isfinite(number) or not number.is_integer():
        errors.append(f"{key} must be a whole number: {raw!r}")
        return None
    value = int(number)
    if value < 0:
        errors.append(f"{key} cannot be negative")
        return None
    return value


def _parse_amount(data: dict[str, Any], key: str, errors: list[str]) -> Optional[float]:
    raw = data.get(key)
    if raw is None or raw == "":
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError, OverflowError):
        value = math.nan
    if isinstance(raw, bool) or not math.isfinite(value):
        errors.append(f"{key} must be numeric: {raw!r}")
        return None
    if value < 0:
        errors.append(f"{key} cannot be negative")
        return None
    return value


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "y", "1", "owned", "exclusive")
    return bool(value)


def normalize_spec(
    raw: Union[Mapping[str, Any], UnitSpec],
    direction: Optional[TransactionDirection] = None,
) -> UnitSpec:
    """
    Validate a raw subject description and produce a canonical UnitSpec.

    Args:
        raw: Mapping of subject attributes (snake_case or camelCase keys),
             or an already-built UnitSpec to re-validate
        direction: Overrides any direction carried by the raw description

    Returns:
        Canonical UnitSpec

    Raises:
        InvalidSpecError: area missing, no geography identifier,
            negative counts, or unknown direction/category
    """
    if isinstance(raw, UnitSpec):
        raw = _spec_to_dict(raw)

    data = _canonical_keys(raw)
    errors: list[str] = []

    # === Direction and category ===

    resolved_direction = direction
    if resolved_direction is None:
        raw_direction = data.get("direction")
        if isinstance(raw_direction, TransactionDirection):
            resolved_direction = raw_direction
        elif raw_direction:
            resolved_direction = TransactionDirection.from_string(str(raw_direction))
            if resolved_direction is None:
                errors.append(f"Invalid direction: {raw_direction}")
        else:
            errors.append("direction is required")

    category = data.get("category")
    if isinstance(category, str):
        parsed = PropertyCategory.from_string(category)
        if parsed is None:
            errors.append(f"Invalid category: {category}")
        category = parsed
    elif category is None:
        errors.append("category is required")
    elif not isinstance(category, PropertyCategory):
        errors.append(f"Invalid category: {category}")
        category = None

    # === Counts ===

    bedrooms = _parse_count(data, "bedrooms", errors)
    bathrooms = _parse_count(data, "bathrooms", errors)
    parking = _parse_count(data, "parking", errors) or 0

    # === Area: exact wins over range ===

    exact_sqft = parse_exact_sqft(data.get("exact_sqft"))
    if exact_sqft is None:
        exact_sqft = extract_exact_sqft(data.get("square_foot_source"))
    area_range = parse_area_range(data.get("area_range"))
    if exact_sqft is None and area_range is None:
        errors.append("either exact_sqft or area_range is required")

    # === Geography ===

    building_id = _clean_id(data.get("building_id"))
    community_id = _clean_id(data.get("community_id"))
    municipality_id = _clean_id(data.get("municipality_id"))
    region_id = _clean_id(data.get("region_id"))

    if isinstance(category, PropertyCategory) and category.is_home:
        # Homes never search at building level
        building_id = None

    if not any((building_id, community_id, municipality_id, region_id)):
        errors.append("at least one geography identifier is required")

    frontage = _parse_amount(data, "frontage_ft", errors)
    tax = _parse_amount(data, "tax_annual_amount", errors)
    association_fee = _parse_amount(data, "association_fee", errors)

    if errors:
        raise InvalidSpecError(errors)

    return UnitSpec(
        direction=resolved_direction,
        category=category,
        subcategory=str(data.get("subcategory") or "").strip(),
        bedrooms=bedrooms,
        bathrooms=bathrooms,
        exact_sqft=exact_sqft,
        area_range=area_range,
        parking=parking,
        has_locker=_parse_bool(data.get("has_locker", False)),
        frontage_ft=frontage,
        building_id=building_id,
        community_id=community_id,
        municipality_id=municipality_id,
        region_id=region_id,
        tax_annual_amount=tax,
        association_fee=association_fee,
        exclude_id=_clean_id(data.get("exclude_id")),
    )


def _spec_to_dict(spec: UnitSpec) -> dict[str, Any]:
    return {
        "direction": spec.direction,
        "category": spec.category,
        "subcategory": spec.subcategory,
        "bedrooms": spec.bedrooms,
        "bathrooms": spec.bathrooms,
        "exact_sqft": spec.exact_sqft,
        "area_range": spec.area_range,
        "parking": spec.parking,
        "has_locker": spec.has_locker,
        "frontage_ft": spec.frontage_ft,
        "building_id": spec.building_id,
        "community_id": spec.community_id,
        "municipality_id": spec.municipality_id,
        "region_id": spec.region_id,
        "tax_annual_amount": spec.tax_annual_amount,
        "association_fee": spec.association_fee,
        "exclude_id": spec.exclude_id,
    }
