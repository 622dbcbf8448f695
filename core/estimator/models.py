"""
Data models for the comparable-sales estimator.

Defines the subject unit spec, historical closed transactions, match results
and estimate results. Historical transactions are immutable - the engine
only ever reads them.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import List, Optional


class TransactionDirection(Enum):
    """Sale or lease. Comparables must match the subject exactly."""
    SALE = "sale"
    LEASE = "lease"

    @classmethod
    def from_string(cls, value: str) -> Optional["TransactionDirection"]:
        """Convert string to TransactionDirection, case-insensitive."""
        normalised = value.lower().strip()
        aliases = {"for sale": "sale", "rent": "lease", "rental": "lease", "for lease": "lease"}
        normalised = aliases.get(normalised, normalised)
        for member in cls:
            if member.value == normalised:
                return member
        return None


class PropertyCategory(Enum):
    """
    Property category.

    Exact match only. Homes search from community level because
    single-family homes rarely repeat at a single address.
    """
    CONDO = "condo"
    HOME = "home"

    @classmethod
    def from_string(cls, value: str) -> Optional["PropertyCategory"]:
        """Convert string to PropertyCategory, case-insensitive."""
        normalised = value.lower().strip().replace("_", " ")
        aliases = {
            "condo apartment": "condo",
            "condo townhouse": "condo",
            "apartment": "condo",
            "house": "home",
            "freehold": "home",
        }
        normalised = aliases.get(normalised, normalised)
        for member in cls:
            if member.value == normalised:
                return member
        return None

    @property
    def is_home(self) -> bool:
        return self is PropertyCategory.HOME


class GeographyLevel(Enum):
    """Administrative geography levels, narrowest first."""
    BUILDING = "building"
    COMMUNITY = "community"
    MUNICIPALITY = "municipality"
    REGION = "region"

    @classmethod
    def from_string(cls, value: str) -> Optional["GeographyLevel"]:
        normalised = value.lower().strip()
        for member in cls:
            if member.value == normalised:
                return member
        return None

    @property
    def id_field(self) -> str:
        """Name of the attribute holding this level's identifier."""
        return f"{self.value}_id"


class TransactionStatus(Enum):
    """Listing status. Only closed transactions are comparables."""
    CLOSED = "closed"
    ACTIVE = "active"
    PENDING = "pending"


class Confidence(Enum):
    """
    Confidence rating for an estimate.

    High: first tier tried, sample at or above the tier's target
    Medium: reached by widening, or a marginal first-tier sample
    Low: broadest tier with a sample below its own minimum
    """
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Temperature(Enum):
    """Recency band of a comparable's close date."""
    HOT = "hot"        # <= 3 months
    WARM = "warm"      # <= 6 months
    COLD = "cold"      # <= 12 months
    FROZEN = "frozen"  # older

    @classmethod
    def for_age_days(cls, age_days: int) -> "Temperature":
        months = age_days / 30
        if months <= 3:
            return cls.HOT
        if months <= 6:
            return cls.WARM
        if months <= 12:
            return cls.COLD
        return cls.FROZEN


@dataclass(frozen=True)
class AreaRange:
    """
    Bucketed living-area range such as "800-899" or "3000+".

    high is None for open-ended buckets.
    """
    low: int
    high: Optional[int] = None

    @property
    def label(self) -> str:
        if self.high is None:
            return f"{self.low}+"
        return f"{self.low}-{self.high}"

    @property
    def midpoint(self) -> int:
        """Representative area for the bucket."""
        if (self.low, self.high) == (0, 499):
            # Studio bucket skews toward its upper end
            return 400
        if self.high is None:
            return self.low + 250
        return (self.low + self.high + 1) // 2

    def contains(self, sqft: float) -> bool:
        if self.high is None:
            return sqft >= self.low
        return self.low <= sqft <= self.high

    def distance_to(self, sqft: float) -> float:
        """Square feet between a value and the nearest edge of the bucket."""
        if sqft < self.low:
            return self.low - sqft
        if self.high is not None and sqft > self.high:
            return sqft - self.high
        return 0.0

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class UnitSpec:
    """
    Canonical, validated description of the subject unit.

    Exactly one of exact_sqft / area_range is authoritative:
    exact_sqft wins when both are known.
    """
    direction: TransactionDirection
    category: PropertyCategory
    subcategory: str = ""

    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    exact_sqft: Optional[int] = None
    area_range: Optional[AreaRange] = None

    parking: int = 0
    has_locker: bool = False
    frontage_ft: Optional[float] = None

    # Geography, narrowest first
    building_id: Optional[str] = None
    community_id: Optional[str] = None
    municipality_id: Optional[str] = None
    region_id: Optional[str] = None

    tax_annual_amount: Optional[float] = None  # weak similarity signal only
    association_fee: Optional[float] = None  # monthly condo maintenance fee
    exclude_id: Optional[str] = None

    @property
    def area_is_exact(self) -> bool:
        return self.exact_sqft is not None

    @property
    def representative_sqft(self) -> Optional[int]:
        if self.exact_sqft is not None:
            return self.exact_sqft
        if self.area_range is not None:
            return self.area_range.midpoint
        return None

    @property
    def locker_count(self) -> int:
        return 1 if self.has_locker else 0

    def geography_id(self, level: GeographyLevel) -> Optional[str]:
        return getattr(self, level.id_field)

    @property
    def narrowest_level(self) -> Optional[GeographyLevel]:
        for level in GeographyLevel:
            if self.geography_id(level):
                return level
        return None

    @property
    def area_label(self) -> str:
        if self.exact_sqft is not None:
            return f"{self.exact_sqft} sqft"
        if self.area_range is not None:
            return f"{self.area_range.label} sqft"
        return "unknown sqft"


@dataclass(frozen=True)
class ComparableTransaction:
    """
    A historical closed transaction.

    Immutable once closed. unit_key identifies the physical unit
    so repeat closes of the same unit can be de-duplicated.
    """
    transaction_id: str
    direction: TransactionDirection
    category: PropertyCategory
    close_price: int
    close_date: date
    status: TransactionStatus = TransactionStatus.CLOSED
    unit_key: Optional[str] = None
    subcategory: str = ""

    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    exact_sqft: Optional[int] = None
    area_range: Optional[AreaRange] = None
    parking: int = 0
    has_locker: bool = False
    frontage_ft: Optional[float] = None
    tax_annual_amount: Optional[float] = None
    association_fee: Optional[float] = None

    building_id: Optional[str] = None
    community_id: Optional[str] = None
    municipality_id: Optional[str] = None
    region_id: Optional[str] = None

    # Listing metadata
    list_price: Optional[int] = None
    days_on_market: Optional[int] = None
    unit_number: str = ""

    @property
    def identity(self) -> str:
        """Physical-unit identity used for de-duplication."""
        return self.unit_key or self.transaction_id

    @property
    def representative_sqft(self) -> Optional[int]:
        if self.exact_sqft is not None:
            return self.exact_sqft
        if self.area_range is not None:
            return self.area_range.midpoint
        return None

    @property
    def locker_count(self) -> int:
        return 1 if self.has_locker else 0

    def geography_id(self, level: GeographyLevel) -> Optional[str]:
        return getattr(self, level.id_field)


@dataclass(frozen=True)
class SearchTier:
    """
    One level of the widening comparable search.

    min_sample: qualifying comparables needed to stop at this tier
    target_sample: sample at which a first-tier result is high confidence
    spread: base half-width of the price range as a ratio
    max_bedroom_delta: hard filter on |bedrooms - subject bedrooms|
    """
    level: GeographyLevel
    min_sample: int
    target_sample: int
    spread: float
    max_bedroom_delta: Optional[int] = 1


@dataclass
class PriceAdjustment:
    """A single parking or locker adjustment applied to a comparable."""
    kind: str  # "parking" | "locker"
    difference: int  # comparable count minus subject count
    amount: int  # dollars subtracted from the close price
    reason: str

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "difference": self.difference,
            "amount": self.amount,
            "reason": self.reason,
        }


@dataclass
class AdjustedComparable:
    """A matched comparable with its similarity score and normalized price."""
    transaction: ComparableTransaction
    score: float
    adjusted_price: int
    adjustments: List[PriceAdjustment] = field(default_factory=list)
    low_quality: bool = False
    temperature: Temperature = Temperature.FROZEN

    @property
    def transaction_id(self) -> str:
        return self.transaction.transaction_id

    @property
    def close_price(self) -> int:
        return self.transaction.close_price

    @property
    def close_date(self) -> date:
        return self.transaction.close_date

    @property
    def total_adjustment(self) -> int:
        return sum(adj.amount for adj in self.adjustments)

    def to_dict(self) -> dict:
        txn = self.transaction
        return {
            "transaction_id": txn.transaction_id,
            "close_price": txn.close_price,
            "close_date": txn.close_date.isoformat(),
            "adjusted_price": self.adjusted_price,
            "score": round(self.score, 4),
            "bedrooms": txn.bedrooms,
            "bathrooms": txn.bathrooms,
            "exact_sqft": txn.exact_sqft,
            "area_range": txn.area_range.label if txn.area_range else None,
            "parking": txn.parking,
            "has_locker": txn.has_locker,
            "days_on_market": txn.days_on_market,
            "unit_number": txn.unit_number,
            "temperature": self.temperature.value,
            "low_quality": self.low_quality,
            "adjustments": [adj.to_dict() for adj in self.adjustments],
        }


@dataclass
class MatchResult:
    """
    Outcome of the tiered search.

    Produced fresh per request, never persisted.
    """
    comparables: List[AdjustedComparable]
    tier: SearchTier
    tier_index: int
    is_broadest: bool
    qualifying_count: int = 0
    tiers_tried: List[GeographyLevel] = field(default_factory=list)

    @property
    def level(self) -> GeographyLevel:
        return self.tier.level

    @property
    def min_sample(self) -> int:
        return self.tier.min_sample

    @property
    def sample_count(self) -> int:
        return len(self.comparables)

    @property
    def is_sufficient(self) -> bool:
        return self.qualifying_count >= self.tier.min_sample

    def to_dict(self) -> dict:
        return {
            "tier": self.level.value,
            "tier_index": self.tier_index,
            "min_sample": self.min_sample,
            "qualifying_count": self.qualifying_count,
            "sample_count": self.sample_count,
            "tiers_tried": [lvl.value for lvl in self.tiers_tried],
            "comparables": [c.to_dict() for c in self.comparables],
        }


@dataclass(frozen=True)
class PriceRange:
    low: int
    high: int

    def contains(self, value: int) -> bool:
        return self.low <= value <= self.high


@dataclass
class MarketSpeed:
    avg_days_on_market: int
    status: str  # "fast" | "moderate" | "slow"
    message: str


@dataclass
class InsightPayload:
    """Short narrative generated for an estimate."""
    summary: str
    key_factors: List[str] = field(default_factory=list)
    market_trend: str = ""

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "key_factors": list(self.key_factors),
            "market_trend": self.market_trend,
        }


@dataclass
class EstimateResult:
    """
    Complete estimate for a subject unit.

    When show_price is False the tier/sample metadata explains why
    no number is displayed; estimated_price and price_range are not
    meant for display.
    """
    estimated_price: int
    price_range: PriceRange
    confidence: Confidence
    show_price: bool

    # Tier metadata
    tier: GeographyLevel
    sample_count: int
    min_sample: int
    confidence_message: str = ""

    comparables: List[AdjustedComparable] = field(default_factory=list)
    current_market_price: Optional[int] = None
    market_speed: Optional[MarketSpeed] = None
    adjusted_comparables: int = 0
    avg_adjustment: int = 0

    narrative: Optional[InsightPayload] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        data = {
            "estimated_price": self.estimated_price,
            "price_range": {"low": self.price_range.low, "high": self.price_range.high},
            "confidence": self.confidence.value,
            "show_price": self.show_price,
            "tier": self.tier.value,
            "sample_count": self.sample_count,
            "min_sample": self.min_sample,
            "confidence_message": self.confidence_message,
            "current_market_price": self.current_market_price,
            "adjustment_summary": {
                "adjusted_comparables": self.adjusted_comparables,
                "avg_adjustment": self.avg_adjustment,
            },
            "comparables": [c.to_dict() for c in self.comparables],
        }
        if self.market_speed is not None:
            data["market_speed"] = {
                "avg_days_on_market": self.market_speed.avg_days_on_market,
                "status": self.market_speed.status,
                "message": self.market_speed.message,
            }
        if self.narrative is not None:
            data["narrative"] = self.narrative.to_dict()
        return data
