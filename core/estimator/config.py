"""
Tunable parameters for the estimator.

Thresholds, similarity weights, recency horizons and rounding are
configuration, not constants baked into the algorithms.
"""

from dataclasses import dataclass, field
from typing import Sequence

from .models import PropertyCategory, SearchTier, TransactionDirection
from .tiers import CONDO_TIERS, HOME_TIERS, validate_tier_table


@dataclass(frozen=True)
class SimilarityWeights:
    """
    Relative weights of each similarity component.

    Tax is a weak secondary signal. The lot weight is scaled by
    lease_lot_factor for lease comparisons since tenants value the
    structure more than the land. association_fee only applies to condos.
    """
    bedrooms: float = 3.0
    bathrooms: float = 2.0
    area: float = 3.0
    recency: float = 1.5
    tax: float = 0.5
    lot: float = 2.0
    association_fee: float = 1.0
    lease_lot_factor: float = 0.6


@dataclass(frozen=True)
class EngineConfig:
    """Immutable engine configuration."""
    condo_tiers: Sequence[SearchTier] = CONDO_TIERS
    home_tiers: Sequence[SearchTier] = HOME_TIERS
    weights: SimilarityWeights = field(default_factory=SimilarityWeights)

    # Lookback horizon: older closes are dropped, not down-weighted
    sale_lookback_months: int = 24
    lease_lookback_months: int = 18

    comparable_cap: int = 10
    allow_repeat_units: bool = False

    # Area buckets this far apart still count as partially compatible
    area_adjacency_sqft: int = 200

    # Maintenance fees within this ratio of the subject's are a full match
    maintenance_tolerance: float = 0.20

    # show_price floor for low-confidence results
    show_price_floor: int = 3
    max_spread: float = 0.35

    # Currency rounding unit per direction
    sale_rounding_unit: int = 1000
    lease_rounding_unit: int = 10

    def __post_init__(self):
        validate_tier_table(self.condo_tiers)
        validate_tier_table(self.home_tiers)
        if self.comparable_cap < 1:
            raise ValueError("comparable_cap must be at least 1")
        for tier in list(self.condo_tiers) + list(self.home_tiers):
            if tier.target_sample > self.comparable_cap:
                raise ValueError(
                    f"{tier.level.value}: target_sample exceeds comparable_cap ({self.comparable_cap})"
                )
        if self.sale_lookback_months < 1 or self.lease_lookback_months < 1:
            raise ValueError("lookback horizons must be at least one month")
        if self.maintenance_tolerance <= 0:
            raise ValueError("maintenance_tolerance must be positive")

    def tiers_for(self, category: PropertyCategory) -> Sequence[SearchTier]:
        return self.home_tiers if category.is_home else self.condo_tiers

    def lookback_months(self, direction: TransactionDirection) -> int:
        if direction is TransactionDirection.LEASE:
            return self.lease_lookback_months
        return self.sale_lookback_months

    def rounding_unit(self, direction: TransactionDirection) -> int:
        if direction is TransactionDirection.LEASE:
            return self.lease_rounding_unit
        return self.sale_rounding_unit
