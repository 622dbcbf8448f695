"""
Search tier tables for the comparable matcher.

Tiers are tried narrowest to broadest. Condos start at the building;
homes start at the community. Tiers whose geography id is missing from
the subject are skipped, so a search never starts narrower than the
subject allows.
"""

from typing import List, Sequence

from .models import GeographyLevel, SearchTier, UnitSpec


CONDO_TIERS: Sequence[SearchTier] = (
    SearchTier(GeographyLevel.BUILDING, min_sample=3, target_sample=5, spread=0.05),
    SearchTier(GeographyLevel.COMMUNITY, min_sample=5, target_sample=8, spread=0.08),
    SearchTier(GeographyLevel.MUNICIPALITY, min_sample=5, target_sample=10, spread=0.12),
    SearchTier(GeographyLevel.REGION, min_sample=5, target_sample=10, spread=0.15),
)

HOME_TIERS: Sequence[SearchTier] = (
    SearchTier(GeographyLevel.COMMUNITY, min_sample=5, target_sample=8, spread=0.06),
    SearchTier(GeographyLevel.MUNICIPALITY, min_sample=5, target_sample=10, spread=0.10),
    SearchTier(GeographyLevel.REGION, min_sample=5, target_sample=10, spread=0.15),
)


def applicable_tiers(spec: UnitSpec, table: Sequence[SearchTier]) -> List[SearchTier]:
    """
    Tiers from the table that the subject can actually be searched at.

    Args:
        spec: Normalized subject
        table: Ordered tier table for the subject's category

    Returns:
        Ordered tiers whose geography id is present on the subject
    """
    return [tier for tier in table if spec.geography_id(tier.level)]


def validate_tier_table(table: Sequence[SearchTier]) -> None:
    """Reject tables that are unordered or carry impossible thresholds."""
    order = list(GeographyLevel)
    positions = [order.index(tier.level) for tier in table]
    if positions != sorted(set(positions)):
        raise ValueError("tiers must be ordered narrowest to broadest without repeats")
    for tier in table:
        if tier.min_sample < 0:
            raise ValueError(f"{tier.level.value}: min_sample cannot be negative")
        if tier.target_sample < tier.min_sample:
            raise ValueError(f"{tier.level.value}: target_sample must be >= min_sample")
        if not 0 <= tier.spread < 1:
            raise ValueError(f"{tier.level.value}: spread must be in [0, 1)")
