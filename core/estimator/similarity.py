"""
Soft similarity scoring between the subject and a candidate comparable.

Each component yields a similarity in [0, 1]; the score is the weighted
mean over the components that both sides have data for, so missing data
neither rewards nor punishes a candidate.
"""

from datetime import date
from typing import List, Optional, Tuple

from .config import EngineConfig
from .models import ComparableTransaction, TransactionDirection, UnitSpec


# Scores are weights in the weighted median, so they stay strictly positive
MIN_SCORE = 0.01


def _count_similarity(subject: Optional[int], comp: Optional[int]) -> Optional[float]:
    if subject is None or comp is None:
        return None
    return 1.0 / (1 + abs(subject - comp))


def area_similarity(spec: UnitSpec, comp: ComparableTransaction, adjacency_sqft: int) -> Optional[float]:
    """
    Area compatibility.

    Exact-to-exact when both are known, otherwise bucket compatibility:
    1.0 inside the bucket (or same bucket), 0.5 within the adjacency
    distance, 0.0 beyond.
    """
    if spec.exact_sqft is not None and comp.exact_sqft is not None:
        return max(0.0, 1.0 - abs(spec.exact_sqft - comp.exact_sqft) / spec.exact_sqft)

    if spec.exact_sqft is not None and comp.area_range is not None:
        distance = comp.area_range.distance_to(spec.exact_sqft)
    elif comp.exact_sqft is not None and spec.area_range is not None:
        distance = spec.area_range.distance_to(comp.exact_sqft)
    elif spec.area_range is not None and comp.area_range is not None:
        if spec.area_range == comp.area_range:
            return 1.0
        distance = abs(spec.area_range.midpoint - comp.area_range.midpoint)
        return 0.5 if distance <= adjacency_sqft else 0.0
    else:
        return None

    if distance == 0:
        return 1.0
    return 0.5 if distance <= adjacency_sqft else 0.0


def recency_similarity(close_date: date, reference_date: date, horizon_days: int) -> float:
    """Linear decay from 1.0 today to 0.0 at the lookback horizon."""
    age_days = max(0, (reference_date - close_date).days)
    return max(0.0, 1.0 - age_days / horizon_days)


def maintenance_similarity(
    subject_fee: Optional[float],
    comp_fee: Optional[float],
    tolerance: float,
) -> Optional[float]:
    """
    Condo maintenance fee compatibility.

    1.0 within tolerance of the subject's fee, then a linear decay to
    0.0 at twice the tolerance. None when either fee is unknown.
    """
    if not subject_fee or not comp_fee:
        return None
    ratio = abs(subject_fee - comp_fee) / subject_fee
    if ratio <= tolerance:
        return 1.0
    return max(0.0, 1.0 - (ratio - tolerance) / tolerance)


def _relative_similarity(subject: Optional[float], comp: Optional[float]) -> Optional[float]:
    if not subject or comp is None:
        return None
    return max(0.0, 1.0 - abs(subject - comp) / subject)


def score_comparable(
    spec: UnitSpec,
    comp: ComparableTransaction,
    reference_date: date,
    config: EngineConfig,
) -> float:
    """
    Weighted similarity of a comparable to the subject.

    Args:
        spec: Normalized subject
        comp: Candidate that already passed the hard filters
        reference_date: Date recency is measured from
        config: Engine configuration (weights, horizon, adjacency)

    Returns:
        Score in [MIN_SCORE, 1.0]
    """
    weights = config.weights
    horizon_days = config.lookback_months(spec.direction) * 30

    lot_weight = weights.lot
    if spec.direction is TransactionDirection.LEASE:
        lot_weight *= weights.lease_lot_factor

    fee_weight = 0.0 if spec.category.is_home else weights.association_fee

    components: List[Tuple[float, Optional[float]]] = [
        (weights.bedrooms, _count_similarity(spec.bedrooms, comp.bedrooms)),
        (weights.bathrooms, _count_similarity(spec.bathrooms, comp.bathrooms)),
        (weights.area, area_similarity(spec, comp, config.area_adjacency_sqft)),
        (weights.recency, recency_similarity(comp.close_date, reference_date, horizon_days)),
        (weights.tax, _relative_similarity(spec.tax_annual_amount, comp.tax_annual_amount)),
        (lot_weight, _relative_similarity(spec.frontage_ft, comp.frontage_ft)),
        (fee_weight, maintenance_similarity(
            spec.association_fee, comp.association_fee, config.maintenance_tolerance,
        )),
    ]

    total_weight = 0.0
    weighted = 0.0
    for weight, similarity in components:
        if similarity is None or weight <= 0:
            continue
        total_weight += weight
        weighted += weight * similarity

    if total_weight == 0:
        return MIN_SCORE
    return max(MIN_SCORE, weighted / total_weight)
