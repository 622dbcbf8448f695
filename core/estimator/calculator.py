"""
Statistical Calculator

Turns a MatchResult into an EstimateResult:
- Weighted median of adjusted prices (weights = similarity scores)
- Tier- and sample-dependent range around the estimate
- Confidence from (tier reached, sample count)
- show_price gating for sparse, low-confidence results

Numeric policy: currency rounds half-up to the market's unit;
ratios round half-to-even.
"""

import math
from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP, Decimal
from typing import List, Optional, Sequence, Tuple

from utils.formatting import format_price

from .config import EngineConfig
from .models import (
    AdjustedComparable,
    Confidence,
    EstimateResult,
    MarketSpeed,
    MatchResult,
    PriceRange,
    SearchTier,
    TransactionDirection,
)


# Days-on-market bands for market speed
FAST_MARKET_DAYS = 30
MODERATE_MARKET_DAYS = 60

RATIO_PRECISION = Decimal("0.0001")


def round_currency(value: float, unit: int = 1) -> int:
    """Round half-up to the nearest multiple of unit."""
    scaled = (Decimal(str(value)) / Decimal(unit)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return int(scaled) * unit


def round_ratio(value: float) -> Decimal:
    """Round a ratio half-to-even at four decimal places."""
    return Decimal(str(value)).quantize(RATIO_PRECISION, rounding=ROUND_HALF_EVEN)


def weighted_median(pairs: Sequence[Tuple[float, float]]) -> float:
    """
    Weighted median of (value, weight) pairs.

    Equal weights reduce to the ordinary median; when the cumulative
    weight lands exactly on half, the two neighbouring values are
    averaged.

    Raises:
        ValueError: no pairs, or non-positive total weight
    """
    items = sorted((v, w) for v, w in pairs if w > 0)
    total = sum(w for _, w in items)
    if not items or total <= 0:
        raise ValueError("weighted median needs at least one positive weight")

    half = total / 2
    cumulative = 0.0
    for index, (value, weight) in enumerate(items):
        cumulative += weight
        if math.isclose(cumulative, half, rel_tol=1e-9, abs_tol=1e-12):
            if index + 1 < len(items):
                return (value + items[index + 1][0]) / 2
            return value
        if cumulative > half:
            return value
    return items[-1][0]


def classify_confidence(
    tier: SearchTier,
    tier_index: int,
    is_broadest: bool,
    sample_count: int,
) -> Confidence:
    """
    Confidence as a direct function of tier reached and sample count.

    Low: broadest tier with a sample below its own minimum
    High: first tier tried, sample at or above the tier's target
    Medium: everything else (widened, or a marginal first-tier sample)
    """
    if is_broadest and sample_count < tier.min_sample:
        return Confidence.LOW
    if tier_index == 0 and sample_count >= tier.target_sample:
        return Confidence.HIGH
    return Confidence.MEDIUM


class StatisticalCalculator:
    """Computes the point estimate, range and confidence for a match."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self._config = config or EngineConfig()

    def calculate(self, match: MatchResult, direction: TransactionDirection) -> EstimateResult:
        """
        Produce an estimate from matched, price-normalized comparables.

        Args:
            match: Result of the tiered search
            direction: Sale or lease (selects the rounding unit)

        Returns:
            EstimateResult; insufficient data yields show_price=False
        """
        comps = match.comparables
        count = len(comps)
        unit = self._config.rounding_unit(direction)

        confidence = classify_confidence(match.tier, match.tier_index, match.is_broadest, count)
        show_price = not (confidence is Confidence.LOW and count < self._config.show_price_floor)

        if count == 0:
            return EstimateResult(
                estimated_price=0,
                price_range=PriceRange(0, 0),
                confidence=confidence,
                show_price=False,
                tier=match.level,
                sample_count=0,
                min_sample=match.min_sample,
                confidence_message=self._message(match, confidence, 0, False),
            )

        center = weighted_median([(c.adjusted_price, c.score) for c in comps])
        estimate = round_currency(center, unit)
        spread = self._spread(match.tier, count)
        price_range = PriceRange(
            low=max(0, round_currency(estimate * (1 - float(spread)), unit)),
            high=round_currency(estimate * (1 + float(spread)), unit),
        )

        most_recent = max(comps, key=lambda c: (c.close_date, c.transaction_id))
        adjusted = [c for c in comps if c.adjustments]

        return EstimateResult(
            estimated_price=estimate,
            price_range=price_range,
            confidence=confidence,
            show_price=show_price,
            tier=match.level,
            sample_count=count,
            min_sample=match.min_sample,
            confidence_message=self._message(match, confidence, count, show_price, estimate, direction),
            comparables=list(comps),
            current_market_price=most_recent.adjusted_price,
            market_speed=self._market_speed(comps),
            adjusted_comparables=len(adjusted),
            avg_adjustment=self._avg_adjustment(adjusted),
        )

    def _spread(self, tier: SearchTier, count: int) -> Decimal:
        """Tier base spread widened for samples below the tier's target."""
        factor = max(1.0, math.sqrt(tier.target_sample / count)) if tier.target_sample else 1.0
        return round_ratio(min(self._config.max_spread, tier.spread * factor))

    @staticmethod
    def _market_speed(comps: List[AdjustedComparable]) -> Optional[MarketSpeed]:
        days = [c.transaction.days_on_market for c in comps if c.transaction.days_on_market is not None]
        if not days:
            return None
        avg = round_currency(sum(days) / len(days))
        if avg < FAST_MARKET_DAYS:
            return MarketSpeed(avg, "fast", "Units are moving quickly. Strong seller's market.")
        if avg < MODERATE_MARKET_DAYS:
            return MarketSpeed(avg, "moderate", "Normal market conditions. Units closing at a steady pace.")
        return MarketSpeed(avg, "slow", "Units are taking longer to close. More room to negotiate.")

    @staticmethod
    def _avg_adjustment(adjusted: List[AdjustedComparable]) -> int:
        if not adjusted:
            return 0
        total = sum(sum(abs(a.amount) for a in c.adjustments) for c in adjusted)
        return round_currency(total / len(adjusted))

    @staticmethod
    def _message(
        match: MatchResult,
        confidence: Confidence,
        count: int,
        show_price: bool,
        estimate: int = 0,
        direction: TransactionDirection = TransactionDirection.SALE,
    ) -> str:
        level = match.level.value
        noun = "comparable" if count == 1 else "comparables"
        if not show_price:
            return (
                f"Only {count} {noun} found at {level} level (minimum {match.min_sample}). "
                "Not enough data for an automated estimate."
            )
        value = format_price(estimate, monthly=direction is TransactionDirection.LEASE)
        if confidence is Confidence.HIGH:
            return f"Strong estimate of {value} based on {count} {noun} at {level} level."
        if confidence is Confidence.MEDIUM:
            return f"Estimate of {value} based on {count} {noun} at {level} level."
        return f"Limited data. Estimate of {value} based on {count} {noun} at {level} level."
