"""
Comparable Matcher

Tiered comparable search. Tiers are evaluated narrowest to broadest,
each as a clean, self-contained population (never unioned):

1. HARD FILTER - direction, category, subtype group, closed only,
   exclusion id, lookback horizon, bedroom delta, one close per unit
2. SCORE - weighted similarity (see similarity.py)
3. NORMALIZE - parking/locker price adjustment
4. STOP - first tier whose qualifying count reaches its minimum sample;
   otherwise the broadest tier's result is returned as-is
"""

import logging
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence

from .adjustments import PriceNormalizer
from .config import EngineConfig
from .errors import DataAccessError
from .models import (
    AdjustedComparable,
    ComparableTransaction,
    MatchResult,
    SearchTier,
    Temperature,
    TransactionStatus,
    UnitSpec,
)
from .settings import TenantSettings
from .similarity import score_comparable
from .store import TransactionQuery, TransactionStore
from .tiers import applicable_tiers

logger = logging.getLogger(__name__)


# Home subtypes that may stand in for each other
SIMILAR_SUBCATEGORIES: Dict[str, Sequence[str]] = {
    "Detached": ("Detached", "Semi-Detached", "Link"),
    "Semi-Detached": ("Semi-Detached", "Detached", "Link"),
    "Link": ("Link", "Semi-Detached", "Detached"),
    "Att/Row/Townhouse": ("Att/Row/Townhouse",),
    "Duplex": ("Duplex", "Triplex", "Fourplex", "Multiplex"),
    "Triplex": ("Triplex", "Duplex", "Fourplex", "Multiplex"),
    "Fourplex": ("Fourplex", "Triplex", "Duplex", "Multiplex"),
    "Multiplex": ("Multiplex", "Fourplex", "Triplex", "Duplex"),
}


class ComparableMatcher:
    """
    Finds comparables for a subject using widening geography tiers.

    Holds no per-request state; safe to share across threads.
    """

    def __init__(
        self,
        store: TransactionStore,
        config: Optional[EngineConfig] = None,
        reference_date: date = None,
    ):
        """
        Initialize matcher.

        Args:
            store: Historical transaction store
            config: Engine configuration (default: EngineConfig())
            reference_date: Date ages are measured from (default: today)
        """
        self._store = store
        self._config = config or EngineConfig()
        self._reference_date = reference_date or date.today()

    @property
    def reference_date(self) -> date:
        return self._reference_date

    def match(self, spec: UnitSpec, settings: TenantSettings) -> MatchResult:
        """
        Run the tiered search for a subject.

        Args:
            spec: Normalized subject
            settings: Tenant settings (parking/locker values)

        Returns:
            MatchResult at the first sufficient tier, or the broadest
            tier tried when none is sufficient

        Raises:
            DataAccessError: the store failed
        """
        tiers = applicable_tiers(spec, self._config.tiers_for(spec.category))
        if not tiers:
            # The normalizer guarantees a geography id; a category table
            # without that level leaves nothing to search.
            fallback = self._config.tiers_for(spec.category)[-1]
            return MatchResult(comparables=[], tier=fallback, tier_index=0, is_broadest=True)

        normalizer = PriceNormalizer(settings.values_for(spec.direction))
        since = self._reference_date - timedelta(days=self._config.lookback_months(spec.direction) * 30)
        tried = []

        result = None
        for index, tier in enumerate(tiers):
            tried.append(tier.level)
            population = self._fetch(spec, tier, since)
            qualifying = self._apply_hard_filters(population, spec, tier, since)
            ranked = self._rank(qualifying, spec, normalizer)
            is_broadest = index == len(tiers) - 1

            result = MatchResult(
                comparables=ranked[: self._config.comparable_cap],
                tier=tier,
                tier_index=index,
                is_broadest=is_broadest,
                qualifying_count=len(qualifying),
                tiers_tried=list(tried),
            )

            if len(qualifying) >= tier.min_sample:
                logger.debug(
                    "Tier %s sufficient: %d qualifying (min %d)",
                    tier.level.value, len(qualifying), tier.min_sample,
                )
                return result

            logger.debug(
                "Tier %s insufficient: %d qualifying (min %d), widening",
                tier.level.value, len(qualifying), tier.min_sample,
            )

        return result

    def _fetch(
        self,
        spec: UnitSpec,
        tier: SearchTier,
        since: date,
    ) -> List[ComparableTransaction]:
        """Query one tier's population. Faults surface as DataAccessError."""
        query = TransactionQuery(
            direction=spec.direction,
            category=spec.category,
            level=tier.level,
            geography_id=spec.geography_id(tier.level),
            closed_only=True,
            exclude_id=spec.exclude_id,
            since=since,
        )
        try:
            return list(self._store.query(query))
        except DataAccessError:
            raise
        except Exception as exc:
            raise DataAccessError(
                f"Transaction query failed at {tier.level.value} tier: {exc}"
            ) from exc

    def _apply_hard_filters(
        self,
        candidates: List[ComparableTransaction],
        spec: UnitSpec,
        tier: SearchTier,
        since: date,
    ) -> List[ComparableTransaction]:
        """Apply non-negotiable filters, then keep one close per unit."""
        result = []
        similar = self._similar_subcategories(spec)

        for comp in candidates:
            # Direction and category must match exactly
            if comp.direction is not spec.direction:
                continue
            if comp.category is not spec.category:
                continue

            if comp.status is not TransactionStatus.CLOSED:
                continue

            if spec.exclude_id and comp.transaction_id == spec.exclude_id:
                continue

            # Older than the horizon: dropped, not down-weighted
            if comp.close_date < since or comp.close_date > self._reference_date:
                continue

            if similar and comp.subcategory and comp.subcategory not in similar:
                continue

            if (
                tier.max_bedroom_delta is not None
                and spec.bedrooms is not None
                and comp.bedrooms is not None
                and abs(comp.bedrooms - spec.bedrooms) > tier.max_bedroom_delta
            ):
                continue

            result.append(comp)

        if self._config.allow_repeat_units:
            return result
        return self._deduplicate_units(result)

    @staticmethod
    def _deduplicate_units(comps: List[ComparableTransaction]) -> List[ComparableTransaction]:
        """Keep only the most recent close of each physical unit."""
        latest: Dict[str, ComparableTransaction] = {}
        for comp in comps:
            current = latest.get(comp.identity)
            if current is None or (comp.close_date, comp.transaction_id) > (
                current.close_date, current.transaction_id
            ):
                latest[comp.identity] = comp
        return [c for c in comps if latest[c.identity] is c]

    @staticmethod
    def _similar_subcategories(spec: UnitSpec) -> Sequence[str]:
        if not spec.category.is_home or not spec.subcategory:
            return ()
        return SIMILAR_SUBCATEGORIES.get(spec.subcategory, (spec.subcategory,))

    def _rank(
        self,
        comps: List[ComparableTransaction],
        spec: UnitSpec,
        normalizer: PriceNormalizer,
    ) -> List[AdjustedComparable]:
        """
        Score, normalize and order candidates.

        Order: usable before low quality, most similar first, ties
        broken by most recent close.
        """
        adjusted = []
        for comp in comps:
            score = score_comparable(spec, comp, self._reference_date, self._config)
            price, adjustments, low_quality = normalizer.normalize(comp, spec)
            adjusted.append(AdjustedComparable(
                transaction=comp,
                score=score,
                adjusted_price=price,
                adjustments=adjustments,
                low_quality=low_quality,
                temperature=Temperature.for_age_days((self._reference_date - comp.close_date).days),
            ))

        adjusted.sort(
            key=lambda c: (c.low_quality, -c.score, -c.close_date.toordinal(), c.transaction_id)
        )
        return adjusted
