"""
Valuation Engine

Entry points for the estimator. Pipeline order:
1. NORMALIZE - validate the subject into a UnitSpec
2. MATCH - tiered comparable search with price normalization
3. CALCULATE - weighted median, range, confidence, show_price gating
4. AUGMENT - optional narrative, attached after the numeric result

Tenant settings are resolved once per request and passed down as an
immutable value, so one engine instance serves many tenants concurrently.
"""

import logging
from datetime import date
from typing import Any, Mapping, Optional, Union

from .calculator import StatisticalCalculator
from .config import EngineConfig
from .insights import InsightAugmenter
from .matcher import ComparableMatcher
from .models import EstimateResult, MatchResult, TransactionDirection, UnitSpec
from .normalizer import normalize_spec
from .settings import (
    AdjustmentOverrideStore,
    TenantSettings,
    TenantSettingsStore,
    resolve_adjustments,
    resolve_settings,
)
from .store import TransactionStore

logger = logging.getLogger(__name__)

SubjectInput = Union[Mapping[str, Any], UnitSpec]


class ValuationEngine:
    """
    Comparable-sales valuation pipeline.

    Holds only read-only collaborators; no state is written during
    matching or calculation.
    """

    def __init__(
        self,
        store: TransactionStore,
        settings_store: Optional[TenantSettingsStore] = None,
        config: Optional[EngineConfig] = None,
        augmenter: Optional[InsightAugmenter] = None,
        reference_date: date = None,
        override_store: Optional[AdjustmentOverrideStore] = None,
    ):
        """
        Initialize valuation engine.

        Args:
            store: Historical transaction store
            settings_store: Tenant settings lookup (default: built-in defaults)
            config: Engine configuration
            augmenter: Narrative generator; None disables narratives
            reference_date: Reference date for recency (default: today)
            override_store: Geography-scoped parking/locker values (default: none)
        """
        self._config = config or EngineConfig()
        self._store = store
        self._settings_store = settings_store
        self._override_store = override_store
        self._augmenter = augmenter
        self._reference_date = reference_date or date.today()
        self._matcher = ComparableMatcher(store, self._config, reference_date=self._reference_date)
        self._calculator = StatisticalCalculator(self._config)

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def store(self) -> TransactionStore:
        return self._store

    def match_comparables(
        self,
        subject: SubjectInput,
        direction: Optional[TransactionDirection] = None,
        tenant_id: Optional[str] = None,
    ) -> MatchResult:
        """
        Select comparables without computing an estimate.

        Useful for auditing/debugging the selection process.

        Raises:
            InvalidSpecError: malformed subject
            DataAccessError: store failure
        """
        spec = normalize_spec(subject, direction)
        settings = self._settings_for(spec, tenant_id)
        return self._matcher.match(spec, settings)

    def estimate(
        self,
        subject: SubjectInput,
        direction: Optional[TransactionDirection] = None,
        tenant_id: Optional[str] = None,
        include_narrative: bool = False,
    ) -> EstimateResult:
        """
        Estimate the subject's sale price or monthly rent.

        Args:
            subject: Raw subject description or UnitSpec
            direction: Sale or lease (overrides the subject's own)
            tenant_id: Tenant whose settings apply
            include_narrative: Attempt the optional narrative

        Returns:
            EstimateResult. Insufficient data is a successful result
            with show_price=False, not an exception.

        Raises:
            InvalidSpecError: malformed subject
            DataAccessError: store failure
        """
        spec = normalize_spec(subject, direction)
        settings = self._settings_for(spec, tenant_id)

        match = self._matcher.match(spec, settings)
        result = self._calculator.calculate(match, spec.direction)

        logger.info(
            "Estimate for tenant %s: tier=%s sample=%d confidence=%s show_price=%s",
            settings.tenant_id, result.tier.value, result.sample_count,
            result.confidence.value, result.show_price,
        )

        if self._augmenter is not None and InsightAugmenter.should_run(result, settings, include_narrative):
            result.narrative = self._augmenter.augment(spec, result, match.comparables, settings)

        return result

    def _settings_for(self, spec: UnitSpec, tenant_id: Optional[str]) -> TenantSettings:
        """Tenant settings with the subject's scoped adjustment values applied."""
        settings = resolve_settings(self._settings_store, tenant_id)
        resolved = resolve_adjustments(self._override_store, spec, settings)
        logger.debug(
            "Adjustment values: parking %d (%s), locker %d (%s)",
            resolved.values.parking_per_space, resolved.parking_source,
            resolved.values.locker, resolved.locker_source,
        )
        return settings.with_values(spec.direction, resolved.values)
