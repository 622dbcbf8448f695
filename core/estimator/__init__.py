"""
Comparable-Sales Estimator v1.0

Estimates the sale price or monthly rent of a residential unit from
recent closed transactions of similar nearby units, searching outward
from the building to the region until enough comparables are found.
"""

from .models import (
    AdjustedComparable,
    AreaRange,
    ComparableTransaction,
    Confidence,
    EstimateResult,
    GeographyLevel,
    InsightPayload,
    MatchResult,
    PriceAdjustment,
    PriceRange,
    PropertyCategory,
    SearchTier,
    TransactionDirection,
    TransactionStatus,
    UnitSpec,
)
from .errors import AugmentationError, DataAccessError, EstimatorError, InvalidSpecError
from .config import EngineConfig, SimilarityWeights
from .tiers import CONDO_TIERS, HOME_TIERS
from .settings import (
    AdjustmentOverride,
    InMemoryAdjustmentOverrideStore,
    InMemoryTenantSettingsStore,
    JsonAdjustmentOverrideStore,
    ResolvedAdjustments,
    TenantSettings,
    resolve_adjustments,
    resolve_settings,
)
from .store import InMemoryTransactionStore, JsonTransactionStore, TransactionQuery
from .normalizer import normalize_spec
from .matcher import ComparableMatcher
from .adjustments import PriceNormalizer
from .calculator import StatisticalCalculator
from .insights import AnthropicTextClient, InsightAugmenter
from .rollup import AggregateRollup, AggregateSummary, PsfStats, RollupReport, SummaryStore
from .engine import ValuationEngine

__all__ = [
    # Models
    "AdjustedComparable",
    "AreaRange",
    "ComparableTransaction",
    "Confidence",
    "EstimateResult",
    "GeographyLevel",
    "InsightPayload",
    "MatchResult",
    "PriceAdjustment",
    "PriceRange",
    "PropertyCategory",
    "SearchTier",
    "TransactionDirection",
    "TransactionStatus",
    "UnitSpec",
    # Errors
    "EstimatorError",
    "InvalidSpecError",
    "DataAccessError",
    "AugmentationError",
    # Configuration
    "EngineConfig",
    "SimilarityWeights",
    "CONDO_TIERS",
    "HOME_TIERS",
    "TenantSettings",
    "InMemoryTenantSettingsStore",
    "resolve_settings",
    "AdjustmentOverride",
    "InMemoryAdjustmentOverrideStore",
    "JsonAdjustmentOverrideStore",
    "ResolvedAdjustments",
    "resolve_adjustments",
    # Storage
    "TransactionQuery",
    "InMemoryTransactionStore",
    "JsonTransactionStore",
    # Pipeline
    "normalize_spec",
    "ComparableMatcher",
    "PriceNormalizer",
    "StatisticalCalculator",
    "AnthropicTextClient",
    "InsightAugmenter",
    "ValuationEngine",
    # Rollup
    "AggregateRollup",
    "AggregateSummary",
    "PsfStats",
    "RollupReport",
    "SummaryStore",
]

__version__ = "1.0"
