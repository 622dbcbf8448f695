"""
Comparable-Sales Estimator - Core Business Logic

Pipeline:
1. Specification Normalizer (UnitSpec validation)
2. Comparable Matcher (tiered geographic search)
3. Price Normalizer (parking / locker adjustments)
4. Statistical Calculator (weighted median, range, confidence)
5. Insight Augmenter (optional narrative)

Plus the Aggregate Rollup batch job for per-geography PSF summaries.
"""

from .estimator import (
    AggregateRollup,
    ComparableTransaction,
    Confidence,
    DataAccessError,
    EngineConfig,
    EstimateResult,
    GeographyLevel,
    InvalidSpecError,
    PropertyCategory,
    SummaryStore,
    TransactionDirection,
    UnitSpec,
    ValuationEngine,
)

__all__ = [
    "AggregateRollup",
    "ComparableTransaction",
    "Confidence",
    "DataAccessError",
    "EngineConfig",
    "EstimateResult",
    "GeographyLevel",
    "InvalidSpecError",
    "PropertyCategory",
    "SummaryStore",
    "TransactionDirection",
    "UnitSpec",
    "ValuationEngine",
]
