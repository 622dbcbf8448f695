"""
Tests for the Comparable Matcher

Verifies:
- Tiers widen narrowest to broadest and never start narrower than the subject allows
- Each tier is a self-contained population
- Hard filters (direction, status, exclusion, horizon, bedroom delta, subtype group)
- One close per physical unit
- Cap and ordering (most similar first, low quality last)
- Store faults surface as DataAccessError
"""

import itertools
from datetime import date, timedelta
from pathlib import Path
import sys

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.estimator import (
    AreaRange,
    ComparableMatcher,
    ComparableTransaction,
    DataAccessError,
    EngineConfig,
    GeographyLevel,
    InMemoryTransactionStore,
    PropertyCategory,
    SearchTier,
    TenantSettings,
    TransactionDirection,
    TransactionStatus,
    normalize_spec,
)


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def reference_date():
    """Fixed reference date for deterministic tests."""
    return date(2024, 6, 1)


@pytest.fixture
def settings():
    return TenantSettings(tenant_id="test")


@pytest.fixture
def subject():
    """2 bed / 2 bath condo in community C1, municipality M1."""
    return normalize_spec({
        "direction": "sale",
        "category": "condo",
        "bedrooms": 2,
        "bathrooms": 2,
        "area_range": "800-899",
        "community_id": "C1",
        "municipality_id": "M1",
    })


@pytest.fixture
def create_txn(reference_date):
    """Factory fixture for historical transactions."""
    counter = itertools.count(1)

    def _create(
        price: int = 700000,
        days_ago: int = 30,
        direction: TransactionDirection = TransactionDirection.SALE,
        category: PropertyCategory = PropertyCategory.CONDO,
        bedrooms: int = 2,
        community_id: str = "C1",
        municipality_id: str = "M1",
        **overrides,
    ) -> ComparableTransaction:
        fields = dict(
            transaction_id=f"TXN-{next(counter):03d}",
            direction=direction,
            category=category,
            close_price=price,
            close_date=reference_date - timedelta(days=days_ago),
            bedrooms=bedrooms,
            bathrooms=2,
            area_range=AreaRange(800, 899),
            community_id=community_id,
            municipality_id=municipality_id,
        )
        fields.update(overrides)
        return ComparableTransaction(**fields)
    return _create


def make_matcher(transactions, reference_date, config=None):
    return ComparableMatcher(InMemoryTransactionStore(transactions), config, reference_date=reference_date)


# =============================================================================
# Tier Widening
# =============================================================================

class TestTierWidening:
    """Tiered search behaviour."""

    def test_stops_at_first_sufficient_tier(self, subject, settings, create_txn, reference_date):
        comps = [create_txn() for _ in range(6)]
        result = make_matcher(comps, reference_date).match(subject, settings)

        assert result.level is GeographyLevel.COMMUNITY
        assert result.tier_index == 0
        assert result.qualifying_count == 6
        assert result.tiers_tried == [GeographyLevel.COMMUNITY]
        assert result.is_sufficient

    def test_widens_when_narrow_tier_is_short(self, subject, settings, create_txn, reference_date):
        config = EngineConfig(condo_tiers=(
            SearchTier(GeographyLevel.BUILDING, 3, 5, 0.05),
            SearchTier(GeographyLevel.COMMUNITY, 5, 8, 0.08),
            SearchTier(GeographyLevel.MUNICIPALITY, 3, 5, 0.12),
        ))
        comps = [create_txn() for _ in range(2)]
        comps.append(create_txn(community_id="C2"))

        result = make_matcher(comps, reference_date, config).match(subject, settings)

        assert result.level is GeographyLevel.MUNICIPALITY
        assert result.tier_index == 1
        assert result.qualifying_count == 3
        assert result.tiers_tried == [GeographyLevel.COMMUNITY, GeographyLevel.MUNICIPALITY]

    def test_never_narrower_than_subject_geography(self, settings, create_txn, reference_date):
        subject = normalize_spec({
            "direction": "sale",
            "category": "condo",
            "area_range": "800-899",
            "municipality_id": "M1",
        })
        comps = [create_txn() for _ in range(2)]

        result = make_matcher(comps, reference_date).match(subject, settings)

        assert result.tiers_tried[0] is GeographyLevel.MUNICIPALITY
        assert result.level is GeographyLevel.MUNICIPALITY

    def test_broadest_insufficient_returned_anyway(self, subject, settings, create_txn, reference_date):
        comps = [create_txn(), create_txn()]
        result = make_matcher(comps, reference_date).match(subject, settings)

        assert result.is_broadest
        assert result.level is GeographyLevel.MUNICIPALITY
        assert result.sample_count == 2
        assert not result.is_sufficient

    def test_zero_comparables(self, subject, settings, reference_date):
        result = make_matcher([], reference_date).match(subject, settings)

        assert result.sample_count == 0
        assert result.is_broadest

    def test_tiers_are_not_unioned(self, settings, create_txn, reference_date):
        """Community closes without the municipality id do not leak into the wider tier."""
        subject = normalize_spec({
            "direction": "sale",
            "category": "condo",
            "area_range": "800-899",
            "community_id": "C1",
            "municipality_id": "M9",
        })
        comps = [create_txn(municipality_id="M1") for _ in range(3)]
        comps.append(create_txn(community_id="C5", municipality_id="M9"))

        result = make_matcher(comps, reference_date).match(subject, settings)

        assert result.level is GeographyLevel.MUNICIPALITY
        assert [c.transaction_id for c in result.comparables] == ["TXN-004"]


# =============================================================================
# Hard Filters
# =============================================================================

class TestHardFilters:
    """Non-negotiable candidate filters."""

    def _ids(self, subject, settings, comps, reference_date, config=None):
        result = make_matcher(comps, reference_date, config).match(subject, settings)
        return {c.transaction_id for c in result.comparables}

    def test_direction_must_match(self, subject, settings, create_txn, reference_date):
        comps = [create_txn(), create_txn(direction=TransactionDirection.LEASE, price=2500)]
        assert self._ids(subject, settings, comps, reference_date) == {"TXN-001"}

    def test_closed_only(self, subject, settings, create_txn, reference_date):
        comps = [create_txn(), create_txn(status=TransactionStatus.ACTIVE)]
        assert self._ids(subject, settings, comps, reference_date) == {"TXN-001"}

    def test_excluded_id_never_appears(self, settings, create_txn, reference_date):
        subject = normalize_spec({
            "direction": "sale",
            "category": "condo",
            "area_range": "800-899",
            "community_id": "C1",
            "exclude_id": "TXN-002",
        })
        comps = [create_txn() for _ in range(6)]
        ids = self._ids(subject, settings, comps, reference_date)

        assert "TXN-002" not in ids
        assert len(ids) == 5

    def test_outside_lookback_dropped(self, subject, settings, create_txn, reference_date):
        comps = [create_txn(days_ago=30), create_txn(days_ago=24 * 30 + 5), create_txn(days_ago=-3)]
        assert self._ids(subject, settings, comps, reference_date) == {"TXN-001"}

    def test_lease_uses_shorter_horizon(self, settings, create_txn, reference_date):
        subject = normalize_spec({
            "direction": "lease",
            "category": "condo",
            "area_range": "800-899",
            "community_id": "C1",
        })
        comps = [
            create_txn(direction=TransactionDirection.LEASE, price=2800, days_ago=17 * 30),
            create_txn(direction=TransactionDirection.LEASE, price=2800, days_ago=19 * 30),
        ]
        assert self._ids(subject, settings, comps, reference_date) == {"TXN-001"}

    def test_bedroom_delta(self, subject, settings, create_txn, reference_date):
        comps = [create_txn(bedrooms=1), create_txn(bedrooms=3), create_txn(bedrooms=4)]
        assert self._ids(subject, settings, comps, reference_date) == {"TXN-001", "TXN-002"}

    def test_home_subcategory_groups(self, settings, create_txn, reference_date):
        subject = normalize_spec({
            "direction": "sale",
            "category": "home",
            "subcategory": "Detached",
            "area_range": "2000-2499",
            "community_id": "C1",
        })
        comps = [
            create_txn(category=PropertyCategory.HOME, subcategory="Semi-Detached"),
            create_txn(category=PropertyCategory.HOME, subcategory="Att/Row/Townhouse"),
            create_txn(category=PropertyCategory.HOME, subcategory="Detached"),
            create_txn(category=PropertyCategory.CONDO),
        ]
        assert self._ids(subject, settings, comps, reference_date) == {"TXN-001", "TXN-003"}


class TestUnitDeduplication:
    """Repeat closes of the same physical unit."""

    def test_keeps_most_recent_close(self, subject, settings, create_txn, reference_date):
        comps = [
            create_txn(unit_key="B1-1204", days_ago=300, price=650000),
            create_txn(unit_key="B1-1204", days_ago=40, price=720000),
            create_txn(unit_key="B1-0801"),
        ]
        result = make_matcher(comps, reference_date).match(subject, settings)

        ids = {c.transaction_id for c in result.comparables}
        assert ids == {"TXN-002", "TXN-003"}

    def test_repeat_units_allowed_when_configured(self, subject, settings, create_txn, reference_date):
        comps = [
            create_txn(unit_key="B1-1204", days_ago=300),
            create_txn(unit_key="B1-1204", days_ago=40),
        ]
        config = EngineConfig(allow_repeat_units=True)
        result = make_matcher(comps, reference_date, config).match(subject, settings)

        assert result.sample_count == 2


# =============================================================================
# Ranking and Cap
# =============================================================================

class TestRankingAndCap:
    """Selection order and size."""

    def test_cap_applies_after_qualifying(self, subject, settings, create_txn, reference_date):
        comps = [create_txn(days_ago=10 + i) for i in range(14)]
        result = make_matcher(comps, reference_date).match(subject, settings)

        assert result.qualifying_count == 14
        assert result.sample_count == 10

    def test_most_similar_first(self, subject, settings, create_txn, reference_date):
        comps = [create_txn(bedrooms=3), create_txn(bedrooms=2)]
        result = make_matcher(comps, reference_date).match(subject, settings)

        assert result.comparables[0].transaction_id == "TXN-002"
        assert result.comparables[0].score > result.comparables[1].score

    def test_recent_breaks_ties(self, subject, settings, create_txn, reference_date):
        comps = [create_txn(days_ago=200), create_txn(days_ago=20)]
        result = make_matcher(comps, reference_date).match(subject, settings)

        assert [c.transaction_id for c in result.comparables] == ["TXN-002", "TXN-001"]

    def test_low_quality_ranked_last(self, subject, settings, create_txn, reference_date):
        comps = [
            create_txn(price=90000, parking=3, days_ago=5),
            create_txn(bedrooms=3, days_ago=400),
        ]
        result = make_matcher(comps, reference_date).match(subject, settings)

        assert result.comparables[-1].transaction_id == "TXN-001"
        assert result.comparables[-1].low_quality
        assert result.comparables[-1].adjusted_price == 0


# =============================================================================
# Store Failures
# =============================================================================

class FailingStore:
    """Store whose queries always fail."""

    def query(self, query):
        raise ConnectionError("database unreachable")

    def scan(self):
        raise ConnectionError("database unreachable")


class TestStoreFailure:

    def test_fault_is_not_zero_comparables(self, subject, settings, reference_date):
        matcher = ComparableMatcher(FailingStore(), reference_date=reference_date)

        with pytest.raises(DataAccessError, match="community tier"):
            matcher.match(subject, settings)
