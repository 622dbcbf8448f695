"""
Tenant settings for the estimator.

Per-tenant dollar values for parking and lockers (separately for sale
and lease) plus the insight feature flag and credential. Settings are
created by tenant administration; the engine only reads them.

Geography-scoped adjustment overrides sit ahead of the tenant values:
building, then community, municipality, region and finally a generic
record. At each scope a manual value beats a calculated one.
"""

import json
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Protocol, Tuple

from .errors import DataAccessError
from .models import GeographyLevel, TransactionDirection, UnitSpec

logger = logging.getLogger(__name__)


# =============================================================================
# Defaults (used when a tenant has no stored settings)
# =============================================================================

DEFAULT_SALE_PARKING_VALUE = 50000
DEFAULT_SALE_LOCKER_VALUE = 10000

# Lease values are monthly
DEFAULT_LEASE_PARKING_VALUE = 200
DEFAULT_LEASE_LOCKER_VALUE = 50


@dataclass(frozen=True)
class AdjustmentValues:
    """Dollar value of one parking space and one locker."""
    parking_per_space: int
    locker: int


@dataclass(frozen=True)
class TenantSettings:
    """
    Immutable per-tenant configuration passed into the engine.

    Resolved once per request; never mutated by the engine.
    """
    tenant_id: str
    sale_values: AdjustmentValues = field(
        default_factory=lambda: AdjustmentValues(DEFAULT_SALE_PARKING_VALUE, DEFAULT_SALE_LOCKER_VALUE)
    )
    lease_values: AdjustmentValues = field(
        default_factory=lambda: AdjustmentValues(DEFAULT_LEASE_PARKING_VALUE, DEFAULT_LEASE_LOCKER_VALUE)
    )
    insights_enabled: bool = False
    insights_api_key: Optional[str] = None

    def values_for(self, direction: TransactionDirection) -> AdjustmentValues:
        if direction is TransactionDirection.LEASE:
            return self.lease_values
        return self.sale_values

    def with_values(self, direction: TransactionDirection, values: AdjustmentValues) -> "TenantSettings":
        """Copy with one direction's adjustment values replaced."""
        if direction is TransactionDirection.LEASE:
            return replace(self, lease_values=values)
        return replace(self, sale_values=values)

    @property
    def insights_available(self) -> bool:
        """Feature flag on and a credential configured."""
        return self.insights_enabled and bool(self.insights_api_key)

    @classmethod
    def from_dict(cls, tenant_id: str, data: dict) -> "TenantSettings":
        """Build settings from a stored record, falling back per field."""
        def _value(key: str, default: int) -> int:
            raw = data.get(key)
            return default if raw is None else int(raw)

        return cls(
            tenant_id=tenant_id,
            sale_values=AdjustmentValues(
                parking_per_space=_value("parking_value_sale", DEFAULT_SALE_PARKING_VALUE),
                locker=_value("locker_value_sale", DEFAULT_SALE_LOCKER_VALUE),
            ),
            lease_values=AdjustmentValues(
                parking_per_space=_value("parking_value_lease", DEFAULT_LEASE_PARKING_VALUE),
                locker=_value("locker_value_lease", DEFAULT_LEASE_LOCKER_VALUE),
            ),
            insights_enabled=bool(data.get("ai_estimator_enabled", False)),
            insights_api_key=data.get("insights_api_key") or None,
        )


class TenantSettingsStore(Protocol):
    """Read interface supplied by tenant administration."""

    def get(self, tenant_id: str) -> Optional[TenantSettings]:
        ...


class InMemoryTenantSettingsStore:
    """Dictionary-backed settings store for development and tests."""

    def __init__(self, settings: Optional[Dict[str, TenantSettings]] = None):
        self._settings: Dict[str, TenantSettings] = dict(settings or {})

    def get(self, tenant_id: str) -> Optional[TenantSettings]:
        return self._settings.get(tenant_id)

    def put(self, settings: TenantSettings) -> None:
        self._settings[settings.tenant_id] = settings


def resolve_settings(
    store: Optional[TenantSettingsStore],
    tenant_id: Optional[str],
) -> TenantSettings:
    """Look up a tenant's settings, falling back to documented defaults."""
    tenant_id = tenant_id or "default"
    if store is not None:
        settings = store.get(tenant_id)
        if settings is not None:
            return settings
    return TenantSettings(tenant_id=tenant_id)


# =============================================================================
# Geography-scoped adjustment overrides
# =============================================================================

SOURCE_TENANT = "tenant"


@dataclass(frozen=True)
class AdjustmentOverride:
    """
    Parking/locker values for one direction at one geography scope.

    level None is the generic record that applies everywhere.
    Calculated values come from market analysis; manual values are
    entered by an administrator and take precedence.
    """
    direction: TransactionDirection
    level: Optional[GeographyLevel] = None
    geography_id: Optional[str] = None
    parking_manual: Optional[int] = None
    parking_calculated: Optional[int] = None
    locker_manual: Optional[int] = None
    locker_calculated: Optional[int] = None

    @property
    def scope(self) -> str:
        return self.level.value if self.level else "generic"

    @property
    def key(self) -> Tuple[TransactionDirection, Optional[GeographyLevel], Optional[str]]:
        return (self.direction, self.level, self.geography_id)

    def parking(self) -> Optional[Tuple[int, str]]:
        return _pick(self.parking_manual, self.parking_calculated, self.scope)

    def locker(self) -> Optional[Tuple[int, str]]:
        return _pick(self.locker_manual, self.locker_calculated, self.scope)

    @classmethod
    def from_dict(cls, data: dict) -> "AdjustmentOverride":
        """
        Build an override from a stored record.

        Raises:
            KeyError / ValueError: direction or level missing or unknown
        """
        direction = TransactionDirection.from_string(str(data["direction"]))
        if direction is None:
            raise ValueError(f"unknown direction {data['direction']!r}")

        level = None
        if data.get("level") not in (None, "", "generic"):
            level = GeographyLevel.from_string(str(data["level"]))
            if level is None:
                raise ValueError(f"unknown level {data['level']!r}")
            if not data.get("geography_id"):
                raise ValueError(f"{level.value} override needs a geography_id")

        def _amount(key: str) -> Optional[int]:
            raw = data.get(key)
            return None if raw is None or raw == "" else int(float(raw))

        return cls(
            direction=direction,
            level=level,
            geography_id=str(data["geography_id"]) if level else None,
            parking_manual=_amount("parking_manual"),
            parking_calculated=_amount("parking_calculated"),
            locker_manual=_amount("locker_manual"),
            locker_calculated=_amount("locker_calculated"),
        )


def _pick(manual: Optional[int], calculated: Optional[int], scope: str) -> Optional[Tuple[int, str]]:
    if manual is not None:
        return manual, f"{scope} (manual)"
    if calculated is not None:
        return calculated, f"{scope} (calculated)"
    return None


@dataclass(frozen=True)
class ResolvedAdjustments:
    """Adjustment values in effect for one request, with where each came from."""
    values: AdjustmentValues
    parking_source: str
    locker_source: str


class AdjustmentOverrideStore(Protocol):
    """Read interface for geography-scoped overrides."""

    def get(
        self,
        direction: TransactionDirection,
        level: Optional[GeographyLevel],
        geography_id: Optional[str],
    ) -> Optional[AdjustmentOverride]:
        ...


class InMemoryAdjustmentOverrideStore:
    """Dictionary-backed override store; the last record for a scope wins."""

    def __init__(self, overrides: Optional[Iterable[AdjustmentOverride]] = None):
        self._overrides: Dict[tuple, AdjustmentOverride] = {}
        for override in overrides or []:
            self.put(override)

    def __len__(self) -> int:
        return len(self._overrides)

    def get(
        self,
        direction: TransactionDirection,
        level: Optional[GeographyLevel],
        geography_id: Optional[str],
    ) -> Optional[AdjustmentOverride]:
        return self._overrides.get((direction, level, geography_id))

    def put(self, override: AdjustmentOverride) -> None:
        self._overrides[override.key] = override


class JsonAdjustmentOverrideStore(InMemoryAdjustmentOverrideStore):
    """
    Overrides loaded from a JSON file.

    The file holds either a list of records or {"adjustments": [...]}.
    """

    def __init__(self, path: str):
        self._path = Path(path)
        super().__init__(self._load())

    def _load(self) -> List[AdjustmentOverride]:
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                payload = json.load(fh)
        except FileNotFoundError as exc:
            raise DataAccessError(f"Adjustments file not found: {self._path}", source=str(self._path)) from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise DataAccessError(f"Could not read adjustments file: {exc}", source=str(self._path)) from exc

        records = payload.get("adjustments", []) if isinstance(payload, dict) else payload
        overrides = []
        for index, record in enumerate(records):
            try:
                overrides.append(AdjustmentOverride.from_dict(record))
            except (KeyError, TypeError, ValueError) as exc:
                raise DataAccessError(
                    f"Malformed adjustment record #{index}: {exc}", source=str(self._path)
                ) from exc

        logger.info("Loaded %d adjustment overrides from %s", len(overrides), self._path)
        return overrides


def _cascade(store: AdjustmentOverrideStore, spec: UnitSpec) -> Iterator[AdjustmentOverride]:
    """Overrides that apply to the subject, narrowest scope first."""
    for level in GeographyLevel:
        geography_id = spec.geography_id(level)
        if not geography_id:
            continue
        override = store.get(spec.direction, level, geography_id)
        if override is not None:
            yield override
    generic = store.get(spec.direction, None, None)
    if generic is not None:
        yield generic


def resolve_adjustments(
    store: Optional[AdjustmentOverrideStore],
    spec: UnitSpec,
    settings: TenantSettings,
) -> ResolvedAdjustments:
    """
    Resolve parking and locker values for a subject.

    Parking and locker cascade independently: a building record with
    only a locker value still lets parking fall through to the
    community. The tenant's values apply when no scope has one.

    Raises:
        DataAccessError: the override store failed
    """
    parking = locker = None
    if store is not None:
        try:
            for override in _cascade(store, spec):
                parking = parking or override.parking()
                locker = locker or override.locker()
                if parking and locker:
                    break
        except DataAccessError:
            raise
        except Exception as exc:
            raise DataAccessError(f"Adjustment override lookup failed: {exc}") from exc

    tenant_values = settings.values_for(spec.direction)
    parking = parking or (tenant_values.parking_per_space, SOURCE_TENANT)
    locker = locker or (tenant_values.locker, SOURCE_TENANT)

    return ResolvedAdjustments(
        values=AdjustmentValues(parking_per_space=parking[0], locker=locker[0]),
        parking_source=parking[1],
        locker_source=locker[1],
    )
