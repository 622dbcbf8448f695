"""
Aggregate Rollup

Batch recomputation of price-per-square-foot summaries per geography
for sale and lease, from the full closed-transaction population.

Each run is a full recomputation (never an incremental merge), so
reruns on unchanged data converge to identical summaries. Runs for the
same scope are serialized; readers always see a complete snapshot.
"""

import logging
import statistics
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import DataAccessError
from .models import (
    ComparableTransaction,
    GeographyLevel,
    TransactionDirection,
    TransactionStatus,
)
from .store import TransactionStore

logger = logging.getLogger(__name__)


# Both parking segments need this many closes before a premium is reported
MIN_PARKING_SEGMENT = 3

PSF_PRECISION = Decimal("0.01")

SummaryKey = Tuple[GeographyLevel, str]


def _round_psf(value: float) -> float:
    return float(Decimal(str(value)).quantize(PSF_PRECISION, rounding=ROUND_HALF_EVEN))


@dataclass(frozen=True)
class PsfStats:
    """PSF statistics for one direction within one geography."""
    sample_count: int = 0
    avg_psf: Optional[float] = None
    median_psf: Optional[float] = None
    earliest_close: Optional[date] = None
    latest_close: Optional[date] = None
    with_parking_psf: Optional[float] = None
    without_parking_psf: Optional[float] = None
    parking_premium_psf: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "sample_count": self.sample_count,
            "avg_psf": self.avg_psf,
            "median_psf": self.median_psf,
            "earliest_close": self.earliest_close.isoformat() if self.earliest_close else None,
            "latest_close": self.latest_close.isoformat() if self.latest_close else None,
            "with_parking_psf": self.with_parking_psf,
            "without_parking_psf": self.without_parking_psf,
            "parking_premium_psf": self.parking_premium_psf,
        }


@dataclass(frozen=True)
class AggregateSummary:
    """Latest PSF summary for a geography or building."""
    level: GeographyLevel
    geography_id: str
    sale: PsfStats
    lease: PsfStats

    def stats_for(self, direction: TransactionDirection) -> PsfStats:
        return self.lease if direction is TransactionDirection.LEASE else self.sale

    def to_dict(self) -> dict:
        return {
            "level": self.level.value,
            "geography_id": self.geography_id,
            "sale": self.sale.to_dict(),
            "lease": self.lease.to_dict(),
        }


@dataclass
class RollupReport:
    """Outcome of one rollup run."""
    levels: List[GeographyLevel]
    transactions_scanned: int = 0
    skipped_without_area: int = 0
    summaries_written: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "levels": [lvl.value for lvl in self.levels],
            "transactions_scanned": self.transactions_scanned,
            "skipped_without_area": self.skipped_without_area,
            "summaries_written": self.summaries_written,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class SummaryStore:
    """
    Holds the latest complete snapshot per geography level.

    Consumers treat it as eventually consistent.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._summaries: Dict[SummaryKey, AggregateSummary] = {}
        self._refreshed_at: Dict[GeographyLevel, datetime] = {}

    def get(self, level: GeographyLevel, geography_id: str) -> Optional[AggregateSummary]:
        with self._lock:
            return self._summaries.get((level, geography_id))

    def list_level(self, level: GeographyLevel) -> List[AggregateSummary]:
        with self._lock:
            return [s for (lvl, _), s in sorted(self._summaries.items(), key=lambda kv: kv[0][1]) if lvl is level]

    def refreshed_at(self, level: GeographyLevel) -> Optional[datetime]:
        with self._lock:
            return self._refreshed_at.get(level)

    def replace_levels(
        self,
        levels: Sequence[GeographyLevel],
        summaries: Iterable[AggregateSummary],
        refreshed_at: datetime,
    ) -> None:
        """Swap in a complete snapshot for the given levels."""
        incoming = {(s.level, s.geography_id): s for s in summaries}
        level_set = set(levels)
        with self._lock:
            kept = {k: v for k, v in self._summaries.items() if k[0] not in level_set}
            kept.update(incoming)
            self._summaries = kept
            for level in levels:
                self._refreshed_at[level] = refreshed_at


def compute_psf_stats(transactions: Sequence[ComparableTransaction]) -> PsfStats:
    """
    PSF statistics for a set of transactions with usable area.

    avg_psf is total price over total area; median_psf is the median
    of per-transaction PSF.
    """
    if not transactions:
        return PsfStats()

    ordered = sorted(transactions, key=lambda t: t.transaction_id)
    psf_values = [t.close_price / t.representative_sqft for t in ordered]

    def _avg(items: Sequence[ComparableTransaction]) -> Optional[float]:
        area = sum(t.representative_sqft for t in items)
        if not items or area <= 0:
            return None
        return sum(t.close_price for t in items) / area

    with_parking = [t for t in ordered if t.parking > 0]
    without_parking = [t for t in ordered if t.parking == 0]
    with_psf = _avg(with_parking)
    without_psf = _avg(without_parking)

    premium = None
    if (
        len(with_parking) >= MIN_PARKING_SEGMENT
        and len(without_parking) >= MIN_PARKING_SEGMENT
        and with_psf is not None
        and without_psf is not None
    ):
        premium = _round_psf(with_psf - without_psf)

    return PsfStats(
        sample_count=len(ordered),
        avg_psf=_round_psf(_avg(ordered)),
        median_psf=_round_psf(statistics.median(psf_values)),
        earliest_close=min(t.close_date for t in ordered),
        latest_close=max(t.close_date for t in ordered),
        with_parking_psf=_round_psf(with_psf) if with_psf is not None else None,
        without_parking_psf=_round_psf(without_psf) if without_psf is not None else None,
        parking_premium_psf=premium,
    )


class AggregateRollup:
    """
    Full-population PSF rollup.

    Reads the historical store, writes only to the SummaryStore.
    """

    def __init__(self, store: TransactionStore, summaries: Optional[SummaryStore] = None):
        self._store = store
        self._summaries = summaries or SummaryStore()
        self._locks_guard = threading.Lock()
        self._scope_locks: Dict[Tuple[GeographyLevel, ...], threading.Lock] = {}

    @property
    def summaries(self) -> SummaryStore:
        return self._summaries

    def _scope_lock(self, levels: Sequence[GeographyLevel]) -> threading.Lock:
        scope = tuple(sorted(set(levels), key=lambda lvl: list(GeographyLevel).index(lvl)))
        with self._locks_guard:
            return self._scope_locks.setdefault(scope, threading.Lock())

    def run(self, levels: Optional[Sequence[GeographyLevel]] = None) -> RollupReport:
        """
        Recompute summaries for the given levels (default: all).

        Blocks while another run for the same scope is in flight.

        Raises:
            DataAccessError: the store scan failed; the previous
                snapshot is left in place
        """
        levels = list(levels or GeographyLevel)
        with self._scope_lock(levels):
            report = RollupReport(levels=levels, started_at=datetime.now())
            logger.info("PSF rollup started for %s", ", ".join(lvl.value for lvl in levels))

            groups: Dict[Tuple[GeographyLevel, str, TransactionDirection], List[ComparableTransaction]] = (
                defaultdict(list)
            )
            try:
                population = list(self._store.scan())
            except DataAccessError:
                raise
            except Exception as exc:
                raise DataAccessError(f"Transaction scan failed: {exc}") from exc

            for txn in population:
                if txn.status is not TransactionStatus.CLOSED or txn.close_price <= 0:
                    continue
                report.transactions_scanned += 1
                sqft = txn.representative_sqft
                if not sqft or sqft <= 0:
                    report.skipped_without_area += 1
                    continue
                for level in levels:
                    geography_id = txn.geography_id(level)
                    if geography_id:
                        groups[(level, geography_id, txn.direction)].append(txn)

            keys = sorted({(level, gid) for level, gid, _ in groups}, key=lambda k: (k[0].value, k[1]))
            summaries = [
                AggregateSummary(
                    level=level,
                    geography_id=gid,
                    sale=compute_psf_stats(groups.get((level, gid, TransactionDirection.SALE), [])),
                    lease=compute_psf_stats(groups.get((level, gid, TransactionDirection.LEASE), [])),
                )
                for level, gid in keys
            ]

            report.finished_at = datetime.now()
            self._summaries.replace_levels(levels, summaries, report.finished_at)
            report.summaries_written = len(summaries)

            logger.info(
                "PSF rollup finished: %d summaries from %d transactions (%d without area)",
                report.summaries_written, report.transactions_scanned, report.skipped_without_area,
            )
            return report
