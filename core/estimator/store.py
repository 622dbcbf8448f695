"""
Historical Transaction Store

Query capability over closed transactions, supplied by the ingestion
collaborator. The in-memory and JSON-file stores here serve development
and tests; production plugs in its own TransactionStore.

Store failures raise DataAccessError. An empty result means no
transactions, never "the query failed".
"""

import json
import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Iterable, List, Optional, Protocol

from .errors import DataAccessError
from .models import (
    ComparableTransaction,
    GeographyLevel,
    PropertyCategory,
    TransactionDirection,
    TransactionStatus,
)
from .normalizer import extract_exact_sqft, parse_area_range, parse_exact_sqft

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactionQuery:
    """Query parameters for one tier of the comparable search."""
    direction: TransactionDirection
    category: PropertyCategory
    level: GeographyLevel
    geography_id: str
    closed_only: bool = True
    exclude_id: Optional[str] = None
    since: Optional[date] = None  # lookback horizon start


class TransactionStore(Protocol):
    """Read-only access to the historical transaction population."""

    def query(self, query: TransactionQuery) -> List[ComparableTransaction]:
        ...

    def scan(self) -> Iterable[ComparableTransaction]:
        ...


class InMemoryTransactionStore:
    """
    List-backed store.

    Applies the query filters the way a database-backed store would;
    the matcher re-applies its own hard filters regardless.
    """

    def __init__(self, transactions: Optional[Iterable[ComparableTransaction]] = None):
        self._transactions: List[ComparableTransaction] = list(transactions or [])

    def add(self, transaction: ComparableTransaction) -> None:
        self._transactions.append(transaction)

    def __len__(self) -> int:
        return len(self._transactions)

    def query(self, query: TransactionQuery) -> List[ComparableTransaction]:
        result = []
        for txn in self._transactions:
            if txn.direction is not query.direction:
                continue
            if txn.category is not query.category:
                continue
            if txn.geography_id(query.level) != query.geography_id:
                continue
            if query.closed_only and txn.status is not TransactionStatus.CLOSED:
                continue
            if query.exclude_id and txn.transaction_id == query.exclude_id:
                continue
            if query.since and txn.close_date < query.since:
                continue
            result.append(txn)
        return result

    def scan(self) -> Iterable[ComparableTransaction]:
        return list(self._transactions)


class JsonTransactionStore(InMemoryTransactionStore):
    """
    Store loaded from a JSON file of transaction records.

    The file holds either a list of records or {"transactions": [...]}.
    """

    def __init__(self, path: str):
        self._path = Path(path)
        super().__init__(self._load())

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> List[ComparableTransaction]:
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                payload = json.load(fh)
        except FileNotFoundError as exc:
            raise DataAccessError(f"Transaction file not found: {self._path}", source=str(self._path)) from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise DataAccessError(f"Could not read transaction file: {exc}", source=str(self._path)) from exc

        records = payload.get("transactions", []) if isinstance(payload, dict) else payload
        transactions = []
        for index, record in enumerate(records):
            try:
                transactions.append(transaction_from_dict(record))
            except (KeyError, TypeError, ValueError) as exc:
                raise DataAccessError(
                    f"Malformed transaction record #{index}: {exc}", source=str(self._path)
                ) from exc

        logger.info("Loaded %d transactions from %s", len(transactions), self._path)
        return transactions


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(float(value))


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


def transaction_from_dict(record: dict) -> ComparableTransaction:
    """
    Build a ComparableTransaction from a stored record.

    Raises:
        KeyError / ValueError: required fields missing or malformed
    """
    direction = TransactionDirection.from_string(str(record["direction"]))
    if direction is None:
        raise ValueError(f"unknown direction {record['direction']!r}")
    category = PropertyCategory.from_string(str(record["category"]))
    if category is None:
        raise ValueError(f"unknown category {record['category']!r}")
    status = TransactionStatus(str(record.get("status", "closed")).lower())

    exact = parse_exact_sqft(record.get("exact_sqft"))
    if exact is None:
        exact = extract_exact_sqft(record.get("square_foot_source"))

    locker = record.get("has_locker", record.get("locker", False))
    if isinstance(locker, str):
        locker = locker.strip().lower() in ("owned", "exclusive", "yes", "true")

    return ComparableTransaction(
        transaction_id=str(record["id"]),
        direction=direction,
        category=category,
        close_price=int(float(record["close_price"])),
        close_date=date.fromisoformat(str(record["close_date"])[:10]),
        status=status,
        unit_key=record.get("unit_key"),
        subcategory=str(record.get("subcategory") or "").strip(),
        bedrooms=_optional_int(record.get("bedrooms")),
        bathrooms=_optional_int(record.get("bathrooms")),
        exact_sqft=exact,
        area_range=parse_area_range(record.get("area_range")),
        parking=_optional_int(record.get("parking")) or 0,
        has_locker=bool(locker),
        frontage_ft=_optional_float(record.get("frontage_ft")),
        tax_annual_amount=_optional_float(record.get("tax_annual_amount")),
        association_fee=_optional_float(record.get("association_fee")),
        building_id=record.get("building_id"),
        community_id=record.get("community_id"),
        municipality_id=record.get("municipality_id"),
        region_id=record.get("region_id"),
        list_price=_optional_int(record.get("list_price")),
        days_on_market=_optional_int(record.get("days_on_market")),
        unit_number=str(record.get("unit_number") or ""),
    )
