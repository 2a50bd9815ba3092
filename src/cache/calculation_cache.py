"""Content-addressed cache for IHT calculations.

A calculation is keyed by a fingerprint of the values it was run on, so a
stored result stays valid until an asset or liability value changes. Each
person holds at most one record: storing a new fingerprint supersedes the
previous one.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, Optional

from calculator.decimal_math import Numeric, money

logger = logging.getLogger(__name__)


def _hash_groups(*groups: Iterable[Numeric]) -> str:
    """sha256 over each group's sorted, penny-rounded values."""
    parts = [",".join(str(v) for v in sorted(money(x) for x in group)) for group in groups]
    return hashlib.sha256("|".join(parts).encode()).hexdigest()


def assets_hash(primary_values: Iterable[Numeric], spouse_values: Iterable[Numeric] = ()) -> str:
    return _hash_groups(primary_values, spouse_values)


def liabilities_hash(primary_values: Iterable[Numeric], spouse_values: Iterable[Numeric] = ()) -> str:
    return _hash_groups(primary_values, spouse_values)


def fingerprint(assets_digest: str, liabilities_digest: str) -> str:
    """Single cache key combining the asset and liability digests."""
    return hashlib.sha256(f"{assets_digest}:{liabilities_digest}".encode()).hexdigest()


@dataclass(frozen=True)
class CacheRecord:
    """A flattened calculation result plus the keys it is valid for."""
    person_id: str
    fingerprint: str
    assets_hash: str
    liabilities_hash: str
    calculation_date: date
    is_married: bool
    data_sharing_enabled: bool
    parameters_version: str
    result: Dict[str, Any] = field(default_factory=dict)

    def matches(
        self,
        fingerprint: str,
        is_married: bool,
        data_sharing_enabled: bool,
        parameters_version: str,
        calculation_date: date,
    ) -> bool:
        return (
            self.fingerprint == fingerprint
            and self.is_married == is_married
            and self.data_sharing_enabled == data_sharing_enabled
            and self.parameters_version == parameters_version
            and self.calculation_date == calculation_date
        )


class CalculationCacheStore(ABC):
    """Storage port for calculation records."""

    @abstractmethod
    def get(self, fingerprint: str) -> Optional[CacheRecord]:
        """Return the record stored under ``fingerprint``, if any."""
        pass

    @abstractmethod
    def put(self, fingerprint: str, record: CacheRecord) -> None:
        """Store ``record``, replacing the person's previous record."""
        pass

    @abstractmethod
    def latest_for(self, person_id: str) -> Optional[CacheRecord]:
        """Return the person's current record, if any."""
        pass

    @abstractmethod
    def invalidate(self, person_id: str) -> bool:
        """Drop the person's record. Returns True if one existed."""
        pass


class InMemoryCalculationStore(CalculationCacheStore):
    """
    Process-local store for testing and single-process use.

    Thread-safe; a replacement is applied under one lock so readers never
    see the old and new records at the same time.
    """

    def __init__(self):
        self._records: Dict[str, CacheRecord] = {}
        self._by_person: Dict[str, str] = {}
        self._lock = threading.RLock()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "puts": 0,
            "superseded": 0,
        }

    def get(self, fingerprint: str) -> Optional[CacheRecord]:
        with self._lock:
            record = self._records.get(fingerprint)
            if record is None:
                self._stats["misses"] += 1
                logger.debug(f"Cache MISS for fingerprint {fingerprint[:12]}")
            else:
                self._stats["hits"] += 1
                logger.debug(f"Cache HIT for fingerprint {fingerprint[:12]}")
            return record

    def put(self, fingerprint: str, record: CacheRecord) -> None:
        if record.fingerprint != fingerprint:
            raise ValueError("Record fingerprint does not match the storage key")

        with self._lock:
            owner = self._records.get(fingerprint)
            if owner is not None and owner.person_id != record.person_id:
                self._by_person.pop(owner.person_id, None)

            previous = self._by_person.get(record.person_id)
            if previous is not None and previous != fingerprint:
                self._records.pop(previous, None)
                self._stats["superseded"] += 1
                logger.info(
                    f"Superseded cached calculation {previous[:12]} for '{record.person_id}'"
                )
            self._records[fingerprint] = record
            self._by_person[record.person_id] = fingerprint
            self._stats["puts"] += 1

    def latest_for(self, person_id: str) -> Optional[CacheRecord]:
        with self._lock:
            key = self._by_person.get(person_id)
            return self._records.get(key) if key is not None else None

    def invalidate(self, person_id: str) -> bool:
        with self._lock:
            key = self._by_person.pop(person_id, None)
            if key is None:
                return False
            self._records.pop(key, None)
            logger.info(f"Invalidated cached calculation for '{person_id}'")
            return True

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._by_person.clear()

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._stats, size=len(self._records))
