"""
Occurrence Store: fingerprint -> lifecycle record with per-entry expiry.

The store answers "have we reported this error recently, and to which issue".
Backends must agree on three rules:
- an expired record is a miss, even while it is still physically present
- ``put`` is an unconditional upsert that resets the expiry
- absence is ``None``; only a failed lookup or write raises StoreUnavailable
"""

import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from error_issues.models.record import LifecycleRecord
from error_issues.utils.logging import get_logger

logger = get_logger(__name__)


class StoreUnavailable(Exception):
    """Raised when the store cannot complete a lookup or write."""
    pass


class OccurrenceStore(ABC):
    """Key/value store of lifecycle records with TTL."""

    @abstractmethod
    async def get(self, fingerprint: str) -> Optional[LifecycleRecord]:
        """
        Look up the live record for a fingerprint.

        Returns:
            The record, or None when unseen or expired

        Raises:
            StoreUnavailable: If the lookup could not complete
        """

    @abstractmethod
    async def put(self, fingerprint: str, record: LifecycleRecord, ttl: int) -> LifecycleRecord:
        """
        Upsert a record and reset its expiry to now + ttl.

        Returns:
            The stored record with ``expires_at`` assigned

        Raises:
            StoreUnavailable: If the write could not complete
        """

    async def initialize(self) -> None:
        """Open backend connections."""

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryOccurrenceStore(OccurrenceStore):
    """
    Process-local store for single-instance deployments.

    Expired entries are invisible to ``get`` and are physically removed by
    ``sweep``, which also runs every ``sweep_interval`` writes.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], float]] = None,
        sweep_interval: int = 100
    ):
        self._clock = clock or time.time
        self._records: Dict[str, LifecycleRecord] = {}
        self._sweep_interval = sweep_interval
        self._writes = 0

    async def get(self, fingerprint: str) -> Optional[LifecycleRecord]:
        record = self._records.get(fingerprint)
        if record is None or record.is_expired(self._clock()):
            return None
        return record

    async def put(self, fingerprint: str, record: LifecycleRecord, ttl: int) -> LifecycleRecord:
        stored = record.model_copy(update={
            "fingerprint": fingerprint,
            "expires_at": self._clock() + ttl,
        })
        self._records[fingerprint] = stored

        self._writes += 1
        if self._sweep_interval and self._writes % self._sweep_interval == 0:
            self.sweep()

        return stored

    def sweep(self) -> int:
        """
        Drop expired records.

        Returns:
            Number of records removed
        """
        now = self._clock()
        expired = [fp for fp, record in self._records.items() if record.is_expired(now)]
        for fp in expired:
            del self._records[fp]

        if expired:
            logger.debug(f"Swept {len(expired)} expired occurrence records")
        return len(expired)

    def __len__(self) -> int:
        return len(self._records)
