"""Claim-then-write persistence.

Each sample's fingerprint is first inserted into ``ingest_claims``, whose
UNIQUE constraint decides the single winner across retries, duplicate
uploads and concurrent processes.  Only samples whose claim was newly
inserted are written to ``health_samples``.  There is no application-level
lock: a lost claim resolves immediately as ``ALREADY_CLAIMED``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Iterator, Protocol, Sequence

from src.ingest.base import Sample
from src.ingest.exceptions import StoreFailureError

logger = logging.getLogger("healthsync.ingest.writer")

DEFAULT_CHUNK_SIZE = 800


class ClaimOutcome(str, Enum):
    CLAIMED = "claimed"
    ALREADY_CLAIMED = "already_claimed"


@dataclass(frozen=True)
class Claim:
    """A record asserting that a fingerprint has been accepted."""

    fingerprint: str
    uid: str
    created_at: datetime


class SampleStore(Protocol):
    """Storage operations the writer depends on.

    ``claim`` must insert unordered, so one conflicting claim does not
    abort the rest, and return one outcome per claim in input order.  Any
    failure other than a uniqueness conflict raises ``StoreFailureError``.
    """

    async def claim(self, claims: Sequence[Claim]) -> list[ClaimOutcome]: ...

    async def insert_samples(self, samples: Sequence[Sample]) -> int: ...


def chunked(items: Sequence[Sample], size: int) -> Iterator[Sequence[Sample]]:
    """Yield consecutive slices of at most ``size`` items."""
    step = max(1, size)
    for i in range(0, len(items), step):
        yield items[i : i + step]


class IdempotentWriter:
    """Persist samples at most once per fingerprint.

    Usage::

        writer = IdempotentWriter(store, chunk_size=800)
        inserted = await writer.write(samples)
    """

    def __init__(self, store: SampleStore, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._store = store
        self._chunk_size = chunk_size

    async def write(self, samples: Sequence[Sample]) -> int:
        """Claim and write samples chunk by chunk.

        Args:
            samples: Fingerprinted samples.

        Returns:
            Number of samples written to the data set.

        Raises:
            StoreFailureError: On any non-conflict store failure.
        """
        inserted = 0
        duplicates = 0
        for chunk in chunked(samples, self._chunk_size):
            now = datetime.now(timezone.utc)
            outcomes = await self._store.claim(
                [Claim(fingerprint=s.fingerprint, uid=s.uid, created_at=now) for s in chunk]
            )
            if len(outcomes) != len(chunk):
                raise StoreFailureError(
                    f"Claim returned {len(outcomes)} outcome(s) for {len(chunk)} sample(s)"
                )
            claimed = [
                s
                for s, outcome in zip(chunk, outcomes, strict=True)
                if outcome is ClaimOutcome.CLAIMED
            ]
            duplicates += len(chunk) - len(claimed)
            if claimed:
                inserted += await self._store.insert_samples(claimed)

        if duplicates:
            logger.info("Skipped %d already-ingested sample(s)", duplicates)
        return inserted
