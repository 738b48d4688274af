"""Ingestion orchestrator: raw payload in, write outcome out.

Pipeline:
1. Parse the payload (timestamps, values, sleep durations)
2. Build fingerprinted samples for the resolved user
3. Coalesce steps into local-time buckets
4. Enforce the per-upload sample ceiling
5. Claim and write new samples
6. Record the outcome in ``ingest_logs``
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Any, Iterable, Mapping
from zoneinfo import ZoneInfo

from src.config import Settings
from src.ingest.audit import IngestAuditor, IngestLogEntry
from src.ingest.base import Sample
from src.ingest.coalesce import DEFAULT_BUCKET_MINUTES, coalesce_steps
from src.ingest.exceptions import PayloadTooLargeError
from src.ingest.payload import RawPayload, parse_payload
from src.ingest.samples import build_samples
from src.ingest.timestamps import DEFAULT_SOURCE_TZ
from src.ingest.writer import DEFAULT_CHUNK_SIZE, IdempotentWriter, SampleStore

logger = logging.getLogger("healthsync.ingest.orchestrator")

DEFAULT_MAX_SAMPLES = 500_000
NO_SAMPLES_NOTE = "No samples"


@dataclass
class IngestResult:
    """Outcome of a successful upload.

    Attributes:
        attempted: Samples considered after parsing and coalescing.
        inserted:  Samples newly written (duplicates excluded).
        by_type:   Per-type tally of attempted samples.
        note:      Set when the payload held no usable samples.
    """

    attempted: int
    inserted: int
    by_type: dict[str, int] = field(default_factory=dict)
    note: str | None = None


def tally_by_type(samples: Iterable[Sample]) -> dict[str, int]:
    return dict(Counter(s.type.value for s in samples))


class IngestionOrchestrator:
    """Sequence parsing, coalescing and idempotent writing for one upload.

    The store handle is created once at startup and shared across requests;
    the orchestrator itself holds no per-request state.
    """

    def __init__(
        self,
        store: SampleStore,
        auditor: IngestAuditor | None = None,
        *,
        source_tz: tzinfo = DEFAULT_SOURCE_TZ,
        source: str = "shortcut",
        bucket_minutes: int = DEFAULT_BUCKET_MINUTES,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_samples: int = DEFAULT_MAX_SAMPLES,
    ) -> None:
        self._writer = IdempotentWriter(store, chunk_size=chunk_size)
        self._auditor = auditor or IngestAuditor(None)
        self._source_tz = source_tz
        self._source = source
        self._bucket_minutes = bucket_minutes
        self._max_samples = max_samples

    @classmethod
    def from_settings(
        cls, store: SampleStore, auditor: IngestAuditor | None, settings: Settings
    ) -> IngestionOrchestrator:
        return cls(
            store,
            auditor,
            source_tz=ZoneInfo(settings.source_timezone),
            source=settings.sample_source,
            bucket_minutes=settings.steps_bucket_minutes,
            chunk_size=settings.write_chunk_size,
            max_samples=settings.max_samples_per_upload,
        )

    @property
    def auditor(self) -> IngestAuditor:
        return self._auditor

    @property
    def source(self) -> str:
        return self._source

    def prepare(self, raw: Mapping[str, Any] | RawPayload, uid: str) -> list[Sample]:
        """Parse, build and coalesce samples without touching the store."""
        parsed = parse_payload(raw, self._source_tz)
        samples = build_samples(parsed, uid, self._source)
        return coalesce_steps(samples, self._bucket_minutes, self._source_tz)

    async def ingest(self, raw: Mapping[str, Any] | RawPayload, uid: str) -> IngestResult:
        """Ingest one payload for a resolved user.

        Args:
            raw: Decoded upload body.
            uid: Owning user identifier.

        Returns:
            IngestResult with attempted/inserted counts and per-type tally.

        Raises:
            PayloadTooLargeError: More samples than ``max_samples``.
            StoreFailureError:    Non-conflict store failure.
        """
        t0 = time.monotonic()

        def _elapsed_ms() -> int:
            return int((time.monotonic() - t0) * 1000)

        try:
            samples = self.prepare(raw, uid)
            by_type = tally_by_type(samples)

            if len(samples) > self._max_samples:
                raise PayloadTooLargeError(len(samples), self._max_samples, by_type)

            if not samples:
                await self._auditor.record(
                    IngestLogEntry(
                        uid=uid, ok=True, status=204, attempted=0, inserted=0,
                        by_type={}, duration_ms=_elapsed_ms(), source=self._source,
                    )
                )
                return IngestResult(attempted=0, inserted=0, by_type={}, note=NO_SAMPLES_NOTE)

            inserted = await self._writer.write(samples)

        except PayloadTooLargeError as exc:
            logger.warning("Upload rejected for %s: %s", uid, exc)
            await self._auditor.record(
                IngestLogEntry(
                    uid=uid, ok=False, status=413, error=str(exc),
                    attempted=exc.attempted, inserted=0, by_type=exc.by_type,
                    duration_ms=_elapsed_ms(), source=self._source,
                )
            )
            raise
        except Exception as exc:
            logger.exception("Upload ingest failed for %s", uid)
            await self._auditor.record(
                IngestLogEntry(
                    uid=uid, ok=False, status=500, error=str(exc) or type(exc).__name__,
                    attempted=None, inserted=0, by_type=None,
                    duration_ms=_elapsed_ms(), source=self._source,
                )
            )
            raise

        result = IngestResult(attempted=len(samples), inserted=inserted, by_type=by_type)
        logger.info(
            "Ingested %d/%d sample(s) for %s in %dms",
            inserted, len(samples), uid, _elapsed_ms(),
        )
        await self._auditor.record(
            IngestLogEntry(
                uid=uid, ok=True, status=200, attempted=result.attempted,
                inserted=inserted, by_type=by_type, duration_ms=_elapsed_ms(),
                source=self._source,
            )
        )
        return result
