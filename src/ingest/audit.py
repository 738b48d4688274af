"""Best-effort ingestion outcome log.

Every upload outcome (200, 204 no samples, 401, 413, 500) is written once to
``ingest_logs``.  Recording never raises: a failing log write is reported
at WARNING and the upload response is unaffected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

logger = logging.getLogger("healthsync.ingest.audit")


@dataclass
class IngestLogEntry:
    """One upload outcome.

    Attributes:
        uid:         Resolved user, or None when identity failed.
        ok:          Whether the upload succeeded.
        status:      HTTP-style status of the outcome.
        attempted:   Samples considered for writing.
        inserted:    Samples actually written.
        by_type:     Per-type sample tally.
        duration_ms: Wall time spent on the request.
        error:       Error detail, if any.
        source:      Ingestion channel tag.
        ts:          When the outcome was recorded.
    """

    uid: str | None
    ok: bool
    status: int
    attempted: int | None = None
    inserted: int = 0
    by_type: dict[str, int] | None = None
    duration_ms: int | None = None
    error: str | None = None
    source: str = "shortcut"
    ts: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class IngestLogSink(Protocol):
    async def insert_ingest_log(self, entry: IngestLogEntry) -> None: ...


class IngestAuditor:
    """Write outcome records with an isolated error boundary."""

    def __init__(self, sink: IngestLogSink | None) -> None:
        self._sink = sink

    async def record(self, entry: IngestLogEntry) -> None:
        if self._sink is None:
            return
        try:
            await self._sink.insert_ingest_log(entry)
        except Exception as exc:
            logger.warning(
                "Failed to record ingest outcome (uid=%s status=%s): %s",
                entry.uid, entry.status, exc,
            )
