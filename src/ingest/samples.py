"""Expand parsed entries into typed, fingerprinted samples."""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Iterable, Mapping

from src.ingest.base import METRICS, MetricType, ParsedEntry, Sample
from src.ingest.durations import to_minutes
from src.ingest.fingerprint import with_fingerprint

logger = logging.getLogger("healthsync.ingest.samples")

_UNITS: dict[MetricType, str] = {metric.type: metric.unit for metric in METRICS}


def parse_value(raw: str | None) -> float | None:
    """Parse a numeric value line; blanks and non-finite numbers are None."""
    if raw is None:
        return None
    try:
        n = float(raw)
    except ValueError:
        return None
    return n if math.isfinite(n) else None


def _valid_ts(ts: datetime | None) -> bool:
    return isinstance(ts, datetime) and ts.tzinfo is not None


def _sleep_fields(entry: ParsedEntry) -> tuple[float | None, dict[str, Any] | None]:
    minutes = to_minutes(entry.value)
    stage: str | None = None
    if minutes is None and entry.value is not None:
        stage = entry.value
    if minutes is None:
        minutes = to_minutes(entry.duration)

    payload: dict[str, Any] = {}
    if stage:
        payload["stage"] = stage
    if entry.duration is not None:
        payload["duration_str"] = entry.duration
    return (float(minutes) if minutes is not None else None), (payload or None)


def build_samples(
    parsed: Mapping[MetricType, Iterable[ParsedEntry]],
    uid: str,
    source: str = "shortcut",
) -> list[Sample]:
    """Build fingerprinted samples for one user.

    Entries without a valid timestamp or numeric value are dropped.  Sleep
    entries may carry their stage name in ``value`` with the minutes in
    ``duration``.

    Args:
        parsed: Output of ``parse_payload``.
        uid:    Owning user identifier.
        source: Ingestion channel tag.

    Returns:
        Samples in payload order, grouped by metric type.
    """
    samples: list[Sample] = []
    dropped = 0

    for metric in METRICS:
        for entry in parsed.get(metric.type, ()):
            if not _valid_ts(entry.timestamp):
                dropped += 1
                continue

            payload: dict[str, Any] | None = None
            if metric.type is MetricType.sleep:
                value, payload = _sleep_fields(entry)
            else:
                value = parse_value(entry.value)

            if value is None:
                dropped += 1
                continue

            samples.append(
                with_fingerprint(
                    Sample(
                        ts=entry.timestamp,
                        type=metric.type,
                        value=value,
                        unit=_UNITS[metric.type],
                        uid=uid,
                        source=source,
                        payload=payload,
                    )
                )
            )

    if dropped:
        logger.debug("Dropped %d entr(ies) without a usable value for %s", dropped, uid)
    return samples
