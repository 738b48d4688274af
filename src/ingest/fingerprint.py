"""Deterministic sample identity.

The fingerprint is the key of the ``ingest_claims`` UNIQUE constraint, so
it must be collision resistant and stable across processes:

    sha256(json({uid, type, unit, device, ts, value[, stage]}))

Steps and sleep timestamps are floored to the minute (sources disagree on
the exact second); everything else is floored to the second.
"""

from __future__ import annotations

import hashlib
import json
import math
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from src.ingest.base import MetricType, Sample
from src.ingest.timestamps import isoformat_utc

_MINUTE_GRANULARITY = frozenset({MetricType.steps, MetricType.sleep})


def round_ts(ts: datetime, granularity: str = "second") -> datetime:
    """Floor a timestamp to the given granularity ("minute" or "second")."""
    utc = ts.astimezone(timezone.utc)
    if granularity == "minute":
        return utc.replace(second=0, microsecond=0)
    return utc.replace(microsecond=0)


def normalize_number(x: Any) -> int | float | None:
    """Coerce to a finite number; integral floats collapse to int."""
    if x is None or isinstance(x, bool):
        return None
    try:
        n = float(x)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(n):
        return None
    return int(n) if n.is_integer() else n


def canonical_fields(sample: Sample) -> dict[str, Any]:
    granularity = "minute" if sample.type in _MINUTE_GRANULARITY else "second"
    fields: dict[str, Any] = {
        "uid": sample.uid,
        "type": sample.type.value,
        "unit": sample.unit,
        "device": sample.device,
        "ts": isoformat_utc(round_ts(sample.ts, granularity)),
        "value": normalize_number(sample.value),
    }
    if sample.type is MetricType.sleep:
        fields["stage"] = (sample.payload or {}).get("stage")
    return fields


def fingerprint(sample: Sample) -> str:
    """Return the 64-char hex SHA-256 identity of a sample."""
    canonical = json.dumps(
        canonical_fields(sample), sort_keys=True, separators=(",", ":")
    )
    return hashlib.sha256(canonical.encode()).hexdigest()


def with_fingerprint(sample: Sample) -> Sample:
    """Return a copy of ``sample`` carrying its current fingerprint."""
    return replace(sample, fingerprint=fingerprint(sample))


def with_ts(sample: Sample, ts: datetime) -> Sample:
    """Move a sample to ``ts`` and recompute its fingerprint."""
    return with_fingerprint(replace(sample, ts=ts))
