"""Steps coalescing.

The same walk is usually reported by both the phone and the watch with
slightly different counts and timestamps.  Summing them overcounts, so
steps are grouped into fixed local-time buckets and only the largest
report in each bucket is kept.  The kept sample is moved to the bucket
start and re-fingerprinted.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Iterable

from src.ingest.base import MetricType, Sample
from src.ingest.fingerprint import with_ts
from src.ingest.timestamps import DEFAULT_SOURCE_TZ

logger = logging.getLogger("healthsync.ingest.coalesce")

DEFAULT_BUCKET_MINUTES = 60


def bucket_start(
    ts: datetime,
    bucket_minutes: int = DEFAULT_BUCKET_MINUTES,
    source_tz: tzinfo = DEFAULT_SOURCE_TZ,
) -> datetime:
    """Return the UTC start of the local-time bucket containing ``ts``.

    Buckets are aligned on local wall-clock time in ``source_tz``; with the
    default zone the UTC offset is a constant +10:00.
    """
    offset = ts.astimezone(source_tz).utcoffset() or timedelta(0)
    slot = max(1, math.floor(bucket_minutes)) * 60
    local_seconds = ts.timestamp() + offset.total_seconds()
    bucket_local = math.floor(local_seconds / slot) * slot
    return datetime.fromtimestamp(bucket_local - offset.total_seconds(), tz=timezone.utc)


def coalesce_steps(
    samples: Iterable[Sample],
    bucket_minutes: int = DEFAULT_BUCKET_MINUTES,
    source_tz: tzinfo = DEFAULT_SOURCE_TZ,
) -> list[Sample]:
    """Reduce overlapping steps samples to one maximum per bucket.

    Non-steps samples (and steps without a value) pass through untouched.

    Args:
        samples:        Fingerprinted samples.
        bucket_minutes: Bucket width in local minutes.
        source_tz:      Zone used to align buckets.

    Returns:
        Pass-through samples plus one steps sample per bucket, sorted by ts.
    """
    others: list[Sample] = []
    buckets: dict[tuple[str, datetime, str], Sample] = {}
    candidates = 0

    for sample in samples:
        if sample.type is not MetricType.steps or sample.value is None:
            others.append(sample)
            continue
        candidates += 1
        start = bucket_start(sample.ts, bucket_minutes, source_tz)
        key = (sample.uid, start, sample.unit)
        kept = buckets.get(key)
        if kept is None or sample.value > kept.value:  # type: ignore[operator]
            buckets[key] = with_ts(sample, start)

    if not candidates:
        return others

    logger.debug("Coalesced %d steps samples into %d bucket(s)", candidates, len(buckets))
    out = others + list(buckets.values())
    out.sort(key=lambda s: s.ts)
    return out
