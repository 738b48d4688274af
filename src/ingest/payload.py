"""Explicit schema and parser for raw Shortcut payloads.

A payload maps metric keys to series objects::

    {
      "heart": {"timestamps ": "5 Mar 2025, 9:41 pm\\n...", "values": "72\\n..."},
      "sleep": {"timestamps": [...], "values": [...], "duration": [...]},
    }

Lines within a series are positionally aligned.  Unknown keys and
malformed series are ignored; lines whose timestamp does not parse are
dropped without failing the payload.
"""

from __future__ import annotations

import logging
from datetime import tzinfo
from typing import Any, Mapping

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from src.ingest.base import METRICS, MetricType, ParsedEntry
from src.ingest.timestamps import DEFAULT_SOURCE_TZ, parse_local_timestamp

logger = logging.getLogger("healthsync.ingest.payload")


class MetricSeries(BaseModel):
    """Newline-delimited (or list) columns for one metric."""

    model_config = ConfigDict(extra="ignore")

    # The Shortcut's dictionary key carries a trailing space
    timestamps: Any = Field(
        default=None, validation_alias=AliasChoices("timestamps ", "timestamps")
    )
    values: Any = None
    duration: Any = None


class RawPayload(BaseModel):
    """Top-level upload body.  Every metric key is optional."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    heart: MetricSeries | None = None
    steps: MetricSeries | None = None
    sleep: MetricSeries | None = None
    walking_speed: MetricSeries | None = Field(default=None, alias="walkingSpeed")
    walking_asymmetry: MetricSeries | None = Field(default=None, alias="walkingAsymmetry")
    walking_steadiness: MetricSeries | None = Field(default=None, alias="walkingSteadiness")
    double_support_time: MetricSeries | None = Field(default=None, alias="doubleSupportTime")
    walking_step_length: MetricSeries | None = Field(default=None, alias="walkingStepLength")
    heart_rate_variability: MetricSeries | None = Field(
        default=None, alias="heartRateVariability"
    )
    resting_heart_rate: MetricSeries | None = Field(default=None, alias="restingHeartRate")
    walking_heart_rate_average: MetricSeries | None = Field(
        default=None, alias="walkingHeartRateAverage"
    )
    active_energy: MetricSeries | None = Field(default=None, alias="activeEnergy")
    resting_energy: MetricSeries | None = Field(default=None, alias="restingEnergy")
    stand_minutes: MetricSeries | None = Field(default=None, alias="standMinutes")

    @model_validator(mode="before")
    @classmethod
    def _drop_malformed_series(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, Mapping)}


def to_lines(column: Any) -> list[str]:
    """Split a column into stripped lines.

    Lists are taken element-wise; anything else is stringified and split on
    newlines.  ``None`` elements become empty strings so positions hold.
    """
    if column is None:
        return []
    if isinstance(column, (list, tuple)):
        return ["" if item is None else str(item).strip() for item in column]
    s = str(column).strip()
    if not s:
        return []
    return [line.strip() for line in s.split("\n")]


def parse_series(
    series: MetricSeries | None,
    source_tz: tzinfo = DEFAULT_SOURCE_TZ,
    with_duration: bool = False,
) -> list[ParsedEntry]:
    """Pair timestamp and value lines into entries.

    Args:
        series:        Series object (None yields no entries).
        source_tz:     Zone the timestamps were recorded in.
        with_duration: Also align the ``duration`` column (sleep).

    Returns:
        Entries with a parseable timestamp, in payload order.
    """
    if series is None:
        return []

    timestamps = to_lines(series.timestamps)
    values = to_lines(series.values)
    durations = to_lines(series.duration) if with_duration else []

    entries: list[ParsedEntry] = []
    for i, raw_ts in enumerate(timestamps):
        ts = parse_local_timestamp(raw_ts, source_tz)
        if ts is None:
            continue
        value = values[i] if i < len(values) and values[i] != "" else None
        duration = durations[i] if i < len(durations) and durations[i] != "" else None
        entries.append(ParsedEntry(timestamp=ts, value=value, duration=duration))

    dropped = len(timestamps) - len(entries)
    if dropped:
        logger.debug("Dropped %d line(s) with unparseable timestamps", dropped)
    return entries


def parse_payload(
    raw: Mapping[str, Any] | RawPayload,
    source_tz: tzinfo = DEFAULT_SOURCE_TZ,
) -> dict[MetricType, list[ParsedEntry]]:
    """Parse every known metric in a payload.

    Args:
        raw:       Decoded JSON body or an already validated ``RawPayload``.
        source_tz: Zone the timestamps were recorded in.

    Returns:
        Mapping of metric type to its parsed entries (types with no entries
        are omitted).
    """
    payload = raw if isinstance(raw, RawPayload) else RawPayload.model_validate(raw)

    parsed: dict[MetricType, list[ParsedEntry]] = {}
    for metric in METRICS:
        entries = parse_series(
            getattr(payload, metric.attr),
            source_tz,
            with_duration=metric.type is MetricType.sleep,
        )
        if entries:
            parsed[metric.type] = entries
    return parsed
