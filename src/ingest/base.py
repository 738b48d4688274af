"""Canonical data models for the ingestion pipeline.

Every metric key the Shortcut can send is listed in ``METRICS`` together
with the sample type and unit it produces.  ``Sample`` is the unit that is
fingerprinted, coalesced and persisted to ``health_samples``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class MetricType(str, Enum):
    heart_rate = "heart_rate"
    steps = "steps"
    sleep = "sleep"
    walking_speed = "walking_speed"
    walking_asymmetry = "walking_asymmetry"
    walking_steadiness = "walking_steadiness"
    double_support_time = "double_support_time"
    walking_step_length = "walking_step_length"
    heart_rate_variability = "heart_rate_variability"
    resting_heart_rate = "resting_heart_rate"
    walking_heart_rate_average = "walking_heart_rate_average"
    active_energy = "active_energy"
    resting_energy = "resting_energy"
    stand_minutes = "stand_minutes"


@dataclass(frozen=True)
class MetricSpec:
    """How one payload key maps onto a sample type.

    Attributes:
        key:   Key as sent by the Shortcut (camelCase).
        attr:  Attribute name on ``RawPayload``.
        type:  Sample type written to the store.
        unit:  Fixed unit for the type.
    """

    key: str
    attr: str
    type: MetricType
    unit: str


METRICS: tuple[MetricSpec, ...] = (
    MetricSpec("heart", "heart", MetricType.heart_rate, "bpm"),
    MetricSpec("steps", "steps", MetricType.steps, "count"),
    MetricSpec("sleep", "sleep", MetricType.sleep, "min"),
    MetricSpec("walkingSpeed", "walking_speed", MetricType.walking_speed, "km/h"),
    MetricSpec("walkingAsymmetry", "walking_asymmetry", MetricType.walking_asymmetry, "%"),
    MetricSpec("walkingSteadiness", "walking_steadiness", MetricType.walking_steadiness, "%"),
    MetricSpec("doubleSupportTime", "double_support_time", MetricType.double_support_time, "%"),
    MetricSpec("walkingStepLength", "walking_step_length", MetricType.walking_step_length, "cm"),
    MetricSpec(
        "heartRateVariability", "heart_rate_variability",
        MetricType.heart_rate_variability, "ms",
    ),
    MetricSpec("restingHeartRate", "resting_heart_rate", MetricType.resting_heart_rate, "bpm"),
    MetricSpec(
        "walkingHeartRateAverage", "walking_heart_rate_average",
        MetricType.walking_heart_rate_average, "bpm",
    ),
    MetricSpec("activeEnergy", "active_energy", MetricType.active_energy, "kJ"),
    MetricSpec("restingEnergy", "resting_energy", MetricType.resting_energy, "kJ"),
    MetricSpec("standMinutes", "stand_minutes", MetricType.stand_minutes, "mins"),
)


@dataclass(frozen=True)
class ParsedEntry:
    """One positionally aligned timestamp/value(/duration) line.

    ``value`` and ``duration`` are the stripped raw strings; conversion to
    numbers happens when samples are built.
    """

    timestamp: datetime | None
    value: str | None
    duration: str | None = None


@dataclass(frozen=True)
class Sample:
    """A single time-series observation attributable to one user.

    Attributes:
        ts:          Sample time (aware, UTC).
        type:        Metric type.
        value:       Numeric magnitude in ``unit`` (minutes for sleep).
        unit:        Fixed unit for the type.
        uid:         Owning user identifier.
        source:      Ingestion channel tag.
        device:      Source device, when known.
        payload:     Type-specific extras (sleep ``stage``, ``duration_str``).
        fingerprint: SHA-256 identity; empty until fingerprinted.
    """

    ts: datetime
    type: MetricType
    value: float | None
    unit: str
    uid: str
    source: str
    device: str | None = None
    payload: dict[str, Any] | None = None
    fingerprint: str = ""
