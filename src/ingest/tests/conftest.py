"""Fixtures for ingestion pipeline tests."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from src.ingest.base import MetricType, Sample
from src.ingest.fingerprint import with_fingerprint


@pytest.fixture
def make_sample(test_uid: str) -> Callable[..., Sample]:
    """Factory for fingerprinted samples with sensible defaults."""

    def _make(
        ts: datetime = datetime(2025, 3, 5, 11, 41, tzinfo=timezone.utc),
        type: MetricType = MetricType.heart_rate,
        value: float | None = 72.0,
        unit: str = "bpm",
        uid: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Sample:
        return with_fingerprint(
            Sample(
                ts=ts,
                type=type,
                value=value,
                unit=unit,
                uid=uid or test_uid,
                source="shortcut",
                payload=payload,
            )
        )

    return _make


@pytest.fixture
def shortcut_payload() -> dict[str, Any]:
    """A realistic Shortcut upload covering heart, steps, sleep and gait."""
    return {
        "heart": {
            "timestamps ": "5 Mar 2025, 9:41\u202fpm\n5 Mar 2025, 9:46\u202fpm",
            "values": "72\n75",
        },
        "steps": {
            "timestamps ": "5 Mar 2025, 8:01 am\n5 Mar 2025, 8:20 am\n5 Mar 2025, 8:45 am",
            "values": "120\n300\n150",
        },
        "sleep": {
            "timestamps": "5 Mar 2025 at 1:00 am\n5 Mar 2025 at 2:30 am",
            "values": "Core\nREM",
            "duration": "1:30\n45 min",
        },
        "walkingSpeed": {
            "timestamps": ["5 Mar 2025, 8:05 am"],
            "values": [4.6],
        },
        "date": "5 Mar 2025, 11:59 pm",
    }
