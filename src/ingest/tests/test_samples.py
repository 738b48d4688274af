"""Tests for sample construction."""

from __future__ import annotations

from datetime import datetime, timezone

from src.ingest.base import MetricType, ParsedEntry
from src.ingest.fingerprint import fingerprint
from src.ingest.samples import build_samples, parse_value

TS = datetime(2025, 3, 5, 11, 41, tzinfo=timezone.utc)


class TestParseValue:
    def test_numbers(self) -> None:
        assert parse_value("72") == 72.0
        assert parse_value("4.6") == 4.6

    def test_rejects_junk(self) -> None:
        assert parse_value(None) is None
        assert parse_value("abc") is None
        assert parse_value("nan") is None
        assert parse_value("inf") is None


class TestBuildSamples:
    def test_units_and_types(self, test_uid: str) -> None:
        parsed = {
            MetricType.heart_rate: [ParsedEntry(TS, "72")],
            MetricType.active_energy: [ParsedEntry(TS, "12.5")],
            MetricType.stand_minutes: [ParsedEntry(TS, "3")],
        }
        samples = build_samples(parsed, test_uid)
        assert [(s.type, s.unit, s.value) for s in samples] == [
            (MetricType.heart_rate, "bpm", 72.0),
            (MetricType.active_energy, "kJ", 12.5),
            (MetricType.stand_minutes, "mins", 3.0),
        ]
        assert all(s.uid == test_uid and s.source == "shortcut" for s in samples)

    def test_samples_are_fingerprinted(self, test_uid: str) -> None:
        samples = build_samples({MetricType.steps: [ParsedEntry(TS, "120")]}, test_uid)
        assert samples[0].fingerprint == fingerprint(samples[0])
        assert len(samples[0].fingerprint) == 64

    def test_missing_or_bad_values_dropped(self, test_uid: str) -> None:
        parsed = {
            MetricType.heart_rate: [
                ParsedEntry(TS, None),
                ParsedEntry(TS, "n/a"),
                ParsedEntry(TS, "80"),
            ]
        }
        samples = build_samples(parsed, test_uid)
        assert [s.value for s in samples] == [80.0]

    def test_null_timestamp_dropped(self, test_uid: str) -> None:
        samples = build_samples({MetricType.heart_rate: [ParsedEntry(None, "72")]}, test_uid)
        assert samples == []

    def test_sleep_stage_with_duration(self, test_uid: str) -> None:
        parsed = {MetricType.sleep: [ParsedEntry(TS, "Core", "1:30")]}
        (sample,) = build_samples(parsed, test_uid)
        assert sample.value == 90.0
        assert sample.unit == "min"
        assert sample.payload == {"stage": "Core", "duration_str": "1:30"}

    def test_sleep_minutes_in_value(self, test_uid: str) -> None:
        parsed = {MetricType.sleep: [ParsedEntry(TS, "2h 15m")]}
        (sample,) = build_samples(parsed, test_uid)
        assert sample.value == 135.0
        assert sample.payload is None

    def test_sleep_without_minutes_dropped(self, test_uid: str) -> None:
        parsed = {MetricType.sleep: [ParsedEntry(TS, "Awake", "a while")]}
        assert build_samples(parsed, test_uid) == []

    def test_custom_source(self, test_uid: str) -> None:
        samples = build_samples(
            {MetricType.heart_rate: [ParsedEntry(TS, "72")]}, test_uid, source="import"
        )
        assert samples[0].source == "import"
