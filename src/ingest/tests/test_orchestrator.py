"""End-to-end tests for the ingestion orchestrator over an in-memory store."""

from __future__ import annotations

import copy
from typing import Any

import pytest

from src.ingest.audit import IngestAuditor
from src.ingest.base import MetricType
from src.ingest.exceptions import PayloadTooLargeError, StoreFailureError
from src.ingest.orchestrator import (
    DEFAULT_MAX_SAMPLES,
    NO_SAMPLES_NOTE,
    IngestionOrchestrator,
)


@pytest.fixture
def orchestrator(memory_store) -> IngestionOrchestrator:
    return IngestionOrchestrator(memory_store, IngestAuditor(memory_store))


class TestIngest:
    @pytest.mark.asyncio
    async def test_success_counts(self, orchestrator, memory_store, shortcut_payload, test_uid) -> None:
        result = await orchestrator.ingest(shortcut_payload, test_uid)
        assert result.attempted == 6
        assert result.inserted == 6
        assert result.by_type == {
            "heart_rate": 2,
            "steps": 1,
            "sleep": 2,
            "walking_speed": 1,
        }
        assert result.note is None
        assert len(memory_store.samples) == 6

    @pytest.mark.asyncio
    async def test_identical_payload_twice_is_idempotent(
        self, orchestrator, memory_store, shortcut_payload, test_uid
    ) -> None:
        first = await orchestrator.ingest(shortcut_payload, test_uid)
        second = await orchestrator.ingest(copy.deepcopy(shortcut_payload), test_uid)
        assert first.inserted == 6
        assert second.inserted == 0
        assert second.attempted == 6
        assert len(memory_store.samples) == 6

    @pytest.mark.asyncio
    async def test_steps_coalesced_before_write(self, orchestrator, memory_store, shortcut_payload, test_uid) -> None:
        await orchestrator.ingest(shortcut_payload, test_uid)
        steps = [s for s in memory_store.samples if s.type is MetricType.steps]
        assert len(steps) == 1
        assert steps[0].value == 300

    @pytest.mark.asyncio
    async def test_overlapping_upload_only_adds_new(
        self, orchestrator, memory_store, test_uid
    ) -> None:
        first = {"heart": {"timestamps": "5 Mar 2025, 9:41 pm", "values": "72"}}
        second = {
            "heart": {
                "timestamps": "5 Mar 2025, 9:41 pm\n5 Mar 2025, 9:46 pm",
                "values": "72\n75",
            }
        }
        await orchestrator.ingest(first, test_uid)
        result = await orchestrator.ingest(second, test_uid)
        assert result.attempted == 2
        assert result.inserted == 1

    @pytest.mark.asyncio
    async def test_same_payload_different_users(self, orchestrator, shortcut_payload) -> None:
        a = await orchestrator.ingest(shortcut_payload, "user_a")
        b = await orchestrator.ingest(shortcut_payload, "user_b")
        assert a.inserted == b.inserted == 6

    @pytest.mark.asyncio
    async def test_success_is_audited_once(self, orchestrator, memory_store, shortcut_payload, test_uid) -> None:
        await orchestrator.ingest(shortcut_payload, test_uid)
        (entry,) = memory_store.logs
        assert entry.ok is True
        assert entry.status == 200
        assert entry.uid == test_uid
        assert entry.attempted == 6
        assert entry.inserted == 6
        assert entry.by_type["steps"] == 1
        assert entry.duration_ms is not None and entry.duration_ms >= 0


class TestEmptyPayload:
    @pytest.mark.asyncio
    async def test_no_samples_is_success(self, orchestrator, memory_store, test_uid) -> None:
        result = await orchestrator.ingest({"heart": {"timestamps": "", "values": ""}}, test_uid)
        assert result.inserted == 0
        assert result.attempted == 0
        assert result.note == NO_SAMPLES_NOTE
        assert memory_store.claim_calls == []
        assert memory_store.logs[0].status == 204
        assert memory_store.logs[0].ok is True

    @pytest.mark.asyncio
    async def test_unparseable_entries_are_not_fatal(self, orchestrator, test_uid) -> None:
        payload: dict[str, Any] = {
            "heart": {"timestamps": "yesterday-ish\n5 Mar 2025, 9:41 pm", "values": "72\n75"},
            "sleep": {"timestamps": "5 Mar 2025, 1:00 am", "values": "Awake", "duration": "??"},
        }
        result = await orchestrator.ingest(payload, test_uid)
        assert result.inserted == 1
        assert result.by_type == {"heart_rate": 1}


class TestSizeGuard:
    def test_default_ceiling(self) -> None:
        assert DEFAULT_MAX_SAMPLES == 500_000

    @pytest.mark.asyncio
    async def test_too_many_samples_rejected(self, memory_store, shortcut_payload, test_uid) -> None:
        orchestrator = IngestionOrchestrator(
            memory_store, IngestAuditor(memory_store), max_samples=5
        )
        with pytest.raises(PayloadTooLargeError) as exc_info:
            await orchestrator.ingest(shortcut_payload, test_uid)
        assert exc_info.value.attempted == 6
        assert memory_store.claims == {}
        assert memory_store.samples == []
        (entry,) = memory_store.logs
        assert entry.status == 413
        assert entry.inserted == 0
        assert "Payload too large (6)" in entry.error

    @pytest.mark.asyncio
    async def test_at_ceiling_is_allowed(self, memory_store, shortcut_payload, test_uid) -> None:
        orchestrator = IngestionOrchestrator(memory_store, max_samples=6)
        result = await orchestrator.ingest(shortcut_payload, test_uid)
        assert result.inserted == 6


class TestFailures:
    @pytest.mark.asyncio
    async def test_store_failure_propagates_and_is_audited(
        self, orchestrator, memory_store, shortcut_payload, test_uid
    ) -> None:
        memory_store.insert_error = StoreFailureError("connection reset")
        with pytest.raises(StoreFailureError):
            await orchestrator.ingest(shortcut_payload, test_uid)
        (entry,) = memory_store.logs
        assert entry.status == 500
        assert entry.ok is False
        assert entry.error == "connection reset"

    @pytest.mark.asyncio
    async def test_audit_failure_never_fails_upload(
        self, orchestrator, memory_store, shortcut_payload, test_uid
    ) -> None:
        memory_store.log_error = RuntimeError("logs table missing")
        result = await orchestrator.ingest(shortcut_payload, test_uid)
        assert result.inserted == 6


class TestFromSettings:
    @pytest.mark.asyncio
    async def test_bucket_override(self, memory_store, settings, shortcut_payload, test_uid) -> None:
        settings.steps_bucket_minutes = 15
        orchestrator = IngestionOrchestrator.from_settings(memory_store, None, settings)
        result = await orchestrator.ingest(shortcut_payload, test_uid)
        # 8:01, 8:20 and 8:45 fall in three different 15-minute buckets
        assert result.by_type["steps"] == 3

    @pytest.mark.asyncio
    async def test_chunk_override(self, memory_store, settings, shortcut_payload, test_uid) -> None:
        settings.write_chunk_size = 2
        orchestrator = IngestionOrchestrator.from_settings(memory_store, None, settings)
        await orchestrator.ingest(shortcut_payload, test_uid)
        assert memory_store.claim_calls == [2, 2, 2]
