"""HealthSync ingestion pipeline.

Turns irregular Shortcut payloads into uniform, fingerprinted samples and
writes each logical observation exactly once.

Core modules:
    timestamps   — Locale date strings → UTC datetimes
    durations    — Heterogeneous duration encodings → minutes
    payload      — Explicit payload schema and line pairing
    samples      — Typed, unit-tagged sample construction
    fingerprint  — Deterministic SHA-256 sample identity
    coalesce     — Max-per-bucket steps coalescing
    writer       — Claim-then-write idempotent persistence
    audit        — Best-effort outcome log
    orchestrator — End-to-end upload handling
"""

from src.ingest.base import METRICS, MetricType, ParsedEntry, Sample
from src.ingest.exceptions import IngestError, PayloadTooLargeError, StoreFailureError
from src.ingest.orchestrator import IngestionOrchestrator, IngestResult
from src.ingest.writer import Claim, ClaimOutcome, IdempotentWriter, SampleStore

__all__ = [
    "METRICS",
    "MetricType",
    "ParsedEntry",
    "Sample",
    "IngestError",
    "PayloadTooLargeError",
    "StoreFailureError",
    "IngestionOrchestrator",
    "IngestResult",
    "Claim",
    "ClaimOutcome",
    "IdempotentWriter",
    "SampleStore",
]
