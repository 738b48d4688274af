"""Postgres storage for ingested samples, claims and outcome logs.

The asyncpg pool is created once in the application lifespan and handed to
``PostgresSampleStore``; nothing here keeps module-level connection state.

Tables:
    health_samples — one row per accepted observation
    ingest_claims  — UNIQUE(fingerprint); the idempotency guard
    ingest_logs    — one row per upload outcome
    api_keys       — hashed per-user Shortcut keys
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import Any, Sequence

import asyncpg

from src.config import Settings
from src.ingest.audit import IngestLogEntry
from src.ingest.base import Sample
from src.ingest.exceptions import StoreFailureError
from src.ingest.writer import Claim, ClaimOutcome

logger = logging.getLogger("healthsync.db")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS health_samples (
    sample_id   BIGSERIAL PRIMARY KEY,
    ts          TIMESTAMPTZ NOT NULL,
    type        TEXT NOT NULL,
    value       DOUBLE PRECISION,
    unit        TEXT NOT NULL,
    uid         TEXT NOT NULL,
    source      TEXT NOT NULL,
    device      TEXT,
    payload     JSONB,
    fingerprint TEXT NOT NULL,
    ingested_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS health_samples_fingerprint_idx ON health_samples (fingerprint);
CREATE INDEX IF NOT EXISTS health_samples_uid_type_ts_idx ON health_samples (uid, type, ts);

CREATE TABLE IF NOT EXISTS ingest_claims (
    fingerprint TEXT PRIMARY KEY,
    uid         TEXT NOT NULL,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS ingest_claims_created_at_idx ON ingest_claims (created_at);

CREATE TABLE IF NOT EXISTS ingest_logs (
    log_id      BIGSERIAL PRIMARY KEY,
    ts          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    uid         TEXT,
    source      TEXT NOT NULL,
    ok          BOOLEAN NOT NULL,
    status      INTEGER NOT NULL,
    attempted   INTEGER,
    inserted    INTEGER NOT NULL DEFAULT 0,
    by_type     JSONB,
    duration_ms INTEGER,
    error       TEXT
);
CREATE INDEX IF NOT EXISTS ingest_logs_ts_idx ON ingest_logs (ts DESC);
CREATE INDEX IF NOT EXISTS ingest_logs_uid_ts_idx ON ingest_logs (uid, ts DESC);

CREATE TABLE IF NOT EXISTS api_keys (
    key_id       TEXT PRIMARY KEY,
    uid          TEXT NOT NULL,
    label        TEXT,
    hash         TEXT NOT NULL,
    created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    last_used_at TIMESTAMPTZ,
    revoked_at   TIMESTAMPTZ
);
"""

# Unordered bulk claim: conflicting rows are skipped, the rest insert.
_CLAIM_SQL = """
INSERT INTO ingest_claims (fingerprint, uid, created_at)
SELECT * FROM unnest($1::text[], $2::text[], $3::timestamptz[])
ON CONFLICT (fingerprint) DO NOTHING
RETURNING fingerprint
"""

_INSERT_SAMPLES_SQL = """
WITH ins AS (
    INSERT INTO health_samples (ts, type, value, unit, uid, source, device, payload, fingerprint)
    SELECT * FROM unnest(
        $1::timestamptz[], $2::text[], $3::float8[], $4::text[], $5::text[],
        $6::text[], $7::text[], $8::jsonb[], $9::text[]
    )
    RETURNING 1
)
SELECT count(*) FROM ins
"""

_INSERT_LOG_SQL = """
INSERT INTO ingest_logs (ts, uid, source, ok, status, attempted, inserted, by_type, duration_ms, error)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8::jsonb, $9, $10)
"""

_PURGE_CLAIMS_SQL = "DELETE FROM ingest_claims WHERE created_at < NOW() - $1::interval"


async def create_pool(settings: Settings) -> asyncpg.Pool:
    """Create the asyncpg connection pool. Call once at app startup."""
    pool = await asyncpg.create_pool(
        settings.database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        command_timeout=30,
    )
    logger.info(
        "Database pool initialized (min=%d, max=%d)",
        settings.db_pool_min_size, settings.db_pool_max_size,
    )
    return pool


class PostgresSampleStore:
    """``SampleStore`` and ``IngestLogSink`` backed by an asyncpg pool."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    @property
    def pool(self) -> asyncpg.Pool:
        return self._pool

    async def ensure_schema(self) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)

    async def ping(self) -> bool:
        async with self._pool.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1

    async def claim(self, claims: Sequence[Claim]) -> list[ClaimOutcome]:
        """Insert claims in one statement and report who won each.

        A fingerprint repeated within ``claims`` is CLAIMED at most once
        (the first occurrence).
        """
        if not claims:
            return []
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    _CLAIM_SQL,
                    [c.fingerprint for c in claims],
                    [c.uid for c in claims],
                    [c.created_at for c in claims],
                )
        except (asyncpg.PostgresError, OSError) as exc:
            raise StoreFailureError(f"Claim insert failed: {exc}") from exc

        won = {r["fingerprint"] for r in rows}
        outcomes: list[ClaimOutcome] = []
        for c in claims:
            if c.fingerprint in won:
                won.discard(c.fingerprint)
                outcomes.append(ClaimOutcome.CLAIMED)
            else:
                outcomes.append(ClaimOutcome.ALREADY_CLAIMED)
        return outcomes

    async def insert_samples(self, samples: Sequence[Sample]) -> int:
        if not samples:
            return 0
        try:
            async with self._pool.acquire() as conn:
                count = await conn.fetchval(
                    _INSERT_SAMPLES_SQL,
                    [s.ts for s in samples],
                    [s.type.value for s in samples],
                    [s.value for s in samples],
                    [s.unit for s in samples],
                    [s.uid for s in samples],
                    [s.source for s in samples],
                    [s.device for s in samples],
                    [json.dumps(s.payload) if s.payload is not None else None for s in samples],
                    [s.fingerprint for s in samples],
                )
        except (asyncpg.PostgresError, OSError) as exc:
            raise StoreFailureError(f"Sample insert failed: {exc}") from exc
        return int(count or 0)

    async def insert_ingest_log(self, entry: IngestLogEntry) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                _INSERT_LOG_SQL,
                entry.ts,
                entry.uid,
                entry.source,
                entry.ok,
                entry.status,
                entry.attempted,
                entry.inserted,
                json.dumps(entry.by_type) if entry.by_type is not None else None,
                entry.duration_ms,
                entry.error,
            )

    async def purge_expired_claims(self, retention: timedelta) -> int:
        """Delete claims older than ``retention``. Returns the number removed."""
        async with self._pool.acquire() as conn:
            status: str = await conn.execute(_PURGE_CLAIMS_SQL, retention)
        removed = int(status.split()[-1]) if status.startswith("DELETE") else 0
        if removed:
            logger.info("Purged %d expired ingest claim(s)", removed)
        return removed

    async def fetch_api_key(self, key_id: str) -> dict[str, Any] | None:
        """Return the non-revoked key row for ``key_id``, if any."""
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT key_id, uid, hash FROM api_keys WHERE key_id = $1 AND revoked_at IS NULL",
                key_id,
            )
        return dict(row) if row else None

    async def touch_api_key(self, key_id: str) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                "UPDATE api_keys SET last_used_at = NOW() WHERE key_id = $1", key_id
            )
