"""Pydantic models for the upload endpoint."""

from __future__ import annotations

from pydantic import Field

from src.models.base import HealthSyncBase


# ---------- Upload responses ----------

class UploadResponse(HealthSyncBase):
    ok: bool = True
    attempted: int
    inserted: int
    by_type: dict[str, int] = Field(default_factory=dict, alias="byType")
    note: str | None = None


class UploadError(HealthSyncBase):
    ok: bool = False
    error: str
