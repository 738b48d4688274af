"""Errors raised by the ingestion pipeline.

Only payload-level and store-level failures propagate; per-entry parse
failures and claim conflicts are handled where they occur.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for ingestion failures surfaced to the caller."""


class PayloadTooLargeError(IngestError):
    """The payload expanded to more samples than one upload may write."""

    def __init__(self, attempted: int, limit: int, by_type: dict[str, int] | None = None) -> None:
        self.attempted = attempted
        self.limit = limit
        self.by_type = by_type or {}
        super().__init__(
            f"Payload too large ({attempted}). Please split into smaller daily batches."
        )


class StoreFailureError(IngestError):
    """A store operation failed for a reason other than a claim conflict."""
