"""Shortcut upload endpoint.

Accepts the raw Health payload, resolves the uploading user and hands the
body to the ingestion orchestrator.  Every outcome, including an
unresolved identity or an unreadable body, is recorded once in
``ingest_logs``.

The body is decoded only after identity resolves, so a request without
credentials is always answered 401 whatever it carries.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from src.dependencies import Identity, Orchestrator
from src.ingest.audit import IngestLogEntry
from src.ingest.exceptions import PayloadTooLargeError
from src.ingest.orchestrator import IngestionOrchestrator
from src.models.ingest import UploadError, UploadResponse

router = APIRouter(tags=["ingest"])
logger = logging.getLogger("healthsync.upload")

_BODY_SCHEMA = {
    "requestBody": {
        "required": True,
        "content": {"application/json": {"schema": {"type": "object"}}},
    }
}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=UploadError(error=message).model_dump(),
    )


async def _reject(
    orchestrator: IngestionOrchestrator,
    uid: str | None,
    status_code: int,
    message: str,
    t0: float,
) -> JSONResponse:
    await orchestrator.auditor.record(
        IngestLogEntry(
            uid=uid, ok=False, status=status_code, error=message,
            duration_ms=int((time.monotonic() - t0) * 1000),
            source=orchestrator.source,
        )
    )
    return _error(status_code, message)


async def _read_object(request: Request) -> dict[str, Any] | None:
    """Decode the request body, or None unless it is a JSON object."""
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={
        400: {"model": UploadError},
        401: {"model": UploadError},
        413: {"model": UploadError},
        500: {"model": UploadError},
    },
    openapi_extra=_BODY_SCHEMA,
)
async def upload(
    request: Request,
    orchestrator: Orchestrator,
    identity: Identity,
) -> JSONResponse:
    t0 = time.monotonic()

    auth = await identity.resolve(request)
    if auth is None:
        return await _reject(orchestrator, None, 401, "Unauthorised", t0)

    body = await _read_object(request)
    if body is None:
        logger.info("Rejected upload for %s: body is not a JSON object", auth.uid)
        return await _reject(orchestrator, auth.uid, 400, "Body must be a JSON object", t0)

    try:
        result = await orchestrator.ingest(body, auth.uid)
    except PayloadTooLargeError as exc:
        return _error(413, str(exc))
    except Exception as exc:
        # Already logged and audited by the orchestrator
        return _error(500, str(exc) or "Server error")

    await identity.touch(auth)

    response = UploadResponse(
        attempted=result.attempted,
        inserted=result.inserted,
        by_type=result.by_type,
        note=result.note,
    )
    return JSONResponse(content=response.model_dump(by_alias=True, exclude_none=True))
