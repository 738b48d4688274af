"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from src.config import Settings, get_settings
from src.ingest.orchestrator import IngestionOrchestrator
from src.services.identity import IdentityResolver


def get_orchestrator(request: Request) -> IngestionOrchestrator:
    """Return the orchestrator built at startup (see ``main.lifespan``)."""
    return request.app.state.orchestrator


def get_identity_resolver(request: Request) -> IdentityResolver:
    return request.app.state.identity


# Annotated shortcuts for route signatures
Orchestrator = Annotated[IngestionOrchestrator, Depends(get_orchestrator)]
Identity = Annotated[IdentityResolver, Depends(get_identity_resolver)]
AppSettings = Annotated[Settings, Depends(get_settings)]
