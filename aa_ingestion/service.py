"""Wiring shared by the CLI and the ops API."""
from __future__ import annotations

from typing import Iterable, Optional

import httpx
from sqlalchemy.engine import Engine
from sqlmodel import Session

from integrations.finfactor.auth import LoginTokenProvider
from integrations.finfactor.http import AAClient

from . import db
from .config import IngestSettings
from .orchestrator import IngestionOrchestrator
from .report import BatchReport
from .writer import PersistenceWriter

__all__ = ["build_client", "run_sync"]


def build_client(
    settings: IngestSettings, transport: Optional[httpx.AsyncBaseTransport] = None
) -> AAClient:
    provider = LoginTokenProvider(
        base_url=settings.base_url,
        api_prefix=settings.api_prefix,
        user_id=settings.user_id,
        password=settings.password,
        transport=transport,
        timeout=settings.call_timeout_seconds,
    )
    return AAClient(
        base_url=settings.base_url,
        api_prefix=settings.api_prefix,
        token_provider=provider,
        timeout=settings.call_timeout_seconds,
        transport=transport,
    )


async def run_sync(
    unique_identifier: str,
    plans: Optional[Iterable[str]] = None,
    *,
    settings: Optional[IngestSettings] = None,
    engine: Optional[Engine] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    deadline_seconds: Optional[float] = None,
    concurrency: Optional[int] = None,
) -> BatchReport:
    """Run one batch for *unique_identifier* with a fresh client and token session."""
    settings = settings or IngestSettings.from_env()
    bind = engine or db.engine
    writer = PersistenceWriter(lambda: Session(bind))
    async with build_client(settings, transport) as client:
        orchestrator = IngestionOrchestrator(
            client=client, writer=writer, settings=settings, concurrency=concurrency
        )
        return await orchestrator.run_batch(unique_identifier, plans, deadline_seconds)
