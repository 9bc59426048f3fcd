"""FastAPI ops endpoints for the ingestion pipeline."""
from __future__ import annotations

import os

from common.logging import configure_logging

configure_logging(os.getenv("LOG_FORMAT", "json"), service_name="aa_ingestion")

from datetime import datetime
from typing import Generator, List, Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query
from prometheus_client import make_asgi_app
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, select

from common.auth import require_token
from aa_domain.audit_models import FetchRun, RawPayload

from . import db
from .errors import BatchStartError
from .service import run_sync

app = FastAPI(title="aa-ingestion")
db.init_db()

app.mount("/metrics", make_asgi_app())


# Read model to avoid FastAPI/Pydantic recursion with table=True models
class FetchRunRead(SQLModel):
    id: int
    unique_identifier: str
    asset_type: str
    endpoint: str
    requested_at: datetime
    fetched_at: Optional[datetime] = None
    status: str
    records_count: int
    http_status: Optional[int] = None
    error_message: Optional[str] = None
    payload_roles: List[str] = []


def get_engine() -> Engine:
    return db.engine


def get_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Outbound transport for the AA client; overridden in tests."""
    return None


def get_session(engine: Engine = Depends(get_engine)) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@app.get("/healthz", response_model=dict)
def healthz(session: Session = Depends(get_session)):
    session.exec(select(FetchRun.id).limit(1)).first()
    return {"ok": True}


@app.post("/sync/{unique_identifier}", response_model=dict)
async def sync_user(
    unique_identifier: str,
    plans: Optional[List[str]] = Query(None),
    deadline: Optional[float] = Query(None, gt=0),
    engine: Engine = Depends(get_engine),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_transport),
    _: None = Depends(require_token),
):
    """Run one ingestion batch and return its per-plan report."""
    try:
        report = await run_sync(
            unique_identifier,
            plans,
            engine=engine,
            transport=transport,
            deadline_seconds=deadline,
        )
    except BatchStartError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return report.as_dict()


@app.get("/fetch-runs/{run_id}", response_model=FetchRunRead)
def get_fetch_run(
    run_id: int,
    session: Session = Depends(get_session),
    _: None = Depends(require_token),
) -> FetchRunRead:
    run = session.get(FetchRun, run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="not found")
    roles = session.exec(
        select(RawPayload.role).where(RawPayload.fetch_run_id == run_id).order_by(RawPayload.id)
    ).all()
    return FetchRunRead(**run.model_dump(exclude={"created_ts"}), payload_roles=list(roles))
