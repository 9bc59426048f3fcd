"""Layer A: fetch-run audit rows and the raw payloads they produced."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlmodel import Field, Index, SQLModel

from ._columns import created_ts, json_column, utc_ts

__all__ = ["FetchRunStatus", "PayloadRole", "FetchRun", "RawPayload"]


class FetchRunStatus(str, Enum):
    PENDING = "Pending"
    FETCHED = "Fetched"
    FAILED = "Failed"


class PayloadRole(str, Enum):
    REQUEST = "Request"
    RESPONSE = "Response"


class FetchRun(SQLModel, table=True):
    """One endpoint call. Moves Pending -> Fetched|Failed exactly once."""

    __tablename__ = "aa_fetch_runs"
    __table_args__ = (
        Index("ix_fetch_runs_uid_asset", "unique_identifier", "asset_type", "requested_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    unique_identifier: str = Field(nullable=False, index=True, max_length=128)
    asset_type: str = Field(nullable=False, max_length=32)
    endpoint: str = Field(nullable=False, max_length=256)

    requested_at: datetime = utc_ts(nullable=False)
    fetched_at: Optional[datetime] = utc_ts()

    status: str = Field(default=FetchRunStatus.PENDING.value, nullable=False, max_length=16)
    records_count: int = Field(default=0, nullable=False)
    http_status: Optional[int] = None
    error_message: Optional[str] = Field(default=None, max_length=2048)

    created_ts: datetime = created_ts()


class RawPayload(SQLModel, table=True):
    """Verbatim request/response body. Append-only."""

    __tablename__ = "aa_raw_payloads"
    __table_args__ = (Index("ix_raw_payloads_run_role", "fetch_run_id", "role"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    fetch_run_id: int = Field(foreign_key="aa_fetch_runs.id", nullable=False)
    role: str = Field(nullable=False, max_length=16)
    raw_json: Optional[Any] = json_column()
    content_hash: str = Field(nullable=False, max_length=64)

    created_ts: datetime = created_ts()
