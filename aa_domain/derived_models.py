"""Layer C: latest-wins summaries, holdings and append-only snapshots."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, Index, SQLModel

from ._columns import created_ts, json_column, money, quantity, updated_ts, utc_ts

__all__ = ["SummaryRecord", "HoldingRecord", "SnapshotRecord", "SUMMARY_COLUMNS"]


class SummaryRecord(SQLModel, table=True):
    """Latest known summary of an account.

    A single wide table serves every asset type; columns that do not apply
    to an asset type stay null.
    """

    __tablename__ = "aa_summaries"
    __table_args__ = (UniqueConstraint("account_id", name="uq_summaries_account"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="aa_accounts.id", nullable=False)
    fetch_run_id: Optional[int] = Field(default=None, foreign_key="aa_fetch_runs.id")
    asset_type: str = Field(nullable=False, max_length=32)

    currency: Optional[str] = Field(default=None, max_length=8)
    current_balance: Optional[Decimal] = money()
    current_value: Optional[Decimal] = money()
    cost_value: Optional[Decimal] = money()
    available_balance: Optional[Decimal] = money()
    pending_balance: Optional[Decimal] = money()
    drawing_limit: Optional[Decimal] = money()
    od_limit: Optional[Decimal] = money()
    balance_datetime: Optional[datetime] = utc_ts()

    # deposits
    branch: Optional[str] = Field(default=None, max_length=256)
    ifsc: Optional[str] = Field(default=None, max_length=16)
    micr: Optional[str] = Field(default=None, max_length=16)
    facility: Optional[str] = Field(default=None, max_length=32)
    opening_date: Optional[date] = None
    status: Optional[str] = Field(default=None, max_length=32)

    # term / recurring deposits
    principal_amount: Optional[Decimal] = money()
    maturity_amount: Optional[Decimal] = money()
    maturity_date: Optional[date] = None
    interest_rate: Optional[Decimal] = quantity()
    interest_payout: Optional[str] = Field(default=None, max_length=32)
    tenure: Optional[str] = Field(default=None, max_length=64)
    recurring_amount: Optional[Decimal] = money()
    recurring_day: Optional[int] = None
    installments: Optional[int] = None

    # investments
    holdings_count: Optional[int] = None
    pran_id: Optional[str] = Field(default=None, max_length=64)

    updated_ts: datetime = updated_ts()


SUMMARY_COLUMNS = frozenset(
    name
    for name in SummaryRecord.model_fields
    if name not in {"id", "account_id", "fetch_run_id", "asset_type", "updated_ts"}
)


class HoldingRecord(SQLModel, table=True):
    """MF folio, demat or ETF line item."""

    __tablename__ = "aa_holdings"
    __table_args__ = (
        UniqueConstraint("identity_hash", name="uq_holdings_identity_hash"),
        Index("ix_holdings_account_isin", "account_id", "isin"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="aa_accounts.id", nullable=False)
    fetch_run_id: Optional[int] = Field(default=None, foreign_key="aa_fetch_runs.id")
    asset_type: str = Field(nullable=False, max_length=32)

    isin: Optional[str] = Field(default=None, max_length=16)
    instrument_name: Optional[str] = Field(default=None, max_length=512)
    folio_number: Optional[str] = Field(default=None, max_length=64)
    broker_code: Optional[str] = Field(default=None, max_length=128)
    broker_name: Optional[str] = Field(default=None, max_length=256)

    units: Optional[Decimal] = quantity()
    nav: Optional[Decimal] = quantity()
    last_price: Optional[Decimal] = quantity()
    cost_value: Optional[Decimal] = money()
    current_value: Optional[Decimal] = money()
    nav_date: Optional[date] = None

    identity_hash: str = Field(nullable=False, max_length=64)
    extra: Optional[dict] = json_column()

    created_ts: datetime = created_ts()
    updated_ts: datetime = updated_ts()


class SnapshotRecord(SQLModel, table=True):
    """Opaque insight/analytics blob; every fetch appends a new row."""

    __tablename__ = "aa_snapshots"
    __table_args__ = (
        Index("ix_snapshots_uid_type_generated", "unique_identifier", "snapshot_type", "generated_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    unique_identifier: str = Field(nullable=False, max_length=128)
    fetch_run_id: Optional[int] = Field(default=None, foreign_key="aa_fetch_runs.id")
    snapshot_type: str = Field(nullable=False, max_length=64)
    account_ref_number: Optional[str] = Field(default=None, max_length=128)
    generated_at: datetime = utc_ts(nullable=False)
    payload: Optional[Any] = json_column()

    created_ts: datetime = created_ts()
