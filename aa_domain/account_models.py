"""Layer B: canonical FIPs, brokers, accounts, holders and transactions."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, Index, SQLModel

from ._columns import created_ts, json_column, money, updated_ts, utc_ts

__all__ = [
    "FipRecord",
    "BrokerRecord",
    "AccountRecord",
    "AccountHolderRecord",
    "TransactionRecord",
]


class FipRecord(SQLModel, table=True):
    """Financial Information Provider (bank, depository) upserted by code."""

    __tablename__ = "aa_fips"
    __table_args__ = (UniqueConstraint("external_code", name="uq_fips_external_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    external_code: str = Field(nullable=False, max_length=128)
    name: Optional[str] = Field(default=None, max_length=256)
    is_active: bool = Field(default=True, nullable=False)
    extra: Optional[dict] = json_column()

    created_ts: datetime = created_ts()
    updated_ts: datetime = updated_ts()


class BrokerRecord(SQLModel, table=True):
    __tablename__ = "aa_brokers"
    __table_args__ = (UniqueConstraint("external_code", name="uq_brokers_external_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    external_code: str = Field(nullable=False, max_length=128)
    name: Optional[str] = Field(default=None, max_length=256)
    extra: Optional[dict] = json_column()

    created_ts: datetime = created_ts()
    updated_ts: datetime = updated_ts()


class AccountRecord(SQLModel, table=True):
    """Linked account of one user at one FIP for one asset type."""

    __tablename__ = "aa_accounts"
    __table_args__ = (
        UniqueConstraint("identity_hash", name="uq_accounts_identity_hash"),
        Index("ix_accounts_uid_asset", "unique_identifier", "asset_type"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    unique_identifier: str = Field(nullable=False, max_length=128)
    fip_id: Optional[int] = Field(default=None, foreign_key="aa_fips.id")
    asset_type: str = Field(nullable=False, max_length=32)

    account_ref_number: Optional[str] = Field(default=None, max_length=128)
    masked_account_number: Optional[str] = Field(default=None, max_length=64)
    link_ref_number: Optional[str] = Field(default=None, max_length=128)
    fi_data_id: Optional[str] = Field(default=None, max_length=128)
    account_type: Optional[str] = Field(default=None, max_length=64)
    link_status: Optional[str] = Field(default=None, max_length=32)

    identity_hash: str = Field(nullable=False, max_length=64)
    last_fetch_run_id: Optional[int] = Field(default=None, foreign_key="aa_fetch_runs.id")
    extra: Optional[dict] = json_column()

    created_ts: datetime = created_ts()
    updated_ts: datetime = updated_ts()


class AccountHolderRecord(SQLModel, table=True):
    """PII of the account holder; one row per account, replaced on each fetch."""

    __tablename__ = "aa_account_holders"
    __table_args__ = (UniqueConstraint("account_id", name="uq_account_holders_account"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="aa_accounts.id", nullable=False)

    name: Optional[str] = Field(default=None, max_length=256)
    pan: Optional[str] = Field(default=None, max_length=16)
    dob: Optional[date] = None
    mobile: Optional[str] = Field(default=None, max_length=32)
    email: Optional[str] = Field(default=None, max_length=256)
    address: Optional[str] = Field(default=None, max_length=1024)
    nominee: Optional[str] = Field(default=None, max_length=64)
    ckyc_compliance: Optional[bool] = None
    holder_type: Optional[str] = Field(default=None, max_length=16)
    extra: Optional[dict] = json_column()

    updated_ts: datetime = updated_ts()


class TransactionRecord(SQLModel, table=True):
    """Statement line. Immutable once stored; re-fetches collapse on the hash."""

    __tablename__ = "aa_transactions"
    __table_args__ = (
        UniqueConstraint("identity_hash", name="uq_transactions_identity_hash"),
        Index("ix_transactions_account_ts", "account_id", "txn_timestamp"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="aa_accounts.id", nullable=False)
    fetch_run_id: Optional[int] = Field(default=None, foreign_key="aa_fetch_runs.id")

    txn_id: Optional[str] = Field(default=None, max_length=128)
    txn_type: Optional[str] = Field(default=None, max_length=32)
    mode: Optional[str] = Field(default=None, max_length=32)
    amount: Decimal = money(nullable=False)
    balance: Optional[Decimal] = money()
    narration: Optional[str] = Field(default=None, max_length=2048)
    txn_timestamp: Optional[datetime] = utc_ts()
    value_date: Optional[date] = None
    reference: Optional[str] = Field(default=None, max_length=256)

    identity_hash: str = Field(nullable=False, max_length=64)
    extra: Optional[dict] = json_column()

    created_ts: datetime = created_ts()
