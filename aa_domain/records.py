"""Typed mapping output: what a mapper hands to the persistence writer.

Mappers never touch the database. They turn a provider payload into these
records; unknown provider keys travel in each record's ``extra`` dict.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

__all__ = [
    "AssetType",
    "FieldError",
    "FipRef",
    "BrokerRef",
    "MappedAccount",
    "MappedHolder",
    "MappedSummary",
    "MappedHolding",
    "MappedTransaction",
    "AccountBundle",
    "MappedSnapshot",
    "MappingResult",
]


class AssetType(str, Enum):
    DIRECTORY = "DIRECTORY"
    DEPOSIT = "DEPOSIT"
    TERM_DEPOSIT = "TERM_DEPOSIT"
    RECURRING_DEPOSIT = "RECURRING_DEPOSIT"
    MUTUAL_FUND = "MUTUAL_FUND"
    EQUITIES = "EQUITIES"
    ETF = "ETF"
    NPS = "NPS"


@dataclass(slots=True)
class FieldError:
    """A provider value that could not be coerced; the column was nulled."""

    record: str
    field: str
    value: Any
    reason: str


@dataclass(slots=True)
class FipRef:
    external_code: str
    name: Optional[str] = None
    is_active: bool = True
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class BrokerRef:
    external_code: str
    name: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class MappedAccount:
    asset_type: AssetType
    account_ref_number: Optional[str]
    fip: Optional[FipRef] = None
    masked_account_number: Optional[str] = None
    link_ref_number: Optional[str] = None
    fi_data_id: Optional[str] = None
    account_type: Optional[str] = None
    link_status: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class MappedHolder:
    name: Optional[str] = None
    pan: Optional[str] = None
    dob: Optional[date] = None
    mobile: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    nominee: Optional[str] = None
    ckyc_compliance: Optional[bool] = None
    holder_type: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class MappedSummary:
    """Summary columns keyed by their ``aa_summaries`` column name."""

    asset_type: AssetType
    values: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class MappedHolding:
    isin: Optional[str] = None
    instrument_name: Optional[str] = None
    folio_number: Optional[str] = None
    broker_code: Optional[str] = None
    broker_name: Optional[str] = None
    units: Optional[Decimal] = None
    nav: Optional[Decimal] = None
    last_price: Optional[Decimal] = None
    cost_value: Optional[Decimal] = None
    current_value: Optional[Decimal] = None
    nav_date: Optional[date] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def position_key(self) -> Optional[str]:
        """Folio for MF rows, broker for demat rows."""
        return self.folio_number or self.broker_code


@dataclass(slots=True)
class MappedTransaction:
    amount: Optional[Decimal] = None
    txn_timestamp: Optional[datetime] = None
    narration: Optional[str] = None
    txn_id: Optional[str] = None
    txn_type: Optional[str] = None
    mode: Optional[str] = None
    balance: Optional[Decimal] = None
    value_date: Optional[date] = None
    reference: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class AccountBundle:
    """Everything one linked-account element maps to."""

    account: MappedAccount
    holder: Optional[MappedHolder] = None
    summary: Optional[MappedSummary] = None


@dataclass(slots=True)
class MappedSnapshot:
    snapshot_type: str
    generated_at: datetime
    payload: Any
    account_ref_number: Optional[str] = None


@dataclass(slots=True)
class MappingResult:
    """Output of one mapper call.

    ``holdings`` and ``transactions`` at this level belong to the account the
    step was scoped to; those nested in ``accounts`` belong to their bundle.
    """

    fips: List[FipRef] = field(default_factory=list)
    brokers: List[BrokerRef] = field(default_factory=list)
    accounts: List[AccountBundle] = field(default_factory=list)
    holdings: List[MappedHolding] = field(default_factory=list)
    transactions: List[MappedTransaction] = field(default_factory=list)
    snapshots: List[MappedSnapshot] = field(default_factory=list)
    field_errors: List[FieldError] = field(default_factory=list)

    @property
    def record_count(self) -> int:
        return (
            len(self.fips)
            + len(self.brokers)
            + len(self.accounts)
            + len(self.holdings)
            + len(self.transactions)
            + len(self.snapshots)
        )
