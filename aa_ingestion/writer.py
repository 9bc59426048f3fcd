"""Tiered, idempotent writes of mapped records.

Layer A  fetch runs and raw payloads (append-only audit trail)
Layer B  FIPs, brokers, accounts, holders, transactions (upsert by key/hash)
Layer C  summaries (latest wins), holdings (upsert by hash), snapshots (append)

Every record commits on its own; a failing record is rolled back, reported
as a :class:`RecordError` and its siblings continue.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from aa_domain.account_models import (
    AccountHolderRecord,
    AccountRecord,
    BrokerRecord,
    FipRecord,
    TransactionRecord,
)
from aa_domain.audit_models import FetchRun, FetchRunStatus, PayloadRole, RawPayload
from aa_domain.derived_models import SUMMARY_COLUMNS, HoldingRecord, SnapshotRecord, SummaryRecord
from aa_domain.records import (
    AccountBundle,
    AssetType,
    BrokerRef,
    FipRef,
    MappedHolder,
    MappedHolding,
    MappedSnapshot,
    MappedSummary,
    MappedTransaction,
    MappingResult,
)
from aa_observability.metrics import aa_records_written_total

from .errors import PersistenceError, RunStateError
from .hashing import account_identity, content_hash, holding_identity, transaction_identity

__all__ = ["PersistenceWriter", "WriteResult", "RecordError"]

_LOG = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class RecordError:
    table: str
    key: Optional[str]
    message: str


@dataclass(slots=True)
class WriteResult:
    """Per-table outcome counters (created/updated/unchanged/failed)."""

    counts: Dict[str, Dict[str, int]] = field(default_factory=lambda: defaultdict(lambda: defaultdict(int)))
    errors: List[RecordError] = field(default_factory=list)

    def bump(self, table: str, outcome: str) -> None:
        self.counts[table][outcome] += 1
        aa_records_written_total.labels(table, outcome).inc()

    @property
    def written(self) -> int:
        """Records now present in storage (new, changed or already identical)."""
        return sum(
            n for per in self.counts.values() for outcome, n in per.items() if outcome != "failed"
        )

    def as_dict(self) -> Dict[str, Dict[str, int]]:
        return {table: dict(per) for table, per in self.counts.items()}


class PersistenceWriter:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    # Layer A -----------------------------------------------------------------

    def open_run(self, unique_identifier: str, asset_type: str, endpoint: str) -> int:
        with self._session_factory() as sess:
            run = FetchRun(
                unique_identifier=unique_identifier,
                asset_type=asset_type,
                endpoint=endpoint,
                requested_at=_utcnow(),
                status=FetchRunStatus.PENDING.value,
            )
            sess.add(run)
            sess.commit()
            sess.refresh(run)
            return run.id  # type: ignore[return-value]

    def record_payload(self, run_id: int, role: PayloadRole, raw: Any) -> None:
        with self._session_factory() as sess:
            sess.add(
                RawPayload(
                    fetch_run_id=run_id,
                    role=role.value,
                    raw_json=raw,
                    content_hash=content_hash(raw),
                )
            )
            sess.commit()

    def finalize_run(
        self,
        run_id: int,
        status: FetchRunStatus,
        *,
        records_count: int = 0,
        error_message: Optional[str] = None,
        http_status: Optional[int] = None,
    ) -> None:
        """Move a Pending run to a terminal state; any other transition raises."""
        if status is FetchRunStatus.PENDING:
            raise RunStateError("a fetch run cannot be finalized as Pending")
        with self._session_factory() as sess:
            run = sess.get(FetchRun, run_id)
            if run is None:
                raise RunStateError(f"fetch run {run_id} does not exist")
            if run.status != FetchRunStatus.PENDING.value:
                raise RunStateError(f"fetch run {run_id} is already {run.status}")
            run.status = status.value
            run.fetched_at = _utcnow()
            run.records_count = records_count
            run.http_status = http_status
            run.error_message = (error_message or None) and error_message[:2048]
            sess.add(run)
            sess.commit()

    # Entry point -------------------------------------------------------------

    def persist(
        self,
        run_id: int,
        unique_identifier: str,
        mapped: MappingResult,
        *,
        scope_account_hash: Optional[str] = None,
        asset_type: Optional[AssetType] = None,
    ) -> WriteResult:
        """Write one step's mapping result, Layer B before Layer C.

        Top-level holdings and transactions need *scope_account_hash*, the
        identity of an account already stored by the linked-accounts step.
        """
        result = WriteResult()
        with self._session_factory() as sess:
            fip_ids: Dict[str, Optional[int]] = {}
            for fip in mapped.fips:
                fip_ids[fip.external_code] = self._upsert_fip(sess, fip, result)
            for broker in mapped.brokers:
                self._upsert_broker(sess, broker, result)

            for bundle in mapped.accounts:
                self._write_bundle(sess, run_id, unique_identifier, bundle, fip_ids, result)

            if mapped.holdings or mapped.transactions:
                if scope_account_hash is None:
                    raise PersistenceError("aa_accounts", None, "holdings/transactions need an account")
                account = self._account_by_hash(sess, scope_account_hash)
                kind = (asset_type or AssetType(account.asset_type)).value
                for holding in mapped.holdings:
                    self._upsert_holding(sess, run_id, account.id, scope_account_hash, kind, holding, result)
                for txn in mapped.transactions:
                    self._insert_transaction(sess, run_id, account.id, scope_account_hash, txn, result)

            for snapshot in mapped.snapshots:
                self._insert_snapshot(sess, run_id, unique_identifier, snapshot, result)
        return result

    # Helpers -----------------------------------------------------------------

    def _commit(
        self, sess: Session, result: WriteResult, table: str, key: Optional[str], outcome: str
    ) -> bool:
        try:
            sess.commit()
        except SQLAlchemyError as exc:
            sess.rollback()
            message = str(getattr(exc, "orig", None) or exc)
            result.errors.append(RecordError(table, key, message))
            result.bump(table, "failed")
            _LOG.warning("write to %s failed for %s: %s", table, key, message)
            return False
        result.bump(table, outcome)
        return True

    def _account_by_hash(self, sess: Session, identity: str) -> AccountRecord:
        account = sess.exec(select(AccountRecord).where(AccountRecord.identity_hash == identity)).first()
        if account is None:
            raise PersistenceError("aa_accounts", identity, "selected account is not stored")
        return account

    # Layer B -----------------------------------------------------------------

    def _upsert_fip(self, sess: Session, fip: FipRef, result: WriteResult) -> Optional[int]:
        row = sess.exec(select(FipRecord).where(FipRecord.external_code == fip.external_code)).first()
        outcome = "updated"
        if row is None:
            row = FipRecord(external_code=fip.external_code)
            outcome = "created"
        elif fip.name is None or (row.name == fip.name and row.is_active == fip.is_active):
            # linked-account trees only carry code and name
            result.bump("aa_fips", "unchanged")
            return row.id
        row.name = fip.name or row.name
        row.is_active = fip.is_active
        if fip.extra:
            row.extra = fip.extra
        sess.add(row)
        if not self._commit(sess, result, "aa_fips", fip.external_code, outcome):
            return None
        return row.id

    def _upsert_broker(self, sess: Session, broker: BrokerRef, result: WriteResult) -> None:
        row = sess.exec(select(BrokerRecord).where(BrokerRecord.external_code == broker.external_code)).first()
        outcome = "updated"
        if row is None:
            row = BrokerRecord(external_code=broker.external_code)
            outcome = "created"
        elif row.name == broker.name and row.extra == (broker.extra or None):
            result.bump("aa_brokers", "unchanged")
            return
        row.name = broker.name
        row.extra = broker.extra or None
        sess.add(row)
        self._commit(sess, result, "aa_brokers", broker.external_code, outcome)

    def _write_bundle(
        self,
        sess: Session,
        run_id: int,
        unique_identifier: str,
        bundle: AccountBundle,
        fip_ids: Dict[str, Optional[int]],
        result: WriteResult,
    ) -> None:
        acct = bundle.account
        identity = account_identity(unique_identifier, acct)
        row = sess.exec(select(AccountRecord).where(AccountRecord.identity_hash == identity)).first()
        outcome = "updated"
        if row is None:
            row = AccountRecord(
                unique_identifier=unique_identifier,
                asset_type=acct.asset_type.value,
                identity_hash=identity,
            )
            outcome = "created"
        row.fip_id = fip_ids.get(acct.fip.external_code) if acct.fip else None
        row.account_ref_number = acct.account_ref_number
        row.masked_account_number = acct.masked_account_number
        row.link_ref_number = acct.link_ref_number
        row.fi_data_id = acct.fi_data_id
        row.account_type = acct.account_type
        row.link_status = acct.link_status
        row.last_fetch_run_id = run_id
        row.extra = acct.extra or None
        sess.add(row)
        if not self._commit(sess, result, "aa_accounts", acct.account_ref_number, outcome):
            # dependent rows need the account id
            return
        account_id = row.id

        if bundle.holder is not None:
            self._replace_holder(sess, account_id, bundle.holder, result)
        if bundle.summary is not None:
            self._replace_summary(sess, run_id, account_id, bundle.summary, result)

    def _replace_holder(
        self, sess: Session, account_id: int, holder: MappedHolder, result: WriteResult
    ) -> None:
        row = sess.exec(
            select(AccountHolderRecord).where(AccountHolderRecord.account_id == account_id)
        ).first()
        outcome = "updated"
        if row is None:
            row = AccountHolderRecord(account_id=account_id)
            outcome = "created"
        row.name = holder.name
        row.pan = holder.pan
        row.dob = holder.dob
        row.mobile = holder.mobile
        row.email = holder.email
        row.address = holder.address
        row.nominee = holder.nominee
        row.ckyc_compliance = holder.ckyc_compliance
        row.holder_type = holder.holder_type
        row.extra = holder.extra or None
        sess.add(row)
        self._commit(sess, result, "aa_account_holders", str(account_id), outcome)

    def _insert_transaction(
        self,
        sess: Session,
        run_id: int,
        account_id: int,
        account_hash: str,
        txn: MappedTransaction,
        result: WriteResult,
    ) -> None:
        identity = transaction_identity(account_hash, txn)
        existing = sess.exec(
            select(TransactionRecord.id).where(TransactionRecord.identity_hash == identity)
        ).first()
        if existing is not None:
            # immutable once stored
            result.bump("aa_transactions", "unchanged")
            return
        sess.add(
            TransactionRecord(
                account_id=account_id,
                fetch_run_id=run_id,
                txn_id=txn.txn_id,
                txn_type=txn.txn_type,
                mode=txn.mode,
                amount=txn.amount,  # type: ignore[arg-type]
                balance=txn.balance,
                narration=txn.narration,
                txn_timestamp=txn.txn_timestamp,
                value_date=txn.value_date,
                reference=txn.reference,
                identity_hash=identity,
                extra=txn.extra or None,
            )
        )
        self._commit(sess, result, "aa_transactions", txn.txn_id or identity, "created")

    # Layer C -----------------------------------------------------------------

    def _replace_summary(
        self, sess: Session, run_id: int, account_id: int, summary: MappedSummary, result: WriteResult
    ) -> None:
        row = sess.exec(select(SummaryRecord).where(SummaryRecord.account_id == account_id)).first()
        outcome = "updated"
        if row is None:
            row = SummaryRecord(account_id=account_id, asset_type=summary.asset_type.value)
            outcome = "created"
        # latest wins: columns absent from this fetch are cleared
        for column in SUMMARY_COLUMNS:
            setattr(row, column, summary.values.get(column))
        row.asset_type = summary.asset_type.value
        row.fetch_run_id = run_id
        sess.add(row)
        self._commit(sess, result, "aa_summaries", str(account_id), outcome)

    def _upsert_holding(
        self,
        sess: Session,
        run_id: int,
        account_id: int,
        account_hash: str,
        asset_type: str,
        holding: MappedHolding,
        result: WriteResult,
    ) -> None:
        identity = holding_identity(account_hash, holding)
        row = sess.exec(select(HoldingRecord).where(HoldingRecord.identity_hash == identity)).first()
        outcome = "updated"
        if row is None:
            row = HoldingRecord(account_id=account_id, asset_type=asset_type, identity_hash=identity)
            outcome = "created"
        row.fetch_run_id = run_id
        row.isin = holding.isin
        row.instrument_name = holding.instrument_name
        row.folio_number = holding.folio_number
        row.broker_code = holding.broker_code
        row.broker_name = holding.broker_name
        row.units = holding.units
        row.nav = holding.nav
        row.last_price = holding.last_price
        row.cost_value = holding.cost_value
        row.current_value = holding.current_value
        row.nav_date = holding.nav_date
        row.extra = holding.extra or None
        sess.add(row)
        self._commit(sess, result, "aa_holdings", holding.isin or identity, outcome)

    def _insert_snapshot(
        self,
        sess: Session,
        run_id: int,
        unique_identifier: str,
        snapshot: MappedSnapshot,
        result: WriteResult,
    ) -> None:
        sess.add(
            SnapshotRecord(
                unique_identifier=unique_identifier,
                fetch_run_id=run_id,
                snapshot_type=snapshot.snapshot_type,
                account_ref_number=snapshot.account_ref_number,
                generated_at=snapshot.generated_at,
                payload=snapshot.payload,
            )
        )
        self._commit(sess, result, "aa_snapshots", snapshot.snapshot_type, "created")
