from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import DateTime
from sqlmodel import Session, SQLModel, func, select

from aa_domain.account_models import AccountHolderRecord, AccountRecord, FipRecord, TransactionRecord
from aa_domain.audit_models import FetchRun, FetchRunStatus, PayloadRole, RawPayload
from aa_domain.derived_models import HoldingRecord, SnapshotRecord, SummaryRecord
from aa_domain.records import AssetType, MappedTransaction, MappingResult
from aa_ingestion.errors import PersistenceError, RunStateError
from aa_ingestion.hashing import account_identity
from aa_ingestion.mapping import map_deposit, map_insights, map_mf_holdings, map_mutual_fund, map_statement
from aa_ingestion.writer import PersistenceWriter

UID = "8956545791"
UTC = timezone.utc


@pytest.fixture
def writer(session_factory):
    return PersistenceWriter(session_factory)


def _count(engine, model) -> int:
    with Session(engine) as sess:
        return sess.exec(select(func.count()).select_from(model)).one()


def _run(writer, endpoint="/deposit/user-linked-accounts", asset="DEPOSIT") -> int:
    return writer.open_run(UID, asset, endpoint)


def _scope(mapped, ref: str) -> str:
    bundle = next(b for b in mapped.accounts if b.account.account_ref_number == ref)
    return account_identity(UID, bundle.account)


def test_fetch_run_lifecycle(writer, engine):
    run_id = _run(writer)
    writer.record_payload(run_id, PayloadRole.REQUEST, {"uniqueIdentifier": UID})
    writer.record_payload(run_id, PayloadRole.RESPONSE, {"fipData": []})
    writer.finalize_run(run_id, FetchRunStatus.FETCHED, records_count=3, http_status=200)

    with Session(engine) as sess:
        run = sess.get(FetchRun, run_id)
        assert run.status == "Fetched"
        assert run.records_count == 3
        assert run.fetched_at is not None
        roles = sess.exec(select(RawPayload.role).where(RawPayload.fetch_run_id == run_id)).all()
    assert sorted(roles) == ["Request", "Response"]


def test_fetch_run_finalized_exactly_once(writer):
    run_id = _run(writer)
    with pytest.raises(RunStateError):
        writer.finalize_run(run_id, FetchRunStatus.PENDING)
    writer.finalize_run(run_id, FetchRunStatus.FAILED, error_message="boom")
    with pytest.raises(RunStateError):
        writer.finalize_run(run_id, FetchRunStatus.FETCHED)
    with pytest.raises(RunStateError):
        writer.finalize_run(run_id + 100, FetchRunStatus.FETCHED)


def test_linked_accounts_idempotent(writer, engine, deposit_linked):
    first = writer.persist(_run(writer), UID, map_deposit(deposit_linked))
    assert first.counts["aa_accounts"]["created"] == 3
    assert first.counts["aa_fips"]["created"] == 2
    assert first.errors == []

    second = writer.persist(_run(writer), UID, map_deposit(deposit_linked))
    assert second.counts["aa_accounts"]["updated"] == 3
    assert "created" not in second.counts["aa_accounts"]
    assert second.counts["aa_fips"]["unchanged"] == 2

    assert _count(engine, AccountRecord) == 3
    assert _count(engine, FipRecord) == 2
    assert _count(engine, AccountHolderRecord) == 2
    assert _count(engine, SummaryRecord) == 3


def test_account_links_to_fip(writer, engine, deposit_linked):
    writer.persist(_run(writer), UID, map_deposit(deposit_linked))
    with Session(engine) as sess:
        fip = sess.exec(select(FipRecord).where(FipRecord.external_code == "FINVU-BANK")).one()
        refs = sess.exec(
            select(AccountRecord.account_ref_number).where(AccountRecord.fip_id == fip.id)
        ).all()
    assert sorted(refs) == ["FV-0001", "FV-0002"]


def test_summary_latest_wins(writer, engine, deposit_linked):
    mapped = map_deposit(deposit_linked)
    writer.persist(_run(writer), UID, mapped)

    changed = map_deposit(deposit_linked)
    bundle = next(b for b in changed.accounts if b.account.account_ref_number == "FV-0001")
    bundle.summary.values = {"current_balance": Decimal("99.00")}
    writer.persist(_run(writer), UID, changed)

    with Session(engine) as sess:
        account = sess.exec(
            select(AccountRecord).where(AccountRecord.account_ref_number == "FV-0001")
        ).one()
        summary = sess.exec(select(SummaryRecord).where(SummaryRecord.account_id == account.id)).one()
    assert summary.current_balance == Decimal("99.00")
    assert summary.currency is None
    assert summary.ifsc is None


def test_duplicate_transactions_collapse(writer, engine, deposit_linked, deposit_statement):
    linked = map_deposit(deposit_linked)
    writer.persist(_run(writer), UID, linked)
    scope = _scope(linked, "FV-0001")

    first = writer.persist(_run(writer), UID, map_statement(deposit_statement), scope_account_hash=scope)
    assert first.counts["aa_transactions"] == {"created": 2, "unchanged": 1}
    assert first.written == 3

    again = writer.persist(_run(writer), UID, map_statement(deposit_statement), scope_account_hash=scope)
    assert again.counts["aa_transactions"] == {"unchanged": 3}
    assert _count(engine, TransactionRecord) == 2


def test_same_transaction_on_another_account_is_distinct(writer, engine, deposit_linked, deposit_statement):
    linked = map_deposit(deposit_linked)
    writer.persist(_run(writer), UID, linked)
    for ref in ("FV-0001", "FV-0002"):
        writer.persist(_run(writer), UID, map_statement(deposit_statement), scope_account_hash=_scope(linked, ref))
    assert _count(engine, TransactionRecord) == 4


def test_failing_record_does_not_stop_siblings(writer, engine, deposit_linked):
    linked = map_deposit(deposit_linked)
    writer.persist(_run(writer), UID, linked)
    mapped = MappingResult(
        transactions=[
            MappedTransaction(amount=None, txn_timestamp=datetime(2024, 1, 1, tzinfo=UTC), narration="no amount"),
            MappedTransaction(amount=Decimal("5"), txn_timestamp=datetime(2024, 1, 2, tzinfo=UTC), narration="ok"),
        ]
    )
    result = writer.persist(_run(writer), UID, mapped, scope_account_hash=_scope(linked, "FV-0001"))
    assert result.counts["aa_transactions"] == {"failed": 1, "created": 1}
    assert len(result.errors) == 1
    assert result.errors[0].table == "aa_transactions"
    assert result.written == 1
    assert _count(engine, TransactionRecord) == 1


def test_scoped_rows_need_a_stored_account(writer, deposit_statement):
    mapped = map_statement(deposit_statement)
    with pytest.raises(PersistenceError):
        writer.persist(_run(writer), UID, mapped)
    with pytest.raises(PersistenceError):
        writer.persist(_run(writer), UID, mapped, scope_account_hash="0" * 64)


def test_holdings_upsert_per_folio(writer, engine, mf_linked, mf_holdings):
    linked = map_mutual_fund(mf_linked)
    writer.persist(_run(writer, asset="MUTUAL_FUND"), UID, linked)
    scope = _scope(linked, "MF-1")

    first = writer.persist(
        _run(writer, asset="MUTUAL_FUND"), UID, map_mf_holdings(mf_holdings),
        scope_account_hash=scope, asset_type=AssetType.MUTUAL_FUND,
    )
    assert first.counts["aa_holdings"] == {"created": 2}

    again = writer.persist(
        _run(writer, asset="MUTUAL_FUND"), UID, map_mf_holdings(mf_holdings),
        scope_account_hash=scope, asset_type=AssetType.MUTUAL_FUND,
    )
    assert again.counts["aa_holdings"] == {"updated": 2}

    with Session(engine) as sess:
        rows = sess.exec(select(HoldingRecord).order_by(HoldingRecord.folio_number)).all()
    assert [(r.folio_number, r.asset_type) for r in rows] == [("F-1", "MUTUAL_FUND"), ("F-2", "MUTUAL_FUND")]
    assert rows[0].nav == Decimal("100.25")
    assert rows[1].nav is None


def test_snapshots_append(writer, engine):
    for _ in range(2):
        writer.persist(_run(writer), UID, map_insights({"insights": {"m": 1}}, AssetType.DEPOSIT, "FV-0001"))
    with Session(engine) as sess:
        rows = sess.exec(select(SnapshotRecord)).all()
    assert len(rows) == 2
    assert {r.snapshot_type for r in rows} == {"DEPOSIT_INSIGHTS"}
    assert rows[0].payload == {"insights": {"m": 1}}


def test_every_timestamp_column_is_timezone_aware():
    columns = [
        (table.name, column.name)
        for table in SQLModel.metadata.sorted_tables
        if table.name.startswith("aa_")
        for column in table.columns
        if isinstance(column.type, DateTime)
    ]
    assert ("aa_fetch_runs", "requested_at") in columns
    assert ("aa_transactions", "txn_timestamp") in columns
    for table_name, column_name in columns:
        column = SQLModel.metadata.tables[table_name].columns[column_name]
        assert column.type.timezone, f"{table_name}.{column_name} is naive"


def test_aware_timestamps_are_stored(writer, engine, deposit_linked, deposit_statement):
    linked = map_deposit(deposit_linked)
    writer.persist(_run(writer), UID, linked)
    run_id = _run(writer, "/deposit/user-account-statement")
    writer.persist(run_id, UID, map_statement(deposit_statement), scope_account_hash=_scope(linked, "FV-0001"))
    writer.finalize_run(run_id, FetchRunStatus.FETCHED)

    with Session(engine) as sess:
        run = sess.get(FetchRun, run_id)
        stamps = sess.exec(select(TransactionRecord.txn_timestamp).order_by(TransactionRecord.txn_timestamp)).all()
        balance_at = sess.exec(select(SummaryRecord.balance_datetime).where(SummaryRecord.ifsc == "FINV0000001")).one()
    # sqlite hands back the UTC wall time without tzinfo
    assert [s.replace(tzinfo=UTC) for s in stamps] == [
        datetime(2024, 1, 5, 10, 0, tzinfo=UTC),
        datetime(2024, 1, 6, 9, 30, tzinfo=UTC),
    ]
    assert balance_at.replace(tzinfo=UTC) == datetime(2024, 1, 5, 10, 0, tzinfo=UTC)
    assert run.requested_at is not None and run.fetched_at is not None
