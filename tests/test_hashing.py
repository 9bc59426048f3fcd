import datetime as _dt
from decimal import Decimal

from aa_domain.records import AssetType, FipRef, MappedAccount, MappedHolding, MappedTransaction
from aa_ingestion.hashing import (
    account_identity,
    content_hash,
    holding_identity,
    identity_hash,
    transaction_identity,
)


def test_identity_hash_is_stable_and_order_sensitive():
    assert identity_hash("A", "B", "C") == identity_hash("A", "B", "C")
    assert identity_hash("A", "B", "C") != identity_hash("A", "B", "D")
    assert identity_hash("A", "B") != identity_hash("B", "A")
    assert len(identity_hash("A")) == 64


def test_identity_hash_normalises_numbers():
    assert identity_hash(500) == identity_hash(500.0) == identity_hash("500.00") == identity_hash(Decimal("500.000"))
    assert identity_hash("1,250.50") == identity_hash(Decimal("1250.5"))


def test_identity_hash_keeps_zero_padded_identifiers():
    assert identity_hash("00123") != identity_hash("123")


def test_identity_hash_none_keeps_position():
    assert identity_hash(None, "x") == identity_hash("", "x")
    assert identity_hash(None, "x") != identity_hash("x", None)


def test_identity_hash_parts_containing_separators_do_not_collide():
    assert identity_hash("a|b", "c") != identity_hash("a", "b|c")
    assert identity_hash("a,b", "c") != identity_hash("a", "b,c")
    assert identity_hash('a"', "b") != identity_hash("a", '"b')
    assert identity_hash("ab") != identity_hash("a", "b")


def test_identity_hash_datetimes_compare_in_utc():
    naive = _dt.datetime(2024, 1, 5, 10, 0)
    aware = _dt.datetime(2024, 1, 5, 15, 30, tzinfo=_dt.timezone(_dt.timedelta(hours=5, minutes=30)))
    assert identity_hash(naive) == identity_hash(aware)


def test_content_hash_ignores_key_order():
    assert content_hash({"a": 1, "b": [1, 2]}) == content_hash({"b": [1, 2], "a": 1})
    assert content_hash({"a": 1}) != content_hash({"a": 2})


def test_record_identities():
    acct = MappedAccount(AssetType.DEPOSIT, "FV-0001", fip=FipRef("FINVU-BANK", "Finvu Bank"))
    same = MappedAccount(AssetType.DEPOSIT, "FV-0001", fip=FipRef("FINVU-BANK"), link_status="LINKED")
    other_asset = MappedAccount(AssetType.TERM_DEPOSIT, "FV-0001", fip=FipRef("FINVU-BANK"))
    assert account_identity("u1", acct) == account_identity("u1", same)
    assert account_identity("u1", acct) != account_identity("u1", other_asset)
    assert account_identity("u1", acct) != account_identity("u2", acct)

    ah = account_identity("u1", acct)
    ts = _dt.datetime(2024, 1, 5, 10, 0)
    t1 = MappedTransaction(amount=Decimal("500"), txn_timestamp=ts, narration="ATM", txn_id="a")
    t2 = MappedTransaction(amount=Decimal("500.00"), txn_timestamp=ts, narration="ATM", txn_id="b")
    assert transaction_identity(ah, t1) == transaction_identity(ah, t2)

    h1 = MappedHolding(isin="INF1", folio_number="F-1", units=Decimal("1"))
    h2 = MappedHolding(isin="INF1", folio_number="F-1", units=Decimal("2"))
    h3 = MappedHolding(isin="INF1", folio_number="F-2")
    assert holding_identity(ah, h1) == holding_identity(ah, h2)
    assert holding_identity(ah, h1) != holding_identity(ah, h3)
