"""Deterministic identity and content hashes.

``identity_hash`` is the idempotency key for accounts, holdings and
transactions. Parts are normalised so that logically equal values hash
equally (``500``, ``500.0`` and ``"500.00"`` are the same amount) and
encoded as a JSON array in the order given, so a separator inside one part
cannot shift the boundary between parts. Callers own the ordering.
"""
from __future__ import annotations

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from common.datetime import parse_provider_datetime

from aa_domain.records import MappedAccount, MappedHolding, MappedTransaction

__all__ = [
    "identity_hash",
    "content_hash",
    "account_identity",
    "holding_identity",
    "transaction_identity",
]


def _plain_number(value: Decimal) -> str:
    if not value.is_finite():
        return str(value)
    text = format(value.normalize(), "f")
    return "0" if text in ("-0", "") else text


def _normalize(part: Any) -> str:
    if part is None:
        return ""
    if isinstance(part, bool):
        return "true" if part else "false"
    if isinstance(part, Decimal):
        return _plain_number(part)
    if isinstance(part, (int, float)):
        return _plain_number(Decimal(str(part)))
    if isinstance(part, datetime):
        return parse_provider_datetime(part).isoformat()
    if isinstance(part, date):
        return part.isoformat()
    text = str(part).strip()
    try:
        return _plain_number(Decimal(text.replace(",", ""))) if _looks_numeric(text) else text
    except InvalidOperation:
        return text


def _looks_numeric(text: str) -> bool:
    stripped = text.replace(",", "").lstrip("+-")
    if len(stripped) > 1 and stripped.startswith("0") and "." not in stripped:
        # zero-padded identifiers such as account or folio numbers
        return False
    return bool(stripped) and stripped.replace(".", "", 1).isdigit()


def identity_hash(*parts: Any) -> str:
    """SHA-256 hex digest over the JSON array of normalised *parts*."""
    normalised = [_normalize(p) for p in parts]
    blob = json.dumps(normalised, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return hashlib.sha256(blob).hexdigest()


def content_hash(obj: Any) -> str:
    """SHA-256 of canonical JSON (sorted keys, compact separators)."""
    blob = json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str).encode()
    return hashlib.sha256(blob).hexdigest()


# Record identities ----------------------------------------------------------

def account_identity(unique_identifier: str, account: MappedAccount) -> str:
    fip_code: Optional[str] = account.fip.external_code if account.fip else None
    return identity_hash(unique_identifier, fip_code, account.account_ref_number, account.asset_type.value)


def holding_identity(account_hash: str, holding: MappedHolding) -> str:
    return identity_hash(account_hash, holding.isin, holding.position_key)


def transaction_identity(account_hash: str, txn: MappedTransaction) -> str:
    return identity_hash(account_hash, txn.amount, txn.txn_timestamp, txn.narration)
