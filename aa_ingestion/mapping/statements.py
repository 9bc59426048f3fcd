"""Map ``user-account-statement`` responses into transactions."""
from __future__ import annotations

from typing import Any

from aa_domain.records import MappedTransaction, MappingResult

from .fields import FieldSpec, Kind, RenameTable, as_records, collect_extra, unwrap

__all__ = ["map_statement", "TRANSACTION_TABLE"]

TRANSACTION_TABLE = RenameTable(
    "transaction",
    [
        FieldSpec("txn_id", ("txnId", "transactionId")),
        FieldSpec("txn_type", ("type", "txnType", "transactionType")),
        FieldSpec("mode", ("mode", "transactionMode")),
        FieldSpec("amount", ("amount", "transactionAmount"), Kind.NUMBER),
        FieldSpec("balance", ("currentBalance", "balance"), Kind.NUMBER),
        FieldSpec("narration", ("narration", "description")),
        FieldSpec(
            "txn_timestamp",
            ("transactionTimestamp", "txnTimestamp", "transactionDateTime", "valueDate"),
            Kind.DATETIME,
        ),
        FieldSpec("value_date", ("valueDate",), Kind.DATE),
        FieldSpec("reference", ("reference", "txnReference")),
    ],
)


def map_statement(payload: Any) -> MappingResult:
    result = MappingResult()
    body = unwrap(payload, "transactions", "statement")
    for row in as_records(body, "transactions", "statement"):
        values = TRANSACTION_TABLE.apply(row, result.field_errors)
        result.transactions.append(
            MappedTransaction(**values, extra=collect_extra(row, [TRANSACTION_TABLE]))
        )
    return result
