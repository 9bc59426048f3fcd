"""Map holding endpoints (MF holding-folio, equities holding-broker, ETF demat-holding).

Holdings are not account-scoped on the wire; the caller attaches the rows to
the account picked by the selector.
"""
from __future__ import annotations

from typing import Any, Dict, Iterator, List

from aa_domain.records import FieldError, MappedHolding, MappingResult

from .fields import FieldSpec, Kind, RenameTable, as_records, collect_extra, unwrap

__all__ = [
    "map_mf_holdings",
    "map_equity_holdings",
    "map_demat_holdings",
    "MF_HOLDING_TABLE",
    "EQUITY_HOLDING_TABLE",
    "ETF_HOLDING_TABLE",
]

MF_HOLDING_TABLE = RenameTable(
    "mf_holding",
    [
        FieldSpec("isin", ("isin",)),
        FieldSpec("instrument_name", ("schemeName", "isinDescription", "schemeTitle")),
        FieldSpec("folio_number", ("folioNo", "folioNumber")),
        FieldSpec("units", ("closingUnits", "units"), Kind.NUMBER),
        FieldSpec("nav", ("nav", "currentNav"), Kind.NUMBER),
        FieldSpec("nav_date", ("navDate",), Kind.DATE),
        FieldSpec("cost_value", ("costValue", "investedValue"), Kind.NUMBER),
        FieldSpec("current_value", ("currentMktValue", "currentValue"), Kind.NUMBER),
    ],
)

EQUITY_HOLDING_TABLE = RenameTable(
    "equity_holding",
    [
        FieldSpec("isin", ("isin",)),
        FieldSpec("instrument_name", ("issuerName", "isinDescription", "companyName", "symbol")),
        FieldSpec("broker_code", ("brokerId", "brokerCode")),
        FieldSpec("broker_name", ("brokerName",)),
        FieldSpec("units", ("units", "freeHoldingUnits", "quantity"), Kind.NUMBER),
        FieldSpec("last_price", ("lastTradedPrice", "ltp", "price"), Kind.NUMBER),
        FieldSpec("cost_value", ("costValue", "investedValue"), Kind.NUMBER),
        FieldSpec("current_value", ("currentValue", "holdingValue", "value"), Kind.NUMBER),
    ],
)

ETF_HOLDING_TABLE = RenameTable(
    "etf_holding",
    [
        FieldSpec("isin", ("isin",)),
        FieldSpec("instrument_name", ("schemeName", "issuerName", "isinDescription")),
        FieldSpec("broker_code", ("dematId", "brokerId", "fiDataId")),
        FieldSpec("broker_name", ("brokerName",)),
        FieldSpec("units", ("units", "quantity"), Kind.NUMBER),
        FieldSpec("last_price", ("lastTradedPrice", "ltp"), Kind.NUMBER),
        FieldSpec("cost_value", ("costValue", "investedValue"), Kind.NUMBER),
        FieldSpec("current_value", ("currentValue", "value"), Kind.NUMBER),
    ],
)

# demat-level keys copied onto each holding row
_DEMAT_KEYS = ("dematId", "fiDataId", "brokerId", "brokerName")


def _explode(holding: Dict[str, Any], child_key: str) -> Iterator[Dict[str, Any]]:
    """One merged row per child (folio/broker); child keys override the parent."""
    parent = {k: v for k, v in holding.items() if k != child_key}
    children = holding.get(child_key)
    children = [c for c in children if isinstance(c, dict)] if isinstance(children, list) else []
    if not children:
        yield parent
        return
    for child in children:
        yield {**parent, **child}


def _map(rows: List[Dict[str, Any]], child_key: str, table: RenameTable) -> MappingResult:
    result = MappingResult()
    errors: List[FieldError] = result.field_errors
    for holding in rows:
        for row in _explode(holding, child_key):
            values = table.apply(row, errors)
            result.holdings.append(MappedHolding(**values, extra=collect_extra(row, [table])))
    return result


def map_mf_holdings(payload: Any) -> MappingResult:
    body = unwrap(payload, "holdingFolios", "holdings")
    return _map(as_records(body, "holdingFolios", "holdings"), "folios", MF_HOLDING_TABLE)


def map_equity_holdings(payload: Any) -> MappingResult:
    body = unwrap(payload, "holdings", "dematHoldings")
    return _map(as_records(body, "holdings", "dematHoldings"), "brokers", EQUITY_HOLDING_TABLE)


def _is_etf(row: Dict[str, Any]) -> bool:
    kind = row.get("type") or row.get("holdingType") or "ETF"
    return str(kind).strip().upper() != "EQUITY"


def map_demat_holdings(payload: Any) -> MappingResult:
    """ETF lines from the combined equities-and-ETFs demat-holding response.

    ``demat`` is a list of demat accounts (or a single object), each with its
    own ``holdings``. Equity lines are left to the holding-broker endpoint.
    """
    body = unwrap(payload, "demat", "dematAccounts")
    demats = body.get("demat", body.get("dematAccounts")) if isinstance(body, dict) else body
    if isinstance(demats, dict):
        demats = [demats]
    result = MappingResult()
    for demat in as_records(demats or []):
        parent = {k: demat[k] for k in _DEMAT_KEYS if k in demat}
        for holding in as_records(demat.get("holdings") or []):
            if not _is_etf(holding):
                continue
            row = {**parent, **holding}
            values = ETF_HOLDING_TABLE.apply(row, result.field_errors)
            extra = collect_extra(row, [ETF_HOLDING_TABLE], ignore=("type", "holdingType"))
            result.holdings.append(MappedHolding(**values, extra=extra))
    return result
