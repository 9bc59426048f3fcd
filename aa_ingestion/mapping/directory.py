"""Map the FIP and broker directories."""
from __future__ import annotations

import logging
from typing import Any

from aa_domain.records import BrokerRef, FieldError, FipRef, MappingResult

from .fields import FieldSpec, Kind, RenameTable, as_records, collect_extra, unwrap

__all__ = ["map_fips", "map_brokers"]

_LOG = logging.getLogger(__name__)

FIP_TABLE = RenameTable(
    "fip",
    [
        FieldSpec("external_code", ("fipId", "fipCode", "id")),
        FieldSpec("name", ("fipName", "name")),
        FieldSpec("is_active", ("isActive", "enabled"), Kind.BOOLEAN),
    ],
)

BROKER_TABLE = RenameTable(
    "broker",
    [
        FieldSpec("external_code", ("brokerId", "brokerCode", "id")),
        FieldSpec("name", ("brokerName", "name")),
    ],
)


def _missing_code(result: MappingResult, record: str, row: dict) -> None:
    result.field_errors.append(FieldError(record, "external_code", None, "missing identifier"))
    _LOG.warning("%s entry without identifier skipped (keys=%s)", record, sorted(row))


def map_fips(payload: Any) -> MappingResult:
    result = MappingResult()
    body = unwrap(payload, "fips", "fipData")
    for row in as_records(body, "fips", "fipData"):
        values = FIP_TABLE.apply(row, result.field_errors)
        if not values["external_code"]:
            _missing_code(result, "fip", row)
            continue
        result.fips.append(
            FipRef(
                external_code=values["external_code"],
                name=values["name"],
                is_active=True if values["is_active"] is None else values["is_active"],
                extra=collect_extra(row, [FIP_TABLE]),
            )
        )
    return result


def map_brokers(payload: Any) -> MappingResult:
    result = MappingResult()
    body = unwrap(payload, "brokers")
    for row in as_records(body, "brokers"):
        values = BROKER_TABLE.apply(row, result.field_errors)
        if not values["external_code"]:
            _missing_code(result, "broker", row)
            continue
        result.brokers.append(
            BrokerRef(
                external_code=values["external_code"],
                name=values["name"],
                extra=collect_extra(row, [BROKER_TABLE]),
            )
        )
    return result
