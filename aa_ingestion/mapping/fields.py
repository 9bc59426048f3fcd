"""Rename tables and value coercion shared by every mapper.

A :class:`RenameTable` lists, per canonical column, the provider aliases to
look for and the kind to coerce to. The first alias holding a non-empty value
wins. A value that fails coercion is nulled and reported as a
:class:`~aa_domain.records.FieldError`; it never aborts the record.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from aa_domain.records import FieldError
from aa_observability.metrics import aa_mapping_field_errors_total
from common.datetime import parse_provider_datetime

from ..errors import MappingError

__all__ = ["Kind", "FieldSpec", "RenameTable", "coerce", "collect_extra", "unwrap", "as_records", "first_present"]

_LOG = logging.getLogger(__name__)


class Kind(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    LIST = "list"


_TRUE = {"true", "yes", "y", "1"}
_FALSE = {"false", "no", "n", "0"}


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise TypeError("boolean is not a number")
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, float):
        number = Decimal(str(value))
    elif isinstance(value, str):
        try:
            number = Decimal(value.strip().replace(",", ""))
        except InvalidOperation as exc:
            raise ValueError(f"not a number: {value!r}") from exc
    else:
        raise TypeError(f"cannot read {type(value).__name__} as a number")
    if not number.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return number


def coerce(value: Any, kind: Kind) -> Any:
    """Coerce one provider value; raise ``ValueError``/``TypeError`` on failure."""
    if kind is Kind.TEXT:
        if isinstance(value, (dict, list)):
            raise TypeError(f"expected a scalar, got {type(value).__name__}")
        return str(value).strip()
    if kind is Kind.NUMBER:
        return _to_decimal(value)
    if kind is Kind.INTEGER:
        number = _to_decimal(value)
        if number != number.to_integral_value():
            raise ValueError(f"not an integer: {value!r}")
        return int(number)
    if kind is Kind.BOOLEAN:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError(f"not a boolean: {value!r}")
    if kind is Kind.DATE:
        return parse_provider_datetime(value).date()
    if kind is Kind.DATETIME:
        return parse_provider_datetime(value)
    if kind is Kind.LIST:
        if not isinstance(value, list):
            raise TypeError(f"expected a list, got {type(value).__name__}")
        return value
    raise ValueError(f"unknown kind {kind}")  # pragma: no cover


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


@dataclass(slots=True, frozen=True)
class FieldSpec:
    column: str
    aliases: tuple[str, ...]
    kind: Kind = Kind.TEXT


class RenameTable:
    """Provider field names to canonical columns for one record type."""

    def __init__(self, record: str, specs: Iterable[FieldSpec]) -> None:
        self.record = record
        self.specs = tuple(specs)
        self.aliases = frozenset(a for spec in self.specs for a in spec.aliases)

    @property
    def columns(self) -> List[str]:
        return [spec.column for spec in self.specs]

    def apply(self, source: Mapping[str, Any], errors: List[FieldError]) -> Dict[str, Any]:
        """Return ``{column: value}`` for every spec; misses are None."""
        values: Dict[str, Any] = {}
        for spec in self.specs:
            raw = next((source[a] for a in spec.aliases if a in source and not _is_empty(source[a])), None)
            if raw is None:
                values[spec.column] = None
                continue
            try:
                values[spec.column] = coerce(raw, spec.kind)
            except (ValueError, TypeError, OverflowError) as exc:
                values[spec.column] = None
                errors.append(FieldError(self.record, spec.column, raw, str(exc)))
                aa_mapping_field_errors_total.labels(spec.kind.value).inc()
                _LOG.warning(
                    "field %s.%s nulled: %s (value=%r)",
                    self.record,
                    spec.column,
                    exc,
                    raw,
                )
        return values


def collect_extra(
    source: Mapping[str, Any],
    tables: Iterable[RenameTable],
    ignore: Iterable[str] = (),
) -> Dict[str, Any]:
    """Provider keys consumed by none of *tables* (schema drift bucket)."""
    consumed = set(ignore)
    for table in tables:
        consumed |= table.aliases
    return {k: v for k, v in source.items() if k not in consumed}


def unwrap(payload: Any, *keys: str) -> Any:
    """Strip one ``{data: ...}`` envelope when none of *keys* is at the top."""
    if not isinstance(payload, (dict, list)):
        raise MappingError(f"expected a JSON object or array, got {type(payload).__name__}")
    if isinstance(payload, dict) and not any(k in payload for k in keys):
        inner = payload.get("data")
        if isinstance(inner, (dict, list)):
            return inner
    return payload


def as_records(payload: Any, *keys: str) -> List[Dict[str, Any]]:
    """Return the first list found under *keys* (or the payload if it is a list)."""
    if isinstance(payload, list):
        items: Any = payload
    elif isinstance(payload, dict):
        items = next((payload[k] for k in keys if isinstance(payload.get(k), list)), [])
    else:
        items = []
    return [item for item in items if isinstance(item, dict)]


def first_present(*values: Optional[Any]) -> Optional[Any]:
    return next((v for v in values if not _is_empty(v)), None)
