"""Datetime helpers common to multiple services.

Provides:
    parse_iso8601(s): robust ISO-8601 parser that always returns an *aware* UTC
        datetime instance (trailing "Z", explicit offsets, fractional seconds).
    parse_provider_datetime(v): accepts everything ``parse_iso8601`` does plus
        the shapes the AA provider emits (``dd-mm-yyyy``, ``dd/mm/yyyy``, epoch
        seconds or milliseconds as int or digit string).

Keeping all parsing here gives us a single spot to patch if behavior changes.
"""
from __future__ import annotations

import datetime as _dt
import re
from typing import Union

from dateutil.parser import isoparse as _isoparse
from dateutil.parser import parse as _parse

__all__ = ["parse_iso8601", "parse_provider_datetime"]

_DAY_FIRST = re.compile(r"^\d{1,2}[-/]\d{1,2}[-/]\d{4}")
_DIGITS = re.compile(r"^\d{9,13}$")

# epoch values above this are milliseconds
_MILLIS_THRESHOLD = 100_000_000_000


def _ensure_utc(dt: _dt.datetime) -> _dt.datetime:
    """Return *dt* converted to UTC and TZ-aware."""
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        # naive → assume already UTC
        return dt.replace(tzinfo=_dt.timezone.utc)
    return dt.astimezone(_dt.timezone.utc)


def parse_iso8601(value: Union[str, _dt.datetime]) -> _dt.datetime:
    """Parse *value* into a timezone-aware UTC datetime.

    Accepts ISO-8601 strings or datetime objects. If *value* is already a
    datetime, it will be normalised to UTC.
    """
    if isinstance(value, _dt.datetime):
        return _ensure_utc(value)

    if not isinstance(value, str):
        raise TypeError("parse_iso8601 expects str or datetime, got " + type(value).__name__)

    try:
        dt = _isoparse(value)
    except Exception as exc:  # pragma: no cover – caller will decide
        raise ValueError(f"invalid ISO-8601 datetime: {value}") from exc

    return _ensure_utc(dt)


def _from_epoch(raw: float) -> _dt.datetime:
    if raw > _MILLIS_THRESHOLD:
        raw = raw / 1000.0
    return _dt.datetime.fromtimestamp(raw, tz=_dt.timezone.utc)


def parse_provider_datetime(value: Union[str, int, float, _dt.date]) -> _dt.datetime:
    """Parse any provider date/time representation into an aware UTC datetime.

    Raises ``ValueError`` (or ``TypeError`` for unsupported types) when the
    value cannot be interpreted; callers decide whether that is fatal.
    """
    if isinstance(value, bool):
        raise TypeError("booleans are not datetimes")
    if isinstance(value, _dt.datetime):
        return _ensure_utc(value)
    if isinstance(value, _dt.date):
        return _dt.datetime(value.year, value.month, value.day, tzinfo=_dt.timezone.utc)
    if isinstance(value, (int, float)):
        return _from_epoch(float(value))
    if not isinstance(value, str):
        raise TypeError("unsupported datetime value of type " + type(value).__name__)

    text = value.strip()
    if not text:
        raise ValueError("empty datetime string")
    if _DIGITS.match(text):
        return _from_epoch(float(text))
    if _DAY_FIRST.match(text):
        try:
            return _ensure_utc(_parse(text, dayfirst=True))
        except (ValueError, OverflowError) as exc:
            raise ValueError(f"invalid datetime: {value}") from exc
    try:
        return parse_iso8601(text)
    except ValueError:
        pass
    try:
        return _ensure_utc(_parse(text))
    except (ValueError, OverflowError) as exc:
        raise ValueError(f"invalid datetime: {value}") from exc
