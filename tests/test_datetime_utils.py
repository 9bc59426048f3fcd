import datetime as _dt

import pytest

from common.datetime import parse_iso8601, parse_provider_datetime


@pytest.mark.parametrize(
    "s,expected",
    [
        ("2025-08-27T12:00:00Z", _dt.datetime(2025, 8, 27, 12, 0, 0, tzinfo=_dt.timezone.utc)),
        ("2025-08-27T12:00:00+00:00", _dt.datetime(2025, 8, 27, 12, 0, 0, tzinfo=_dt.timezone.utc)),
        ("2025-08-27T07:00:00-05:00", _dt.datetime(2025, 8, 27, 12, 0, 0, tzinfo=_dt.timezone.utc)),
        ("2025-08-27T12:00:00.123456Z", _dt.datetime(2025, 8, 27, 12, 0, 0, 123456, tzinfo=_dt.timezone.utc)),
    ],
)
def test_parse_iso8601(s, expected):
    assert parse_iso8601(s) == expected


def test_parse_datetime_roundtrip():
    dt = _dt.datetime(2025, 1, 1, 0, 0, tzinfo=_dt.timezone.utc)
    assert parse_iso8601(dt) is dt  # same object when already UTC-aware


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("05-01-2024", _dt.datetime(2024, 1, 5, tzinfo=_dt.timezone.utc)),
        ("05/01/2024", _dt.datetime(2024, 1, 5, tzinfo=_dt.timezone.utc)),
        ("2024-01-05", _dt.datetime(2024, 1, 5, tzinfo=_dt.timezone.utc)),
        (1704448800, _dt.datetime(2024, 1, 5, 10, 0, tzinfo=_dt.timezone.utc)),
        (1704448800000, _dt.datetime(2024, 1, 5, 10, 0, tzinfo=_dt.timezone.utc)),
        ("1704448800000", _dt.datetime(2024, 1, 5, 10, 0, tzinfo=_dt.timezone.utc)),
        (_dt.date(2024, 1, 5), _dt.datetime(2024, 1, 5, tzinfo=_dt.timezone.utc)),
    ],
)
def test_parse_provider_datetime_shapes(raw, expected):
    assert parse_provider_datetime(raw) == expected


@pytest.mark.parametrize("raw", ["", "not a date", "32-13-2024"])
def test_parse_provider_datetime_rejects_garbage(raw):
    with pytest.raises(ValueError):
        parse_provider_datetime(raw)


def test_parse_provider_datetime_rejects_bool():
    with pytest.raises(TypeError):
        parse_provider_datetime(True)


def test_parse_provider_datetime_converts_offsets_to_utc():
    parsed = parse_provider_datetime("2024-01-05T15:30:00+05:30")
    assert parsed.tzinfo is _dt.timezone.utc
    assert parsed == _dt.datetime(2024, 1, 5, 10, 0, tzinfo=_dt.timezone.utc)
