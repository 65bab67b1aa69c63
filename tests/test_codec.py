from datetime import datetime, timedelta, timezone

import pytest
from kv_record_store import Schema
from kv_record_store.codec import coerce_timestamp, decode, encode, format_timestamp, parse_timestamp

def make_schema():
    return Schema({"id": "string", "at": "date", "meta": "object", "tags": "array", "n": "number"})

def test_canonical_timestamp_form():
    dt = datetime(2024, 1, 5, 12, 30, 1, 250000, tzinfo=timezone.utc)
    assert format_timestamp(dt) == "2024-01-05T12:30:01.250000Z"
    # Offsets are normalized to UTC
    local = datetime(2024, 1, 5, 14, 30, 1, 250000, tzinfo=timezone(timedelta(hours=2)))
    assert format_timestamp(local) == "2024-01-05T12:30:01.250000Z"

def test_canonical_timestamp_sorts_chronologically():
    base = datetime(2023, 12, 31, 23, 59, 59, tzinfo=timezone.utc)
    stamps = [base + timedelta(microseconds=1), base, base + timedelta(days=400),
              base - timedelta(days=9000), base + timedelta(seconds=1)]
    as_text = [format_timestamp(s) for s in stamps]
    assert sorted(as_text) == [format_timestamp(s) for s in sorted(stamps)]

def test_naive_timestamp_rejected():
    with pytest.raises(ValueError):
        format_timestamp(datetime(2024, 1, 1))
    with pytest.raises(ValueError):
        parse_timestamp("2024-01-01T00:00:00")

def test_parse_accepts_z_and_offsets():
    assert parse_timestamp("2024-01-01T00:00:00Z") == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert parse_timestamp("2024-01-01T02:00:00+02:00") == datetime(2024, 1, 1, tzinfo=timezone.utc)

def test_coerce_timestamp():
    dt = datetime(2024, 1, 2, tzinfo=timezone.utc)
    assert coerce_timestamp(dt) is dt
    assert coerce_timestamp("2024-01-02T00:00:00Z") == dt
    with pytest.raises(TypeError):
        coerce_timestamp(1704153600)

def test_encode_renders_dates_only():
    rec = {"id": "a", "at": datetime(2024, 1, 1, tzinfo=timezone.utc), "meta": {"x": 1}, "tags": [1], "n": 2}
    stored = encode(rec, make_schema())
    assert stored == {"id": "a", "at": "2024-01-01T00:00:00.000000Z", "meta": {"x": 1}, "tags": [1], "n": 2}

def test_encode_does_not_alias_nested_values():
    rec = {"id": "a", "at": datetime(2024, 1, 1, tzinfo=timezone.utc), "meta": {"x": [1]}, "tags": [], "n": 0}
    stored = encode(rec, make_schema())
    stored["meta"]["x"].append(2)
    assert rec["meta"] == {"x": [1]}

def test_round_trip():
    schema = make_schema()
    rec = {
        "id": "a",
        "at": datetime(2024, 3, 1, 8, 0, 0, 123456, tzinfo=timezone(timedelta(hours=-5))),
        "meta": {"nested": {"deep": True}},
        "tags": ["x", 1, None],
        "n": 1.5,
    }
    assert decode(encode(rec, schema), schema) == rec

def test_decode_leaves_unknown_and_non_date_fields_alone():
    schema = make_schema()
    stored = {"id": "2024-01-01T00:00:00Z", "at": "2024-01-01T00:00:00.000000Z", "legacy": "2024-01-01T00:00:00Z"}
    out = decode(stored, schema)
    assert out["id"] == "2024-01-01T00:00:00Z"
    assert out["legacy"] == "2024-01-01T00:00:00Z"
    assert out["at"] == datetime(2024, 1, 1, tzinfo=timezone.utc)
