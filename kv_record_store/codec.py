from __future__ import annotations
import copy
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Union

from .schema import FieldKind, Schema


def format_timestamp(value: datetime) -> str:
    """
    Canonical sortable form: UTC, fixed width, microsecond precision.
    e.g. 2024-01-05T00:00:00.000000Z
    """
    if value.utcoffset() is None:
        raise ValueError("timestamp must be timezone-aware")
    utc = value.astimezone(timezone.utc)
    return utc.isoformat(timespec="microseconds").replace("+00:00", "Z")


def parse_timestamp(text: str) -> datetime:
    s = text.strip()
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.utcoffset() is None:
        raise ValueError(f"timestamp has no UTC offset: {text!r}")
    return dt.astimezone(timezone.utc)


def coerce_timestamp(value: Union[datetime, str]) -> datetime:
    """Accept an aware datetime or an ISO-8601 string with offset."""
    if isinstance(value, datetime):
        if value.utcoffset() is None:
            raise ValueError("timestamp must be timezone-aware")
        return value
    if isinstance(value, str):
        return parse_timestamp(value)
    raise TypeError(f"expected datetime or ISO-8601 string, got {type(value).__name__}")


def encode(record: Mapping[str, Any], schema: Schema) -> Dict[str, Any]:
    """
    In-memory record -> storable dict. Fields the schema declares as dates
    become canonical strings, everything else is copied through unchanged.
    """
    out: Dict[str, Any] = {}
    for key, value in record.items():
        if schema.kind_of(key) is FieldKind.DATE and isinstance(value, datetime):
            out[key] = format_timestamp(value)
        else:
            out[key] = copy.deepcopy(value)
    return out


def decode(stored: Mapping[str, Any], schema: Schema) -> Dict[str, Any]:
    """
    Storable dict -> in-memory record. Only fields the schema declares as
    dates are parsed back; anything else (including fields the schema no
    longer declares) passes through.
    """
    out: Dict[str, Any] = {}
    for key, value in stored.items():
        if schema.kind_of(key) is FieldKind.DATE and isinstance(value, str):
            out[key] = parse_timestamp(value)
        else:
            out[key] = copy.deepcopy(value)
    return out
