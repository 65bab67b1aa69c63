from __future__ import annotations
import math
from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from numbers import Real
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .errors import MissingFieldError, SchemaError, TypeMismatchError, UnknownFieldKindError


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    return type(value).__name__


def _check_string(value: Any) -> bool:
    return isinstance(value, str)


def _check_number(value: Any) -> bool:
    # bool is an int subclass; NaN and infinities are not valid numbers here
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    if isinstance(value, int):
        return True
    return math.isfinite(value)


def _check_boolean(value: Any) -> bool:
    return value is True or value is False


def _check_date(value: Any) -> bool:
    # A naive datetime does not identify an instant
    return isinstance(value, datetime) and value.utcoffset() is not None


def _is_plain(value: Any) -> bool:
    """True for values that survive a JSON round-trip unchanged."""
    if value is None or isinstance(value, (str, bool, int)):
        return True
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, list):
        return all(_is_plain(v) for v in value)
    if isinstance(value, dict):
        return all(isinstance(k, str) and _is_plain(v) for k, v in value.items())
    return False


def _check_object(value: Any) -> bool:
    return isinstance(value, Mapping) and _is_plain(dict(value))


def _check_array(value: Any) -> bool:
    return isinstance(value, list) and _is_plain(value)


class FieldKind(Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    OBJECT = "object"
    ARRAY = "array"

    @property
    def label(self) -> str:
        return _LABELS[self]

    def accepts(self, value: Any) -> bool:
        return _VALIDATORS[self](value)

    @classmethod
    def parse(cls, field: str, raw: Any) -> "FieldKind":
        if isinstance(raw, FieldKind):
            return raw
        if isinstance(raw, str):
            kind = _ALIASES.get(raw.strip().lower())
            if kind is not None:
                return kind
        raise UnknownFieldKindError(field, raw)


_VALIDATORS: Dict[FieldKind, Callable[[Any], bool]] = {
    FieldKind.STRING: _check_string,
    FieldKind.NUMBER: _check_number,
    FieldKind.BOOLEAN: _check_boolean,
    FieldKind.DATE: _check_date,
    FieldKind.OBJECT: _check_object,
    FieldKind.ARRAY: _check_array,
}

_LABELS: Dict[FieldKind, str] = {
    FieldKind.STRING: "a string",
    FieldKind.NUMBER: "a finite number",
    FieldKind.BOOLEAN: "a boolean",
    FieldKind.DATE: "a timezone-aware datetime",
    FieldKind.OBJECT: "an object",
    FieldKind.ARRAY: "an array",
}

_ALIASES: Dict[str, FieldKind] = {k.value: k for k in FieldKind}
_ALIASES.update({
    "text": FieldKind.STRING,
    "str": FieldKind.STRING,
    "int": FieldKind.NUMBER,
    "float": FieldKind.NUMBER,
    "bool": FieldKind.BOOLEAN,
    "timestamp": FieldKind.DATE,
    "datetime": FieldKind.DATE,
    "dict": FieldKind.OBJECT,
    "structured-object": FieldKind.OBJECT,
    "list": FieldKind.ARRAY,
})

FieldSpec = Union[str, FieldKind, Mapping]


class Schema:
    """
    Ordered, immutable field table: name -> FieldKind.

    Declared either with bare kinds:
        {"id": "string", "timestamp": "date"}
    or with field specs carrying an index hint:
        {"id": {"type": "str"}, "workspaceId": {"type": "str", "index": True}}
    """
    __slots__ = ("_fields", "_hinted")

    def __init__(self, fields: Mapping[str, FieldSpec]) -> None:
        if isinstance(fields, Schema):
            kinds: Dict[str, FieldKind] = dict(fields._fields)
            hinted: List[str] = list(fields._hinted)
        else:
            kinds = {}
            hinted = []
            for name, spec in fields.items():
                if isinstance(spec, Mapping):
                    kinds[name] = FieldKind.parse(name, spec.get("type"))
                    if spec.get("index"):
                        hinted.append(name)
                else:
                    kinds[name] = FieldKind.parse(name, spec)
        self._fields = MappingProxyType(kinds)
        self._hinted: Tuple[str, ...] = tuple(hinted)

    @property
    def fields(self) -> Mapping[str, FieldKind]:
        return self._fields

    @property
    def hinted_indexes(self) -> Tuple[str, ...]:
        return self._hinted

    @property
    def timestamp_fields(self) -> List[str]:
        return [name for name, kind in self._fields.items() if kind is FieldKind.DATE]

    def kind_of(self, name: str) -> Optional[FieldKind]:
        return self._fields.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __iter__(self):
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        body = ", ".join(f"{k}={v.value}" for k, v in self._fields.items())
        return f"Schema({body})"

    def validate(self, record: Mapping[str, Any], *, allow_unknown: bool = True) -> None:
        validate(record, self, allow_unknown=allow_unknown)


def validate(record: Mapping[str, Any], schema: Schema, *, allow_unknown: bool = True) -> None:
    """
    Check a record against the schema; raise on the first violation.

    Every declared field must be present with a value of its declared kind.
    Fields the schema does not know about are accepted unless
    ``allow_unknown`` is False, provided their value is plain JSON.
    """
    if not isinstance(record, Mapping):
        raise SchemaError(f"Record must be a mapping, got {_type_name(record)}")
    for name, kind in schema.fields.items():
        if name not in record:
            raise MissingFieldError(name)
        value = record[name]
        if not kind.accepts(value):
            actual = _type_name(value)
            if kind is FieldKind.DATE and isinstance(value, datetime):
                actual = "naive datetime"
            raise TypeMismatchError(name, kind.label, actual)
    for name, value in record.items():
        if name in schema.fields:
            continue
        if not allow_unknown:
            raise SchemaError(f"Unknown field: {name}", name)
        # Undeclared fields are stored as-is, so they must be plain JSON
        if not _is_plain(value):
            raise TypeMismatchError(name, "a JSON value", _type_name(value))
