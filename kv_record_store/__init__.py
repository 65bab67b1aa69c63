from .config import StoreConfig
from .errors import (
    AlreadyExistsError,
    InvalidTableNameError,
    IOCorruptionError,
    MissingFieldError,
    NotFoundError,
    SchemaError,
    StoreError,
    TypeMismatchError,
    UnknownFieldKindError,
)
from .query import Query, QueryOptions
from .schema import FieldKind, Schema, validate
from .storage import JsonlFileStorage, KeyValueStorage, MemoryStorage
from .store import RecordStore

__version__ = "1.0.0"

__all__ = [
    "AlreadyExistsError",
    "FieldKind",
    "InvalidTableNameError",
    "IOCorruptionError",
    "JsonlFileStorage",
    "KeyValueStorage",
    "MemoryStorage",
    "MissingFieldError",
    "NotFoundError",
    "Query",
    "QueryOptions",
    "RecordStore",
    "Schema",
    "SchemaError",
    "StoreConfig",
    "StoreError",
    "TypeMismatchError",
    "UnknownFieldKindError",
    "validate",
]
