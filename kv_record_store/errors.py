from __future__ import annotations
from typing import Optional


class StoreError(Exception):
    """Base class for every error raised by kv_record_store."""


class SchemaError(StoreError):
    """A record (or a schema declaration) does not satisfy the schema."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class MissingFieldError(SchemaError):
    def __init__(self, field: str) -> None:
        super().__init__(f"Missing required field: {field}", field)


class TypeMismatchError(SchemaError):
    def __init__(self, field: str, expected: str, actual: str) -> None:
        super().__init__(f"Field '{field}' must be {expected}, got {actual}", field)
        self.expected = expected
        self.actual = actual


class UnknownFieldKindError(SchemaError):
    def __init__(self, field: str, kind: object) -> None:
        super().__init__(f"Unknown field type for '{field}': {kind!r}", field)
        self.kind = kind


class AlreadyExistsError(StoreError):
    def __init__(self, record_id: str) -> None:
        super().__init__(f"Record with id '{record_id}' already exists")
        self.record_id = record_id


class NotFoundError(StoreError):
    def __init__(self, record_id: str) -> None:
        super().__init__(f"Record with id '{record_id}' not found")
        self.record_id = record_id


class InvalidTableNameError(StoreError):
    pass


class IOCorruptionError(StoreError):
    pass
