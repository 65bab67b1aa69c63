from __future__ import annotations
import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from .codec import format_timestamp
from .storage import KeyValueStorage
from .utils import canonical_json

logger = logging.getLogger(__name__)

INDEX_NAMESPACE = "index"


def render_value(value: Any) -> str:
    """
    String form of a field value inside an index key.
    Datetimes use the canonical sortable form; scalars their plain literal.
    """
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (str, int, float)):
        return str(value)
    if value is None:
        return "null"
    if isinstance(value, Mapping) or isinstance(value, (list, tuple)):
        return canonical_json(value)
    return str(value)


class IndexManager:
    """
    Single-field secondary indexes kept in the key-value backend.

    Layout: index:{table}:{field}:{value} -> [record ids]
    Entries whose id list becomes empty are deleted.
    """
    def __init__(self, storage: KeyValueStorage, table_name: str, fields: Sequence[str]) -> None:
        self._storage = storage
        self.table_name = table_name
        self.fields: Tuple[str, ...] = tuple(fields)

    def is_indexed(self, field: str) -> bool:
        return field in self.fields

    def index_prefix(self, field: str) -> str:
        return f"{INDEX_NAMESPACE}:{self.table_name}:{field}:"

    def index_key(self, field: str, value: Any) -> str:
        return self.index_prefix(field) + render_value(value)

    def lookup(self, field: str, value: Any) -> List[str]:
        ids = self._storage.get(self.index_key(field, value))
        return list(ids) if ids else []

    # ----- mutation -----

    def _add_one(self, rec_id: str, field: str, value: Any) -> None:
        key = self.index_key(field, value)
        ids = self._storage.get(key) or []
        if rec_id in ids:
            return
        ids.append(rec_id)
        self._storage.put(key, ids)
        logger.debug("index add %s -> %s", key, rec_id)

    def _remove_one(self, rec_id: str, field: str, value: Any) -> None:
        key = self.index_key(field, value)
        ids = self._storage.get(key) or []
        remaining = [i for i in ids if i != rec_id]
        if remaining:
            self._storage.put(key, remaining)
        else:
            self._storage.delete(key)
        logger.debug("index remove %s -> %s", key, rec_id)

    def add_to_index(self, rec_id: str, record: Mapping[str, Any]) -> None:
        self.add_fields(rec_id, record, self.fields)

    def remove_from_index(self, rec_id: str, record: Mapping[str, Any]) -> None:
        self.remove_fields(rec_id, record, self.fields)

    def add_fields(self, rec_id: str, record: Mapping[str, Any], fields: Iterable[str]) -> None:
        for field in fields:
            self._add_one(rec_id, field, record.get(field))

    def remove_fields(self, rec_id: str, record: Mapping[str, Any], fields: Iterable[str]) -> None:
        for field in fields:
            self._remove_one(rec_id, field, record.get(field))

    def changed_fields(self, old: Mapping[str, Any], new: Mapping[str, Any]) -> List[str]:
        # Compared by rendered key: two values that land in the same entry are unchanged
        return [
            f for f in self.fields
            if render_value(old.get(f)) != render_value(new.get(f))
        ]

    def reindex(self, rec_id: str, old: Mapping[str, Any], new: Mapping[str, Any]) -> List[str]:
        """
        Move rec_id between entries for the indexed fields whose value
        changed. Unchanged fields are not touched.
        """
        changed = self.changed_fields(old, new)
        self.remove_fields(rec_id, old, changed)
        self.add_fields(rec_id, new, changed)
        return changed

    # ----- maintenance -----

    def entries(self, field: str) -> Dict[str, List[str]]:
        prefix = self.index_prefix(field)
        return {k[len(prefix):]: list(v) for k, v in self._storage.list_by_prefix(prefix).items()}

    def clear(self) -> int:
        n = 0
        for field in self.fields:
            for key in self._storage.list_by_prefix(self.index_prefix(field)):
                self._storage.delete(key)
                n += 1
        return n

    def rebuild(self, records: Iterable[Tuple[str, Mapping[str, Any]]]) -> int:
        """
        Drop every entry for the indexed fields and re-add from (id, record)
        pairs. Returns the number of records indexed.
        """
        dropped = self.clear()
        n = 0
        for rec_id, record in records:
            self.add_to_index(rec_id, record)
            n += 1
        logger.info("Rebuilt indexes for table %s: %d records, %d stale entries dropped",
                    self.table_name, n, dropped)
        return n
