from __future__ import annotations
import copy
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .codec import decode, encode
from .config import StoreConfig
from .errors import AlreadyExistsError, InvalidTableNameError, NotFoundError, SchemaError
from .index import INDEX_NAMESPACE, IndexManager
from .progress import Progress, ProgressCallback
from .query import Query, QueryEngine, QueryOptions
from .schema import FieldKind, Schema, validate
from .storage import KeyValueStorage, record_key, record_prefix

logger = logging.getLogger(__name__)


def _check_table_name(name: str) -> str:
    if not isinstance(name, str) or not name:
        raise InvalidTableNameError("table name must be a non-empty string")
    if ":" in name:
        raise InvalidTableNameError(f"table name must not contain ':': {name!r}")
    if name == INDEX_NAMESPACE:
        raise InvalidTableNameError(f"table name {name!r} is reserved for index entries")
    return name


class RecordStore:
    """
    Schema-validated records with single-field secondary indexes on top of a
    key-value backend.

    Declare a record type either by passing schema/indexes:

        events = RecordStore(storage, schema={"id": "string", ...}, indexes=["workspaceId"],
                             table_name="events")

    or by subclassing:

        class Event(RecordStore):
            schema = {"id": "string", "workspaceId": "string", "timestamp": "date"}
            indexes = ("workspaceId",)

        events = Event(storage)   # table name defaults to "event"

    Record keys are "{table}:{id}", index keys "index:{table}:{field}:{value}".
    """
    schema: Any = None
    indexes: Sequence[str] = ()
    table_name: Optional[str] = None

    def __init__(
        self,
        storage: KeyValueStorage,
        schema: Optional[Mapping[str, Any]] = None,
        indexes: Optional[Sequence[str]] = None,
        table_name: Optional[str] = None,
        *,
        config: Optional[StoreConfig] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        declared = schema if schema is not None else type(self).schema
        if declared is None:
            raise SchemaError("no schema declared")
        self.schema = Schema(declared)
        if self.schema.kind_of("id") is not FieldKind.STRING:
            raise SchemaError("schema must declare 'id' as a string field", "id")

        wanted = list(indexes if indexes is not None else type(self).indexes)
        wanted += [f for f in self.schema.hinted_indexes if f not in wanted]
        for f in wanted:
            if f not in self.schema:
                raise SchemaError(f"indexed field '{f}' is not declared in the schema", f)
            if ":" in f:
                raise SchemaError(f"indexed field name must not contain ':': {f!r}", f)
        self.indexes = tuple(dict.fromkeys(wanted))

        name = table_name or type(self).table_name or type(self).__name__.lower()
        self.table_name = _check_table_name(name)

        self.config = config or StoreConfig()
        self._storage = storage
        self._progress = Progress(on_progress)
        self._index = IndexManager(storage, self.table_name, self.indexes)
        self._engine = QueryEngine(
            storage,
            self.table_name,
            self.schema,
            self._index,
            full_scan_fallback=self.config.full_scan_fallback,
            progress=self._progress,
        )

    @property
    def index(self) -> IndexManager:
        return self._index

    def _key(self, rec_id: str) -> str:
        return record_key(self.table_name, rec_id)

    def _validate(self, record: Mapping[str, Any]) -> None:
        validate(record, self.schema, allow_unknown=not self.config.reject_unknown_fields)

    # ----- CRUD -----

    def create(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        self._validate(record)
        rec_id = record["id"]
        if not rec_id:
            raise SchemaError("Record must have a non-empty id", "id")

        key = self._key(rec_id)
        if self._storage.get(key) is not None:
            raise AlreadyExistsError(rec_id)

        self._storage.put(key, encode(record, self.schema))
        self._index.add_to_index(rec_id, record)
        logger.debug("created %s", key)
        return copy.deepcopy(dict(record))

    def find(self, rec_id: str) -> Optional[Dict[str, Any]]:
        stored = self._storage.get(self._key(rec_id))
        if stored is None:
            return None
        return decode(stored, self.schema)

    def update(self, rec_id: str, changes: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Merge changes over the stored record, validate the whole result and
        persist it. Only indexed fields whose value changed are re-indexed.
        """
        existing = self.find(rec_id)
        if existing is None:
            raise NotFoundError(rec_id)
        if "id" in changes and changes["id"] != rec_id:
            raise SchemaError("the id of a record cannot be changed", "id")

        merged = dict(existing)
        merged.update(changes)
        self._validate(merged)

        stored = encode(merged, self.schema)
        changed = self._index.changed_fields(existing, merged)
        self._index.remove_fields(rec_id, existing, changed)
        self._storage.put(self._key(rec_id), stored)
        self._index.add_fields(rec_id, merged, changed)
        logger.debug("updated %s (reindexed: %s)", self._key(rec_id), ", ".join(changed) or "-")
        return copy.deepcopy(merged)

    def delete(self, rec_id: str) -> bool:
        existing = self.find(rec_id)
        if existing is None:
            return False
        self._index.remove_from_index(rec_id, existing)
        self._storage.delete(self._key(rec_id))
        logger.debug("deleted %s", self._key(rec_id))
        return True

    def count(self) -> int:
        return len(self._storage.list_by_prefix(record_prefix(self.table_name)))

    def all(self) -> List[Dict[str, Any]]:
        return self.query(QueryOptions())

    # ----- querying -----

    def query(self, options: Optional[QueryOptions] = None, **kwargs: Any) -> List[Dict[str, Any]]:
        """
        Run a query given as QueryOptions or as keyword arguments:
            store.query(where={"workspaceId": "ws_1"}, after=t0, limit=10,
                        order_by=("timestamp", "desc"))
        """
        if options is None:
            options = self._build_options(**kwargs)
        elif kwargs:
            raise TypeError("pass either QueryOptions or keyword arguments, not both")
        self._progress.emit("query.start", 0, self.table_name)
        rows = self._engine.run(options)
        self._progress.emit("query.done", 100, f"{len(rows)} records")
        return rows

    def _build_options(
        self,
        where: Optional[Mapping[str, Any]] = None,
        after: Any = None,
        before: Any = None,
        limit: Optional[int] = None,
        order_by: Any = None,
    ) -> QueryOptions:
        q = Query(self).where(where)
        if after is not None:
            q = q.after(after)
        if before is not None:
            q = q.before(before)
        if limit is not None:
            q = q.limit(limit)
        if order_by is not None:
            if isinstance(order_by, str):
                q = q.order_by(order_by)
            else:
                q = q.order_by(*order_by)
        return q.options

    def where(self, conditions: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Query:
        return Query(self).where(conditions, **kwargs)

    def select(self) -> Query:
        """Unconditioned query builder (scans the whole table)."""
        return Query(self)

    # ----- maintenance -----

    def rebuild_indexes(self) -> int:
        """
        Recompute every index entry of this table from the stored records.
        Returns the number of records indexed.
        """
        self._progress.emit("rebuild.start", 0, self.table_name)
        ids = self._engine.scan_ids()
        records = self._engine.load(ids)
        n = self._index.rebuild((r["id"], r) for r in records if "id" in r)
        self._progress.emit("rebuild.done", 100, f"{n} records")
        return n
