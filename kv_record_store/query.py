from __future__ import annotations
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from .codec import coerce_timestamp, decode
from .index import IndexManager
from .progress import Progress
from .schema import Schema
from .storage import KeyValueStorage, record_key, record_prefix
from .utils import canonical_json

if TYPE_CHECKING:
    from .store import RecordStore

logger = logging.getLogger(__name__)

ASC = "asc"
DESC = "desc"

Bound = Union[datetime, str]


@dataclass(frozen=True)
class QueryOptions:
    where: Dict[str, Any] = field(default_factory=dict)
    after: Optional[datetime] = None
    before: Optional[datetime] = None
    limit: Optional[int] = None
    order_by: Optional[Tuple[str, str]] = None


def _sort_key(v: Any) -> Tuple[int, Any]:
    # Group by type so heterogeneous values (schema drift) never raise
    if v is None:
        return (0, 0)
    if isinstance(v, bool):
        return (1, int(v))
    if isinstance(v, (int, float)):
        return (2, v)
    if isinstance(v, datetime):
        return (3, v)
    if isinstance(v, str):
        return (4, v)
    try:
        return (5, canonical_json(v))
    except (TypeError, ValueError):
        return (5, str(v))


def _matches(record: Mapping[str, Any], where: Mapping[str, Any]) -> bool:
    for k, v in where.items():
        if k not in record or record[k] != v:
            return False
    return True


class QueryEngine:
    """
    Executes QueryOptions against one table.

    Candidate ids come from the index of the first where-field when that
    field is indexed, from a prefix scan of the table when there are no
    conditions, and are otherwise empty (unless full_scan_fallback is set).
    Candidates are then loaded one by one and filtered, bounded, sorted and
    truncated in memory.
    """
    def __init__(
        self,
        storage: KeyValueStorage,
        table_name: str,
        schema: Schema,
        index: IndexManager,
        *,
        full_scan_fallback: bool = False,
        progress: Optional[Progress] = None,
    ) -> None:
        self._storage = storage
        self._table = table_name
        self._schema = schema
        self._index = index
        self._full_scan_fallback = full_scan_fallback
        self._progress = progress or Progress()

    # ----- candidate acquisition -----

    def scan_ids(self) -> List[str]:
        prefix = record_prefix(self._table)
        keys = self._storage.list_by_prefix(prefix)
        return [k[len(prefix):] for k in keys]

    def candidate_ids(self, where: Mapping[str, Any]) -> List[str]:
        if where:
            field_name, value = next(iter(where.items()))
            if self._index.is_indexed(field_name):
                ids = self._index.lookup(field_name, value)
                logger.debug("query %s: index %s -> %d candidates", self._table, field_name, len(ids))
                return ids
            if not self._full_scan_fallback:
                logger.debug("query %s: first condition %r is not indexed, no candidates",
                              self._table, field_name)
                return []
        ids = self.scan_ids()
        logger.debug("query %s: prefix scan -> %d candidates", self._table, len(ids))
        return ids

    def load(self, ids: List[str]) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        total = len(ids)
        for n, rec_id in enumerate(ids, 1):
            stored = self._storage.get(record_key(self._table, rec_id))
            if stored is None:
                # Stale index entry
                logger.debug("query %s: skipping missing record %s", self._table, rec_id)
            else:
                out.append(decode(stored, self._schema))
            self._progress.step("query.load", n, total)
        return out

    # ----- pipeline -----

    def _in_range(self, record: Mapping[str, Any], after: Optional[datetime], before: Optional[datetime]) -> bool:
        for name in self._schema.timestamp_fields:
            value = record.get(name)
            if not isinstance(value, datetime):
                continue
            if after is not None and not value > after:
                return False
            if before is not None and not value < before:
                return False
        return True

    def run(self, options: QueryOptions) -> List[Dict[str, Any]]:
        for name, value in options.where.items():
            # Same rule as after()/before(), indexed or not
            if isinstance(value, datetime) and value.utcoffset() is None:
                raise ValueError(f"condition on {name!r} must use a timezone-aware datetime")
        records = self.load(self.candidate_ids(options.where))

        if options.where:
            records = [r for r in records if _matches(r, options.where)]

        if options.after is not None or options.before is not None:
            records = [r for r in records if self._in_range(r, options.after, options.before)]

        if options.order_by:
            field_name, direction = options.order_by
            records.sort(key=lambda r: _sort_key(r.get(field_name)), reverse=(direction == DESC))

        if options.limit is not None:
            records = records[:options.limit]
        return records


class Query:
    """
    Chainable query against a RecordStore. Each call returns a new Query,
    so a partially built query can be reused.

        store.where(workspaceId="ws_1").after(t0).order_by("timestamp", "desc").limit(10).execute()
    """
    def __init__(self, store: "RecordStore", options: Optional[QueryOptions] = None) -> None:
        self._store = store
        self._options = options or QueryOptions()

    @property
    def options(self) -> QueryOptions:
        return self._options

    def _with(self, **changes: Any) -> "Query":
        return Query(self._store, replace(self._options, **changes))

    def where(self, conditions: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> "Query":
        merged = dict(self._options.where)
        merged.update(conditions or {})
        merged.update(kwargs)
        return self._with(where=merged)

    def after(self, bound: Bound) -> "Query":
        return self._with(after=coerce_timestamp(bound))

    def before(self, bound: Bound) -> "Query":
        return self._with(before=coerce_timestamp(bound))

    def limit(self, n: int) -> "Query":
        if isinstance(n, bool) or not isinstance(n, int) or n < 0:
            raise ValueError(f"limit must be a non-negative integer, got {n!r}")
        return self._with(limit=n)

    def order_by(self, field_name: str, direction: str = ASC) -> "Query":
        d = str(direction).lower()
        if d not in (ASC, DESC):
            raise ValueError(f"direction must be 'asc' or 'desc', got {direction!r}")
        return self._with(order_by=(field_name, d))

    def execute(self) -> List[Dict[str, Any]]:
        return self._store.query(self._options)

    def first(self) -> Optional[Dict[str, Any]]:
        current = self._options.limit
        rows = self._with(limit=1 if current is None else min(1, current)).execute()
        return rows[0] if rows else None

    def count(self) -> int:
        return len(self.execute())

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self.execute())

    def __repr__(self) -> str:
        return f"Query({self._store.table_name!r}, {self._options!r})"
