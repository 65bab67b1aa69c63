from __future__ import annotations
import copy
import json
import logging
import os
from typing import Any, Dict, Iterator, Optional, Protocol, Tuple, runtime_checkable

from .errors import IOCorruptionError
from .progress import Progress, ProgressCallback
from .utils import canonical_json, now_iso, sha256_hex

logger = logging.getLogger(__name__)

PUT_OP = "put"
DEL_OP = "del"


@runtime_checkable
class KeyValueStorage(Protocol):
    """
    Minimal ordered key-value contract the record store is built on.
    Each call is atomic for its single key; nothing spans keys.
    """
    def get(self, key: str) -> Optional[Any]: ...

    def put(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> bool: ...

    def list_by_prefix(self, prefix: str) -> Dict[str, Any]: ...


class MemoryStorage:
    """
    Process-local backend. Values are deep-copied on the way in and out so
    callers never alias stored state.
    """
    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = {}
        for k, v in (initial or {}).items():
            self.put(k, v)

    def get(self, key: str) -> Optional[Any]:
        if key not in self._data:
            return None
        return copy.deepcopy(self._data[key])

    def put(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> bool:
        if key not in self._data:
            return False
        del self._data[key]
        return True

    def list_by_prefix(self, prefix: str) -> Dict[str, Any]:
        return {k: copy.deepcopy(self._data[k]) for k in sorted(self._data) if k.startswith(prefix)}

    def keys(self) -> list[str]:
        return sorted(self._data)

    def __len__(self) -> int:
        return len(self._data)


class JsonlFileStorage:
    """
    Durable backend on a single append-only JSONL file.

    Every mutation appends one line:
        {"op":"put","key":...,"value":...,"ts":...,"sha256":...}
        {"op":"del","key":...,"ts":...}
    Opening the file replays the log into memory; compact() rewrites it with
    only the live entries.
    """
    def __init__(
        self,
        path: str,
        *,
        fsync: bool = False,
        strict: bool = True,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.path = path
        self._fsync = fsync
        self._strict = strict
        self._progress = Progress(on_progress)
        self._data: Dict[str, Any] = {}
        self._garbage = 0
        self._fh = None
        self._open()

    # ----- lifecycle -----

    def _open(self) -> None:
        d = os.path.dirname(self.path)
        if d:
            os.makedirs(d, exist_ok=True)
        if os.path.exists(self.path):
            self._replay()
        self._fh = open(self.path, "a", encoding="utf-8")

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> "JsonlFileStorage":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    @property
    def garbage_ratio(self) -> float:
        total = self._garbage + len(self._data)
        return self._garbage / total if total else 0.0

    def _iter_lines(self) -> Iterator[Tuple[int, int, bool, str]]:
        """Yield (lineno, byte offset, is_last, text) for every non-blank line."""
        size = os.path.getsize(self.path)
        offset = 0
        with open(self.path, "rb") as f:
            for lineno, raw in enumerate(f, 1):
                start = offset
                offset += len(raw)
                line = raw.decode("utf-8", errors="replace").strip()
                if line:
                    is_last = offset >= size
                    yield lineno, start, is_last, line

    def _replay(self) -> None:
        self._progress.emit("open.start", 0, self.path)
        torn_at: Optional[int] = None
        for lineno, offset, is_last, line in self._iter_lines():
            try:
                entry = self._parse_line(line)
            except IOCorruptionError as e:
                if is_last and isinstance(e.__cause__, json.JSONDecodeError):
                    # Interrupted append: the put never happened
                    logger.warning("Dropping torn last line %s:%d (%s)", self.path, lineno, e)
                    torn_at = offset
                    break
                if self._strict:
                    raise IOCorruptionError(f"{self.path}:{lineno}: {e}") from e
                logger.warning("Skipping corrupt line %s:%d (%s)", self.path, lineno, e)
                continue
            key = entry["key"]
            if key in self._data:
                self._garbage += 1
            if entry["op"] == PUT_OP:
                self._data[key] = entry["value"]
            else:
                self._data.pop(key, None)
                self._garbage += 1
        if torn_at is not None:
            with open(self.path, "r+b") as f:
                f.truncate(torn_at)
        logger.debug("Replayed %s: %d live keys", self.path, len(self._data))
        self._progress.emit("open.done", 100, f"{len(self._data)} keys")

    @staticmethod
    def _parse_line(line: str) -> Dict[str, Any]:
        try:
            entry = json.loads(line)
        except json.JSONDecodeError as e:
            raise IOCorruptionError(f"invalid JSON: {e}") from e
        if not isinstance(entry, dict) or entry.get("op") not in (PUT_OP, DEL_OP) or "key" not in entry:
            raise IOCorruptionError("not a log entry")
        if entry["op"] == PUT_OP:
            if "value" not in entry:
                raise IOCorruptionError("put entry without value")
            digest = entry.get("sha256")
            if digest is not None and digest != sha256_hex(canonical_json(entry["value"]).encode("utf-8")):
                raise IOCorruptionError(f"value hash mismatch for key {entry['key']!r}")
        return entry

    def _append(self, entry: Dict[str, Any]) -> None:
        if self._fh is None:
            raise ValueError("storage is closed")
        self._fh.write(canonical_json(entry) + "\n")
        self._fh.flush()
        if self._fsync:
            os.fsync(self._fh.fileno())

    # ----- key-value contract -----

    def get(self, key: str) -> Optional[Any]:
        if key not in self._data:
            return None
        return copy.deepcopy(self._data[key])

    def put(self, key: str, value: Any) -> None:
        data_str = canonical_json(value)
        self._append({
            "op": PUT_OP,
            "key": key,
            "value": value,
            "ts": now_iso(),
            "sha256": sha256_hex(data_str.encode("utf-8")),
        })
        if key in self._data:
            self._garbage += 1
        # Store what a reader of the file would see
        self._data[key] = json.loads(data_str)

    def delete(self, key: str) -> bool:
        if key not in self._data:
            return False
        self._append({"op": DEL_OP, "key": key, "ts": now_iso()})
        del self._data[key]
        self._garbage += 2
        return True

    def list_by_prefix(self, prefix: str) -> Dict[str, Any]:
        return {k: copy.deepcopy(self._data[k]) for k in sorted(self._data) if k.startswith(prefix)}

    # ----- maintenance -----

    def compact(self) -> int:
        """
        Rewrite the log with live entries only. Returns the number of
        dropped lines.
        """
        dropped = self._garbage
        tmp_path = self.path + ".tmp"
        keys = sorted(self._data)
        self._progress.emit("compact.start", 0, f"{len(keys)} keys")
        with open(tmp_path, "w", encoding="utf-8") as out:
            ts = now_iso()
            for i, key in enumerate(keys, 1):
                value = self._data[key]
                data_str = canonical_json(value)
                out.write(canonical_json({
                    "op": PUT_OP,
                    "key": key,
                    "value": value,
                    "ts": ts,
                    "sha256": sha256_hex(data_str.encode("utf-8")),
                }) + "\n")
                self._progress.step("compact.copy", i, len(keys))
            out.flush()
            os.fsync(out.fileno())
        self.close()
        os.replace(tmp_path, self.path)
        self._fh = open(self.path, "a", encoding="utf-8")
        self._garbage = 0
        logger.info("Compacted %s: dropped %d stale lines", self.path, dropped)
        self._progress.emit("compact.done", 100, f"dropped {dropped}")
        return dropped


# ----- key layout -----

def record_prefix(table_name: str) -> str:
    return f"{table_name}:"


def record_key(table_name: str, rec_id: str) -> str:
    return f"{table_name}:{rec_id}"
