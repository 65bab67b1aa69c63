import os
import sys
import time
from datetime import datetime, timedelta, timezone

from rich.console import Console

from kv_record_store import MemoryStorage, RecordStore, StoreConfig

_force_tty = os.environ.get("FORCE_TTY", "").lower() in ("1", "true", "yes", "on")
_isatty = getattr(sys.stderr, "isatty", lambda: False)()
_console = Console(file=sys.stderr, force_terminal=(_isatty or _force_tty), color_system="standard")

def make_perf_schema():
    # 3 indexed fields + 20 generic fields
    fields = {
        "id": "string",
        "ts": "date",
        "ix1": {"type": "number", "index": True},
        "ix2": {"type": "string", "index": True},
        "ix3": {"type": "boolean", "index": True},
    }
    for i in range(20):
        fields[f"f{i:02d}"] = ("string", "number", "boolean")[i % 3]
    return fields

def make_row(i, t0):
    row = {
        "id": f"r{i:05d}",
        "ts": t0 + timedelta(minutes=i),
        "ix1": i % 50,
        "ix2": f"s{i % 100}",
        "ix3": i % 2 == 0,
    }
    for k in range(20):
        key = f"f{k:02d}"
        if k % 3 == 0:
            row[key] = f"v{i % 10}"
        elif k % 3 == 1:
            row[key] = i % 100
        else:
            row[key] = i % 3 == 0
    return row

def test_performance_indexed_vs_scan():
    N = 2_000
    t0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
    storage = MemoryStorage()
    store = RecordStore(storage, schema=make_perf_schema(), table_name="perf",
                        config=StoreConfig(full_scan_fallback=True))

    t1 = time.perf_counter()
    for i in range(N):
        store.create(make_row(i, t0))
    t2 = time.perf_counter()
    _console.print(f"[perf] insert {N} records: {(t2 - t1):.3f}s")

    t3 = time.perf_counter()
    indexed = store.where(ix2="s7").execute()
    t4 = time.perf_counter()
    _console.print(f"[perf] indexed query matched={len(indexed)}: {(t4 - t3):.3f}s")

    t5 = time.perf_counter()
    scanned = store.where(f00="v7", ix2="s7").execute()
    t6 = time.perf_counter()
    _console.print(f"[perf] scan-fallback query matched={len(scanned)}: {(t6 - t5):.3f}s")

    # s7 rows are i % 100 == 7, which all have f00 == "v7"
    assert len(indexed) == N // 100
    assert [r["id"] for r in scanned] == [r["id"] for r in indexed]

    t7 = time.perf_counter()
    recent = store.select().after(t0 + timedelta(minutes=N - 101)).order_by("ts", "desc").limit(10).execute()
    t8 = time.perf_counter()
    _console.print(f"[perf] range+sort+limit over full table: {(t8 - t7):.3f}s")
    assert [r["id"] for r in recent] == [f"r{i:05d}" for i in range(N - 1, N - 11, -1)]

    t9 = time.perf_counter()
    for i in range(0, N, 2):
        store.update(f"r{i:05d}", {"ix3": False, "f01": 999})
    t10 = time.perf_counter()
    _console.print(f"[perf] update {N // 2} records: {(t10 - t9):.3f}s")
    assert store.index.lookup("ix3", True) == []
    assert len(store.index.lookup("ix3", False)) == N
    assert store.count() == N
