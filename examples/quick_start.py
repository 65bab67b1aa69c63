#!/usr/bin/env python3
# Example usage of kv_record_store on the durable JSONL backend.

import os
from datetime import datetime, timezone

from kv_record_store import JsonlFileStorage, RecordStore

SCHEMA = {
    "id": {"type": "str"},
    "name": {"type": "str", "index": True},
    "age": {"type": "number", "index": True},
    "flags": {"type": "object"},
    "createdAt": {"type": "datetime"},
}

def main() -> None:
    base_dir = os.path.join(os.path.dirname(__file__), "data")
    path = os.path.join(base_dir, "quick_start.jsonl")

    with JsonlFileStorage(path) as storage:
        users = RecordStore(storage, schema=SCHEMA, table_name="users")

        if users.find("u1") is None:
            users.create({
                "id": "u1",
                "name": "Alice",
                "age": 33,
                "flags": {"active": True},
                "createdAt": datetime.now(timezone.utc),
            })
        print("Loaded:", users.find("u1"))

        # Indexed lookup on the first condition, the rest filtered in memory
        for r in users.where(name="Alice").order_by("age", "desc").execute():
            print("Found:", r["name"], r["age"])

        users.update("u1", {"age": 34})
        print("After update:", users.find("u1"))
        print("Count:", users.count())

        users.delete("u1")
        print("Deleted, count:", users.count())
        print("Compacted lines:", storage.compact())

if __name__ == "__main__":
    main()
