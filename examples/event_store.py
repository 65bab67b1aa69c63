#!/usr/bin/env python3
# Example: an event log with workspace/user/timestamp indexes, queried and
# summarized the way a small HTTP service would do it.

import random
from datetime import datetime, timedelta, timezone

from rich.console import Console
from rich.table import Table

from kv_record_store import MemoryStorage, RecordStore
from kv_record_store.logging_config import configure_logging
from kv_record_store.utils import new_record_id

_console = Console()


class Event(RecordStore):
    schema = {
        "id": "string",
        "workspaceId": "string",
        "timestamp": "date",
        "type": "string",
        "userId": "string",
        "data": "object",
    }
    indexes = ("workspaceId", "userId", "timestamp")
    table_name = "events"


def stats(events: Event) -> dict:
    rows = events.all()
    return {
        "totalEvents": events.count(),
        "uniqueWorkspaces": len({e["workspaceId"] for e in rows}),
        "uniqueUsers": len({e["userId"] for e in rows}),
        "eventTypes": len({e["type"] for e in rows}),
    }


def main() -> None:
    configure_logging("WARNING")
    events = Event(MemoryStorage())
    rng = random.Random(7)
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)

    for i in range(40):
        events.create({
            "id": new_record_id("evt"),
            "workspaceId": rng.choice(["ws_abc", "ws_xyz"]),
            "timestamp": start + timedelta(hours=i * 6),
            "type": rng.choice(["click", "pageview", "signup"]),
            "userId": f"user_{rng.randint(1, 5)}",
            "data": {"seq": i},
        })

    recent = (
        events.where(workspaceId="ws_abc")
        .after(start + timedelta(days=5))
        .order_by("timestamp", "desc")
        .limit(5)
        .execute()
    )

    table = Table(title="ws_abc, latest 5 after day 5")
    for col in ("id", "timestamp", "type", "userId"):
        table.add_column(col)
    for e in recent:
        table.add_row(e["id"], e["timestamp"].isoformat(), e["type"], e["userId"])
    _console.print(table)
    _console.print(stats(events))


if __name__ == "__main__":
    main()
