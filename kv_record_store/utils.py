from __future__ import annotations
import hashlib
import json
import secrets
import time
from datetime import datetime, timezone
from typing import Any


def canonical_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, ensure_ascii=False, separators=(",", ":"))


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_record_id(prefix: str = "rec") -> str:
    """
    Time-prefixed random id: <prefix>_<epoch ms>_<9 base36 chars>.
    """
    alphabet = "0123456789abcdefghijklmnopqrstuvwxyz"
    tail = "".join(secrets.choice(alphabet) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{tail}"
