from __future__ import annotations
from typing import Any, Callable, Dict, Optional

ProgressCallback = Callable[[Dict[str, Any]], None]


class Progress:
    """
    Thin wrapper over an optional on_progress callback.
    Events are plain dicts: {"phase": str, "pct": int, "msg": str}.
    """
    def __init__(self, callback: Optional[ProgressCallback] = None) -> None:
        self._cb = callback

    @property
    def enabled(self) -> bool:
        return self._cb is not None

    def emit(self, phase: str, pct: float = 0, msg: str = "") -> None:
        if self._cb is None:
            return
        pct = max(0, min(100, int(pct)))
        self._cb({"phase": phase, "pct": pct, "msg": msg})

    def step(self, phase: str, done: int, total: int, every: int = 100) -> None:
        # Throttled: only every Nth item and the last one
        if self._cb is None or total <= 0:
            return
        if done == total or done % every == 0:
            self.emit(phase, done * 100 / total, f"{done}/{total}")
