"""
Store configuration.

Both switches default to the historical behaviour of the engine: queries whose
first condition targets an unindexed field return nothing, and fields outside
the schema are stored as-is.
"""

from __future__ import annotations
import os
from dataclasses import dataclass

_TRUTHY = ("1", "true", "yes", "on")


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class StoreConfig:
    # Prefix-scan the table when no index can serve the first condition
    full_scan_fallback: bool = False
    # Reject record fields the schema does not declare
    reject_unknown_fields: bool = False

    @classmethod
    def from_env(cls, prefix: str = "KVSTORE_") -> "StoreConfig":
        """
        Build a config from environment variables, e.g. KVSTORE_FULL_SCAN_FALLBACK=1.
        """
        return cls(
            full_scan_fallback=_env_flag(f"{prefix}FULL_SCAN_FALLBACK", cls.full_scan_fallback),
            reject_unknown_fields=_env_flag(f"{prefix}REJECT_UNKNOWN_FIELDS", cls.reject_unknown_fields),
        )
