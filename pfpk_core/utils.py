"""
pfpk_core.utils
---------------
Small helpers for timestamping and input normalisation shared by the
storage providers and the directory components.
"""

from __future__ import annotations
import time
from typing import Iterable, List, Optional


def now_ts() -> str:
    # RFC3339 / ISO 8601 in UTC, second precision
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def unique_chain_ids(chain_ids: Optional[Iterable[str]]) -> List[str]:
    """Drop duplicates while keeping first-seen order."""
    if not chain_ids:
        return []
    seen = set()
    out = []
    for chain_id in chain_ids:
        if chain_id not in seen:
            seen.add(chain_id)
            out.append(chain_id)
    return out


def escape_like(prefix: str, escape: str = "\\") -> str:
    # make % and _ literal inside a LIKE pattern
    return (
        prefix.replace(escape, escape * 2)
        .replace("%", escape + "%")
        .replace("_", escape + "_")
    )


_ASCII_LOWER = str.maketrans("ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz")


def ascii_lower(s: str) -> str:
    # case folding of SQLite's built-in LIKE: A-Z only
    return s.translate(_ASCII_LOWER)
