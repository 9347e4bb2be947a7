"""In-memory result cache with read-time TTL for computed PR metrics."""

import os
import threading
import time

DEFAULT_TTL = int(os.environ.get("METRICS_CACHE_TTL", "300"))  # 5 minutes


def make_key(user_id: str, owner: str, repo: str, kind: str = "") -> str:
    key = f"{user_id}:{owner}/{repo}"
    return f"{key}:{kind}" if kind else key


class ResultCache:
    """Keyed store of (record, timestamp) pairs.

    Entries are overwritten on every successful aggregation and never
    evicted; anything older than the TTL is ignored on read.
    """

    def __init__(self):
        self._entries: dict[str, tuple[object, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str):
        """Return (record, timestamp) or None."""
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, record, timestamp: float | None = None):
        if timestamp is None:
            timestamp = time.time()
        with self._lock:
            self._entries[key] = (record, timestamp)

    def get_fresh(self, key: str, ttl: float = DEFAULT_TTL, now: float | None = None):
        """Return the record if it is younger than ``ttl`` seconds, else None."""
        entry = self.get(key)
        if entry is None:
            return None
        record, ts = entry
        if now is None:
            now = time.time()
        if now - ts >= ttl:
            return None
        return record

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries
