"""In-process cache store.

Mirrors the subset of Redis semantics the event subsystem relies on (TTLs,
inclusive list ranges with negative indexes) so it can stand in for Redis in
single-process deployments and tests.
"""

import threading
import time
from collections.abc import Callable
from datetime import timedelta

from pydantic import BaseModel

from .base import CacheStore


class _Entry(BaseModel):
    value: str | list[str]
    expires_at: float | None = None


def _inclusive_range(length: int, start: int, end: int) -> tuple[int, int] | None:
    """Normalize Redis-style inclusive indexes into a Python slice, or None when empty."""
    if start < 0:
        start = max(length + start, 0)
    if end < 0:
        end = length + end
    end = min(end, length - 1)
    if start > end:
        return None
    return start, end + 1


class InMemoryCacheStore(CacheStore):
    """Thread-safe dictionary-backed ``CacheStore``.

    Expired entries are dropped lazily when touched.

    Args:
        clock: Monotonic time source in seconds, replaceable in tests
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.RLock()
        self._clock = clock

    def _live(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    def _deadline(self, ttl: timedelta | None) -> float | None:
        return None if ttl is None else self._clock() + ttl.total_seconds()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return None
            if isinstance(entry.value, list):
                raise TypeError(f"Key {key} holds a list, not a string")
            return entry.value

    def set(self, key: str, value: str, ttl: timedelta | None = None) -> None:
        with self._lock:
            self._entries[key] = _Entry(value=value, expires_at=self._deadline(ttl))

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None and self._entries.pop(key, None) is not None

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    def push_left(self, key: str, value: str) -> int:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                entry = self._entries[key] = _Entry(value=[])
            if not isinstance(entry.value, list):
                raise TypeError(f"Key {key} holds a string, not a list")
            entry.value.insert(0, value)
            return len(entry.value)

    def trim(self, key: str, start: int, end: int) -> None:
        with self._lock:
            entry = self._live(key)
            if entry is None or not isinstance(entry.value, list):
                return
            bounds = _inclusive_range(len(entry.value), start, end)
            if bounds is None:
                del self._entries[key]
            else:
                entry.value = entry.value[bounds[0] : bounds[1]]

    def list_range(self, key: str, start: int = 0, end: int = -1) -> list[str]:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return []
            if not isinstance(entry.value, list):
                raise TypeError(f"Key {key} holds a string, not a list")
            bounds = _inclusive_range(len(entry.value), start, end)
            return [] if bounds is None else list(entry.value[bounds[0] : bounds[1]])

    def expire(self, key: str, ttl: timedelta) -> bool:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return False
            entry.expires_at = self._deadline(ttl)
            return True

    def close(self) -> None:
        with self._lock:
            self._entries.clear()
