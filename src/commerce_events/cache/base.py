"""Cache collaborator contract.

The publisher uses a key-value store with TTLs plus a list structure for
idempotency marks, delayed-event staging and the recent-events replay list.
Implementations must be safe to share between threads.
"""

from abc import ABC, abstractmethod
from datetime import timedelta


class CacheStore(ABC):
    """Key-value and list operations needed by the event subsystem."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the value stored under ``key`` or None."""

    @abstractmethod
    def set(self, key: str, value: str, ttl: timedelta | None = None) -> None:
        """Store ``value`` under ``key``, expiring after ``ttl`` when given."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if it existed."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check whether ``key`` holds a live value."""

    @abstractmethod
    def push_left(self, key: str, value: str) -> int:
        """Prepend ``value`` to the list at ``key`` and return the new length."""

    @abstractmethod
    def trim(self, key: str, start: int, end: int) -> None:
        """Keep only the inclusive ``start``..``end`` range of the list at ``key``."""

    @abstractmethod
    def list_range(self, key: str, start: int = 0, end: int = -1) -> list[str]:
        """Return the inclusive ``start``..``end`` range of the list at ``key``."""

    @abstractmethod
    def expire(self, key: str, ttl: timedelta) -> bool:
        """Set a TTL on an existing key. Returns False if the key does not exist."""

    def close(self) -> None:  # noqa: B027
        """Release client resources."""
