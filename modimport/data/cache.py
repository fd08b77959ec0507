"""In-memory TTL cache with explicit invalidation."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from time import monotonic
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    stored_at: float
    expires_at: float


class TTLCache(Generic[T]):
    """Thread-safe TTL cache keyed by string.

    A ``ttl_s`` of zero or less keeps values until they are invalidated.
    """

    def __init__(self, ttl_s: float) -> None:
        self._ttl_s = ttl_s
        self._items: dict[str, CacheEntry[T]] = {}
        self._lock = Lock()

    @property
    def ttl_s(self) -> float:
        return self._ttl_s

    def get(self, key: str) -> T | None:
        now = monotonic()
        with self._lock:
            entry = self._items.get(key)
            if not entry:
                return None
            if entry.expires_at <= now:
                self._items.pop(key, None)
                return None
            return entry.value

    def set(self, key: str, value: T) -> None:
        now = monotonic()
        expires_at = now + self._ttl_s if self._ttl_s > 0 else float("inf")
        with self._lock:
            self._items[key] = CacheEntry(value=value, stored_at=now, expires_at=expires_at)

    def age(self, key: str) -> float | None:
        """Seconds since ``key`` was stored, or None when absent."""
        with self._lock:
            entry = self._items.get(key)
            if not entry:
                return None
            return monotonic() - entry.stored_at

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._items.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
