"""Small time-boxed cache (value + fetch time + TTL) keyed independently."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    fetched_at: float


class TtlCache(Generic[T]):
    def __init__(self, ttl_seconds: float, *, now_fn: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._now = now_fn
        self._entries: dict[Hashable, CacheEntry[T]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> T | None:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or self._now() - entry.fetched_at >= self._ttl:
            return None
        return entry.value

    def peek(self, key: Hashable) -> T | None:
        """Return the last stored value even if it has expired."""
        with self._lock:
            entry = self._entries.get(key)
        return entry.value if entry else None

    def set(self, key: Hashable, value: T) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=value, fetched_at=self._now())

    def is_stale(self, key: Hashable) -> bool:
        with self._lock:
            entry = self._entries.get(key)
        return entry is None or self._now() - entry.fetched_at >= self._ttl

    def get_or_fetch(self, key: Hashable, fetch: Callable[[], T]) -> T:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = fetch()
        self.set(key, value)
        return value
