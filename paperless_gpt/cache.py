"""Bounded LRU cache shared by the LLM suggestion path and OCR."""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Generic, Hashable, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

DEFAULT_CAPACITY = 100


class ResponseCache(Generic[K, V]):
    """Thread-safe, capacity-bounded key -> value cache with strict LRU eviction.

    The most recently used entry sits at the end of the OrderedDict. A hit
    promotes the entry before the lock is released, so promotion always
    happens before the next eviction decision.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, name: str = "cache"):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self.name = name
        self._entries: OrderedDict[K, V] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def lookup(self, key: K) -> tuple[V | None, bool]:
        """Return ``(value, found)``; promotes the entry on hit."""
        with self._lock:
            if key not in self._entries:
                self.misses += 1
                return None, False
            self._entries.move_to_end(key)
            self.hits += 1
            return self._entries[key], True

    def get(self, key: K) -> V | None:
        value, _ = self.lookup(key)
        return value

    def put(self, key: K, value: V) -> None:
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            self._entries[key] = value
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> list[K]:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __repr__(self) -> str:
        return f"ResponseCache(name={self.name!r}, size={len(self)}, capacity={self.capacity})"
