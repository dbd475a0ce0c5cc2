"""
popups_api/services/cache.py – process-scoped cache with negative entries.

A cache read has three outcomes: a ``Present`` entry wrapping the serialized
bytes, the ``ABSENT`` marker recording that the durable store has no row for
the key, or ``None`` when nothing is cached. ``Absent`` is its own type, so it
can never be confused with a stored payload.
"""
from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Union


# ── Entries ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Present:
    value: bytes


class Absent:
    """Known-absent marker. Use the module-level ``ABSENT`` instance."""

    _instance: Optional["Absent"] = None

    def __new__(cls) -> "Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = Absent()

CacheEntry = Union[Present, Absent]


# ── Interface ─────────────────────────────────────────────────────────────────


class ProcessCache(ABC):
    """Shared cache consumed by the transient store.

    Entries may be evicted at any time; callers must treat ``None`` as
    "ask the durable store".
    """

    @abstractmethod
    def read(self, key: str) -> Optional[CacheEntry]:
        """Return the cached entry, or ``None`` if nothing is cached."""

    @abstractmethod
    def write(self, key: str, entry: CacheEntry) -> None:
        """Create or overwrite the entry for ``key``."""


# ── In-memory implementation ──────────────────────────────────────────────────


class InMemoryProcessCache(ProcessCache):
    """Thread-safe in-memory cache with an optional per-entry TTL.

    Keys are namespaced by ``group`` so several caches can share one
    process without clobbering each other.
    """

    def __init__(self, group: str = "default", ttl_seconds: Optional[int] = None) -> None:
        self._group = group
        self._ttl = ttl_seconds
        self._store: dict[tuple[str, str], tuple[CacheEntry, Optional[float]]] = {}
        self._lock = threading.Lock()

    @property
    def group(self) -> str:
        return self._group

    # ── Public API ────────────────────────────────────────────────────────────

    def read(self, key: str) -> Optional[CacheEntry]:
        slot = (self._group, key)
        with self._lock:
            item = self._store.get(slot)
            if item is None:
                return None
            entry, expires_at = item
            if expires_at is not None and time.monotonic() > expires_at:
                del self._store[slot]
                return None
            return entry

    def write(self, key: str, entry: CacheEntry) -> None:
        if not isinstance(entry, (Present, Absent)):
            raise TypeError(f"Cache entries must be Present or ABSENT, got {type(entry).__name__}")
        expires_at = time.monotonic() + self._ttl if self._ttl else None
        with self._lock:
            self._store[(self._group, key)] = (entry, expires_at)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
