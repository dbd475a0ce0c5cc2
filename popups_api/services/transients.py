"""
popups_api/services/transients.py – cache-aside transient store.

Reads consult the process cache first and fall through to the durable store
on a miss, caching the outcome either way. A durable miss is cached as
``ABSENT`` so repeated reads of a missing key never hit the durable store
again while the cache entry lives. Writes go to both.

The caller's ``DebugCounters`` are passed into every call and updated in
place; the store itself holds no per-request state.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from popups_api.exceptions import SerializationError
from popups_api.models import DebugCounters
from popups_api.services.cache import ABSENT, Absent, Present, ProcessCache
from popups_api.services.durable_store import DurableStore

logger = logging.getLogger(__name__)


# ── Serialization ─────────────────────────────────────────────────────────────


def serialize(value: Any) -> bytes:
    """Encode ``value`` as compact JSON bytes.

    Raises:
        SerializationError: if ``value`` is not JSON-representable.
    """
    try:
        text = json.dumps(value, separators=(",", ":"), sort_keys=True, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise SerializationError(
            f"Cannot serialize value of type {type(value).__name__}: {exc}"
        ) from exc
    return text.encode("utf-8")


def deserialize(blob: bytes) -> Any:
    """Decode a stored blob.

    Blobs that are not JSON come back as text; blobs that are not UTF-8 come
    back as the raw bytes.
    """
    try:
        text = blob.decode("utf-8")
    except UnicodeDecodeError:
        return bytes(blob)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


# ── Store ─────────────────────────────────────────────────────────────────────


class TransientStore:
    """Cache-aside get/set over an injected cache and durable store."""

    def __init__(
        self,
        cache: ProcessCache,
        durable: DurableStore,
        prefix: str = "_transient_",
        autoload: str = "no",
    ) -> None:
        self._cache = cache
        self._durable = durable
        self._prefix = prefix
        self._autoload = autoload

    @property
    def cache(self) -> ProcessCache:
        return self._cache

    @property
    def durable(self) -> DurableStore:
        return self._durable

    def storage_key(self, name: str) -> str:
        return f"{self._prefix}{name}"

    def get(self, name: str, counters: DebugCounters) -> Optional[Any]:
        """Return the transient's value, or ``None`` if it does not exist.

        Raises:
            StoreError: if the durable store fails on a cache miss. Nothing is
                cached in that case.
        """
        key = self.storage_key(name)
        entry = self._cache.read(key)

        if isinstance(entry, Absent):
            counters.read_empty_transients += 1
            counters.cache_count += 1
            logger.debug("Transient known absent", extra={"key": key})
            return None

        if isinstance(entry, Present):
            counters.cache_count += 1
            logger.debug("Transient cache hit", extra={"key": key})
            return deserialize(entry.value)

        counters.read_query_count += 1
        blob = self._durable.read(key)
        if blob is None:
            counters.write_empty_transients += 1
            self._cache.write(key, ABSENT)
            logger.debug("Transient missing from durable store", extra={"key": key})
            return None

        self._cache.write(key, Present(blob))
        logger.debug("Transient loaded from durable store", extra={"key": key})
        return deserialize(blob)

    def set(self, name: str, value: Any, counters: DebugCounters) -> None:
        """Write ``value`` through the cache to the durable store.

        Raises:
            SerializationError: before anything is written, if ``value``
                cannot be serialized.
            StoreError: if the durable upsert fails. The cache is left
                untouched in that case.
        """
        key = self.storage_key(name)
        blob = serialize(value)
        self._durable.upsert(key, blob, self._autoload)
        self._cache.write(key, Present(blob))
        counters.write_query_count += 1
        logger.debug("Transient written", extra={"key": key, "size": len(blob)})
