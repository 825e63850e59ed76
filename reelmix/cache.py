"""Memoisation caches injected into the enrichment pipeline."""

from __future__ import annotations

import logging
from typing import Generic, MutableMapping, TypeVar

from cachetools import LRUCache, TTLCache

logger = logging.getLogger(__name__)

V = TypeVar("V")


class RecommendationCache(Generic[V]):
    """Natural-key cache over a pluggable mapping backend.

    Any ``MutableMapping`` works as a backend; the cachetools classes supply
    the eviction policy (LRU, TTL, LFU, ...). Values are written whole and
    never mutated in place.
    """

    def __init__(
        self,
        backend: MutableMapping[str, V] | None = None,
        *,
        name: str = "cache",
    ) -> None:
        self._backend: MutableMapping[str, V] = backend if backend is not None else {}
        self.name = name
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> V | None:
        """Return the cached value for ``key`` or ``None``."""

        if not key:
            return None
        try:
            value = self._backend[key]
        except KeyError:
            self.misses += 1
            return None
        self.hits += 1
        logger.debug("%s cache hit for %s", self.name, key)
        return value

    def set(self, key: str, value: V) -> None:
        if not key:
            return
        self._backend[key] = value

    def clear(self) -> None:
        self._backend.clear()
        self.hits = 0
        self.misses = 0

    def __contains__(self, key: object) -> bool:
        return key in self._backend

    def __len__(self) -> int:
        return len(self._backend)


def build_cache(
    maxsize: int,
    ttl_seconds: int | None = None,
    *,
    name: str = "cache",
) -> RecommendationCache:
    """Return a cache with the eviction policy implied by the settings.

    ``maxsize`` of zero keeps every entry for the lifetime of the process.
    """

    backend: MutableMapping[str, object]
    if maxsize <= 0:
        backend = {}
    elif ttl_seconds:
        backend = TTLCache(maxsize=maxsize, ttl=ttl_seconds)
    else:
        backend = LRUCache(maxsize=maxsize)
    return RecommendationCache(backend, name=name)
