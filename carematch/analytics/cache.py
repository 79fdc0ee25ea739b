from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

_DEFAULT_TTL = 300  # 5 minutes


def _make_key(request_dict: dict) -> str:
    normalized = json.dumps(request_dict, sort_keys=True, default=str)
    return hashlib.sha256(normalized.encode()).hexdigest()[:16]


class ReportCache:
    """Key -> value cache with a TTL and explicit invalidation."""

    def __init__(
        self,
        ttl_seconds: float = _DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._generation = 0

    @property
    def generation(self) -> int:
        """Bumped by every invalidation."""
        with self._lock:
            return self._generation

    def get(self, request_dict: dict) -> Any | None:
        key = _make_key(request_dict)
        with self._lock:
            entry = self._entries.get(key)
            if entry and self._clock() - entry["created_at"] < self.ttl_seconds:
                self._hits += 1
                logger.debug("Report cache hit for %s", request_dict)
                return entry["value"]
            if entry:
                del self._entries[key]
            self._misses += 1
            return None

    def set(self, request_dict: dict, value: Any, generation: int | None = None) -> bool:
        """Store *value* unless the cache was invalidated after *generation* was read."""
        key = _make_key(request_dict)
        with self._lock:
            if generation is not None and generation != self._generation:
                logger.debug("Dropping stale report for %s", request_dict)
                return False
            self._entries[key] = {"value": value, "created_at": self._clock()}
            return True

    def invalidate(self) -> None:
        """Drop every cached entry, keeping hit/miss counters."""
        with self._lock:
            self._entries.clear()
            self._generation += 1

    def stats(self) -> dict:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
            }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generation += 1
            self._hits = 0
            self._misses = 0
