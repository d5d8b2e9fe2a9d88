"""Process-local expiring cache for provider responses."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Union

TTL = Union[int, float, timedelta]

DEFAULT_TTL_SECONDS = 5 * 60


def _ttl_seconds(ttl: TTL) -> float:
    if isinstance(ttl, timedelta):
        return ttl.total_seconds()
    return float(ttl)


@dataclass
class _CacheEntry:
    value: Any
    created_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl


class ResponseCache:
    """Key/value store with per-entry expiry checked lazily on read.

    There is no capacity bound and no background sweep: an expired entry stays
    in memory until the next ``get`` for its key. Instances are owned by a
    single event loop and must not be shared across processes.
    """

    def __init__(
        self,
        default_ttl: TTL = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_ttl = _ttl_seconds(default_ttl)
        self._clock = clock
        self._entries: Dict[str, _CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if entry.expired(self._clock()):
            del self._entries[key]
            self._misses += 1
            return None
        self._hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[TTL] = None) -> None:
        seconds = self._default_ttl if ttl is None else _ttl_seconds(ttl)
        self._entries[key] = _CacheEntry(value=value, created_at=self._clock(), ttl=seconds)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> Dict[str, int]:
        return {"size": len(self._entries), "hits": self._hits, "misses": self._misses}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


__all__ = ["DEFAULT_TTL_SECONDS", "ResponseCache"]
