"""
Expiring, size-bounded fact cache used by the Almanac.
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Tuple

from shared.errors import ArgumentError
from shared.logging import get_logger


class CacheKey(NamedTuple):
    """Composite cache key: fact id plus canonical parameter rendering."""
    fact_id: str
    params: str


def _canonical(value: Any) -> Any:
    """Render ``value`` as plain JSON data that identifies it by value.

    Mappings become arrays of ``[key, value]`` pairs sorted on the JSON text
    of the key, so keys keep their type (``1`` and ``"1"`` differ) and mixed
    key types never need to be compared. Lists and tuples become
    ``{"seq": [...]}``. Anything else raises TypeError.
    """
    if value is None or isinstance(value, (str, bool, int, float)):
        return value

    if isinstance(value, Mapping):
        pairs = [[_canonical(k), _canonical(v)] for k, v in value.items()]
        pairs.sort(key=lambda pair: json.dumps(pair[0]))
        return pairs

    if isinstance(value, (list, tuple)):
        return {"seq": [_canonical(item) for item in value]}

    raise TypeError(f"{type(value).__name__} has no value-based cache rendering")


def make_cache_key(fact_id: str, params: Optional[Mapping[Any, Any]] = None) -> Optional[CacheKey]:
    """Build a deterministic key; parameter insertion order never matters.

    Returns None when a parameter value is not built from JSON scalars,
    mappings and sequences. Such values could only be told apart by
    identity, and identities are reused once objects are collected.
    """
    if not params:
        return CacheKey(fact_id, "")

    try:
        canonical = _canonical(params)
    except TypeError:
        return None
    return CacheKey(fact_id, json.dumps(canonical, separators=(",", ":")))


@dataclass
class CacheEntry:
    """A cached fact value with its creation time and expiry policy."""
    key: CacheKey
    value: Any
    created_at: float
    expiration_seconds: float = 0

    def is_expired(self, now: float) -> bool:
        if self.expiration_seconds <= 0:
            return False
        return now >= self.created_at + self.expiration_seconds


class CacheEntryStore:
    """In-memory fact cache with lazy TTL expiry and capacity eviction.

    Expired entries are purged when read. When ``max_size`` is positive,
    inserting a new key into a full store first evicts the entry with the
    oldest ``created_at``. Reads never refresh an entry's position.
    """

    def __init__(self, max_size: int = 0, clock: Callable[[], float] = time.monotonic):
        if max_size < 0:
            raise ArgumentError("Cache max size must not be negative", {"max_size": max_size})

        self.max_size = max_size
        self.logger = get_logger("rules_engine.cache")
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}

        self.hits = 0
        self.misses = 0
        self.expirations = 0
        self.evictions = 0

    def get(self, key: CacheKey) -> Tuple[bool, Any]:
        """Return ``(found, value)``; an expired entry is removed and reported missing."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return False, None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self.expirations += 1
            self.misses += 1
            self.logger.debug("Cache entry expired", fact_id=key.fact_id, params=key.params)
            return False, None

        self.hits += 1
        return True, entry.value

    def put(self, key: CacheKey, value: Any, expiration_seconds: float = 0) -> Optional[CacheEntry]:
        """Insert or overwrite ``key``. Returns the entry evicted to make room, if any."""
        evicted = None
        if key in self._entries:
            # Re-insert so iteration order keeps following created_at
            del self._entries[key]
        elif self.max_size > 0 and len(self._entries) >= self.max_size:
            evicted = self._evict_oldest()

        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            created_at=self._clock(),
            expiration_seconds=expiration_seconds,
        )
        return evicted

    def _evict_oldest(self) -> CacheEntry:
        oldest_key = min(self._entries, key=lambda k: self._entries[k].created_at)
        entry = self._entries.pop(oldest_key)
        self.evictions += 1
        self.logger.debug(
            "Cache entry evicted",
            fact_id=oldest_key.fact_id,
            params=oldest_key.params,
            max_size=self.max_size,
        )
        return entry

    def invalidate_fact(self, fact_id: str) -> int:
        """Remove every parameter variant cached for ``fact_id``."""
        stale = [key for key in self._entries if key.fact_id == fact_id]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> int:
        """Remove all entries."""
        removed = len(self._entries)
        self._entries.clear()
        return removed

    def keys(self) -> List[CacheKey]:
        """Keys currently held, oldest first. May include expired entries not yet read."""
        return list(self._entries)

    def peek(self, key: CacheKey) -> Optional[CacheEntry]:
        """Return the raw entry without expiry checks or stat updates."""
        return self._entries.get(key)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def stats(self) -> Dict[str, Any]:
        return {
            "entries": len(self._entries),
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "expirations": self.expirations,
            "evictions": self.evictions,
        }
