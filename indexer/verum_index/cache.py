"""
TTL cache for reconstructed views.

Each component (feed, profile, story, engagement) receives its own
TtlCache instance instead of keeping module-level maps.

Invariants:
    - Entries are immutable snapshots: set() replaces, never mutates
    - An expired entry is never returned
    - A disabled cache stores nothing and always misses
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

V = TypeVar("V")


@dataclass(frozen=True)
class _Entry(Generic[V]):
    value: V
    expires_at: float


class TtlCache(Generic[V]):
    """Key/value cache with per-entry expiry.

    Example:
        >>> cache = TtlCache(default_ttl=30)
        >>> cache.set("feed:global", page)
        >>> cache.get("feed:global")
    """

    def __init__(
        self,
        default_ttl: float = 30.0,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            default_ttl: TTL applied when set() is given none (seconds)
            enabled: When False, set() is a no-op and get() always misses
            clock: Monotonic time source; injected for tests
        """
        self.default_ttl = default_ttl
        self.enabled = enabled
        self._clock = clock
        self._entries: Dict[str, _Entry[V]] = {}

    def get(self, key: str) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: V, ttl: Optional[float] = None) -> None:
        if not self.enabled:
            return
        lifetime = self.default_ttl if ttl is None else ttl
        self._entries[key] = _Entry(value=value, expires_at=self._clock() + lifetime)

    def invalidate(self, key: str) -> bool:
        """Drop one entry. Returns whether it was present."""
        return self._entries.pop(key, None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every entry whose key starts with prefix. Returns the count."""
        keys = [k for k in self._entries if k.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def purge_expired(self) -> int:
        """Drop expired entries. Returns the count."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Any) -> bool:
        return isinstance(key, str) and self.get(key) is not None
