"""
Bounded context cache

Fixed-capacity in-process store of hydrated MemoryContext objects.
"""

from __future__ import annotations

from collections import OrderedDict
from threading import Lock
from typing import Any, Literal

from loguru import logger

from ..core.models import MemoryContext
from ..storage.keys import session_key

EvictionPolicy = Literal["fifo", "lru"]


class ContextCache:
    """
    Capacity-bounded context cache

    - FIFO (default): the oldest inserted key is evicted; reads do not
      change the order.
    - LRU: every hit moves the key to the most-recent end.
    - Thread-safe: one Lock guards the ordered map and the statistics.
    - Evicted contexts are only dropped from memory; their durable copy is
      untouched and the next access rehydrates them.
    """

    def __init__(self, capacity: int = 100, policy: EvictionPolicy = "fifo"):
        """
        Args:
            capacity: maximum number of cached contexts
            policy: "fifo" or "lru"
        """
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        if policy not in ("fifo", "lru"):
            raise ValueError(f"Unknown eviction policy: {policy}")

        self._capacity = capacity
        self._policy = policy
        self._cache: OrderedDict[str, MemoryContext] = OrderedDict()
        self._lock = Lock()
        self._stats = {"hits": 0, "misses": 0, "evictions": 0}

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def policy(self) -> EvictionPolicy:
        return self._policy

    def _make_key(self, user_id: str, session_id: str) -> str:
        return session_key(user_id, session_id)

    def _evict_for_insert(self) -> list[str]:
        """Free one slot (called with the lock held)"""
        evicted = []
        while len(self._cache) >= self._capacity:
            key, _ = self._cache.popitem(last=False)
            self._stats["evictions"] += 1
            evicted.append(key)
            logger.debug(f"Evicted context from cache: {key}")
        return evicted

    def get(self, user_id: str, session_id: str) -> MemoryContext | None:
        """
        Look up a cached context

        Returns:
            the cached context, or None on a miss
        """
        key = self._make_key(user_id, session_id)

        with self._lock:
            context = self._cache.get(key)
            if context is None:
                self._stats["misses"] += 1
                return None

            if self._policy == "lru":
                self._cache.move_to_end(key)
            self._stats["hits"] += 1
            return context

    def set(self, context: MemoryContext) -> list[str]:
        """
        Cache a context, evicting first when at capacity

        Replacing an existing key keeps its FIFO position.

        Returns:
            keys evicted to make room
        """
        key = self._make_key(context.user_id, context.session_id)

        with self._lock:
            evicted: list[str] = []
            if key not in self._cache:
                evicted = self._evict_for_insert()

            self._cache[key] = context
            if self._policy == "lru":
                self._cache.move_to_end(key)
            return evicted

    def invalidate(self, user_id: str, session_id: str) -> bool:
        """
        Drop one cached context

        Returns:
            whether an entry was removed
        """
        key = self._make_key(user_id, session_id)

        with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    def clear(self) -> int:
        """
        Drop every cached context

        Returns:
            number of entries removed
        """
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
            return count

    def keys(self) -> list[str]:
        """Cached keys, next eviction candidate first"""
        with self._lock:
            return list(self._cache)

    def user_ids(self) -> set[str]:
        """Users with at least one cached session"""
        with self._lock:
            return {context.user_id for context in self._cache.values()}

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._stats["hits"] + self._stats["misses"]
            hit_rate = self._stats["hits"] / total if total > 0 else 0

            return {
                "hits": self._stats["hits"],
                "misses": self._stats["misses"],
                "hit_rate": f"{hit_rate:.1%}",
                "evictions": self._stats["evictions"],
                "size": len(self._cache),
                "capacity": self._capacity,
                "policy": self._policy,
            }

    def reset_stats(self) -> None:
        with self._lock:
            self._stats = {"hits": 0, "misses": 0, "evictions": 0}

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def __contains__(self, key: tuple[str, str]) -> bool:
        """Membership by (user_id, session_id) without touching stats or order"""
        user_id, session_id = key
        with self._lock:
            return self._make_key(user_id, session_id) in self._cache
