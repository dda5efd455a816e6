from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from threading import Lock
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from .match_utils import normalize_query_key

logger = logging.getLogger(__name__)


class _Miss:
    def __repr__(self) -> str:
        return "MISS"

    def __bool__(self) -> bool:
        return False


MISS: Any = _Miss()


class QueryCache:
    """Process-lifetime cache for catalog lookups.

    Entries are append-only: once a key is recorded its value is never
    replaced, so readers only need the insertion lock.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._entries: Dict[tuple[str, str], Any] = {}
        self._key_locks: Dict[tuple[str, str], Lock] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(namespace: str, key: str) -> tuple[str, str]:
        return namespace, normalize_query_key(key)

    def lookup(self, namespace: str, key: str) -> Any:
        cache_key = self.make_key(namespace, key)
        with self._lock:
            value = self._entries.get(cache_key, MISS)
            if value is MISS:
                self.misses += 1
            else:
                self.hits += 1
        return value

    def record(self, namespace: str, key: str, value: Any) -> Any:
        cache_key = self.make_key(namespace, key)
        with self._lock:
            return self._entries.setdefault(cache_key, value)

    def __contains__(self, item: tuple[str, str]) -> bool:
        namespace, key = item
        with self._lock:
            return self.make_key(namespace, key) in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_or_fetch(self, namespace: str, key: str, fetch: Callable[[], Any]) -> Any:
        """Return the cached value or fetch it, at most once per key."""
        cached = self.lookup(namespace, key)
        if cached is not MISS:
            logger.debug("Cache hit for %s %r", namespace, key)
            return cached
        with self._key_lock(namespace, key):
            cache_key = self.make_key(namespace, key)
            with self._lock:
                cached = self._entries.get(cache_key, MISS)
            if cached is not MISS:
                return cached
            logger.debug("Cache miss for %s %r", namespace, key)
            return self.record(namespace, key, fetch())

    def lookup_many(
        self,
        namespace: str,
        keys: Sequence[str],
        fetch_one: Callable[[str], Any],
        fetch_batch: Optional[Callable[[List[str]], List[Any]]] = None,
        batch_size: int = 1,
    ) -> List[Any]:
        """Resolve several keys, grouping misses into batches.

        ``fetch_batch`` receives up to ``batch_size`` keys and must return
        one value per key, in order. Without it each miss goes through
        ``fetch_one``.
        """
        results: Dict[str, Any] = {}
        pending: List[str] = []
        seen: set[str] = set()
        for key in keys:
            normalized = normalize_query_key(key)
            if normalized in seen:
                continue
            seen.add(normalized)
            cached = self.lookup(namespace, key)
            if cached is MISS:
                pending.append(key)
            else:
                results[normalized] = cached
        size = max(1, batch_size)
        for start in range(0, len(pending), size):
            chunk = pending[start : start + size]
            if fetch_batch is not None and len(chunk) > 1:
                values = fetch_batch(chunk)
                if len(values) != len(chunk):
                    raise ValueError(
                        f"batch fetch returned {len(values)} results for {len(chunk)} keys"
                    )
            else:
                values = [fetch_one(key) for key in chunk]
            for key, value in zip(chunk, values):
                results[normalize_query_key(key)] = self.record(namespace, key, value)
        return [results[normalize_query_key(key)] for key in keys]

    def _key_lock(self, namespace: str, key: str) -> Lock:
        cache_key = self.make_key(namespace, key)
        with self._lock:
            lock = self._key_locks.get(cache_key)
            if lock is None:
                lock = self._key_locks[cache_key] = Lock()
            return lock


class RateLimiter:
    """Serializes outbound calls and keeps a minimum interval between them."""

    def __init__(
        self,
        min_interval: float = 1.1,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = max(0.0, float(min_interval))
        self._clock = clock
        self._sleep = sleep
        self._lock = Lock()
        self._last_call: Optional[float] = None
        self.calls = 0

    def throttle(self) -> None:
        with self._lock:
            self._wait_locked()

    @contextmanager
    def slot(self) -> Iterator[None]:
        """Hold the dispatch lock for the duration of one remote call."""
        with self._lock:
            self._wait_locked()
            yield

    def _wait_locked(self) -> None:
        now = self._clock()
        if self._last_call is not None:
            remaining = self.min_interval - (now - self._last_call)
            if remaining > 0:
                logger.debug("Rate limiting: sleeping %.2fs", remaining)
                self._sleep(remaining)
                now = self._clock()
        self._last_call = now
        self.calls += 1
