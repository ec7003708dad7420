"""
Single-flight memoization for async operations.

Concurrent calls with the same key share one in-flight execution: the pending
task is stored before it runs, so a second caller awaits it instead of
starting its own. A task that ends with an exception (or is cancelled) is
evicted before any later call can observe it, so failures are never served
from the cache and the next call retries.

The cache lives for the lifetime of the process: no size bound, no TTL.
`cache_clear()` exists for tests.
"""

from __future__ import annotations

import asyncio
import functools
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Hashable, Optional, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class _Skip:
    """Sentinel type returned by key functions to bypass the cache."""

    _instance: Optional["_Skip"] = None

    def __new__(cls) -> "_Skip":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SKIP"


SKIP = _Skip()


@dataclass(frozen=True)
class CacheInfo:
    hits: int
    misses: int
    skipped: int
    size: int


class SingleFlightCache(Generic[K, V]):
    """
    Keyed store of in-flight and completed async results.

    Usage:
        cache: SingleFlightCache[str, dict] = SingleFlightCache()
        info = await cache.run(key, lambda: fetch(url))
    """

    def __init__(self) -> None:
        self._tasks: dict[K, asyncio.Future[V]] = {}
        self._hits = 0
        self._misses = 0
        self._skipped = 0

    def __contains__(self, key: object) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    async def run(self, key: K, factory: Callable[[], Awaitable[V]]) -> V:
        """
        Return the cached result for `key`, joining an in-flight execution or
        starting one via `factory()`.
        """
        task = self._tasks.get(key)
        if task is not None and task.done() and _failed(task):
            self._evict(key, task)
            task = None

        if task is None:
            self._misses += 1
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            task.add_done_callback(functools.partial(self._on_done, key))
        else:
            self._hits += 1

        if task.done():
            return task.result()
        # Shield: a caller being cancelled must not cancel work others await.
        return await asyncio.shield(task)

    def note_skip(self) -> None:
        self._skipped += 1

    def discard(self, key: K) -> None:
        """Forget a completed entry so the next call recomputes it."""
        task = self._tasks.get(key)
        if task is not None and task.done():
            del self._tasks[key]

    def cache_clear(self) -> None:
        """Forget every entry and reset statistics (tests only)."""
        self._tasks.clear()
        self._hits = 0
        self._misses = 0
        self._skipped = 0

    def cache_info(self) -> CacheInfo:
        return CacheInfo(hits=self._hits, misses=self._misses, skipped=self._skipped, size=len(self._tasks))

    def _on_done(self, key: K, task: asyncio.Future[V]) -> None:
        if _failed(task):
            self._evict(key, task)

    def _evict(self, key: K, task: asyncio.Future[V]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]


def _failed(task: asyncio.Future[Any]) -> bool:
    return task.cancelled() or task.exception() is not None


def _default_key(*args: Any, **kwargs: Any) -> Hashable:
    return (args, tuple(sorted(kwargs.items())))


def memoize(
    op: Callable[..., Awaitable[V]],
    key: Optional[Callable[..., Any]] = None,
) -> "Memoized[V]":
    """
    Wrap an async callable with a single-flight cache.

    Args:
        op: The async operation to memoize.
        key: Maps the call arguments to a hashable cache key, or SKIP to run
            `op` uncached. Defaults to the positional and keyword arguments.

    Returns:
        An awaitable callable exposing `cache`, `cache_clear()` and `cache_info()`.
    """
    return Memoized(op, key or _default_key)


class Memoized(Generic[V]):
    def __init__(self, op: Callable[..., Awaitable[V]], key: Callable[..., Any]) -> None:
        self._op = op
        self._key = key
        self.cache: SingleFlightCache[Any, V] = SingleFlightCache()
        functools.update_wrapper(self, op)

    async def __call__(self, *args: Any, **kwargs: Any) -> V:
        k = self._key(*args, **kwargs)
        if k is SKIP:
            self.cache.note_skip()
            return await self._op(*args, **kwargs)
        return await self.cache.run(k, lambda: self._op(*args, **kwargs))

    def cache_clear(self) -> None:
        self.cache.cache_clear()

    def cache_info(self) -> CacheInfo:
        return self.cache.cache_info()
