"""
Request coalescing primitives for the search path.

Two independent layers, both keyed by a canonical signature:

- `Debouncer`: calls on the same key within a quiet window collapse into one execution
  of the most recent factory; every caller in the window receives that result. Work that
  already started is never cancelled: if a newer call arrives while it runs, the stale
  result is discarded and its callers receive the newer window's result instead.
- `RequestCoalescer`: concurrent calls with the same key share one in-flight task
  (reference counted), and successful results are memoized for a short TTL.

Both assume a single event loop (cooperative concurrency, no locks).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Factory = Callable[[], Awaitable[T]]


@dataclass
class _Window(Generic[T]):
    future: asyncio.Future
    factory: Factory | None = None
    generation: int = 0
    started: bool = False
    superseded_by: "_Window[T] | None" = None


class Debouncer:
    """Trailing-edge debounce keyed by stream."""

    def __init__(self, window_seconds: float):
        self._window_seconds = max(0.0, float(window_seconds))
        self._windows: dict[Hashable, _Window] = {}
        self._background: set[asyncio.Task] = set()
        self.executions = 0

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    def _open_window(self, key: Hashable) -> _Window:
        current = self._windows.get(key)
        if current is not None and not current.started:
            return current
        window: _Window = _Window(future=asyncio.get_running_loop().create_future())
        if current is not None and not current.future.done():
            current.superseded_by = window
        self._windows[key] = window
        return window

    async def call(self, key: Hashable, factory: Factory[T]) -> T:
        window = self._open_window(key)
        window.generation += 1
        generation = window.generation
        window.factory = factory

        try:
            await asyncio.sleep(self._window_seconds)
        except asyncio.CancelledError:
            # The other callers in this window still need an answer.
            if window.generation == generation and not window.started:
                window.started = True
                task = asyncio.ensure_future(self._fire(key, window))
                self._background.add(task)
                task.add_done_callback(self._background.discard)
            raise

        if window.generation == generation and not window.started:
            window.started = True
            await self._fire(key, window)
        return await self._result(window)

    async def _fire(self, key: Hashable, window: _Window) -> None:
        self.executions += 1
        factory = window.factory
        try:
            if factory is None:
                raise RuntimeError("debounce window fired without a factory")
            value = await factory()
        except asyncio.CancelledError:
            window.future.cancel()
            raise
        except Exception as exc:
            window.future.set_exception(exc)
        else:
            window.future.set_result(value)
        finally:
            if self._windows.get(key) is window:
                del self._windows[key]

    async def _result(self, window: _Window) -> Any:
        try:
            value = await asyncio.shield(window.future)
        except Exception:
            if window.superseded_by is not None:
                return await self._result(window.superseded_by)
            raise
        if window.superseded_by is not None:
            logger.debug("Discarding superseded debounced result")
            return await self._result(window.superseded_by)
        return value


@dataclass
class _Pending:
    task: asyncio.Future
    refcount: int = 0


@dataclass
class CoalescerStats:
    memo_hits: int = 0
    shared: int = 0
    started: int = 0
    waiters: dict[Hashable, int] = field(default_factory=dict)


class RequestCoalescer:
    """Share in-flight work per key and memoize successful results for `ttl_seconds`."""

    def __init__(self, ttl_seconds: float, *, max_memo_entries: int = 256):
        self._ttl_seconds = max(0.0, float(ttl_seconds))
        self._max_memo_entries = max(1, int(max_memo_entries))
        self._inflight: dict[Hashable, _Pending] = {}
        self._memo: dict[Hashable, tuple[float, Any]] = {}
        self.stats = CoalescerStats()

    def _memo_get(self, key: Hashable) -> tuple[bool, Any]:
        hit = self._memo.get(key)
        if hit is None:
            return False, None
        stored_at, value = hit
        if time.time() - stored_at > self._ttl_seconds:
            del self._memo[key]
            return False, None
        return True, value

    def _memo_set(self, key: Hashable, value: Any) -> None:
        if self._ttl_seconds <= 0:
            return
        self._memo.pop(key, None)
        self._memo[key] = (time.time(), value)
        while len(self._memo) > self._max_memo_entries:
            del self._memo[next(iter(self._memo))]

    def _settle(self, key: Hashable, pending: _Pending, task: asyncio.Future) -> None:
        if self._inflight.get(key) is pending:
            del self._inflight[key]
        self.stats.waiters.pop(key, None)
        if task.cancelled() or task.exception() is not None:
            return
        self._memo_set(key, task.result())

    async def run(self, key: Hashable, factory: Factory[T]) -> T:
        found, value = self._memo_get(key)
        if found:
            self.stats.memo_hits += 1
            return value

        pending = self._inflight.get(key)
        if pending is None:
            pending = _Pending(task=asyncio.ensure_future(factory()))
            self._inflight[key] = pending
            pending.task.add_done_callback(lambda t, k=key, p=pending: self._settle(k, p, t))
            self.stats.started += 1
        else:
            self.stats.shared += 1

        pending.refcount += 1
        self.stats.waiters[key] = pending.refcount
        try:
            # Shielded: one caller going away must not cancel the shared work.
            return await asyncio.shield(pending.task)
        finally:
            pending.refcount -= 1
            if key in self.stats.waiters:
                self.stats.waiters[key] = pending.refcount

    def inflight_count(self) -> int:
        return len(self._inflight)

    def clear(self) -> None:
        self._memo.clear()
