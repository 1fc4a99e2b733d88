"""
Poll-driven query cache.

Each registered query is identified by a tuple key (resource identity plus
frozen filter parameters) and owns:

- the last successful result and the last error (stale-while-error),
- at most one in-flight fetch task (single-flight),
- an optional interval loop that refetches on the query's cadence.

Reads are served from the cache; stale entries trigger a background
refetch, invalidated or empty entries are fetched before returning.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, List, Optional, Tuple, TypeVar

from ..gateway.client import GatewayError
from .sequence import SequenceGate

logger = logging.getLogger(__name__)

T = TypeVar("T")
QueryKey = Tuple[Hashable, ...]


@dataclass
class QuerySpec(Generic[T]):
    """
    Registration for one query.

    Attributes:
        key: Resource identity plus frozen parameters.
        fetch: Coroutine function producing the data.
        interval: Refetch cadence in seconds, or None for no polling.
        enabled: Disabled queries are neither polled nor fetched on read.
        refetch_in_background: Keep polling while the cache is not in the foreground.
        stale_time: Seconds a result is served without triggering a refetch.
    """
    key: QueryKey
    fetch: Callable[[], Awaitable[T]]
    interval: Optional[float] = None
    enabled: bool = True
    refetch_in_background: bool = False
    stale_time: float = 0.0


@dataclass
class QueryState(Generic[T]):
    data: Optional[T] = None
    error: Optional[GatewayError] = None
    updated_at: Optional[float] = None
    invalidated: bool = False
    invalidated_at_seq: int = 0
    fetch_count: int = 0

    @property
    def has_data(self) -> bool:
        return self.updated_at is not None

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error else None


class _Entry:
    def __init__(self, spec: QuerySpec):
        self.spec = spec
        self.state: QueryState = QueryState()
        self.gate = SequenceGate()
        self.in_flight: Optional[asyncio.Task] = None
        self.in_flight_seq = 0
        self.loop_task: Optional[asyncio.Task] = None

    @property
    def fetching(self) -> bool:
        return self.in_flight is not None and not self.in_flight.done()


def format_key(key: QueryKey) -> str:
    return "/".join(str(part) for part in key if part not in ((), None))


def _retrieve_exception(task: asyncio.Task) -> None:
    # Failures are recorded on the query state; mark them as retrieved.
    if not task.cancelled():
        task.exception()


class QueryCache:
    """
    Cache of registered queries with single-flight fetching and interval refresh.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[QueryKey, _Entry] = {}
        self._clock = clock
        self._running = False
        self._foreground = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def foreground(self) -> bool:
        return self._foreground

    def keys(self) -> List[QueryKey]:
        return list(self._entries)

    def register(self, spec: QuerySpec) -> QueryState:
        """
        Register (or re-register) a query.

        Re-registering an existing key keeps its cached state and replaces the
        fetch function and cadence.
        """
        entry = self._entries.get(spec.key)
        if entry is None:
            entry = _Entry(spec)
            self._entries[spec.key] = entry
            logger.debug("Registered query %s interval=%s", format_key(spec.key), spec.interval)
        else:
            entry.spec = spec
        if self._running:
            self._ensure_loop(entry)
        return entry.state

    def unregister(self, key: QueryKey) -> None:
        entry = self._entries.pop(key, None)
        if entry and entry.loop_task:
            entry.loop_task.cancel()

    def peek(self, key: QueryKey) -> Optional[QueryState]:
        entry = self._entries.get(key)
        return entry.state if entry else None

    def is_fetching(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        return bool(entry and entry.fetching)

    async def fetch(self, key: QueryKey) -> Any:
        """
        Fetch ``key`` now, joining the in-flight request if there is one.

        Raises:
            KeyError: The key is not registered.
            GatewayError: The fetch failed. Cached data is left untouched.
        """
        entry = self._entry(key)
        if not entry.fetching:
            self._start_fetch(entry)
        return await asyncio.shield(entry.in_flight)

    async def get(self, key: QueryKey) -> Any:
        """
        Read ``key`` through the cache.

        Fresh data is returned as is. Stale data is returned immediately while a
        background refetch runs. Missing or invalidated data is fetched first.
        """
        entry = self._entry(key)
        state = entry.state
        if not entry.spec.enabled:
            return state.data

        if state.has_data and not state.invalidated:
            if not self._is_fresh(entry) and not entry.fetching:
                self._start_fetch(entry)
            return state.data

        if state.invalidated and entry.fetching and entry.in_flight_seq <= state.invalidated_at_seq:
            # The running request predates the invalidation; let it settle first.
            try:
                await asyncio.shield(entry.in_flight)
            except GatewayError:
                pass
        return await self.fetch(key)

    def invalidate(self, prefix: QueryKey = ()) -> int:
        """
        Mark every query whose key starts with ``prefix`` as invalidated.

        Returns:
            The number of queries invalidated.
        """
        prefix = tuple(prefix)
        count = 0
        for key, entry in self._entries.items():
            if key[:len(prefix)] == prefix:
                entry.state.invalidated = True
                entry.state.invalidated_at_seq = entry.gate.issued
                count += 1
        logger.debug("Invalidated %d queries with prefix %s", count, format_key(prefix) or "*")
        return count

    def set_foreground(self, foreground: bool) -> None:
        if foreground != self._foreground:
            logger.debug("Query cache foreground=%s", foreground)
        self._foreground = foreground

    async def start(self, prefetch: bool = True) -> None:
        """Start interval loops and, optionally, the first fetch of every enabled query."""
        if self._running:
            logger.warning("Query cache is already running.")
            return
        self._running = True
        for entry in self._entries.values():
            self._ensure_loop(entry)
            if prefetch and entry.spec.enabled and not entry.state.has_data and not entry.fetching:
                self._start_fetch(entry)
        logger.info("Query cache started with %d queries", len(self._entries))

    async def stop(self) -> None:
        """Stop all interval loops. In-flight fetches are left to complete."""
        self._running = False
        tasks = [e.loop_task for e in self._entries.values() if e.loop_task and not e.loop_task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for entry in self._entries.values():
            entry.loop_task = None
        logger.info("Query cache stopped.")

    def _entry(self, key: QueryKey) -> _Entry:
        try:
            return self._entries[key]
        except KeyError:
            raise KeyError(f"Query {format_key(key)!r} is not registered") from None

    def _is_fresh(self, entry: _Entry) -> bool:
        updated_at = entry.state.updated_at
        return updated_at is not None and self._clock() - updated_at < entry.spec.stale_time

    def _start_fetch(self, entry: _Entry) -> asyncio.Task:
        seq = entry.gate.issue()
        task = asyncio.create_task(self._run_fetch(entry, seq))
        task.add_done_callback(_retrieve_exception)
        entry.in_flight = task
        entry.in_flight_seq = seq
        return task

    async def _run_fetch(self, entry: _Entry, seq: int) -> Any:
        state = entry.state
        state.fetch_count += 1
        try:
            data = await entry.spec.fetch()
        except GatewayError as e:
            if entry.gate.accept(seq):
                state.error = e
            logger.warning("Query %s failed: %s", format_key(entry.spec.key), e)
            raise

        if entry.gate.accept(seq):
            state.data = data
            state.error = None
            state.updated_at = self._clock()
            if state.invalidated and seq > state.invalidated_at_seq:
                state.invalidated = False
        else:
            logger.debug("Discarding stale result for %s (seq %d)", format_key(entry.spec.key), seq)
        return data

    def _ensure_loop(self, entry: _Entry) -> None:
        if not entry.spec.interval:
            return
        if entry.loop_task is None or entry.loop_task.done():
            entry.loop_task = asyncio.create_task(self._interval_loop(entry.spec.key))

    async def _interval_loop(self, key: QueryKey) -> None:
        while self._running:
            entry = self._entries.get(key)
            if entry is None or not entry.spec.interval:
                return
            await asyncio.sleep(entry.spec.interval)

            entry = self._entries.get(key)
            if entry is None:
                return
            if not entry.spec.enabled:
                continue
            if not self._foreground and not entry.spec.refetch_in_background:
                continue
            try:
                await self.fetch(key)
            except GatewayError:
                # Logged by _run_fetch; the cached data stays in place.
                continue
            except Exception:
                logger.exception("Unexpected error refreshing query %s", format_key(key))
