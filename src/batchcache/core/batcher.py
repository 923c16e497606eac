"""
Main Batcher engine.

Coalesces per-identifier fetches into windowed resolver calls,
deduplicates concurrent requests and caches every resolved value.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Set, Union

import structlog

from batchcache.config import BatcherConfig, get_config
from batchcache.core.batch import Batch
from batchcache.core.entry import EntryState
from batchcache.resolver.interface import CallableResolver, Resolver, ResolverFailure, ResolverResult
from batchcache.state.cache import EntryCache
from batchcache.state.handlers import Continuation, ErrorCallback, FetchHandle, HandlerRegistry

logger = structlog.get_logger(__name__)

ResolverLike = Union[Resolver, Callable[[List[int]], Awaitable[Mapping[int, Any]]]]


class FetchTimeout(Exception):
    """Raised through ``on_error`` when a fetch waits longer than its timeout."""

    def __init__(self, identifier: int, timeout: float):
        super().__init__(f"Identifier {identifier} not resolved within {timeout}s")
        self.identifier = identifier
        self.timeout = timeout


class Batcher:
    """
    Request-batching cache.

    Fetching an identifier that is not cached starts a batch made of the
    identifier and the absent identifiers that follow it in the universe,
    up to ``window_size`` positions. Identifiers already in flight are
    skipped, so every identifier is resolved at most once per universe.

    The batcher is owned by a single asyncio event loop: ``fetch``, resolver
    completions and timeouts all run on it, so cache and handler state are
    never touched concurrently.

    Usage:
        ```python
        batcher = Batcher(resolver)
        batcher.set_universe(row_ids)
        batcher.fetch(row_ids[0], render_row)
        value = await batcher.get(row_ids[3])
        ```
    """

    def __init__(
        self,
        resolver: ResolverLike,
        config: Optional[BatcherConfig] = None,
        window_size: Optional[int] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        """
        Initialize the batcher.

        Args:
            resolver: Resolver instance or ``async def resolve(batch)`` callable
            config: Batcher configuration
            window_size: Overrides ``config.window_size``
            loop: Event loop that runs resolver calls (running loop if not provided)
        """
        self.config = config or get_config()

        if isinstance(resolver, Resolver):
            self.resolver = resolver
        elif callable(resolver):
            self.resolver = CallableResolver(resolver)
        else:
            raise TypeError(f"Resolver must be a Resolver or a coroutine function, got {type(resolver).__name__}")

        self.window_size = window_size if window_size is not None else self.config.window_size
        if self.window_size < 1:
            raise ValueError("window_size must be at least 1")

        self._loop = loop

        # Universe
        self._universe: List[int] = []
        self._positions: Dict[int, int] = {}
        self._generation = 0

        # State
        self._cache = EntryCache()
        self._handlers = HandlerRegistry()
        self._in_flight: Dict[str, Batch] = {}
        self._tasks: Set[asyncio.Task] = set()
        # Identifiers whose batch failed in the current generation
        self._failed: Dict[int, ResolverFailure] = {}

        # Statistics
        self._stats = {
            "fetches": 0,
            "cache_hits": 0,
            "coalesced": 0,
            "batches_dispatched": 0,
            "batches_completed": 0,
            "batches_partial": 0,
            "batches_failed": 0,
            "timeouts": 0,
        }

        # Callbacks
        self._on_batch_dispatched: Optional[Callable[[Batch], None]] = None
        self._on_batch_completed: Optional[Callable[[Batch], None]] = None
        self._on_batch_failed: Optional[Callable[[Batch, Exception], None]] = None

    # Universe

    @property
    def universe(self) -> List[int]:
        """Copy of the current universe."""
        return list(self._universe)

    @property
    def generation(self) -> int:
        """Incremented each time the universe is replaced."""
        return self._generation

    def set_universe(self, ids: Iterable[int]) -> None:
        """
        Replace the universe and discard the cache.

        Handlers still waiting on identifiers from the previous universe are
        left registered. They fire if their in-flight batch returns, but the
        values from such a batch are not cached.

        Args:
            ids: Ordered identifiers now in scope for batching
        """
        self._universe = list(ids)

        positions: Dict[int, int] = {}
        for index, identifier in enumerate(self._universe):
            positions.setdefault(identifier, index)
        self._positions = positions

        discarded = self._cache.clear()
        self._failed.clear()
        self._generation += 1

        logger.info(
            "universe_replaced",
            size=len(self._universe),
            generation=self._generation,
            discarded=discarded,
            orphaned=len(self._handlers.waiting_identifiers()),
        )

    # Fetching

    def fetch(
        self,
        identifier: int,
        continuation: Continuation,
        on_error: Optional[ErrorCallback] = None,
        timeout: Optional[float] = None,
    ) -> FetchHandle:
        """
        Request the value for an identifier.

        Calls ``continuation`` synchronously on a cache hit. Otherwise the
        continuation is queued and fires once the identifier resolves. Never
        raises for resolver problems.

        Args:
            identifier: Identifier to fetch
            continuation: Called once with the value
            on_error: Optional failure channel for resolver failures and timeouts
            timeout: Seconds to wait before giving up (``config.fetch_timeout_seconds`` if None)

        Returns:
            Handle that can cancel the registration
        """
        self._stats["fetches"] += 1
        handle = FetchHandle(identifier=identifier, continuation=continuation, on_error=on_error)

        if self._cache.is_resolved(identifier):
            self._stats["cache_hits"] += 1
            handle.deliver(self._cache.value_of(identifier))
            return handle

        loop = self._get_loop()
        self._handlers.register(handle)

        if timeout is None:
            timeout = self.config.fetch_timeout_seconds
        if timeout is not None:
            handle.timer = loop.call_later(timeout, self._expire, handle, timeout)

        if self._cache.is_pending(identifier):
            failure = self._failed.get(identifier)
            if failure is not None and handle.deliver_error(failure):
                self._handlers.remove(handle)
                logger.debug("fetch_failed_batch", identifier=identifier)
                return handle
            self._stats["coalesced"] += 1
            logger.debug("fetch_coalesced", identifier=identifier)
            return handle

        batch = self._build_batch(identifier)
        self._dispatch(batch, loop)
        return handle

    async def get(self, identifier: int, timeout: Optional[float] = None) -> Any:
        """
        Await the value for an identifier.

        Raises:
            ResolverFailure: If the batch covering the identifier failed
            FetchTimeout: If ``timeout`` expired first
        """
        future = self._get_loop().create_future()

        def _set_result(value: Any) -> None:
            if not future.done():
                future.set_result(value)

        def _set_error(error: Exception) -> None:
            if not future.done():
                future.set_exception(error)

        handle = self.fetch(identifier, _set_result, on_error=_set_error, timeout=timeout)
        try:
            return await future
        except asyncio.CancelledError:
            handle.cancel()
            raise

    async def get_many(self, identifiers: Iterable[int], timeout: Optional[float] = None) -> List[Any]:
        """Await values for several identifiers, in the order given."""
        return await asyncio.gather(*[self.get(i, timeout=timeout) for i in identifiers])

    async def wait_idle(self) -> None:
        """Wait until no resolver call is outstanding."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # Batch formation

    def _build_batch(self, identifier: int) -> Batch:
        """Collect the identifier plus absent neighbours in its universe window."""
        batch = Batch(generation=self._generation)
        batch.identifiers.append(identifier)
        self._cache.mark_pending(identifier, batch.batch_id)

        position = self._positions.get(identifier)
        if position is not None:
            window = self._universe[position + 1:position + self.window_size]
            for neighbour in window:
                if self._cache.state_of(neighbour) == EntryState.ABSENT:
                    batch.identifiers.append(neighbour)
                    self._cache.mark_pending(neighbour, batch.batch_id)

        return batch

    def _dispatch(self, batch: Batch, loop: asyncio.AbstractEventLoop) -> None:
        """Schedule the resolver call for a batch."""
        self._in_flight[batch.batch_id] = batch
        self._stats["batches_dispatched"] += 1

        task = loop.create_task(self._run_batch(batch))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info(
            "batch_dispatched",
            batch_id=batch.batch_id[:8] + "...",
            size=batch.size,
            identifiers=batch.identifiers,
        )
        self._notify(self._on_batch_dispatched, batch)

    async def _run_batch(self, batch: Batch) -> None:
        result = await self.resolver.run(batch.identifiers)
        self._complete(batch, result)

    # Completion

    def _complete(self, batch: Batch, result: ResolverResult) -> None:
        """Apply a resolver outcome to the cache and waiting handlers."""
        self._in_flight.pop(batch.batch_id, None)

        if not result.is_ok:
            self._fail(batch, result.error)
            return

        for identifier, value in result.values.items():
            if batch.generation == self._generation:
                if self._cache.is_resolved(identifier):
                    logger.debug("duplicate_resolution_ignored", identifier=identifier)
                else:
                    self._cache.mark_resolved(identifier, value)
                    self._failed.pop(identifier, None)

            for handle in self._handlers.take(identifier):
                handle.deliver(value)

        batch.mark_completed(result.values.keys())

        if batch.missing:
            self._stats["batches_partial"] += 1
            logger.warning(
                "batch_partial",
                batch_id=batch.batch_id[:8] + "...",
                missing=batch.missing,
            )
        else:
            self._stats["batches_completed"] += 1
            logger.info(
                "batch_completed",
                batch_id=batch.batch_id[:8] + "...",
                size=batch.size,
            )

        self._notify(self._on_batch_completed, batch)

    def _fail(self, batch: Batch, error: Exception) -> None:
        """
        Handle a resolver failure.

        Identifiers stay pending. Only handles that supplied ``on_error``
        are told about the failure; the others keep waiting. The failure is
        kept so later fetches with ``on_error`` see it too.
        """
        batch.mark_failed(str(error))
        self._stats["batches_failed"] += 1

        notified = 0
        for identifier in batch.identifiers:
            if batch.generation == self._generation and self._cache.is_pending(identifier):
                self._failed[identifier] = error
            for handle in self._handlers.take_with_error_channel(identifier):
                if handle.deliver_error(error):
                    notified += 1

        logger.error(
            "batch_failed",
            batch_id=batch.batch_id[:8] + "...",
            error=str(error),
            notified=notified,
        )
        self._notify(self._on_batch_failed, batch, error)

    def _expire(self, handle: FetchHandle, timeout: float) -> None:
        """Timer callback for an opt-in fetch timeout."""
        handle.timer = None
        if not handle.active:
            return

        self._handlers.remove(handle)
        self._stats["timeouts"] += 1
        logger.warning("fetch_timed_out", identifier=handle.identifier, timeout=timeout)

        if not handle.deliver_error(FetchTimeout(handle.identifier, timeout)):
            handle.cancelled = True

    # Helpers

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    @staticmethod
    def _notify(callback: Optional[Callable[..., None]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error("batch_callback_failed", error=str(e))

    # Introspection

    def state_of(self, identifier: int) -> EntryState:
        """Get the cache state of an identifier."""
        return self._cache.state_of(identifier)

    def is_pending(self, identifier: int) -> bool:
        return self._cache.is_pending(identifier)

    def cached_value(self, identifier: int, default: Any = None) -> Any:
        """Get a resolved value without fetching."""
        if not self._cache.is_resolved(identifier):
            return default
        return self._cache.value_of(identifier)

    def waiting(self, identifier: int) -> int:
        """Number of continuations waiting on an identifier."""
        return self._handlers.waiting(identifier)

    @property
    def in_flight_batches(self) -> List[Batch]:
        """Batches whose resolver call has not returned."""
        return list(self._in_flight.values())

    def get_stats(self) -> dict:
        """Get batcher statistics."""
        return {
            "universe_size": len(self._universe),
            "generation": self._generation,
            "window_size": self.window_size,
            "in_flight": len(self._in_flight),
            "cache": self._cache.get_stats(),
            "handlers": self._handlers.get_stats(),
            **self._stats,
        }

    # Callback registration

    def on_batch_dispatched(self, callback: Callable[[Batch], None]) -> None:
        """Register callback for batch dispatch events."""
        self._on_batch_dispatched = callback

    def on_batch_completed(self, callback: Callable[[Batch], None]) -> None:
        """Register callback for batch completion events (full or partial)."""
        self._on_batch_completed = callback

    def on_batch_failed(self, callback: Callable[[Batch, Exception], None]) -> None:
        """Register callback for resolver failure events."""
        self._on_batch_failed = callback
