"""Session-scoped async query cache with get-or-fetch semantics.

Entries are immutable snapshots replaced atomically on each transition, so a
caller holding an entry never observes a half-applied update. All mutation
happens on the event loop thread: from ``resolve``/``refetch``/``invalidate``
calls and from fetch completions.

Each dispatch of a key bumps that key's generation; a completion only commits
when its generation is still current. Keys resolved under a ``slot`` (one
logical consumer, e.g. the calculator panel) are tracked so that responses for
a key the slot has moved away from are stored but not announced, and so that
debounced fetches for such keys are dropped before they reach the network.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Literal

from prop_dash.errors import PropDashError, UnknownQueryError
from prop_dash.query.request import QueryType, RequestDescriptor
from prop_dash.time_utils import utc_now

logger = logging.getLogger(__name__)

CacheStatus = Literal["idle", "pending", "resolved", "failed"]
Fetcher = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class QueryOptions:
    """Per-resolve behavior for one key."""

    enabled: bool = True
    slot: str | None = None
    debounce_s: float = 0.0
    stale_after: timedelta | None = None


@dataclass(frozen=True)
class CacheEntry:
    """Snapshot of one cached request."""

    key: str
    request: RequestDescriptor
    status: CacheStatus = "idle"
    value: Any = None
    error: str | None = None
    error_type: str | None = None
    enabled: bool = True
    fetched_at: datetime | None = None
    fetch_count: int = 0

    @property
    def has_value(self) -> bool:
        return self.fetched_at is not None

    @property
    def is_loading(self) -> bool:
        return self.status == "pending" and not self.has_value

    def is_stale(self, now: datetime, stale_after: timedelta) -> bool:
        if self.fetched_at is None:
            return True
        return now - self.fetched_at >= stale_after


Listener = Callable[[str, CacheEntry], None]


@dataclass
class _Dispatch:
    task: asyncio.Task[None]
    generation: int
    prior: CacheEntry
    debounced: bool
    started: bool = False


class QueryCache:
    """Key-addressed store of fetch results for one dashboard session."""

    def __init__(self, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._fetchers: dict[str, Fetcher] = {}
        self._inflight: dict[str, _Dispatch] = {}
        self._generations: dict[str, int] = {}
        self._active: dict[str, str] = {}
        self._slot_of: dict[str, str] = {}
        self._listeners: list[Listener] = []
        self._closed = False

    async def __aenter__(self) -> QueryCache:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def entries(self) -> list[CacheEntry]:
        return list(self._entries.values())

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    @property
    def in_flight_count(self) -> int:
        return len(self._inflight)

    def active_key(self, slot: str) -> str | None:
        return self._active.get(slot)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a commit listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def resolve(
        self,
        request: RequestDescriptor,
        fetcher: Fetcher,
        options: QueryOptions | None = None,
    ) -> CacheEntry:
        """Return the current entry for ``request``, starting a fetch when needed.

        Must be called from a running event loop. A key that is already
        pending attaches to the in-flight fetch; resolved and failed entries
        are returned as-is unless ``stale_after`` has elapsed for a resolved
        one. Entries resolved with ``enabled=False`` stay idle until
        ``refetch`` or a later ``resolve`` with ``enabled=True``.
        """
        self._ensure_open()
        options = options or QueryOptions()
        key = request.key()
        if options.slot is not None:
            self._activate(options.slot, key)
        self._fetchers[key] = fetcher

        entry = self._entries.get(key)
        if entry is None:
            entry = self._store(CacheEntry(key=key, request=request, enabled=options.enabled))
            if not options.enabled:
                return entry
            return self._dispatch(key, debounce_s=options.debounce_s)

        if entry.enabled != options.enabled:
            entry = self._store(replace(entry, enabled=options.enabled))
        if not options.enabled or key in self._inflight:
            return entry
        if entry.status == "idle":
            return self._dispatch(key, debounce_s=options.debounce_s)
        if (
            entry.status == "resolved"
            and options.stale_after is not None
            and entry.is_stale(self._clock(), options.stale_after)
        ):
            logger.debug("revalidating stale %s", request.label)
            return self._dispatch(key)
        return entry

    def refetch(self, key: str) -> CacheEntry:
        """Fetch ``key`` again regardless of status, keeping the last value on display."""
        self._ensure_open()
        if key not in self._entries:
            raise UnknownQueryError(key)
        return self._dispatch(key)

    def invalidate(self, query_type: QueryType | None = None) -> int:
        """Refetch enabled entries, optionally limited to one query type."""
        self._ensure_open()
        count = 0
        for key, entry in list(self._entries.items()):
            if query_type is not None and entry.request.query_type != query_type:
                continue
            if not entry.enabled:
                continue
            self._dispatch(key)
            count += 1
        return count

    async def wait(self, key: str) -> CacheEntry:
        """Wait until ``key`` has no fetch in flight and return its entry."""
        while (dispatch := self._inflight.get(key)) is not None:
            await asyncio.wait({dispatch.task})
        entry = self._entries.get(key)
        if entry is None:
            raise UnknownQueryError(key)
        return entry

    async def settle(self) -> None:
        """Wait until no fetch is in flight for any key."""
        while self._inflight:
            await asyncio.wait({dispatch.task for dispatch in self._inflight.values()})

    async def close(self) -> None:
        """Cancel in-flight fetches and drop every entry."""
        self._closed = True
        tasks = [dispatch.task for dispatch in self._inflight.values()]
        self._inflight.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._entries.clear()
        self._fetchers.clear()
        self._generations.clear()
        self._active.clear()
        self._slot_of.clear()
        self._listeners.clear()

    def _ensure_open(self) -> None:
        if self._closed:
            raise PropDashError("query cache is closed")

    def _store(self, entry: CacheEntry) -> CacheEntry:
        self._entries[entry.key] = entry
        return entry

    def _superseded(self, key: str) -> bool:
        slot = self._slot_of.get(key)
        return slot is not None and self._active.get(slot) != key

    def _activate(self, slot: str, key: str) -> None:
        previous = self._active.get(slot)
        self._slot_of[key] = slot
        if previous == key:
            return
        self._active[slot] = key
        if previous is None:
            return
        dispatch = self._inflight.get(previous)
        if dispatch is None or not dispatch.debounced or dispatch.started:
            return
        # Still waiting out its debounce: drop it so only the latest key is fetched.
        dispatch.task.cancel()
        del self._inflight[previous]
        self._store(dispatch.prior)
        logger.debug("dropped debounced fetch for %s", dispatch.prior.request.label)

    def _dispatch(self, key: str, *, debounce_s: float = 0.0) -> CacheEntry:
        entry = self._entries[key]
        previous = self._inflight.pop(key, None)
        prior = entry
        if previous is not None:
            previous.task.cancel()
            prior = previous.prior
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation
        pending = self._store(replace(entry, status="pending", error=None, error_type=None))
        task = asyncio.get_running_loop().create_task(
            self._run(key, generation, debounce_s),
            name=f"query:{entry.request.query_type}",
        )
        self._inflight[key] = _Dispatch(
            task=task,
            generation=generation,
            prior=prior,
            debounced=debounce_s > 0,
        )
        logger.debug("dispatched %s (generation %d)", entry.request.label, generation)
        return pending

    async def _run(self, key: str, generation: int, debounce_s: float) -> None:
        try:
            if debounce_s > 0:
                await asyncio.sleep(debounce_s)
            dispatch = self._inflight.get(key)
            if dispatch is not None and dispatch.generation == generation:
                dispatch.started = True
            value = await self._fetchers[key]()
        except Exception as exc:
            # Any fetcher failure, including transport timeouts, is a per-key state.
            self._commit_failure(key, generation, exc)
        else:
            self._commit_value(key, generation, value)
        finally:
            dispatch = self._inflight.get(key)
            if dispatch is not None and dispatch.generation == generation:
                del self._inflight[key]

    def _current(self, key: str, generation: int) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None or self._generations.get(key) != generation:
            logger.debug("discarding stale response for key %s", key[:12])
            return None
        return entry

    def _commit_value(self, key: str, generation: int, value: Any) -> None:
        entry = self._current(key, generation)
        if entry is None:
            return
        resolved = self._store(
            replace(
                entry,
                status="resolved",
                value=value,
                error=None,
                error_type=None,
                fetched_at=self._clock(),
                fetch_count=entry.fetch_count + 1,
            )
        )
        self._announce(resolved)

    def _commit_failure(self, key: str, generation: int, exc: Exception) -> None:
        entry = self._current(key, generation)
        if entry is None:
            return
        logger.warning("%s failed: %s", entry.request.label, exc)
        failed = self._store(
            replace(
                entry,
                status="failed",
                error=str(exc) or type(exc).__name__,
                error_type=type(exc).__name__,
            )
        )
        self._announce(failed)

    def _announce(self, entry: CacheEntry) -> None:
        if self._superseded(entry.key):
            logger.debug("stored response for superseded %s", entry.request.label)
            return
        for listener in list(self._listeners):
            try:
                listener(entry.key, entry)
            except Exception:
                logger.exception("listener failed for %s", entry.request.label)
