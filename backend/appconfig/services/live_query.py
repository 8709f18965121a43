"""
Live Queries
Read projections that re-emit whenever a committed write touches a table they read
"""
import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import AsyncIterator, Callable, Dict, FrozenSet, Generic, Iterable, Optional, Set, TypeVar

from sqlalchemy import MetaData

logger = logging.getLogger(__name__)

T = TypeVar("T")

Dispatch = Callable[[Callable[[], None]], None]


class InvalidationTracker:
    """
    Push-based invalidation: subscriptions register the tables they depend on,
    the store reports the tables each committed write touched.

    Refreshes run through ``dispatch``. By default that is a single delivery
    thread, separate from whatever thread committed the write.
    """

    def __init__(self, metadata: MetaData, dispatch: Optional[Dispatch] = None):
        self._cascades = _cascade_map(metadata)
        self._lock = threading.Lock()
        self._subscriptions: Set["Subscription"] = set()
        self._executor: Optional[ThreadPoolExecutor] = None
        if dispatch is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="live-query")
            dispatch = self._executor.submit
        self._dispatch = dispatch

    def register(self, subscription: "Subscription"):
        with self._lock:
            self._subscriptions.add(subscription)

    def unregister(self, subscription: "Subscription"):
        with self._lock:
            self._subscriptions.discard(subscription)

    def dispatch(self, fn: Callable[[], None]):
        self._dispatch(fn)

    def affected_tables(self, tables: Iterable[str]) -> FrozenSet[str]:
        """Tables touched by a write, including rows removed by ON DELETE CASCADE"""
        affected = set()
        pending = list(tables)
        while pending:
            table = pending.pop()
            if table in affected:
                continue
            affected.add(table)
            pending.extend(self._cascades.get(table, ()))
        return frozenset(affected)

    def notify(self, *tables: str):
        affected = self.affected_tables(tables)
        with self._lock:
            stale = [s for s in self._subscriptions if s.tables & affected]
        logger.debug(f"Invalidated {sorted(affected)}: refreshing {len(stale)} subscription(s)")
        for subscription in stale:
            self.dispatch(subscription.refresh)

    @property
    def subscription_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def close(self):
        with self._lock:
            self._subscriptions.clear()
        if self._executor is not None:
            self._executor.shutdown(wait=True)


class Subscription(Generic[T]):
    """Delivers a live query's value to one observer until cancelled"""

    def __init__(self, query: "LiveQuery[T]", callback: Callable[[T], None]):
        self.query = query
        self.tables = query.tables
        self._callback = callback
        self.active = True

    def refresh(self):
        if not self.active:
            return
        try:
            value = self.query.get()
            if self.active:
                self._callback(value)
        except Exception as e:
            logger.error(f"Live query delivery failed for tables {sorted(self.tables)}: {e}", exc_info=True)

    def cancel(self):
        self.active = False
        self.query.tracker.unregister(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cancel()


class LiveQuery(Generic[T]):
    def __init__(self, tracker: InvalidationTracker, tables: Iterable[str], fetch: Callable[[], T]):
        self.tracker = tracker
        self.tables = frozenset(tables)
        self._fetch = fetch

    def get(self) -> T:
        """Evaluate the query once"""
        return self._fetch()

    def observe(self, callback: Callable[[T], None]) -> Subscription[T]:
        """Deliver the current value now and again after every relevant commit"""
        subscription = Subscription(self, callback)
        self.tracker.register(subscription)
        self.tracker.dispatch(subscription.refresh)
        return subscription

    async def stream(self) -> AsyncIterator[T]:
        """Async iterator over emissions, delivered onto the running loop"""
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        subscription = self.observe(lambda value: loop.call_soon_threadsafe(queue.put_nowait, value))
        try:
            while True:
                yield await queue.get()
        finally:
            subscription.cancel()


def _cascade_map(metadata: MetaData) -> Dict[str, Set[str]]:
    """parent table -> child tables whose rows go away with it"""
    cascades: Dict[str, Set[str]] = {}
    for table in metadata.sorted_tables:
        for fk in table.foreign_keys:
            if (fk.ondelete or "").upper() == "CASCADE":
                cascades.setdefault(fk.column.table.name, set()).add(table.name)
    return cascades
