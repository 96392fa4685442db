# feed.py
import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Coroutine, Dict, Iterable, List, Optional, Protocol, Set, Tuple

from pydantic import TypeAdapter, ValidationError

from .dedup import Deduplicator
from .logs import get_logger
from .metrics import POLL_FAILURES
from .schemas import NotificationKind
from .store import ORDERS_TABLE, WAITER_CALLS_TABLE, RecordStore

logger = get_logger("feed")

# (kind, table) pairs watched by every admin session; poll rows created at the same instant go in this order
STREAMS = (
    (NotificationKind.ORDER, ORDERS_TABLE),
    (NotificationKind.WAITER, WAITER_CALLS_TABLE),
)


class Subscription(Protocol):
    async def unsubscribe(self) -> None: ...


class ChangeFeed(Protocol):
    async def subscribe(
        self, table: str, event: str, callback: Callable[[Dict[str, Any]], None]
    ) -> Subscription: ...

    async def close(self) -> None: ...


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


_TIMESTAMP = TypeAdapter(datetime)
EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def created_at(record: Dict[str, Any]) -> Optional[datetime]:
    """`created_at` of a row as an aware datetime; naive values are UTC, unparseable ones None."""
    value = record.get("created_at")
    if value is None:
        return None
    try:
        stamp = _TIMESTAMP.validate_python(value)
    except ValidationError:
        return None
    return stamp if stamp.tzinfo else stamp.replace(tzinfo=timezone.utc)


def in_creation_order(
    batches: Iterable[Tuple[NotificationKind, List[Dict[str, Any]]]]
) -> List[Tuple[NotificationKind, Dict[str, Any]]]:
    """
    Merge the rows of several streams into one list ordered by creation time.

    The sort is stable. A row without a usable timestamp sorts as if it were
    created with the row before it in its own stream, so it never jumps
    ahead of its neighbours.
    """
    keyed = []
    for kind, rows in batches:
        last = EARLIEST
        for record in rows:
            last = created_at(record) or last
            keyed.append((last, kind, record))
    keyed.sort(key=lambda item: item[0])
    return [(kind, record) for _, kind, record in keyed]


class EventSourceAdapter:
    """
    Feeds the Deduplicator from two sources: the live insert feed and a
    fallback poller that re-reads everything created since the session
    started. The watermark is fixed at start() and never advanced.

    Owns every handle it creates (feed subscriptions, the interval timer,
    poll cycles and label resolutions); stop() releases all of them.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        store: RecordStore,
        dedup: Deduplicator,
        poll_interval: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._feed = feed
        self._store = store
        self._dedup = dedup
        self.poll_interval = poll_interval
        self._clock = clock

        self._watermark: Optional[datetime] = None
        self._subscriptions: List[Subscription] = []
        self._timer: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._started = False
        self._closed = False

    @property
    def watermark(self) -> Optional[datetime]:
        return self._watermark

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> "EventSourceAdapter":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def start(self) -> None:
        if self._started:
            raise RuntimeError("adapter already started")
        self._started = True
        self._watermark = self._clock()

        try:
            for kind, table in STREAMS:
                subscription = await self._feed.subscribe(table, "INSERT", self._live_callback(kind))
                self._subscriptions.append(subscription)
        except Exception:
            await self.stop()
            raise

        # covers the gap between page load and the first tick
        self.spawn(self.poll_once())
        self._timer = asyncio.create_task(self._tick())
        logger.info(f"[Feed] Started, watermark={self._watermark.isoformat()} interval={self.poll_interval}s")

    def _live_callback(self, kind: NotificationKind):
        def on_insert(record: Dict[str, Any]) -> None:
            self.deliver(kind, record, "live")
        return on_insert

    def deliver(self, kind: NotificationKind, record: Dict[str, Any], source: str) -> None:
        if self._closed:
            return
        pending = self._dedup.admit(kind, record, source)
        if pending is not None:
            self.spawn(pending)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> Optional[asyncio.Task]:
        if self._closed:
            coro.close()
            return None
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            # each cycle runs on its own so a hung query never blocks the next tick
            self.spawn(self.poll_once())

    async def poll_once(self) -> None:
        if self._closed or self._watermark is None:
            return

        results = await asyncio.gather(
            self._store.select_created_after(ORDERS_TABLE, self._watermark),
            self._store.select_created_after(WAITER_CALLS_TABLE, self._watermark, unresolved_only=True),
            return_exceptions=True,
        )

        batches = []
        for (kind, table), result in zip(STREAMS, results):
            if isinstance(result, BaseException):
                POLL_FAILURES.labels(table=table).inc()
                logger.warning(f"[Poll] {table} query failed, skipping this cycle: {result!r}")
                continue
            batches.append((kind, result))

        for kind, record in in_creation_order(batches):
            self.deliver(kind, record, "poll")

    async def stop(self) -> None:
        if self._closed:
            return
        self._closed = True

        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            try:
                await subscription.unsubscribe()
            except Exception as e:
                logger.warning(f"[Feed] Unsubscribe failed: {e!r}")

        pending = list(self._tasks)
        if self._timer is not None:
            pending.append(self._timer)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self._tasks.clear()
        self._timer = None
        logger.info("[Feed] Stopped")
