# dedup.py
from typing import Any, Awaitable, Callable, Coroutine, Dict, FrozenSet, Optional, Set

from .logs import get_logger
from .metrics import DUPLICATES_SUPPRESSED, LABEL_FALLBACKS, RECORDS_OBSERVED
from .schemas import NotificationEvent, NotificationKind
from .store import LOCATIONS_TABLE, RecordStore

logger = get_logger("dedup")

Emit = Callable[[NotificationEvent], Awaitable[None]]


class Deduplicator:
    """
    Turns raw order / waiter-call records into at most one NotificationEvent
    each for the lifetime of the session.

    The id goes into the seen-set synchronously inside admit(), before any
    awaiting happens, so the live feed and the poller can hand over the same
    record back to back and only the first one gets through. Seen-sets are
    never evicted.
    """

    def __init__(self, store: RecordStore, emit: Emit, fallback_label: str):
        self._store = store
        self._emit = emit
        self.fallback_label = fallback_label
        self._seen: Dict[NotificationKind, Set[str]] = {kind: set() for kind in NotificationKind}

    def seen(self, kind: NotificationKind) -> FrozenSet[str]:
        return frozenset(self._seen[kind])

    def admit(
        self, kind: NotificationKind, record: Dict[str, Any], source: str = "live"
    ) -> Optional[Coroutine[Any, Any, None]]:
        """
        Decide synchronously whether `record` is new. Returns the coroutine
        that resolves its location label and emits the notification, or None
        when the record is discarded. The caller owns scheduling it.
        """
        RECORDS_OBSERVED.labels(kind=kind.value, source=source).inc()

        record_id = record.get("id")
        if record_id is None:
            logger.warning(f"[Dedup] {kind.value} record without id from {source}, skipping: {record}")
            return None

        if kind is NotificationKind.WAITER and record.get("is_resolved"):
            return None

        record_id = str(record_id)
        seen = self._seen[kind]
        if record_id in seen:
            DUPLICATES_SUPPRESSED.labels(kind=kind.value).inc()
            logger.debug(f"[Dedup] Already announced {kind.value} {record_id} ({source})")
            return None

        seen.add(record_id)
        logger.info(f"[Dedup] New {kind.value} {record_id} via {source}")
        return self._announce(kind, record_id, record.get("location_id"))

    async def resolve_label(self, location_id) -> str:
        if not location_id:
            LABEL_FALLBACKS.inc()
            return self.fallback_label

        try:
            row = await self._store.select_by_id(LOCATIONS_TABLE, str(location_id))
        except Exception as e:
            logger.warning(f"[Dedup] Location lookup failed for {location_id}: {e!r}")
            row = None

        name = (row or {}).get("name")
        if not name:
            LABEL_FALLBACKS.inc()
            return self.fallback_label
        return name

    async def _announce(self, kind: NotificationKind, record_id: str, location_id) -> None:
        label = await self.resolve_label(location_id)
        event = NotificationEvent(kind=kind, source_record_id=record_id, location_label=label)
        try:
            await self._emit(event)
        except Exception:
            logger.exception(f"[Dedup] Failed to hand over {kind.value} {record_id}")
