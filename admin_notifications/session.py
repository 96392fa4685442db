# session.py
import uuid
from datetime import datetime
from typing import Callable, Optional

from .config import Settings
from .dedup import Deduplicator
from .feed import ChangeFeed, EventSourceAdapter, utcnow
from .logs import get_logger
from .messages import MessageCatalog
from .metrics import ACTIVE_SESSIONS, NOTIFICATIONS_ENQUEUED
from .notification_queue import NotificationQueue
from .presenter import NotificationPresenter, Send
from .schemas import AdminView, NotificationEvent, NotificationKind
from .store import RecordStore

logger = get_logger("session")


class AdminNotificationSession:
    """
    Everything one mounted admin dashboard needs: its own feed adapter,
    seen-sets, watermark, queue and presenter. Use as an async context
    manager; leaving it tears the whole pipeline down.
    """

    def __init__(
        self,
        store: RecordStore,
        feed: ChangeFeed,
        send: Send,
        settings: Settings,
        messages: Optional[MessageCatalog] = None,
        clock: Callable[[], datetime] = utcnow,
        user: Optional[dict] = None,
    ):
        self.settings = settings
        self.session_id = uuid.uuid4().hex
        self.user = user or {"id": None, "role": None}
        self.messages = messages or MessageCatalog(settings.language)
        self.view = AdminView.ORDERS
        self._send = send
        self._feed = feed

        self.queue = NotificationQueue()
        self.presenter = NotificationPresenter(self.queue, send, self.messages, route=self.route)
        self.dedup = Deduplicator(store, emit=self.show, fallback_label=self.messages.unknown_location)
        self.adapter = EventSourceAdapter(
            feed, store, self.dedup, poll_interval=settings.poll_interval_seconds, clock=clock
        )

    @property
    def closed(self) -> bool:
        return self.adapter.closed

    async def __aenter__(self) -> "AdminNotificationSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def start(self) -> None:
        ACTIVE_SESSIONS.inc()
        try:
            await self.adapter.start()
        except Exception:
            await self._close_feed()
            ACTIVE_SESSIONS.dec()
            raise

    async def stop(self) -> None:
        if self.adapter.closed:
            return
        await self.adapter.stop()
        await self._close_feed()
        ACTIVE_SESSIONS.dec()

    async def _close_feed(self) -> None:
        try:
            await self._feed.close()
        except Exception as e:
            logger.warning(f"[Session] Closing change feed failed: {e!r}")

    # ------------------------------------------------------------------
    # Pipeline output
    # ------------------------------------------------------------------
    async def show(self, event: NotificationEvent) -> None:
        if self.adapter.closed:
            return
        NOTIFICATIONS_ENQUEUED.labels(kind=event.kind.value).inc()
        await self.presenter.enqueue(event)

    async def on_show_notification(
        self,
        kind,
        location_label: str,
        message: Optional[str] = None,
        source_record_id: Optional[str] = None,
    ) -> NotificationEvent:
        event = NotificationEvent(
            kind=NotificationKind(kind),
            location_label=location_label,
            message=message,
            source_record_id=source_record_id,
        )
        await self.show(event)
        return event

    # ------------------------------------------------------------------
    # Dashboard side
    # ------------------------------------------------------------------
    async def route(self, view: AdminView) -> None:
        self.view = view
        try:
            await self._send({"type": "view.changed", "view": view.value})
        except Exception as e:
            logger.warning(f"[Session] Could not send view change: {e!r}")

    async def publish(self, message: dict) -> bool:
        """Best-effort push of a non-notification message (list refreshes)."""
        if self.closed:
            return False
        try:
            await self._send(message)
            return True
        except Exception as e:
            logger.warning(f"[Session] Could not publish {message.get('type')}: {e!r}")
            return False

    async def handle_action(self, payload: dict) -> None:
        action = payload.get("action") if isinstance(payload, dict) else None

        if action == "view_details":
            await self.presenter.view_details(payload.get("queue_id"))
        elif action == "dismiss":
            await self.presenter.dismiss(payload.get("queue_id"))
        elif action == "permission":
            self.presenter.set_native_permission(payload.get("granted", False))
        elif action == "audio_failed":
            self.presenter.audio_failed(payload.get("queue_id"), payload.get("error"))
        elif action == "set_view":
            try:
                view = AdminView(payload.get("view"))
            except ValueError:
                logger.warning(f"[Session] Unknown admin view {payload.get('view')!r}")
                return
            await self.route(view)
        else:
            logger.warning(f"[Session] Ignoring unknown action: {payload!r}")
