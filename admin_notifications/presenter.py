# presenter.py
from typing import Awaitable, Callable, Optional

from .logs import get_logger
from .messages import MessageCatalog
from .notification_queue import NotificationQueue
from .schemas import KIND_VIEWS, AdminView, NotificationEvent

logger = get_logger("presenter")

Send = Callable[[dict], Awaitable[None]]
Route = Callable[[AdminView], Awaitable[None]]


class NotificationPresenter:
    """
    Shows the queue's active notification on the admin dashboard and handles
    the operator's answer. The active notification stays up until the
    operator acts on it; nothing here times it out.
    """

    def __init__(self, queue: NotificationQueue, send: Send, messages: MessageCatalog, route: Route):
        self.queue = queue
        self.messages = messages
        self._send_fn = send
        self._route = route
        self.native_permission = False

    async def _send(self, message: dict) -> bool:
        try:
            await self._send_fn(message)
            return True
        except Exception as e:
            logger.warning(f"[Presenter] Could not send {message.get('type')}: {e!r}")
            return False

    async def enqueue(self, event: NotificationEvent) -> None:
        activated = self.queue.enqueue(event)
        if activated is not None:
            await self.present(activated)
        else:
            logger.info(f"[Presenter] Queued {event.kind.value} at {event.location_label} ({len(self.queue)} waiting)")

    async def present(self, event: NotificationEvent) -> None:
        title = self.messages.title(event.kind, event.location_label)
        body = self.messages.body(event.kind, event.message)

        await self._send({
            "type": "sound.play",
            "kind": event.kind.value,
            "src": self.messages.sound_for(event.kind),
            "queue_id": event.queue_id,
        })

        if self.native_permission:
            await self._send({
                "type": "native.show",
                "title": title,
                "body": body,
                "tag": event.queue_id,
                "require_interaction": True,
            })

        await self._send({
            "type": "notification.show",
            "queue_id": event.queue_id,
            "kind": event.kind.value,
            "source_record_id": event.source_record_id,
            "location_label": event.location_label,
            "title": title,
            "body": body,
            "pending": len(self.queue),
        })
        logger.info(f"[Presenter] Showing {event.kind.value} at {event.location_label}")

    def _matches_active(self, queue_id: Optional[str]) -> bool:
        active = self.queue.active
        if active is None:
            return False
        # a click on a notification that is no longer the active one is stale
        return queue_id is None or queue_id == active.queue_id

    async def view_details(self, queue_id: Optional[str] = None) -> Optional[NotificationEvent]:
        if not self._matches_active(queue_id):
            return None
        event = self.queue.active
        await self._route(KIND_VIEWS[event.kind])
        await self._advance()
        return event

    async def dismiss(self, queue_id: Optional[str] = None) -> Optional[NotificationEvent]:
        if not self._matches_active(queue_id):
            return None
        event = self.queue.active
        await self._advance()
        return event

    async def _advance(self) -> None:
        following = self.queue.acknowledge()
        if following is not None:
            await self.present(following)
        else:
            await self._send({"type": "notification.clear"})

    def set_native_permission(self, granted: bool) -> None:
        self.native_permission = bool(granted)

    def audio_failed(self, queue_id: Optional[str], error: Optional[str]) -> None:
        logger.warning(f"[Presenter] Dashboard could not play sound for {queue_id}: {error}")
