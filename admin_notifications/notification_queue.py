# notification_queue.py
from collections import deque
from typing import Deque, List, Optional

from .schemas import NotificationEvent

IDLE = "idle"
ACTIVE = "active"


class NotificationQueue:
    """Single-consumer FIFO: one active notification, the rest wait in arrival order."""

    def __init__(self):
        self._pending: Deque[NotificationEvent] = deque()
        self.active: Optional[NotificationEvent] = None

    @property
    def state(self) -> str:
        return ACTIVE if self.active is not None else IDLE

    def __len__(self) -> int:
        return len(self._pending)

    def pending(self) -> List[NotificationEvent]:
        return list(self._pending)

    def enqueue(self, event: NotificationEvent) -> Optional[NotificationEvent]:
        """Append `event`; returns the newly active event if the queue was idle."""
        self._pending.append(event)
        if self.active is None:
            return self._promote()
        return None

    def acknowledge(self) -> Optional[NotificationEvent]:
        """Drop the active event and promote the next one, if any."""
        self.active = None
        if self._pending:
            return self._promote()
        return None

    def _promote(self) -> NotificationEvent:
        self.active = self._pending.popleft()
        return self.active
