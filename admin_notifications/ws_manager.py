from typing import TYPE_CHECKING, Dict

from .logs import get_logger

if TYPE_CHECKING:
    from .session import AdminNotificationSession

logger = get_logger("ws")


class AdminSessionRegistry:
    """
    Mounted admin sessions, keyed by session id. List changes made over HTTP
    are pushed through each session's own socket so every open dashboard tab
    can refresh its waiter-call and order lists.
    """

    def __init__(self):
        self._sessions: Dict[str, "AdminNotificationSession"] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def add(self, session: "AdminNotificationSession") -> None:
        self._sessions[session.session_id] = session
        logger.info(f"[WS] Admin {session.user.get('role')} {session.user.get('id')} mounted ({len(self)} open)")

    def discard(self, session: "AdminNotificationSession") -> None:
        if self._sessions.pop(session.session_id, None) is not None:
            logger.info(f"[WS] Admin session {session.session_id} unmounted ({len(self)} open)")

    async def broadcast(self, message: dict) -> int:
        """Push a list refresh to every open session; returns how many took it."""
        delivered = 0
        for session in list(self._sessions.values()):
            if session.closed:
                self.discard(session)
                continue
            if await session.publish(message):
                delivered += 1
        return delivered
