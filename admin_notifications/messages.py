# messages.py
from typing import Optional

from .schemas import NotificationKind

CATALOG = {
    "fa": {
        "unknown_location": "مکان نامشخص",
        "order.title": lambda location: f"سفارش جدید از {location}",
        "order.generic": "یک سفارش جدید ثبت شد.",
        "waiter.title": lambda location: f"درخواست گارسون از {location}",
        "waiter.generic": "یک مشتری گارسون را صدا زده است.",
    },
    "en": {
        "unknown_location": "Unknown location",
        "order.title": lambda location: f"New order from {location}",
        "order.generic": "A new order has been placed.",
        "waiter.title": lambda location: f"Waiter called at {location}",
        "waiter.generic": "A customer is calling for a waiter.",
    },
}
DEFAULT_LANGUAGE = "fa"

SOUND_CUES = {
    NotificationKind.ORDER: "/sounds/order-notification.mp3",
    NotificationKind.WAITER: "/sounds/notification.mp3",
}


class MessageCatalog:
    """Localized notification text; unknown languages fall back to Persian like the dashboard."""

    def __init__(self, language: str = DEFAULT_LANGUAGE):
        self.language = language if language in CATALOG else DEFAULT_LANGUAGE
        self._strings = CATALOG[self.language]

    @property
    def unknown_location(self) -> str:
        return self._strings["unknown_location"]

    def title(self, kind: NotificationKind, location_label: str) -> str:
        return self._strings[f"{kind.value}.title"](location_label)

    def body(self, kind: NotificationKind, message: Optional[str] = None) -> str:
        return message or self._strings[f"{kind.value}.generic"]

    @staticmethod
    def sound_for(kind: NotificationKind) -> str:
        return SOUND_CUES[kind]
