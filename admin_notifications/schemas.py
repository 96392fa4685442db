# schemas.py
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .trace import new_queue_id


class NotificationKind(str, Enum):
    ORDER = "order"
    WAITER = "waiter"


class AdminView(str, Enum):
    ORDERS = "orders"
    WAITER_CALLS = "waiter-calls"
    MENU_ITEMS = "menu-items"
    CATEGORIES = "categories"
    LOCATIONS = "locations"
    USERS = "users"
    CUSTOMER_CLUB = "customer-club"
    QR_CODES = "qr-codes"


class OrderStatus(str, Enum):
    NEW = "new"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# View the operator lands on after "view details"
KIND_VIEWS = {
    NotificationKind.ORDER: AdminView.ORDERS,
    NotificationKind.WAITER: AdminView.WAITER_CALLS,
}


class NotificationEvent(BaseModel):
    kind: NotificationKind
    location_label: str
    # None when the host raises a notification that has no backing record
    source_record_id: Optional[str] = None
    message: Optional[str] = None
    queue_id: str = Field(default_factory=new_queue_id)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# HTTP payloads
# ---------------------------------------------------------------------------
class WaiterCallCreate(BaseModel):
    location_id: Optional[str] = None


class WaiterCall(BaseModel):
    id: str
    location_id: Optional[str] = None
    location_name: Optional[str] = None
    is_resolved: bool = False
    created_at: Optional[datetime] = None


class Order(BaseModel):
    id: str
    location_id: Optional[str] = None
    location_name: Optional[str] = None
    total_amount: Optional[float] = None
    status: OrderStatus = OrderStatus.NEW
    created_at: Optional[datetime] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
