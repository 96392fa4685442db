# store.py
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from .config import Settings

Record = Dict[str, Any]

ORDERS_TABLE = "orders"
WAITER_CALLS_TABLE = "waiter_calls"
LOCATIONS_TABLE = "restaurant_locations"


class RecordStore(Protocol):
    """Read/write contract of the hosted backend, as used by the admin service."""

    async def connect(self) -> None: ...

    async def aclose(self) -> None: ...

    async def select_created_after(
        self, table: str, since: datetime, unresolved_only: bool = False
    ) -> List[Record]: ...

    async def select_by_id(self, table: str, record_id: str) -> Optional[Record]: ...

    async def create_waiter_call(self, location_id: str) -> Record: ...

    async def list_waiter_calls(self) -> List[Record]: ...

    async def resolve_waiter_call(self, call_id: str) -> Optional[Record]: ...

    async def clear_waiter_calls(self) -> int: ...

    async def list_orders(self) -> List[Record]: ...

    async def update_order_status(self, order_id: str, status: str) -> Optional[Record]: ...


def build_store(settings: Settings) -> RecordStore:
    if settings.record_store == "sql":
        from .database import create_database
        from .sql_store import SqlRecordStore

        return SqlRecordStore(create_database(settings.database_url))
    if settings.record_store != "rest":
        raise ValueError(f"Unknown RECORD_STORE {settings.record_store!r} (expected 'rest' or 'sql')")

    from .rest_store import RestRecordStore

    return RestRecordStore(settings.supabase_url, settings.supabase_anon_key)
