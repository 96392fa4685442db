# sql_store.py
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from databases import Database
from sqlalchemy import func, select

from .database import init_db
from .logs import get_logger
from .models import TABLES, orders, restaurant_locations, waiter_calls
from .store import Record

logger = get_logger("sql-store")


def _rows(query, records) -> List[Record]:
    keys = list(query.selected_columns.keys())
    return [{key: record[key] for key in keys} for record in records]


class SqlRecordStore:
    """Same contract as the REST store, straight against the database tables."""

    def __init__(self, database: Database):
        self.database = database

    async def connect(self) -> None:
        if self.database.is_connected:
            return
        # only a local SQLite file gets its tables created here
        if self.database.url.dialect == "sqlite":
            init_db(str(self.database.url))
        await self.database.connect()
        logger.info(f"[SQL] Database connected ({self.database.url.dialect})")

    async def aclose(self) -> None:
        if self.database.is_connected:
            await self.database.disconnect()

    async def select_created_after(self, table: str, since: datetime, unresolved_only: bool = False) -> List[Record]:
        t = TABLES[table]
        query = t.select().where(t.c.created_at > since)
        if unresolved_only:
            query = query.where(t.c.is_resolved.is_(False))
        query = query.order_by(t.c.created_at.asc())
        return _rows(query, await self.database.fetch_all(query))

    async def select_by_id(self, table: str, record_id: str) -> Optional[Record]:
        t = TABLES[table]
        query = t.select().where(t.c.id == record_id)
        row = await self.database.fetch_one(query)
        return _rows(query, [row])[0] if row is not None else None

    async def create_waiter_call(self, location_id: str) -> Record:
        values = {
            "id": str(uuid.uuid4()),
            "location_id": location_id,
            "is_resolved": False,
            "created_at": datetime.now(timezone.utc),
        }
        await self.database.execute(waiter_calls.insert().values(**values))
        return values

    def _with_location(self, table):
        return (
            select(table, restaurant_locations.c.name.label("location_name"))
            .select_from(table.outerjoin(restaurant_locations, table.c.location_id == restaurant_locations.c.id))
        )

    async def list_waiter_calls(self) -> List[Record]:
        query = (
            self._with_location(waiter_calls)
            .where(waiter_calls.c.is_resolved.is_(False))
            .order_by(waiter_calls.c.created_at.asc())
        )
        return _rows(query, await self.database.fetch_all(query))

    async def resolve_waiter_call(self, call_id: str) -> Optional[Record]:
        await self.database.execute(
            waiter_calls.update().where(waiter_calls.c.id == call_id).values(is_resolved=True)
        )
        return await self.select_by_id("waiter_calls", call_id)

    async def clear_waiter_calls(self) -> int:
        count = await self.database.fetch_val(select(func.count()).select_from(waiter_calls))
        await self.database.execute(waiter_calls.delete())
        return int(count or 0)

    async def list_orders(self) -> List[Record]:
        query = self._with_location(orders).order_by(orders.c.created_at.desc())
        return _rows(query, await self.database.fetch_all(query))

    async def update_order_status(self, order_id: str, status: str) -> Optional[Record]:
        await self.database.execute(orders.update().where(orders.c.id == order_id).values(status=status))
        return await self.select_by_id("orders", order_id)
