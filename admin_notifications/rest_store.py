# rest_store.py
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from .logs import get_logger
from .store import LOCATIONS_TABLE, ORDERS_TABLE, WAITER_CALLS_TABLE, Record

logger = get_logger("rest-store")

# PostgREST needs a filter on DELETE; no real row has the nil uuid
NIL_UUID = "00000000-0000-0000-0000-000000000000"


def _flatten_location(row: Dict[str, Any]) -> Record:
    """Turn the embedded `restaurant_locations(name)` object into `location_name`."""
    data = dict(row)
    location = data.pop(LOCATIONS_TABLE, None)
    data["location_name"] = location.get("name") if isinstance(location, dict) else None
    return data


class RestRecordStore:
    """Hosted backend over its PostgREST HTTP interface."""

    def __init__(self, base_url: str, api_key: str, client: Optional[httpx.AsyncClient] = None):
        self.base_url = f"{base_url.rstrip('/')}/rest/v1"
        self.api_key = api_key
        # queries carry no timeout: a hung request only holds up its own poll cycle
        self._client = client or httpx.AsyncClient(timeout=None)

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {"apikey": self.api_key, "Authorization": f"Bearer {self.api_key}"}
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def connect(self) -> None:
        logger.info(f"[REST] Using {self.base_url}")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, table: str, params: Dict[str, str]) -> List[Record]:
        resp = await self._client.get(f"{self.base_url}/{table}", params=params, headers=self._headers())
        resp.raise_for_status()
        return resp.json()

    async def _write(self, method: str, table: str, params: Dict[str, str], json: Any = None) -> List[Record]:
        resp = await self._client.request(
            method,
            f"{self.base_url}/{table}",
            params=params,
            json=json,
            headers=self._headers(prefer="return=representation"),
        )
        resp.raise_for_status()
        return resp.json() if resp.content else []

    # ------------------------------------------------------------------
    # Notification pipeline queries
    # ------------------------------------------------------------------
    async def select_created_after(self, table: str, since: datetime, unresolved_only: bool = False) -> List[Record]:
        params = {
            "select": "*",
            "created_at": f"gt.{since.isoformat()}",
            "order": "created_at.asc",
        }
        if unresolved_only:
            params["is_resolved"] = "eq.false"
        return await self._get(table, params)

    async def select_by_id(self, table: str, record_id: str) -> Optional[Record]:
        rows = await self._get(table, {"select": "*", "id": f"eq.{record_id}", "limit": "1"})
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # Admin lists
    # ------------------------------------------------------------------
    async def create_waiter_call(self, location_id: str) -> Record:
        rows = await self._write("POST", WAITER_CALLS_TABLE, {}, json={"location_id": location_id})
        return rows[0]

    async def list_waiter_calls(self) -> List[Record]:
        rows = await self._get(
            WAITER_CALLS_TABLE,
            {"select": f"*,{LOCATIONS_TABLE}(name)", "is_resolved": "eq.false", "order": "created_at.asc"},
        )
        return [_flatten_location(row) for row in rows]

    async def resolve_waiter_call(self, call_id: str) -> Optional[Record]:
        rows = await self._write("PATCH", WAITER_CALLS_TABLE, {"id": f"eq.{call_id}"}, json={"is_resolved": True})
        return rows[0] if rows else None

    async def clear_waiter_calls(self) -> int:
        rows = await self._write("DELETE", WAITER_CALLS_TABLE, {"id": f"neq.{NIL_UUID}"})
        return len(rows)

    async def list_orders(self) -> List[Record]:
        rows = await self._get(
            ORDERS_TABLE,
            {"select": f"*,{LOCATIONS_TABLE}(name)", "order": "created_at.desc"},
        )
        return [_flatten_location(row) for row in rows]

    async def update_order_status(self, order_id: str, status: str) -> Optional[Record]:
        rows = await self._write("PATCH", ORDERS_TABLE, {"id": f"eq.{order_id}"}, json={"status": status})
        return rows[0] if rows else None
