# main.py
import json
from typing import Callable, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .auth import authorize_staff, staff_required
from .config import Settings
from .feed import ChangeFeed
from .logs import get_logger
from .realtime import RealtimeChangeFeed
from .schemas import Order, OrderStatusUpdate, WaiterCall, WaiterCallCreate
from .session import AdminNotificationSession
from .store import RecordStore, build_store
from .trace import get_or_create_trace_id
from .ws_manager import AdminSessionRegistry


def realtime_feed_factory(settings: Settings) -> Callable[[], ChangeFeed]:
    def make_feed() -> ChangeFeed:
        return RealtimeChangeFeed(
            settings.realtime_url,
            settings.supabase_anon_key,
            heartbeat_seconds=settings.realtime_heartbeat_seconds,
            reconnect_seconds=settings.realtime_reconnect_seconds,
        )
    return make_feed


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[RecordStore] = None,
    feed_factory: Optional[Callable[[], ChangeFeed]] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    logger = get_logger(level=settings.log_level)

    app = FastAPI(title="Restaurant Admin Notifications", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.feed_factory = feed_factory or realtime_feed_factory(settings)
    sessions = AdminSessionRegistry()
    app.state.sessions = sessions
    get_staff_user = staff_required(settings)

    def get_store() -> RecordStore:
        if app.state.store is None:
            raise HTTPException(status_code=503, detail="Record store not ready")
        return app.state.store

    async def call_store(request: Request, what: str, coro):
        try:
            return await coro
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"[TRACE {request.state.trace_id}] {what} failed: {e!r}")
            raise HTTPException(status_code=502, detail=f"Backend error while trying to {what}")

    # -------------------
    # Startup / Shutdown Lifecycle
    # -------------------
    @app.on_event("startup")
    async def startup():
        if app.state.store is None:
            app.state.store = build_store(settings)
        await app.state.store.connect()
        logger.info(f"[Admin Notifications] Started ({settings.record_store} store, poll every {settings.poll_interval_seconds}s)")

    @app.on_event("shutdown")
    async def shutdown():
        if app.state.store is not None:
            await app.state.store.aclose()
        logger.info("[Admin Notifications] Shutdown complete.")

    # -------------------
    # Middleware: assign trace_id for HTTP requests
    # -------------------
    @app.middleware("http")
    async def add_trace_to_request(request: Request, call_next):
        trace_id = get_or_create_trace_id(request.headers.get("X-Trace-Id"))
        request.state.trace_id = trace_id
        response = await call_next(request)
        response.headers["X-Trace-Id"] = trace_id
        return response

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "admin-notifications", "admin_sockets": len(sessions)}

    @app.get("/metrics")
    def metrics():
        """Prometheus metrics endpoint."""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # -------------------
    # Admin notification session (one per dashboard tab)
    # -------------------
    @app.websocket("/admin/ws")
    async def admin_notifications(websocket: WebSocket, token: Optional[str] = Query(None)):
        user = authorize_staff(token, settings)
        if user is None:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
        if app.state.store is None:
            logger.error("[WS] Record store not ready, refusing admin session")
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
            return

        await websocket.accept()
        session = AdminNotificationSession(
            store=app.state.store,
            feed=app.state.feed_factory(),
            send=websocket.send_json,
            settings=settings,
            user=user,
        )
        try:
            async with session:
                sessions.add(session)
                await websocket.send_json({"type": "session.ready", "view": session.view.value, "role": user["role"]})
                while True:
                    frame = await websocket.receive()
                    if frame["type"] == "websocket.disconnect":
                        break
                    raw = frame.get("text")
                    if raw is None:
                        logger.warning(f"[WS] Ignoring binary frame from admin session {session.session_id}")
                        continue
                    try:
                        payload = json.loads(raw)
                    except ValueError:
                        logger.warning(f"[WS] Ignoring non-JSON frame: {raw!r}")
                        continue
                    await session.handle_action(payload)
        except WebSocketDisconnect:
            pass
        except Exception:
            logger.exception(f"[WS] Admin session {session.session_id} failed")
        finally:
            sessions.discard(session)
            logger.info(f"[WS] Admin session closed ({user['role']} {user['id']})")

    # -------------------
    # Customer: call a waiter
    # -------------------
    @app.post("/waiter-calls", response_model=WaiterCall, status_code=201)
    async def call_waiter(body: WaiterCallCreate, request: Request, store: RecordStore = Depends(get_store)):
        if not body.location_id:
            raise HTTPException(status_code=400, detail="Cannot call a waiter without a table location")
        row = await call_store(request, "call a waiter", store.create_waiter_call(body.location_id))
        logger.info(f"[TRACE {request.state.trace_id}] Waiter called at {body.location_id}")
        return WaiterCall(**row)

    # -------------------
    # Admin lists
    # -------------------
    @app.get("/admin/waiter-calls", response_model=List[WaiterCall])
    async def list_waiter_calls(request: Request, user=Depends(get_staff_user), store: RecordStore = Depends(get_store)):
        rows = await call_store(request, "load waiter calls", store.list_waiter_calls())
        return [WaiterCall(**row) for row in rows]

    @app.post("/admin/waiter-calls/{call_id}/resolve", response_model=WaiterCall)
    async def resolve_waiter_call(call_id: str, request: Request, user=Depends(get_staff_user), store: RecordStore = Depends(get_store)):
        row = await call_store(request, "resolve the call", store.resolve_waiter_call(call_id))
        if not row:
            raise HTTPException(status_code=404, detail="Waiter call not found")
        await sessions.broadcast({"type": "waiter_call.resolved", "id": call_id})
        logger.info(f"[TRACE {request.state.trace_id}] Waiter call {call_id} resolved by {user['id']}")
        return WaiterCall(**row)

    @app.delete("/admin/waiter-calls")
    async def clear_waiter_calls(request: Request, user=Depends(get_staff_user), store: RecordStore = Depends(get_store)):
        cleared = await call_store(request, "clear all calls", store.clear_waiter_calls())
        await sessions.broadcast({"type": "waiter_calls.cleared", "count": cleared})
        logger.info(f"[TRACE {request.state.trace_id}] {cleared} waiter calls cleared by {user['id']}")
        return {"cleared": cleared}

    @app.get("/admin/orders", response_model=List[Order])
    async def list_orders(request: Request, user=Depends(get_staff_user), store: RecordStore = Depends(get_store)):
        rows = await call_store(request, "load orders", store.list_orders())
        return [Order(**row) for row in rows]

    @app.put("/admin/orders/{order_id}/status", response_model=Order)
    async def update_order_status(
        order_id: str,
        body: OrderStatusUpdate,
        request: Request,
        user=Depends(get_staff_user),
        store: RecordStore = Depends(get_store),
    ):
        row = await call_store(request, "update order status", store.update_order_status(order_id, body.status.value))
        if not row:
            raise HTTPException(status_code=404, detail="Order not found")
        await sessions.broadcast({"type": "order.updated", "id": order_id, "status": body.status.value})
        return Order(**row)

    return app


app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run("admin_notifications.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8010")))
