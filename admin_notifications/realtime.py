# realtime.py
import asyncio
import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import websockets

from .logs import get_logger

logger = get_logger("realtime")

RecordCallback = Callable[[Dict[str, Any]], None]


@dataclass
class _Channel:
    table: str
    event: str
    callback: RecordCallback


class RealtimeSubscription:
    """Handle returned by subscribe(); release it with unsubscribe()."""

    def __init__(self, feed: "RealtimeChangeFeed", topic: str):
        self._feed = feed
        self.topic = topic

    async def unsubscribe(self) -> None:
        await self._feed._leave(self.topic)


class RealtimeChangeFeed:
    """
    Row-insert change feed over the hosted backend's realtime websocket
    (Phoenix channel protocol). One socket per feed, one channel per
    subscription. Dropped connections are retried forever; deliveries missed
    while disconnected are simply not seen here (the poller covers them).
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        schema: str = "public",
        heartbeat_seconds: float = 25.0,
        reconnect_seconds: float = 2.0,
        connect=websockets.connect,
    ):
        self.url = url
        self.api_key = api_key
        self.schema = schema
        self.heartbeat_seconds = heartbeat_seconds
        self.reconnect_seconds = reconnect_seconds
        self._connect = connect
        self._channels: Dict[str, _Channel] = {}
        self._ws = None
        self._task: Optional[asyncio.Task] = None
        self._ref = 0
        self._closed = False

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def _next_ref(self) -> str:
        self._ref += 1
        return str(self._ref)

    def join_message(self, topic: str, channel: _Channel) -> dict:
        return {
            "topic": topic,
            "event": "phx_join",
            "payload": {
                "config": {
                    "broadcast": {"self": False},
                    "presence": {"key": ""},
                    "postgres_changes": [
                        {"event": channel.event, "schema": self.schema, "table": channel.table}
                    ],
                },
                "access_token": self.api_key,
            },
            "ref": self._next_ref(),
        }

    async def subscribe(self, table: str, event: str, callback: RecordCallback) -> RealtimeSubscription:
        if self._closed:
            raise RuntimeError("change feed is closed")

        topic = f"realtime:admin_{table}_channel"
        suffix = 1
        while topic in self._channels:
            suffix += 1
            topic = f"realtime:admin_{table}_channel_{suffix}"

        channel = _Channel(table=table, event=event, callback=callback)
        self._channels[topic] = channel

        if self._task is None:
            self._task = asyncio.create_task(self._run())
        elif self._ws is not None:
            await self._send(self.join_message(topic, channel))

        logger.info(f"[Realtime] Subscribed {topic} ({event} on {table})")
        return RealtimeSubscription(self, topic)

    async def _send(self, message: dict) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            await ws.send(json.dumps(message))
        except Exception as e:
            logger.warning(f"[Realtime] Send failed ({message.get('event')}): {e}")

    async def _leave(self, topic: str) -> None:
        if self._channels.pop(topic, None) is None:
            return
        await self._send({"topic": topic, "event": "phx_leave", "payload": {}, "ref": self._next_ref()})
        logger.info(f"[Realtime] Left {topic}")
        if not self._channels:
            await self.close()

    async def _heartbeat(self, ws) -> None:
        try:
            while True:
                await asyncio.sleep(self.heartbeat_seconds)
                await ws.send(json.dumps(
                    {"topic": "phoenix", "event": "heartbeat", "payload": {}, "ref": self._next_ref()}
                ))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"[Realtime] Heartbeat stopped: {e}")

    async def _run(self) -> None:
        while not self._closed:
            try:
                async with self._connect(self.url) as ws:
                    self._ws = ws
                    logger.info("[Realtime] Connected")
                    for topic, channel in list(self._channels.items()):
                        await ws.send(json.dumps(self.join_message(topic, channel)))

                    heartbeat = asyncio.create_task(self._heartbeat(ws))
                    try:
                        async for raw in ws:
                            self.dispatch(raw)
                    finally:
                        heartbeat.cancel()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"[Realtime] Connection lost, retrying in {self.reconnect_seconds}s: {e}")
            finally:
                self._ws = None

            if not self._closed:
                await asyncio.sleep(self.reconnect_seconds)

    def dispatch(self, raw) -> None:
        """Route one server frame to the subscribed callback, ignoring everything else."""
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"[Realtime] Unparseable frame: {raw!r}")
            return

        event = message.get("event")
        payload = message.get("payload") or {}

        if event == "phx_reply" and payload.get("status") == "error":
            logger.warning(f"[Realtime] Join rejected for {message.get('topic')}: {payload.get('response')}")
            return
        if event != "postgres_changes":
            return

        channel = self._channels.get(message.get("topic"))
        if channel is None:
            return

        data = payload.get("data") or {}
        record = data.get("record")
        if data.get("type") != channel.event or not isinstance(record, dict):
            return

        try:
            channel.callback(record)
        except Exception:
            logger.exception(f"[Realtime] Callback failed for {channel.table} record {record.get('id')}")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._channels.clear()
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("[Realtime] Closed")
