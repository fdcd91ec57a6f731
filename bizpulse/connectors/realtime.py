"""
Realtime change feed

Row-level change notifications from the backend, delivered over the
Phoenix channel protocol on a websocket. Callers build a Channel, bind
per-table handlers with .on(), then subscribe(); removing the channel
detaches every handler it carried.

    channel = feed.channel("crm-realtime")
    channel.on("vouchers", on_voucher_change).on("crm_goals", on_goal_change)
    await channel.subscribe()
    ...
    await feed.remove_channel(channel)
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union
import asyncio
import inspect
import itertools
import aiohttp

from bizpulse.config import get_settings
from bizpulse.utils.logger import log

settings = get_settings()


@dataclass
class ChangeEvent:
    """One row-level change"""
    table: str
    event_type: str  # INSERT, UPDATE, DELETE
    schema: str = "public"
    record: Dict[str, Any] = field(default_factory=dict)
    old_record: Dict[str, Any] = field(default_factory=dict)
    commit_timestamp: Optional[str] = None


ChangeHandler = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


@dataclass
class Binding:
    """A handler bound to changes on one table"""
    table: str
    callback: ChangeHandler
    event: str = "*"
    schema: str = "public"
    filter: Optional[str] = None  # "column=eq.value"

    def matches(self, change: ChangeEvent) -> bool:
        if change.table != self.table or change.schema != self.schema:
            return False
        if self.event != "*" and self.event.upper() != change.event_type.upper():
            return False
        if self.filter:
            column, _, condition = self.filter.partition("=")
            op, _, expected = condition.partition(".")
            if op != "eq":
                return True  # other operators are evaluated server-side
            row = change.record or change.old_record
            if column not in row:
                # deletes carry only the primary key unless replica identity is full
                return True
            return str(row[column]) == expected
        return True

    def to_config(self) -> Dict[str, Any]:
        config = {"event": self.event, "schema": self.schema, "table": self.table}
        if self.filter:
            config["filter"] = self.filter
        return config


class Channel:
    """A named group of table bindings joined as one subscription"""

    def __init__(self, feed: "ChangeFeed", name: str):
        self.feed = feed
        self.name = name
        self.topic = f"realtime:{name}"
        self.bindings: List[Binding] = []
        self.state = "closed"  # closed -> joined -> left
        self.join_ref: Optional[str] = None

    def on(
        self,
        table: str,
        callback: ChangeHandler,
        event: str = "*",
        schema: str = "public",
        filter: Optional[str] = None
    ) -> "Channel":
        self.bindings.append(Binding(table, callback, event, schema, filter))
        return self

    async def subscribe(self) -> "Channel":
        await self.feed.join(self)
        return self

    async def unsubscribe(self):
        await self.feed.remove_channel(self)

    async def dispatch(self, change: ChangeEvent):
        """Run every matching handler; a failing handler does not stop the others"""
        if self.state != "joined":
            return
        for binding in self.bindings:
            if not binding.matches(change):
                continue
            try:
                result = binding.callback(change)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                log.error(f"[Realtime] handler for {change.table} on {self.name} failed: {str(e)}")


class ChangeFeed(ABC):
    """Channel bookkeeping shared by every change-feed transport"""

    def __init__(self):
        self.channels: List[Channel] = []

    def channel(self, name: str) -> Channel:
        return Channel(self, name)

    async def join(self, channel: Channel):
        if channel.state == "joined":
            return
        self.channels.append(channel)
        channel.state = "joined"
        await self._send_join(channel)
        tables = ", ".join(b.table for b in channel.bindings)
        log.info(f"[Realtime] Subscribed {channel.name} to {tables}")

    async def remove_channel(self, channel: Channel):
        if channel not in self.channels:
            return
        self.channels.remove(channel)
        channel.state = "left"
        await self._send_leave(channel)
        log.info(f"[Realtime] Unsubscribed {channel.name}")

    async def publish(self, change: ChangeEvent):
        """Deliver a change to every joined channel"""
        for channel in list(self.channels):
            await channel.dispatch(change)

    async def close(self):
        for channel in list(self.channels):
            await self.remove_channel(channel)

    @abstractmethod
    async def _send_join(self, channel: Channel):
        pass

    @abstractmethod
    async def _send_leave(self, channel: Channel):
        pass


class RealtimeClient(ChangeFeed):
    """
    Change feed over the backend's realtime websocket

    When the socket drops, the reader reconnects after ``reconnect_seconds``
    and re-joins every channel still registered. Handlers run as tasks so a
    slow handler never stalls the reader.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        access_token: Optional[str] = None,
        heartbeat_seconds: Optional[float] = None,
        reconnect_seconds: Optional[float] = None
    ):
        super().__init__()
        self.url = url or settings.resolved_realtime_url
        self.api_key = api_key if api_key is not None else settings.backend_api_key
        self.access_token = access_token or settings.backend_access_token or self.api_key
        self.heartbeat_seconds = heartbeat_seconds or settings.realtime_heartbeat_seconds
        self.reconnect_seconds = (
            reconnect_seconds if reconnect_seconds is not None
            else settings.realtime_reconnect_seconds
        )

        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader: Optional[asyncio.Task] = None
        self._heartbeat: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._closing = False
        self._refs = itertools.count(1)

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def connect(self):
        if self.connected:
            return

        self._closing = False
        self._session = aiohttp.ClientSession()
        self._ws = await self._session.ws_connect(
            self.url,
            params={"apikey": self.api_key, "vsn": "1.0.0"}
        )
        self._reader = asyncio.create_task(self._read_loop())
        self._heartbeat = asyncio.create_task(self._heartbeat_loop())
        log.info(f"[Realtime] Connected to {self.url}")

    async def close(self):
        self._closing = True
        await super().close()

        for task in [self._heartbeat, self._reader, *self._tasks]:
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._tasks.clear()

        await self._drop_connection()
        log.info("[Realtime] Connection closed")

    async def flush(self):
        """Wait for handlers already started by incoming changes"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _drop_connection(self):
        if self._ws is not None:
            await self._ws.close()
        if self._session is not None:
            await self._session.close()
        self._ws = None
        self._session = None

    async def _reconnect(self):
        if self._heartbeat and not self._heartbeat.done():
            self._heartbeat.cancel()
        await self._drop_connection()

        while not self._closing:
            await asyncio.sleep(self.reconnect_seconds)
            if self._closing:
                return
            try:
                await self.connect()
            except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
                log.warning(f"[Realtime] Reconnect failed: {str(e)}")
                continue

            for channel in list(self.channels):
                await self._send_join(channel)
            log.info(f"[Realtime] Reconnected, re-joined {len(self.channels)} channel(s)")
            return

    async def _push(self, topic: str, event: str, payload: Dict[str, Any], join_ref: Optional[str] = None) -> str:
        ref = str(next(self._refs))
        await self._ws.send_json({
            "topic": topic,
            "event": event,
            "payload": payload,
            "ref": ref,
            "join_ref": join_ref,
        })
        return ref

    async def _send_join(self, channel: Channel):
        await self.connect()
        payload = {
            "config": {
                "broadcast": {"self": False},
                "presence": {"key": ""},
                "postgres_changes": [b.to_config() for b in channel.bindings],
            },
            "access_token": self.access_token,
        }
        channel.join_ref = await self._push(channel.topic, "phx_join", payload)

    async def _send_leave(self, channel: Channel):
        if not self.connected:
            return
        await self._push(channel.topic, "phx_leave", {}, join_ref=channel.join_ref)

    async def _heartbeat_loop(self):
        while self.connected:
            await asyncio.sleep(self.heartbeat_seconds)
            try:
                await self._push("phoenix", "heartbeat", {})
            except (aiohttp.ClientError, ConnectionError) as e:
                log.warning(f"[Realtime] Heartbeat failed: {str(e)}")
                return

    async def _read_loop(self):
        async for message in self._ws:
            if message.type == aiohttp.WSMsgType.TEXT:
                try:
                    await self._handle(message.json())
                except ValueError as e:
                    log.warning(f"[Realtime] Ignoring malformed frame: {str(e)}")
            elif message.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                break
        log.warning("[Realtime] Websocket reader stopped")

        if not self._closing:
            await self._reconnect()

    def _spawn(self, coro: Awaitable[None]):
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle(self, message: Dict[str, Any]):
        event = message.get("event")
        topic = message.get("topic")
        payload = message.get("payload") or {}

        if event == "postgres_changes":
            data = payload.get("data") or {}
            change = ChangeEvent(
                table=data.get("table", ""),
                event_type=data.get("type", ""),
                schema=data.get("schema", "public"),
                record=data.get("record") or {},
                old_record=data.get("old_record") or {},
                commit_timestamp=data.get("commit_timestamp"),
            )
            log.debug(f"[Realtime] {change.table} change: {change.event_type}")
            for channel in list(self.channels):
                if channel.topic == topic:
                    self._spawn(channel.dispatch(change))

        elif event == "phx_reply":
            if payload.get("status") != "ok" and topic != "phoenix":
                log.error(f"[Realtime] {topic} join rejected: {payload.get('response')}")

        elif event in ("phx_error", "phx_close"):
            log.warning(f"[Realtime] {topic} channel {event}")
