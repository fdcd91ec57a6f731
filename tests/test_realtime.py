"""
Realtime change feed tests.

Covers channel lifecycle, binding filters, Phoenix frame handling and
reconnect-with-rejoin against in-memory sockets:
- delete events carrying only the primary key still reach filtered bindings
- handlers run as tasks, so a slow handler never stalls the reader
- a dropped socket is reopened and every registered channel re-joined
"""
import asyncio

import aiohttp

from bizpulse.connectors.realtime import Binding, ChangeEvent, RealtimeClient


def _run(coro):
    """Run an async coroutine in a sync test."""
    return asyncio.run(coro)


class FakeSocket:
    closed = False

    def __init__(self):
        self.sent = []

    async def send_json(self, data):
        self.sent.append(data)


def _client():
    client = RealtimeClient(url="ws://backend/realtime/v1/websocket", api_key="anon", access_token="jwt")
    client._ws = FakeSocket()
    return client


# ---------------------------------------------------------------------------
# Binding filters
# ---------------------------------------------------------------------------

def test_binding_matches_table_and_event():
    binding = Binding(table="vouchers", callback=print, event="INSERT")
    assert binding.matches(ChangeEvent(table="vouchers", event_type="INSERT"))
    assert not binding.matches(ChangeEvent(table="vouchers", event_type="DELETE"))
    assert not binding.matches(ChangeEvent(table="crm_goals", event_type="INSERT"))
    assert not binding.matches(ChangeEvent(table="vouchers", event_type="INSERT", schema="audit"))


def test_binding_eq_filter_checks_old_record_on_delete():
    binding = Binding(table="crm_meetings", callback=print, filter="created_by=eq.u1")
    assert binding.matches(ChangeEvent(table="crm_meetings", event_type="INSERT", record={"created_by": "u1"}))
    assert not binding.matches(ChangeEvent(table="crm_meetings", event_type="INSERT", record={"created_by": "u2"}))
    assert binding.matches(ChangeEvent(table="crm_meetings", event_type="DELETE", old_record={"created_by": "u1"}))
    assert not binding.matches(ChangeEvent(table="crm_meetings", event_type="DELETE", old_record={"id": "m1", "created_by": "u2"}))


def test_binding_eq_filter_passes_delete_with_only_primary_key():
    binding = Binding(table="crm_meetings", callback=print, filter="created_by=eq.u1")
    assert binding.matches(ChangeEvent(table="crm_meetings", event_type="DELETE", old_record={"id": "m1"}))
    assert binding.matches(ChangeEvent(table="crm_meetings", event_type="DELETE"))


def test_binding_config():
    assert Binding(table="vouchers", callback=print).to_config() == {
        "event": "*", "schema": "public", "table": "vouchers",
    }


# ---------------------------------------------------------------------------
# Join / leave frames
# ---------------------------------------------------------------------------

def test_join_and_leave_frames():
    client = _client()

    async def scenario():
        channel = client.channel("crm-realtime").on("vouchers", print).on("crm_goals", print)
        await channel.subscribe()
        await client.remove_channel(channel)
        await client.remove_channel(channel)
        return channel

    channel = _run(scenario())
    join, leave = client._ws.sent

    assert join["topic"] == "realtime:crm-realtime"
    assert join["event"] == "phx_join"
    assert join["payload"]["access_token"] == "jwt"
    assert [c["table"] for c in join["payload"]["config"]["postgres_changes"]] == ["vouchers", "crm_goals"]
    assert leave["event"] == "phx_leave"
    assert leave["join_ref"] == join["ref"]
    assert channel.state == "left"
    assert client.channels == []


# ---------------------------------------------------------------------------
# Incoming frames
# ---------------------------------------------------------------------------

def _change_frame(topic, table, change_type="INSERT", record=None):
    return {
        "topic": topic,
        "event": "postgres_changes",
        "payload": {"data": {
            "type": change_type, "table": table, "schema": "public",
            "record": record or {}, "old_record": None,
            "commit_timestamp": "2025-01-10T10:00:00Z",
        }},
    }


def test_changes_routed_by_topic():
    client = _client()
    received = []

    async def scenario():
        await client.channel("crm-realtime").on("vouchers", received.append).subscribe()
        await client.channel("other").on("vouchers", lambda c: received.append("other")).subscribe()
        await client._handle(_change_frame("realtime:crm-realtime", "vouchers", record={"id": 7}))
        await client.flush()

    _run(scenario())
    assert len(received) == 1
    assert received[0].event_type == "INSERT"
    assert received[0].record == {"id": 7}
    assert received[0].old_record == {}


def test_failing_handler_does_not_block_others():
    client = _client()
    received = []

    def broken(change):
        raise RuntimeError("handler bug")

    async def scenario():
        channel = client.channel("crm-realtime").on("vouchers", broken).on("vouchers", received.append)
        await channel.subscribe()
        await client._handle(_change_frame("realtime:crm-realtime", "vouchers"))
        await client.flush()

    _run(scenario())
    assert len(received) == 1


def test_left_channel_receives_nothing():
    client = _client()
    received = []

    async def scenario():
        channel = await client.channel("crm-realtime").on("vouchers", received.append).subscribe()
        await channel.unsubscribe()
        await channel.dispatch(ChangeEvent(table="vouchers", event_type="INSERT"))

    _run(scenario())
    assert received == []


def test_control_frames_are_ignored():
    client = _client()
    _run(client._handle({"topic": "phoenix", "event": "phx_reply", "payload": {"status": "ok"}}))
    _run(client._handle({"topic": "realtime:x", "event": "phx_reply", "payload": {"status": "error"}}))
    _run(client._handle({"topic": "realtime:x", "event": "phx_close", "payload": {}}))
    assert client._ws.sent == []


def test_slow_handler_does_not_stall_frame_handling():
    client = _client()
    received = []
    release = None

    async def slow(change):
        await release.wait()
        received.append(change)

    async def scenario():
        nonlocal release
        release = asyncio.Event()
        await client.channel("crm-realtime").on("vouchers", slow).subscribe()
        await client._handle(_change_frame("realtime:crm-realtime", "vouchers"))
        pending = len(client._tasks)
        seen_before_release = list(received)
        release.set()
        await client.flush()
        return pending, seen_before_release

    pending, seen_before_release = _run(scenario())
    assert pending == 1
    assert seen_before_release == []
    assert len(received) == 1
    assert client._tasks == set()


# ---------------------------------------------------------------------------
# Reconnect
# ---------------------------------------------------------------------------

class FakeMessage:
    def __init__(self, type, data=None):
        self.type = type
        self._data = data

    def json(self):
        return self._data


class QueueSocket(FakeSocket):
    """Socket whose incoming frames are fed through a queue; None ends the stream"""

    def __init__(self):
        super().__init__()
        self.closed = False
        self.inbox = asyncio.Queue()

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self.inbox.get()
        if message is None:
            raise StopAsyncIteration
        return message

    async def close(self):
        self.closed = True


class ScriptedClient(RealtimeClient):
    """Opens a fresh QueueSocket on every connect instead of dialing out"""

    def __init__(self):
        super().__init__(
            url="ws://backend/realtime/v1/websocket",
            api_key="anon",
            access_token="jwt",
            reconnect_seconds=0
        )
        self.sockets = []

    async def connect(self):
        if self.connected:
            return
        self._closing = False
        self._ws = QueueSocket()
        self.sockets.append(self._ws)
        self._reader = asyncio.create_task(self._read_loop())


async def _until(condition, attempts=100):
    for _ in range(attempts):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def test_closed_socket_reconnects_and_rejoins_channels():
    client = ScriptedClient()
    received = []

    async def scenario():
        channel = client.channel("crm-realtime").on("vouchers", received.append)
        await channel.subscribe()
        first = client.sockets[0]

        first.inbox.put_nowait(FakeMessage(aiohttp.WSMsgType.CLOSED))
        await _until(lambda: len(client.sockets) == 2 and client.sockets[1].sent)
        second = client.sockets[1]

        second.inbox.put_nowait(FakeMessage(
            aiohttp.WSMsgType.TEXT,
            _change_frame("realtime:crm-realtime", "vouchers", record={"id": 9})
        ))
        await _until(lambda: received)
        await client.flush()
        await client.close()
        return channel, first, second

    channel, first, second = _run(scenario())

    assert first.closed
    assert [f["event"] for f in first.sent] == ["phx_join"]

    rejoin = second.sent[0]
    assert rejoin["event"] == "phx_join"
    assert rejoin["topic"] == "realtime:crm-realtime"
    assert [c["table"] for c in rejoin["payload"]["config"]["postgres_changes"]] == ["vouchers"]
    assert second.sent[-1]["event"] == "phx_leave"
    assert second.sent[-1]["join_ref"] == rejoin["ref"]

    assert [c.record for c in received] == [{"id": 9}]
    assert len(client.sockets) == 2
    assert second.closed


def test_close_does_not_reconnect():
    client = ScriptedClient()

    async def scenario():
        await client.channel("crm-realtime").on("vouchers", print).subscribe()
        await client.close()
        await asyncio.sleep(0)

    _run(scenario())
    assert len(client.sockets) == 1
    assert client.channels == []
