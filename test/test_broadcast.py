import asyncio
import logging

import orjson

from backend.logging_broadcast import LogBroadcastHandler, LogBroadcastHub, SessionIdFilter, session_id_var
from backend.websocket_manager import BroadcastWebSocketManager
from replay_use.broadcast import BroadcastMessage, emit


def message(session_id="s1", type="recording_status"):
    return BroadcastMessage(type=type, message="hello", session_id=session_id, recording_id="r1", data={"status": "recording"})


class FakeWebSocket:
    def __init__(self, fail=False):
        self.accepted = False
        self.sent = []
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_bytes(self, data: bytes):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(orjson.loads(data))


def test_broadcast_message_wire_format_is_camel_case():
    assert message().to_wire() == {
        "type": "recording_status",
        "message": "hello",
        "sessionId": "s1",
        "recordingId": "r1",
        "data": {"status": "recording"},
    }
    assert "sessionId" not in BroadcastMessage(type="playback_status", message="x").to_wire()


async def test_emit_supports_sync_and_async_sinks():
    received = []

    async def async_sink(msg):
        received.append(("async", msg.type))

    await emit(lambda msg: received.append(("sync", msg.type)), message())
    await emit(async_sink, message())
    await emit(None, message())
    assert received == [("sync", "recording_status"), ("async", "recording_status")]


async def test_emit_swallows_sink_failures(caplog):
    async def broken(msg):
        raise RuntimeError("boom")

    await emit(broken, message())
    assert "Broadcast sink failed" in caplog.text


async def test_manager_filters_by_session():
    manager = BroadcastWebSocketManager()
    all_ws, s1_ws, s2_ws = FakeWebSocket(), FakeWebSocket(), FakeWebSocket()
    await manager.connect(all_ws)
    await manager.connect(s1_ws, "s1")
    await manager.connect(s2_ws, "s2")
    assert all(ws.sent[0]["type"] == "connection_established" for ws in (all_ws, s1_ws, s2_ws))

    assert await manager.broadcast(message("s1")) == 2
    assert [m["type"] for m in all_ws.sent] == ["connection_established", "recording_status"]
    assert s1_ws.sent[-1]["sessionId"] == "s1"
    assert len(s2_ws.sent) == 1

    # Messages without a session go to everyone
    assert await manager.broadcast(message(None)) == 3


async def test_manager_drops_failing_clients():
    manager = BroadcastWebSocketManager()
    good = FakeWebSocket()
    await manager.connect(good)
    bad_id = await manager.connect(FakeWebSocket())
    manager.connections[bad_id].websocket.fail = True

    assert await manager.broadcast(message()) == 1
    assert bad_id not in manager.connections
    stats = manager.get_all_stats()["websocket_stats"]
    assert stats["messages_failed"] == 1
    assert stats["active_connections"] == 1


async def test_manager_subscribe_message_changes_filter():
    manager = BroadcastWebSocketManager()
    ws = FakeWebSocket()
    client_id = await manager.connect(ws)

    await manager._handle_client_message(client_id, {"type": "subscribe", "sessionId": "s2"})
    assert ws.sent[-1] == {"type": "subscribed", "session_id": "s2"}
    assert await manager.broadcast(message("s1")) == 0

    await manager._handle_client_message(client_id, {"type": "ping"})
    assert ws.sent[-1]["type"] == "pong"


def test_log_hub_keeps_bounded_history_per_session():
    hub = LogBroadcastHub()
    assert hub.publish(None, {"message": "dropped"}) == 0
    for i in range(hub.MAX_HISTORY + 5):
        hub.publish("s1", {"message": str(i)})

    history = hub.get_history("s1")
    assert len(history) == hub.MAX_HISTORY
    assert history[-1]["message"] == str(hub.MAX_HISTORY + 4)
    assert hub.get_history("s2") == []


async def test_log_hub_delivers_to_subscribers():
    hub = LogBroadcastHub()
    received = []

    async def on_log(payload):
        received.append(payload["message"])

    hub.subscribe("s1", on_log)
    assert hub.subscriber_count("s1") == 1
    assert hub.publish("s1", {"message": "live"}) == 1
    assert hub.publish("s2", {"message": "other"}) == 0
    await asyncio.sleep(0)
    assert received == ["live"]

    hub.unsubscribe("s1", on_log)
    assert hub.subscriber_count("s1") == 0


def test_log_handler_tags_records_with_session():
    hub = LogBroadcastHub()
    test_logger = logging.getLogger("replay_use.test_log_handler")
    test_logger.setLevel(logging.INFO)
    handler = LogBroadcastHandler(hub=hub)
    test_logger.addHandler(handler)
    try:
        token = session_id_var.set("s1")
        try:
            test_logger.info("from context")
        finally:
            session_id_var.reset(token)
        logging.LoggerAdapter(test_logger, {"session_id": "s2"}).info("from adapter")
        test_logger.info("no session")
    finally:
        test_logger.removeHandler(handler)

    assert [p["message"] for p in hub.get_history("s1")] == ["from context"]
    assert hub.get_history("s2")[0]["level"] == "INFO"
    assert hub.get_history("s2")[0]["session_id"] == "s2"


def test_session_id_filter_fills_missing_attribute():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    token = session_id_var.set("s7")
    try:
        assert SessionIdFilter().filter(record)
    finally:
        session_id_var.reset(token)
    assert record.session_id == "s7"


class SlowWebSocket(FakeWebSocket):
    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()

    async def send_bytes(self, data: bytes):
        await self.release.wait()
        await super().send_bytes(data)


async def test_scheduled_broadcast_does_not_wait_for_slow_clients():
    manager = BroadcastWebSocketManager()
    ws = SlowWebSocket()
    ws.release.set()
    await manager.connect(ws)
    ws.release.clear()

    # Returns before the client has received anything
    assert manager.schedule_broadcast(message(type="recording_event")) is None
    manager.schedule_broadcast(message(type="recording_status"))
    await asyncio.sleep(0.01)
    assert [m["type"] for m in ws.sent] == ["connection_established"]

    ws.release.set()
    await manager.drain()
    assert [m["type"] for m in ws.sent] == ["connection_established", "recording_event", "recording_status"]
