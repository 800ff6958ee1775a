import asyncio
import logging

import orjson
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from .logging_broadcast import LogBroadcastHub


logger = logging.getLogger(__name__)

logs_router = APIRouter()

SEND_QUEUE_SIZE = 500


@logs_router.websocket("/ws/logs/{session_id}")
async def websocket_logs(websocket: WebSocket, session_id: str):
    """Stream the log records tagged with `session_id` to the client.

    Recent history is replayed first (each item marked `replay: true`), then
    live records follow. A slow client loses the oldest queued records rather
    than growing the queue without bound.
    """
    await websocket.accept()

    hub = LogBroadcastHub.get_global()
    send_queue: asyncio.Queue = asyncio.Queue(maxsize=SEND_QUEUE_SIZE)
    stop_event = asyncio.Event()

    async def _on_log(payload: dict) -> None:
        # Drop-oldest on overflow
        if send_queue.full():
            send_queue.get_nowait()
        send_queue.put_nowait(payload)

    # Subscribe before replaying so nothing falls between history and live
    hub.subscribe(session_id, _on_log)

    for item in hub.get_history(session_id):
        replay_item = dict(item)
        replay_item["replay"] = True
        await websocket.send_bytes(orjson.dumps(replay_item))

    async def _sender() -> None:
        try:
            while not stop_event.is_set():
                payload = await send_queue.get()
                await websocket.send_bytes(orjson.dumps(payload))
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.debug(f"Log WS sender error for session {session_id}: {e}")
        finally:
            stop_event.set()

    async def _receiver() -> None:
        # Client messages are ignored; this only notices the disconnect
        try:
            while not stop_event.is_set():
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.debug(f"Log WS receiver error for session {session_id}: {e}")
        finally:
            stop_event.set()

    sender_task = asyncio.create_task(_sender())
    receiver_task = asyncio.create_task(_receiver())

    try:
        await asyncio.wait({sender_task, receiver_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        stop_event.set()
        sender_task.cancel()
        receiver_task.cancel()
        hub.unsubscribe(session_id, _on_log)
        try:
            await websocket.close()
        except RuntimeError:
            # Already closed by the client
            pass
