"""
WebSocket fan-out for recording and playback broadcasts.

Every message the engines hand to the broadcast sink is encoded once with orjson
and sent to each connected client. A client may narrow its feed to one session
by connecting with `?sessionId=...` or sending a `subscribe` message.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

import orjson
from fastapi import WebSocket, WebSocketDisconnect

from replay_use.broadcast import BroadcastMessage

logger = logging.getLogger(__name__)


@dataclass
class WebSocketConnection:
    """A connected client and the session it follows (None for all sessions)"""
    websocket: WebSocket
    client_id: str
    connected_at: float
    session_id: Optional[str] = None
    last_ping: float = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "client_id": self.client_id,
            "session_id": self.session_id,
            "connected_at": self.connected_at,
            "last_ping": self.last_ping,
            "connection_duration": time.time() - self.connected_at,
        }

    def wants(self, session_id: Optional[str]) -> bool:
        return self.session_id is None or session_id is None or self.session_id == session_id


class BroadcastWebSocketManager:
    """Tracks WebSocket clients and fans broadcast messages out to them"""

    def __init__(self):
        self.connections: Dict[str, WebSocketConnection] = {}
        self._next_client = 0
        self._send_lock: Optional[asyncio.Lock] = None
        self._send_lock_loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending: Set[asyncio.Task] = set()
        self.stats = {
            "total_connections": 0,
            "active_connections": 0,
            "messages_sent": 0,
            "messages_failed": 0,
            "bytes_sent": 0,
        }

    async def connect(self, websocket: WebSocket, session_id: Optional[str] = None) -> str:
        await websocket.accept()
        self._next_client += 1
        client_id = f"client_{int(time.time() * 1000)}_{self._next_client}"
        self.connections[client_id] = WebSocketConnection(
            websocket=websocket,
            client_id=client_id,
            connected_at=time.time(),
            session_id=session_id,
        )
        self.stats["total_connections"] += 1
        self.stats["active_connections"] = len(self.connections)
        logger.info(f"🔌 WebSocket client {client_id} connected (session filter: {session_id or 'all'})")

        await self._send(client_id, {
            "type": "connection_established",
            "client_id": client_id,
            "session_id": session_id,
            "timestamp": time.time(),
        })
        return client_id

    def disconnect(self, client_id: str) -> bool:
        connection = self.connections.pop(client_id, None)
        if connection is None:
            return False
        self.stats["active_connections"] = len(self.connections)
        logger.info(f"WebSocket client {client_id} disconnected")
        return True

    def schedule_broadcast(self, message: BroadcastMessage) -> None:
        """Broadcast sink for the engines: queue the fan-out and return at once"""
        task = asyncio.create_task(self.broadcast(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def broadcast(self, message: BroadcastMessage) -> int:
        """Send one engine message to every interested client"""
        payload = message.to_wire()
        # The lock hands out turns in arrival order, which keeps per-client ordering
        async with self._lock_for_running_loop():
            targets = [c.client_id for c in self.connections.values() if c.wants(message.session_id)]
            sent = 0
            for client_id in targets:
                if await self._send(client_id, payload):
                    sent += 1
        return sent

    def _lock_for_running_loop(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._send_lock is None or self._send_lock_loop is not loop:
            self._send_lock = asyncio.Lock()
            self._send_lock_loop = loop
        return self._send_lock

    async def drain(self) -> None:
        """Wait for broadcasts scheduled on the running loop to finish"""
        loop = asyncio.get_running_loop()
        while True:
            pending = [t for t in self._pending if t.get_loop() is loop and not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def handle_websocket_loop(self, client_id: str) -> None:
        connection = self.connections.get(client_id)
        if connection is None:
            return
        try:
            while True:
                try:
                    data = await connection.websocket.receive_text()
                    message = json.loads(data)
                except WebSocketDisconnect:
                    break
                except json.JSONDecodeError:
                    logger.warning(f"Invalid JSON from client {client_id}")
                    continue
                await self._handle_client_message(client_id, message)
        except Exception as e:
            logger.error(f"Error in WebSocket loop for client {client_id}: {e}")
        finally:
            self.disconnect(client_id)

    async def _handle_client_message(self, client_id: str, message: Dict[str, Any]) -> None:
        connection = self.connections.get(client_id)
        if connection is None:
            return
        message_type = message.get("type")

        if message_type == "ping":
            connection.last_ping = time.time()
            await self._send(client_id, {"type": "pong", "timestamp": connection.last_ping})
        elif message_type == "subscribe":
            connection.session_id = message.get("sessionId") or None
            await self._send(client_id, {"type": "subscribed", "session_id": connection.session_id})
        elif message_type == "get_status":
            await self._send(client_id, {"type": "status", "data": connection.to_dict()})
        else:
            logger.warning(f"Unknown message type from client {client_id}: {message_type}")

    async def _send(self, client_id: str, message: Dict[str, Any]) -> bool:
        connection = self.connections.get(client_id)
        if connection is None:
            return False
        message_bytes = orjson.dumps(message)
        try:
            await connection.websocket.send_bytes(message_bytes)
        except Exception as e:
            logger.warning(f"Failed to send message to client {client_id}: {e}")
            self.stats["messages_failed"] += 1
            self.disconnect(client_id)
            return False
        self.stats["messages_sent"] += 1
        self.stats["bytes_sent"] += len(message_bytes)
        return True

    def get_all_stats(self) -> Dict[str, Any]:
        return {
            "websocket_stats": dict(self.stats),
            "connections": [c.to_dict() for c in self.connections.values()],
        }


# Global WebSocket manager instance
websocket_manager = BroadcastWebSocketManager()
