"""
Logging extensions for per-session log streaming.

- session_id_var: ContextVar carrying the session a request or task works on
- SessionIdFilter: injects session_id into LogRecord if missing
- LogBroadcastHandler: forwards log records to a publish/subscribe hub
- LogBroadcastHub: in-memory pub/sub with a bounded per-session history

This file has no dependency on FastAPI. The `/ws/logs/{session_id}` route
subscribes a callback to receive the payloads.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from contextvars import ContextVar
from typing import Awaitable, Callable, Dict, List, Optional, Set

# Context variable to tag logs with session scope
session_id_var: ContextVar[Optional[str]] = ContextVar("session_id", default=None)

LogCallback = Callable[[dict], Awaitable[None]]


class SessionIdFilter(logging.Filter):
    """Logging filter that ensures record.session_id is set.

    Priority order:
    - keep existing record.session_id if provided via LoggerAdapter/extra
    - otherwise, pull from session_id_var ContextVar (may be None)
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not hasattr(record, "session_id"):
            record.session_id = session_id_var.get()
        return True


class LogBroadcastHub:
    """A lightweight async pub/sub hub keyed by session_id.

    Subscribers register an async callback taking a payload dict.
    """

    _global_instance: Optional["LogBroadcastHub"] = None

    MAX_HISTORY: int = 200
    HISTORY_TTL_SEC: int = 180

    def __init__(self) -> None:
        self._subscribers: Dict[str, Set[LogCallback]] = {}
        self._history: Dict[str, deque] = {}
        self._history_updated_at: Dict[str, float] = {}

    @classmethod
    def get_global(cls) -> "LogBroadcastHub":
        if cls._global_instance is None:
            cls._global_instance = LogBroadcastHub()
        return cls._global_instance

    def subscribe(self, session_id: str, callback: LogCallback) -> None:
        self._subscribers.setdefault(session_id, set()).add(callback)

    def unsubscribe(self, session_id: str, callback: LogCallback) -> None:
        callbacks = self._subscribers.get(session_id)
        if callbacks and callback in callbacks:
            callbacks.remove(callback)
            if not callbacks:
                self._subscribers.pop(session_id, None)

    def subscriber_count(self, session_id: str) -> int:
        return len(self._subscribers.get(session_id, ()))

    def publish(self, session_id: Optional[str], payload: dict) -> int:
        """Publish payload to all subscribers of session_id.

        Returns number of callbacks scheduled. If session_id is None,
        nothing is published (no-op).
        """
        if not session_id:
            return 0
        self._append_history(session_id, payload)
        self._purge_expired()

        callbacks = self._subscribers.get(session_id)
        if not callbacks:
            return 0

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # History still records it; live delivery needs a loop
            return 0

        scheduled = 0
        for cb in list(callbacks):
            try:
                coro = cb(payload)
            except Exception:
                # Never raise from publishers
                continue
            if asyncio.iscoroutine(coro):
                asyncio.create_task(coro)  # fire-and-forget
                scheduled += 1
        return scheduled

    # ── History helpers ─────────────────────────────────────────────────────
    def _append_history(self, session_id: str, payload: dict) -> None:
        if session_id not in self._history:
            self._history[session_id] = deque(maxlen=self.MAX_HISTORY)
        # Store a shallow copy so later mutation won't affect stored event
        self._history[session_id].append(dict(payload))
        self._history_updated_at[session_id] = time.time()

    def get_history(self, session_id: str) -> List[dict]:
        return list(self._history.get(session_id, ()))

    def _purge_expired(self) -> None:
        now = time.time()
        expired = [sid for sid, ts in self._history_updated_at.items() if now - ts > self.HISTORY_TTL_SEC]
        for sid in expired:
            self._history.pop(sid, None)
            self._history_updated_at.pop(sid, None)


class LogBroadcastHandler(logging.Handler):
    """Logging handler that forwards log records to LogBroadcastHub.

    Use alongside a file/console handler. This does not perform formatting
    for human readability; it constructs a structured payload for clients.
    """

    def __init__(self, hub: Optional[LogBroadcastHub] = None, level: int = logging.INFO) -> None:
        super().__init__(level=level)
        self.hub = hub or LogBroadcastHub.get_global()

    def emit(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            session_id = getattr(record, "session_id", None) or session_id_var.get()
            payload = {
                "type": "log",
                "timestamp": record.created,
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
                "session_id": session_id,
                "pathname": record.pathname,
                "lineno": record.lineno,
            }
            self.hub.publish(session_id, payload)
        except Exception:
            self.handleError(record)
