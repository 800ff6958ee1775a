"""
Browser session registry.

A session is one remote page the recording and playback engines drive. Pages are
attached over CDP to an already running browser; launching and configuring that
browser is out of scope here. Idle sessions are evicted by a background loop.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from playwright.async_api import Playwright, async_playwright

from replay_use import config
from replay_use.browser.page import PlaywrightPage
from replay_use.browser.views import PageCapability
from replay_use.exceptions import SessionNotFoundError

logger = logging.getLogger(__name__)

Closer = Callable[[], Awaitable[None]]
CloseListener = Callable[[str], Awaitable[None]]


@dataclass
class BrowserSession:
    session_id: str
    page: PageCapability
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    closer: Optional[Closer] = None

    def touch(self) -> None:
        self.last_activity = time.time()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "createdAt": self.created_at,
            "lastActivity": self.last_activity,
            "url": self.page.current_url(),
        }


class SessionManager:
    def __init__(
        self,
        timeout_minutes: int = config.SESSION_TIMEOUT_MINUTES,
        cleanup_interval_seconds: int = config.SESSION_CLEANUP_INTERVAL_SECONDS,
    ):
        self.sessions: Dict[str, BrowserSession] = {}
        self.timeout_seconds = timeout_minutes * 60
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self._close_listeners: List[CloseListener] = []
        self._playwright: Optional[Playwright] = None
        self._cleanup_task: Optional[asyncio.Task] = None

    def add_close_listener(self, listener: CloseListener) -> None:
        self._close_listeners.append(listener)

    def register(self, page: PageCapability, session_id: Optional[str] = None, closer: Optional[Closer] = None) -> BrowserSession:
        session_id = session_id or f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"
        session = BrowserSession(session_id=session_id, page=page, closer=closer)
        self.sessions[session_id] = session
        logger.info(f"📝 Registered browser session {session_id}")
        return session

    async def create_session(self, ws_endpoint: Optional[str] = None) -> BrowserSession:
        """Attach to a running browser over CDP and open a fresh page in it"""
        endpoint = ws_endpoint or config.BROWSER_WS_ENDPOINT
        if not endpoint:
            raise ValueError("browserWSEndpoint is required (or set BROWSER_WS_ENDPOINT)")

        if self._playwright is None:
            self._playwright = await async_playwright().start()

        logger.info(f"🔗 Connecting to browser at {endpoint}")
        browser = await self._playwright.chromium.connect_over_cdp(endpoint)
        context = browser.contexts[0] if browser.contexts else await browser.new_context()
        page = await context.new_page()

        async def closer() -> None:
            if not page.is_closed():
                await page.close()
            # Disconnects only; the remote browser keeps running
            await browser.close()

        return self.register(PlaywrightPage(page), closer=closer)

    def get(self, session_id: str) -> BrowserSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        session.touch()
        return session

    async def close_session(self, session_id: str) -> bool:
        session = self.sessions.pop(session_id, None)
        if session is None:
            return False

        for listener in self._close_listeners:
            try:
                await listener(session_id)
            except Exception as e:
                logger.error(f"❌ Close listener failed for session {session_id}: {e}")

        if session.closer is not None:
            try:
                await session.closer()
            except Exception as e:
                logger.warning(f"Failed to close browser page for session {session_id}: {e}")

        logger.info(f"🗑️ Closed browser session {session_id}")
        return True

    async def cleanup_expired(self, now: Optional[float] = None) -> List[str]:
        now = now if now is not None else time.time()
        expired = [sid for sid, s in self.sessions.items() if now - s.last_activity > self.timeout_seconds]
        for session_id in expired:
            logger.info(f"⏰ Session {session_id} inactive for more than {self.timeout_seconds}s, closing")
            await self.close_session(session_id)
        return expired

    def start_cleanup_loop(self) -> None:
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_seconds)
            try:
                await self.cleanup_expired()
            except Exception as e:
                logger.error(f"Error in session cleanup loop: {e}")

    async def shutdown(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            self._cleanup_task = None
        for session_id in list(self.sessions):
            await self.close_session(session_id)
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    def get_stats(self) -> Dict[str, Any]:
        return {
            "activeSessions": len(self.sessions),
            "timeoutMinutes": self.timeout_seconds // 60,
            "sessions": [s.to_dict() for s in self.sessions.values()],
        }
