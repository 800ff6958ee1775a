"""Shared fixtures: an in-memory page that records every call made on it."""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import pytest

from replay_use.browser.views import Viewport
from replay_use.recording.scripts import SNAPSHOT_FIELDS_JS


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class FakeProtocolSession:
    def __init__(self):
        self.sent: List[str] = []
        self.detached = False

    async def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        self.sent.append(method)
        return {}

    def on_event(self, name: str, handler: Callable[[Dict[str, Any]], None]):
        return lambda: None

    async def detach(self) -> None:
        self.detached = True


class FakePage:
    """PageCapability double.

    `calls` logs every driving action as a tuple, `emit` plays a page signal
    into the most recently exposed callback, and `fields` is what the input
    snapshot returns.
    """

    def __init__(self, url: str = "https://x.test/"):
        self.url = url
        self.closed = False
        self.calls: List[tuple] = []
        self.fields: List[Dict[str, Any]] = []
        self.failing_selectors: Set[str] = set()
        self.fail_setup = False
        self.callbacks: Dict[str, Callable[..., Awaitable[Any]]] = {}
        self.binding: Optional[str] = None
        self.init_scripts: List[str] = []
        self.frame_handlers: List[Callable[[str, bool], None]] = []
        self.console_handlers: List[Callable[[str, str], None]] = []
        self.protocol_session = FakeProtocolSession()
        self._viewport = Viewport(width=1280, height=720)

    # --- test helpers ---

    async def emit(self, payload: Dict[str, Any]) -> None:
        await self.callbacks[self.binding](payload)

    def fire_navigation(self, url: str, is_main_frame: bool = True) -> None:
        self.url = url
        for handler in list(self.frame_handlers):
            handler(url, is_main_frame)

    def actions(self) -> List[str]:
        return [call[0] for call in self.calls]

    def _act(self, name: str, *args: Any) -> None:
        if self.closed:
            raise RuntimeError("Target page has been closed")
        for arg in args:
            if isinstance(arg, str) and arg in self.failing_selectors:
                raise RuntimeError(f"Timeout waiting for {arg}")
        self.calls.append((name, *args))

    # --- PageCapability ---

    async def navigate(self, url: str, wait_until: str = "domcontentloaded", timeout: Optional[float] = None) -> None:
        self._act("navigate", url)
        self.url = url

    async def click(self, selector: str) -> None:
        self._act("click", selector)

    async def click_at(self, x: float, y: float) -> None:
        self._act("click_at", x, y)

    async def type(self, selector: str, text: str) -> None:
        self._act("type", selector, text)

    async def select_all(self, selector: str) -> None:
        self._act("select_all", selector)

    async def press_key(self, key: str) -> None:
        self._act("press_key", key)

    async def submit_form(self, selector: str) -> None:
        self._act("submit_form", selector)

    async def hover(self, selector: str) -> None:
        self._act("hover", selector)

    async def focus(self, selector: str) -> None:
        self._act("focus", selector)

    async def scroll_to(self, x: float, y: float) -> None:
        self._act("scroll_to", x, y)

    async def set_field_value(self, selector: str, value: str) -> None:
        self._act("set_field_value", selector, value)

    async def evaluate(self, script: str, *args: Any) -> Any:
        if self.closed:
            raise RuntimeError("Target page has been closed")
        if script == SNAPSHOT_FIELDS_JS:
            return [dict(field) for field in self.fields]
        return None

    async def add_init_script(self, script: str) -> None:
        if self.fail_setup:
            raise RuntimeError("add_init_script failed")
        self.init_scripts.append(script)

    async def expose_callback(self, name: str, handler: Callable[..., Awaitable[Any]]) -> None:
        self.callbacks[name] = handler
        self.binding = name

    async def screenshot(self, quality: int = 80, full_page: bool = False) -> str:
        self._act("screenshot")
        return "ZmFrZQ=="

    async def wait_for_selector(self, selector: str, timeout: Optional[float] = None) -> None:
        self._act("wait_for_selector", selector)

    async def set_viewport(self, viewport: Viewport) -> None:
        self._act("set_viewport", viewport.width, viewport.height)
        self._viewport = viewport

    async def create_protocol_session(self) -> FakeProtocolSession:
        return self.protocol_session

    def current_url(self) -> str:
        return self.url

    async def title(self) -> str:
        return "Fake page"

    def viewport(self) -> Optional[Viewport]:
        return self._viewport

    async def user_agent(self) -> str:
        return "FakeAgent/1.0"

    def is_closed(self) -> bool:
        return self.closed

    def on_console_message(self, handler: Callable[[str, str], None]):
        self.console_handlers.append(handler)
        return lambda: self.console_handlers.remove(handler)

    def on_frame_navigated(self, handler: Callable[[str, bool], None]):
        self.frame_handlers.append(handler)
        return lambda: self.frame_handlers.remove(handler)


class BroadcastRecorder:
    def __init__(self):
        self.messages = []

    def __call__(self, message) -> None:
        self.messages.append(message)

    def types(self) -> List[str]:
        return [m.type for m in self.messages]


@pytest.fixture
def page() -> FakePage:
    return FakePage()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def broadcasts() -> BroadcastRecorder:
    return BroadcastRecorder()
