from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, runtime_checkable

from pydantic import BaseModel

Unsubscribe = Callable[[], None]


class Viewport(BaseModel):
	width: int
	height: int


@runtime_checkable
class ProtocolSession(Protocol):
	"""Low-level debugging-protocol channel attached to one page."""

	async def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any: ...

	def on_event(self, name: str, handler: Callable[[Dict[str, Any]], None]) -> Unsubscribe: ...

	async def detach(self) -> None: ...


@runtime_checkable
class PageCapability(Protocol):
	"""
	The controllable page the recording and playback engines operate on.

	Every method that talks to the browser is a coroutine. Listener registration
	methods return a callable that removes the listener again.
	"""

	async def navigate(self, url: str, wait_until: str = 'domcontentloaded', timeout: Optional[float] = None) -> None: ...

	async def click(self, selector: str) -> None: ...

	async def click_at(self, x: float, y: float) -> None: ...

	async def type(self, selector: str, text: str) -> None: ...

	async def select_all(self, selector: str) -> None: ...

	async def press_key(self, key: str) -> None: ...

	async def submit_form(self, selector: str) -> None: ...

	async def hover(self, selector: str) -> None: ...

	async def focus(self, selector: str) -> None: ...

	async def scroll_to(self, x: float, y: float) -> None: ...

	async def set_field_value(self, selector: str, value: str) -> None: ...

	async def evaluate(self, script: str, *args: Any) -> Any: ...

	async def add_init_script(self, script: str) -> None: ...

	async def expose_callback(self, name: str, handler: Callable[..., Awaitable[Any]]) -> None: ...

	async def screenshot(self, quality: int = 80, full_page: bool = False) -> str: ...

	async def wait_for_selector(self, selector: str, timeout: Optional[float] = None) -> None: ...

	async def set_viewport(self, viewport: Viewport) -> None: ...

	async def create_protocol_session(self) -> ProtocolSession: ...

	def current_url(self) -> str: ...

	async def title(self) -> str: ...

	def viewport(self) -> Optional[Viewport]: ...

	async def user_agent(self) -> str: ...

	def is_closed(self) -> bool: ...

	def on_console_message(self, handler: Callable[[str, str], None]) -> Unsubscribe: ...

	def on_frame_navigated(self, handler: Callable[[str, bool], None]) -> Unsubscribe: ...
