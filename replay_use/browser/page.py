"""
Playwright implementation of the page capability.

The engines only ever see `PageCapability`; this adapter is the one place that
knows about Playwright objects.
"""

import base64
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from playwright.async_api import CDPSession, ConsoleMessage, Frame, Page

from replay_use.browser.views import Unsubscribe, Viewport

logger = logging.getLogger(__name__)

_SUBMIT_FORM_JS = """
(el) => {
	const form = el.tagName === 'FORM' ? el : el.closest('form');
	if (!form) {
		throw new Error('No form found for selector');
	}
	form.submit();
}
"""

_SET_FIELD_VALUE_JS = """
(el, value) => {
	const type = (el.type || '').toLowerCase();
	if (type === 'checkbox' || type === 'radio') {
		el.checked = value === 'true' || value === 'on';
	} else {
		el.value = value;
	}
	el.dispatchEvent(new Event('input', { bubbles: true }));
	el.dispatchEvent(new Event('change', { bubbles: true }));
}
"""


class PlaywrightProtocolSession:
	def __init__(self, session: CDPSession):
		self._session = session

	async def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
		return await self._session.send(method, params or {})

	def on_event(self, name: str, handler: Callable[[Dict[str, Any]], None]) -> Unsubscribe:
		self._session.on(name, handler)
		return lambda: self._session.remove_listener(name, handler)

	async def detach(self) -> None:
		await self._session.detach()


class PlaywrightPage:
	"""Adapts a Playwright `Page` to `PageCapability`."""

	def __init__(self, page: Page, default_timeout: float = 30000):
		self.page = page
		self.default_timeout = default_timeout

	async def navigate(self, url: str, wait_until: str = 'domcontentloaded', timeout: Optional[float] = None) -> None:
		await self.page.goto(url, wait_until=wait_until, timeout=timeout or self.default_timeout)

	async def click(self, selector: str) -> None:
		await self.page.locator(selector).first.click(timeout=self.default_timeout)

	async def click_at(self, x: float, y: float) -> None:
		await self.page.mouse.click(x, y)

	async def type(self, selector: str, text: str) -> None:
		await self.page.locator(selector).first.press_sequentially(text)

	async def select_all(self, selector: str) -> None:
		await self.page.locator(selector).first.press('ControlOrMeta+A')

	async def press_key(self, key: str) -> None:
		await self.page.keyboard.press(key)

	async def submit_form(self, selector: str) -> None:
		await self.page.locator(selector).first.evaluate(_SUBMIT_FORM_JS)

	async def hover(self, selector: str) -> None:
		await self.page.locator(selector).first.hover(timeout=self.default_timeout)

	async def focus(self, selector: str) -> None:
		await self.page.locator(selector).first.focus(timeout=self.default_timeout)

	async def scroll_to(self, x: float, y: float) -> None:
		await self.page.evaluate('([x, y]) => window.scrollTo(x, y)', [x, y])

	async def set_field_value(self, selector: str, value: str) -> None:
		await self.page.locator(selector).first.evaluate(_SET_FIELD_VALUE_JS, value)

	async def evaluate(self, script: str, *args: Any) -> Any:
		if not args:
			return await self.page.evaluate(script)
		if len(args) == 1:
			return await self.page.evaluate(script, args[0])
		return await self.page.evaluate(script, list(args))

	async def add_init_script(self, script: str) -> None:
		await self.page.add_init_script(script=script)

	async def expose_callback(self, name: str, handler: Callable[..., Awaitable[Any]]) -> None:
		try:
			await self.page.expose_function(name, handler)
		except Exception as e:
			# Bindings survive across recordings on the same page
			if 'already registered' in str(e):
				logger.debug(f'Callback {name} already exposed, reusing it')
				return
			raise

	async def screenshot(self, quality: int = 80, full_page: bool = False) -> str:
		data = await self.page.screenshot(type='jpeg', quality=quality, full_page=full_page)
		return base64.b64encode(data).decode('ascii')

	async def wait_for_selector(self, selector: str, timeout: Optional[float] = None) -> None:
		await self.page.wait_for_selector(selector, timeout=timeout or self.default_timeout)

	async def set_viewport(self, viewport: Viewport) -> None:
		await self.page.set_viewport_size({'width': viewport.width, 'height': viewport.height})

	async def create_protocol_session(self) -> PlaywrightProtocolSession:
		session = await self.page.context.new_cdp_session(self.page)
		return PlaywrightProtocolSession(session)

	def current_url(self) -> str:
		return self.page.url

	async def title(self) -> str:
		return await self.page.title()

	def viewport(self) -> Optional[Viewport]:
		size = self.page.viewport_size
		if size is None:
			return None
		return Viewport(width=size['width'], height=size['height'])

	async def user_agent(self) -> str:
		return await self.page.evaluate('() => navigator.userAgent')

	def is_closed(self) -> bool:
		return self.page.is_closed()

	def on_console_message(self, handler: Callable[[str, str], None]) -> Unsubscribe:
		def listener(message: ConsoleMessage) -> None:
			handler(message.type, message.text)

		self.page.on('console', listener)
		return lambda: self.page.remove_listener('console', listener)

	def on_frame_navigated(self, handler: Callable[[str, bool], None]) -> Unsubscribe:
		def listener(frame: Frame) -> None:
			handler(frame.url, frame == self.page.main_frame)

		self.page.on('framenavigated', listener)
		return lambda: self.page.remove_listener('framenavigated', listener)
