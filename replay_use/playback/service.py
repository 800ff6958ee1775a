import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from replay_use.broadcast import BroadcastFn, BroadcastMessage, emit
from replay_use.browser.views import PageCapability
from replay_use.exceptions import InvalidSeekIndexError, PlaybackAlreadyActiveError, PlaybackExecutionError
from replay_use.playback.views import PlaybackConfig, PlaybackError, PlaybackState
from replay_use.recording.config import PLAYBACK_MAX_DELAY_MS, PLAYBACK_MIN_DELAY_MS, PLAYBACK_PROGRESS_EVERY
from replay_use.recording.views import BaseRecordingEvent, Recording

logger = logging.getLogger(__name__)

PAGE_READY_SELECTOR = 'body'
PAGE_READY_TIMEOUT_MS = 5000

# Recorded key names that differ from the keyboard primitive's names
KEY_MAP: Dict[str, str] = {
	'Esc': 'Escape',
	'Return': 'Enter',
	'Del': 'Delete',
	' ': 'Space',
	'Spacebar': 'Space',
	'Left': 'ArrowLeft',
	'Right': 'ArrowRight',
	'Up': 'ArrowUp',
	'Down': 'ArrowDown',
}

EventHandler = Callable[[BaseRecordingEvent], Awaitable[None]]


def compute_inter_event_delay(current: BaseRecordingEvent, following: BaseRecordingEvent, speed: float = 1.0) -> float:
	"""Recorded gap between two events scaled by `speed`, clamped to the playback bounds (ms)."""
	gap = (following.timestamp - current.timestamp) / speed
	return min(max(gap, PLAYBACK_MIN_DELAY_MS), PLAYBACK_MAX_DELAY_MS)


def map_key(key: Optional[str]) -> str:
	if not key:
		raise ValueError('Key press event has no key')
	return KEY_MAP.get(key, key)


class PlaybackService:
	"""
	Replays a Recording against a page, one event at a time.

	The replay loop runs as a single asyncio task. Pause and stop flip the status
	and wake the loop out of its inter-event wait, then wait for the task to end,
	so there is never more than one loop driving the page.
	"""

	def __init__(
		self,
		page: PageCapability,
		recording: Recording,
		config: Optional[PlaybackConfig] = None,
		broadcast: Optional[BroadcastFn] = None,
		session_id: Optional[str] = None,
	):
		self.page = page
		self.recording = recording
		self.config = config or PlaybackConfig()
		self.broadcast = broadcast
		self.session_id = session_id or recording.session_id

		self.state = PlaybackState(
			total_events=len(recording.events),
			speed=self.config.speed,
			current_event_index=self._first_index(),
		)
		self.captured_screenshots: List[str] = []

		self._task: Optional[asyncio.Task] = None
		self._wake = asyncio.Event()
		self._handlers: Dict[str, EventHandler] = {
			'click': self._play_click,
			'type': self._play_type,
			'navigation': self._play_navigation,
			'scroll': self._play_scroll,
			'hover': self._play_hover,
			'wait': self._play_wait,
			'key_press': self._play_key_press,
			'form_submit': self._play_form_submit,
			'form_focus': self._play_form_focus,
			'form_input_change': self._play_form_input_change,
			'form_navigation': self._play_key_press,
			'screenshot': self._play_screenshot,
			'page_load': self._play_page_load,
		}

		self.log = logging.LoggerAdapter(logger, {'session_id': self.session_id})
		self._update_timing()

	# --- Control API ---

	def is_active(self) -> bool:
		return self.state.status in ('playing', 'paused')

	def get_status(self) -> PlaybackState:
		return self.state.model_copy(deep=True)

	async def start_playback(self) -> None:
		if self.is_active():
			raise PlaybackAlreadyActiveError(f'Playback already active for recording {self.recording.id}')

		first, last = self._first_index(), self._last_index()
		if not first <= self.state.current_event_index <= last:
			self.state.current_event_index = first

		metadata = self.recording.metadata
		self.log.info(f'▶️ Starting playback of {self.recording.id} from event {self.state.current_event_index}')
		if metadata.initial_url:
			await self.page.navigate(metadata.initial_url, wait_until='domcontentloaded')
		if metadata.viewport:
			await self.page.set_viewport(metadata.viewport)

		self.state.last_error = None
		self._set_status('playing')
		self._update_timing()
		self._spawn_loop()
		await self._broadcast('playback_status', 'Playback started')

	async def pause_playback(self) -> None:
		if self.state.status != 'playing':
			return
		self._set_status('paused')
		await self._join_loop()
		await self._broadcast('playback_status', 'Playback paused')
		self.log.info(f'⏸️ Playback of {self.recording.id} paused at event {self.state.current_event_index}')

	async def resume_playback(self) -> None:
		if self.state.status != 'paused':
			return
		self.state.last_error = None
		self._set_status('playing')
		self._spawn_loop()
		await self._broadcast('playback_status', 'Playback resumed')
		self.log.info(f'▶️ Playback of {self.recording.id} resumed at event {self.state.current_event_index}')

	async def stop_playback(self) -> None:
		if self.state.status == 'stopped' and self._task is None:
			return
		self._set_status('stopped')
		await self._join_loop()
		self.state.current_event_index = self._first_index()
		self._update_timing()
		await self._broadcast('playback_status', 'Playback stopped')
		self.log.info(f'🛑 Playback of {self.recording.id} stopped')

	async def seek_to_event(self, index: int) -> None:
		total = len(self.recording.events)
		if not 0 <= index < total:
			raise InvalidSeekIndexError(index, total)

		was_playing = self.state.status == 'playing'
		if was_playing:
			await self.pause_playback()

		self.state.current_event_index = index
		self._update_timing()
		self.log.info(f'⏭️ Seeked playback of {self.recording.id} to event {index}')

		if was_playing:
			await self.resume_playback()
		else:
			await self._broadcast('playback_status', f'Seeked to event {index}')

	async def wait_until_done(self) -> None:
		"""Wait for the current replay loop to end (completion, pause or stop)."""
		task = self._task
		if task is not None and task is not asyncio.current_task():
			await asyncio.shield(task)

	# --- Replay loop ---

	def _spawn_loop(self) -> None:
		self._wake.clear()
		self._task = asyncio.create_task(self._run_loop(), name=f'playback:{self.recording.id}')

	async def _join_loop(self) -> None:
		task = self._task
		self._wake.set()
		if task is None or task is asyncio.current_task():
			return
		try:
			await task
		finally:
			if self._task is task:
				self._task = None

	async def _run_loop(self) -> None:
		events = self.recording.events
		last = self._last_index()

		while self.state.status == 'playing' and self.state.current_event_index <= last:
			index = self.state.current_event_index
			event = events[index]
			try:
				await self.execute_event(event)
			except Exception as e:
				error = e if isinstance(e, PlaybackExecutionError) else PlaybackExecutionError(index, event.type, e)
				if await self._handle_error(index, event, error):
					return

			if self.recording.config.delay:
				await self._wait(self.recording.config.delay / self.config.speed)

			self.state.current_event_index = index + 1
			self._update_timing()
			if (index + 1) % PLAYBACK_PROGRESS_EVERY == 0:
				await self._broadcast(
					'playback_progress',
					f'Played {index + 1}/{len(events)} events',
					{'eventIndex': index, 'state': self.state.to_wire()},
				)

			if index < last and self.state.status == 'playing':
				await self._wait(compute_inter_event_delay(event, events[index + 1], self.config.speed))

		if self.state.status == 'playing':
			self._set_status('stopped')
			self._update_timing()
			self._task = None
			self.log.info(f'✅ Playback of {self.recording.id} completed')
			await self._broadcast('playback_complete', 'Playback completed')

	async def _handle_error(self, index: int, event: BaseRecordingEvent, error: PlaybackExecutionError) -> bool:
		"""Apply the error policy; returns True when the loop must stop."""
		message = str(error.cause)
		await self._broadcast(
			'playback_error',
			f'Event {index} ({event.type}) failed: {message}',
			{'eventIndex': index, 'eventType': event.type, 'error': message},
		)
		if self.config.pause_on_error:
			self.state.last_error = PlaybackError(event_index=index, event_type=event.type, message=message)
			self._set_status('paused')
			self.log.error(f'❌ {error}, playback paused')
			return True
		self.log.warning(f'⚠️ {error}, continuing')
		return False

	async def _wait(self, delay_ms: float) -> None:
		try:
			await asyncio.wait_for(self._wake.wait(), timeout=delay_ms / 1000)
		except asyncio.TimeoutError:
			pass

	async def execute_event(self, event: BaseRecordingEvent) -> None:
		handler = self._handlers.get(event.type)
		if handler is None:
			self.log.warning(f'Skipping event of unknown type {event.type}')
			return
		await handler(event)

	# --- Event handlers ---

	async def _play_click(self, event: BaseRecordingEvent) -> None:
		if event.selector:
			await self.page.click(event.selector)
		elif event.coordinates:
			await self.page.click_at(event.coordinates.x, event.coordinates.y)
		else:
			raise ValueError('Click event has neither a selector nor coordinates')

	async def _play_type(self, event: BaseRecordingEvent) -> None:
		selector = self._require_selector(event)
		await self.page.click(selector)
		await self.page.select_all(selector)
		await self.page.type(selector, event.value or '')

	async def _play_navigation(self, event: BaseRecordingEvent) -> None:
		if not event.url:
			raise ValueError('Navigation event has no url')
		await self.page.navigate(event.url, wait_until='domcontentloaded')

	async def _play_scroll(self, event: BaseRecordingEvent) -> None:
		if event.coordinates:
			await self.page.scroll_to(event.coordinates.x, event.coordinates.y)

	async def _play_hover(self, event: BaseRecordingEvent) -> None:
		await self.page.hover(self._require_selector(event))

	async def _play_wait(self, event: BaseRecordingEvent) -> None:
		if event.duration:
			await self._wait(event.duration / self.config.speed)

	async def _play_key_press(self, event: BaseRecordingEvent) -> None:
		await self.page.press_key(map_key(event.value))

	async def _play_form_submit(self, event: BaseRecordingEvent) -> None:
		await self.page.submit_form(self._require_selector(event))

	async def _play_form_focus(self, event: BaseRecordingEvent) -> None:
		await self.page.focus(self._require_selector(event))

	async def _play_form_input_change(self, event: BaseRecordingEvent) -> None:
		await self.page.set_field_value(self._require_selector(event), event.value or '')

	async def _play_screenshot(self, event: BaseRecordingEvent) -> None:
		if self.config.skip_screenshots:
			return
		self.captured_screenshots.append(await self.page.screenshot())

	async def _play_page_load(self, event: BaseRecordingEvent) -> None:
		await self.page.wait_for_selector(PAGE_READY_SELECTOR, timeout=PAGE_READY_TIMEOUT_MS)

	# --- Helpers ---

	@staticmethod
	def _require_selector(event: BaseRecordingEvent) -> str:
		if not event.selector:
			raise ValueError(f'{event.type} event has no selector')
		return event.selector

	def _first_index(self) -> int:
		return self.config.start_from_event or 0

	def _last_index(self) -> int:
		last = len(self.recording.events) - 1
		if self.config.end_at_event is not None:
			last = min(last, self.config.end_at_event)
		return last

	def _set_status(self, status: str) -> None:
		self.state.status = status
		self.state.is_playing = status == 'playing'
		if status != 'playing':
			self._wake.set()

	def _update_timing(self) -> None:
		events = self.recording.events
		self.state.total_events = len(events)
		if not events:
			self.state.elapsed_time = 0
			self.state.remaining_time = 0
			return
		index = min(self.state.current_event_index, len(events) - 1)
		duration = self.recording.duration
		if duration is None:
			duration = events[-1].timestamp - self.recording.start_time
		elapsed = max(0, events[index].timestamp - self.recording.start_time)
		self.state.elapsed_time = elapsed
		self.state.remaining_time = max(0, duration - elapsed)

	async def _broadcast(self, message_type: str, message: str, data: Optional[dict] = None) -> None:
		await emit(
			self.broadcast,
			BroadcastMessage(
				type=message_type,
				message=message,
				session_id=self.session_id,
				recording_id=self.recording.id,
				data=data if data is not None else {'state': self.state.to_wire()},
			),
		)
