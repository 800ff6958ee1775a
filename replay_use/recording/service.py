import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional

from replay_use.broadcast import BroadcastFn, BroadcastMessage, emit
from replay_use.browser.views import PageCapability, ProtocolSession, Unsubscribe
from replay_use.exceptions import CaptureSetupError, RecordingAlreadyActiveError
from replay_use.recording.config import COMMIT_KEYS, SCREENSHOT_QUALITY, SPECIAL_KEYS
from replay_use.recording.input_commit import CommitDecision, FieldSnapshot, InputCommitResolver
from replay_use.recording.masking import ValueMasker, masker_for
from replay_use.recording.scripts import SNAPSHOT_FIELDS_JS, TEARDOWN_JS, capture_script
from replay_use.recording.timers import TimerGroup
from replay_use.recording.views import (
	BaseRecordingEvent,
	Coordinates,
	Recording,
	RecordingConfig,
	RecordingMetadata,
	RecordingStats,
	RecordingStatus,
	build_event,
	calculate_stats,
	now_ms,
)

logger = logging.getLogger(__name__)

SignalHandler = Callable[[Dict[str, Any]], Awaitable[None]]


class RecordingService:
	"""
	Captures interactions on one page into one Recording at a time.

	Listeners stay attached while paused; every signal goes through
	`should_capture`, so pausing is a single status flip. Appends are serialized
	through a lock so the timeline stays in arrival order.
	"""

	def __init__(
		self,
		page: PageCapability,
		config: Optional[RecordingConfig] = None,
		broadcast: Optional[BroadcastFn] = None,
		session_id: Optional[str] = None,
		masker: Optional[ValueMasker] = None,
		clock: Callable[[], int] = now_ms,
	):
		self.page = page
		self.config = config or RecordingConfig()
		self.session_id = session_id or self.config.session_id or 'default'
		self.broadcast = broadcast
		self.masker = masker or masker_for(self.config.mask_sensitive_values)
		self.clock = clock

		self.recording: Optional[Recording] = None
		self.timers = TimerGroup(owner=f'recording:{self.session_id}')
		self.resolver = InputCommitResolver(self.config.timings)

		self._lock = asyncio.Lock()
		self._binding: Optional[str] = None
		self._unsubscribers: List[Unsubscribe] = []
		self._protocol_session: Optional[ProtocolSession] = None
		self._pending_navigation: Optional[tuple[str, int]] = None
		self._last_navigation: Optional[tuple[str, int]] = None
		self._cap_warned = False
		self._stopping = False

		self._signal_handlers: Dict[str, SignalHandler] = {
			'click': self._handle_click,
			'scroll': self._handle_scroll,
			'hover': self._handle_hover,
			'keydown': self._handle_keydown,
			'submit': self._handle_submit,
			'focus': self._handle_focus,
			'blur': self._handle_blur,
			'change': self._handle_change,
		}

		self.log = logging.LoggerAdapter(logger, {'session_id': self.session_id})

	# --- Control API ---

	@property
	def status(self) -> RecordingStatus:
		return self.recording.status if self.recording else 'idle'

	def is_active(self) -> bool:
		return self.status in ('recording', 'paused')

	def should_capture(self) -> bool:
		return self.status == 'recording' and not self._stopping

	async def start_capture(self) -> Recording:
		if self.is_active():
			raise RecordingAlreadyActiveError(f'Recording already active for session {self.session_id}')

		recording = Recording.create(self.session_id, self.config, start_time=self.clock())
		self.log.info(f'🎬 Starting recording {recording.id} for session {self.session_id}')

		try:
			await self._attach_listeners()
			viewport = self.page.viewport()
			recording.metadata = RecordingMetadata(
				user_agent=await self.page.user_agent(),
				viewport=viewport,
				initial_url=self.page.current_url(),
			)
		except Exception as e:
			self.log.error(f'❌ Failed to attach recording listeners for session {self.session_id}: {e}')
			await self._detach_listeners()
			raise CaptureSetupError(f'Failed to start recording for session {self.session_id}', cause=e) from e

		self.resolver.reset()
		self._pending_navigation = None
		self._last_navigation = None
		self._cap_warned = False
		self._stopping = False
		self.recording = recording
		recording.status = 'recording'
		self._start_periodic_timers()

		if self.config.capture_screenshots:
			await self.take_screenshot('initial')

		await self.add_event(
			'page_load',
			url=recording.metadata.initial_url,
			metadata={'url': recording.metadata.initial_url, 'title': await self._safe_title()},
		)

		await self._broadcast_status('Recording started')
		self.log.info(f'✅ Recording {recording.id} started')
		return recording

	async def pause_capture(self) -> None:
		if self.status != 'recording':
			self.log.debug(f'Pause ignored, recording status is {self.status}')
			return
		self.timers.cancel_all()
		self._pending_navigation = None
		self.recording.status = 'paused'
		await self._broadcast_status('Recording paused')
		self.log.info(f'⏸️ Recording {self.recording.id} paused')

	async def resume_capture(self) -> None:
		if self.status != 'paused':
			self.log.debug(f'Resume ignored, recording status is {self.status}')
			return
		self.recording.status = 'recording'
		self._start_periodic_timers()
		await self._broadcast_status('Recording resumed')
		self.log.info(f'▶️ Recording {self.recording.id} resumed')

	async def stop_capture(self) -> Optional[Recording]:
		recording = self.recording
		if recording is None:
			self.log.debug('Stop ignored, nothing was recorded')
			return None
		if not self.is_active():
			return recording

		# Close the gate first so events still in flight are dropped
		self._stopping = True
		self.timers.cancel_all()
		self._pending_navigation = None
		if self.config.capture_screenshots:
			await self.take_screenshot('final', force=True)

		async with self._lock:
			self._freeze(recording, 'stopped')
		self._stopping = False
		await self._detach_listeners()
		await self._broadcast_status('Recording stopped')
		self.log.info(f'🛑 Recording {recording.id} stopped with {len(recording.events)} events')
		return recording

	def get_recording_data(self) -> Optional[Recording]:
		return self.recording

	def get_recording_stats(self) -> Optional[RecordingStats]:
		if self.recording is None:
			return None
		return calculate_stats(self.recording, now=self.clock())

	# --- Timeline ---

	async def add_event(self, event_type: str, force: bool = False, **fields: Any) -> Optional[BaseRecordingEvent]:
		"""
		Append one event to the active recording.

		Returns None when capture is gated off or a cap has been reached; the
		caps drop events silently apart from a single warning.
		"""
		recording = self.recording
		if recording is None or not (self.should_capture() or (force and self.is_active())):
			return None

		async with self._lock:
			max_events = self.config.max_events
			if max_events is not None and len(recording.events) >= max_events:
				self._warn_cap(f'maxEvents={max_events}')
				return None
			max_duration = self.config.max_duration
			if max_duration is not None and self.clock() - recording.start_time >= max_duration:
				self._warn_cap(f'maxDuration={max_duration}ms')
				return None

			if self.config.delay:
				await asyncio.sleep(self.config.delay / 1000)
				# Capture may have been paused or stopped while waiting
				if not (self.should_capture() or (force and self.is_active())):
					return None

			timestamp = self.clock()
			if recording.events:
				timestamp = max(timestamp, recording.events[-1].timestamp)
			if fields.get('url') is None:
				fields['url'] = self.page.current_url()

			event = build_event(event_type, timestamp=timestamp, **fields)
			recording.events.append(event)
			recording.metadata.total_events = len(recording.events)
			if event_type == 'screenshot':
				recording.metadata.total_screenshots += 1

		self.log.debug(f'📝 Recorded {event_type} event {event.selector or event.url or ""}')
		await emit(
			self.broadcast,
			BroadcastMessage(
				type='recording_event',
				message=f'Recorded {event_type} event',
				session_id=self.session_id,
				recording_id=recording.id,
				data=event.to_wire(),
			),
		)
		return event

	async def take_screenshot(self, reason: str, force: bool = False) -> Optional[BaseRecordingEvent]:
		try:
			data = await self.page.screenshot(quality=SCREENSHOT_QUALITY)
		except Exception as e:
			self.log.error(f'❌ Screenshot ({reason}) failed: {e}')
			return None
		return await self.add_event(
			'screenshot',
			force=force,
			screenshot=f'data:image/jpeg;base64,{data}',
			metadata={'reason': reason},
		)

	# --- Listener wiring ---

	async def _attach_listeners(self) -> None:
		binding = f'__replayUseEmit_{uuid.uuid4().hex[:8]}'
		self._binding = binding

		async def on_signal(payload: Dict[str, Any]) -> None:
			# Init scripts from earlier recordings keep calling their own binding
			if binding != self._binding:
				return
			await self._on_page_signal(payload)

		await self.page.expose_callback(binding, on_signal)
		script = capture_script(binding, self.config.timings)
		await self.page.add_init_script(script)
		await self.page.evaluate(script)

		if self.config.captures('navigation'):
			self._unsubscribers.append(self.page.on_frame_navigated(self._on_frame_navigated))
		self._unsubscribers.append(self.page.on_console_message(self._on_console_message))

		if self.config.captures('type'):
			try:
				session = await self.page.create_protocol_session()
				await session.send('Runtime.enable')
				await session.send('DOM.enable')
				self._protocol_session = session
			except Exception as e:
				self.log.warning(f'⚠️ Protocol session unavailable, continuing without it: {e}')

	async def _detach_listeners(self) -> None:
		binding = self._binding
		self._binding = None

		while self._unsubscribers:
			unsubscribe = self._unsubscribers.pop()
			try:
				unsubscribe()
			except Exception as e:
				self.log.debug(f'Listener removal failed: {e}')

		if binding and not self.page.is_closed():
			try:
				await self.page.evaluate(TEARDOWN_JS, binding)
			except Exception as e:
				self.log.debug(f'Capture script teardown failed: {e}')

		if self._protocol_session is not None:
			try:
				await self._protocol_session.detach()
			except Exception as e:
				self.log.debug(f'Protocol session detach failed: {e}')
			self._protocol_session = None

	def _start_periodic_timers(self) -> None:
		if self.config.captures('type'):
			self.timers.call_every('input_poll', self.config.timings.input_poll_interval_ms, self._poll_fields)
		if self.config.capture_screenshots and self.config.screenshot_interval:
			self.timers.call_every('screenshot', self.config.screenshot_interval, self._interval_screenshot)

	async def _on_page_signal(self, payload: Dict[str, Any]) -> None:
		if not self.should_capture():
			return
		kind = payload.get('kind')
		handler = self._signal_handlers.get(kind)
		if handler is None:
			self.log.debug(f'Ignoring unknown page signal {kind}')
			return
		try:
			await handler(payload)
		except Exception as e:
			if self.page.is_closed():
				await self._fail(f'Page closed while handling {kind}: {e}')
				return
			self.log.error(f'❌ {kind} listener failed: {e}')

	# --- Signal handlers ---

	async def _handle_click(self, payload: Dict[str, Any]) -> None:
		if not self.config.captures('click'):
			return
		await self.add_event(
			'click',
			selector=payload.get('selector') or None,
			coordinates=self._coordinates(payload),
			metadata={
				'tagName': payload.get('tagName'),
				'text': payload.get('text'),
				**self._modifiers(payload),
			},
		)
		if self.config.capture_screenshots and self.config.mode == 'detailed':
			await self.take_screenshot('click')

	async def _handle_scroll(self, payload: Dict[str, Any]) -> None:
		if self.config.captures('scroll'):
			await self.add_event('scroll', coordinates=self._coordinates(payload))

	async def _handle_hover(self, payload: Dict[str, Any]) -> None:
		if self.config.captures('hover'):
			await self.add_event(
				'hover',
				selector=payload.get('selector') or None,
				coordinates=self._coordinates(payload),
			)

	async def _handle_keydown(self, payload: Dict[str, Any]) -> None:
		key = payload.get('key')
		field = payload.get('field')

		if payload.get('inField') and field and key in COMMIT_KEYS and self.config.captures('type'):
			snapshot = FieldSnapshot.from_payload(field)
			decision = self.resolver.on_keyboard_commit(snapshot, self.clock())
			if decision is not None:
				await self._add_type_event(decision)
			if self.config.captures('key_press'):
				await self.add_event(
					'key_press',
					selector=snapshot.selector,
					value=key,
					metadata={'key': key, 'trigger': 'field_commit', **self._modifiers(payload)},
				)
			elif self.config.captures('form_navigation'):
				await self.add_event('form_navigation', selector=snapshot.selector, value=key, metadata={'key': key})
			return

		if key in SPECIAL_KEYS and self.config.captures('key_press'):
			await self.add_event(
				'key_press',
				selector=payload.get('selector') or None,
				value=key,
				metadata={'key': key, **self._modifiers(payload)},
			)

	async def _handle_submit(self, payload: Dict[str, Any]) -> None:
		if self.config.captures('form_submit'):
			await self.add_event(
				'form_submit',
				selector=payload.get('selector') or None,
				metadata={'action': payload.get('action'), 'method': payload.get('method')},
			)

	async def _handle_focus(self, payload: Dict[str, Any]) -> None:
		snapshot = FieldSnapshot.from_payload(payload.get('field') or {})
		if not snapshot.selector:
			return
		# Baseline for polling, so a pre-filled value is not an edit
		self.resolver.observe(snapshot, self.clock())
		if self.config.captures('form_focus'):
			await self.add_event(
				'form_focus',
				selector=snapshot.selector,
				metadata={'fieldType': snapshot.field_type, 'tagName': snapshot.tag_name},
			)

	async def _handle_blur(self, payload: Dict[str, Any]) -> None:
		if not self.config.captures('type'):
			return
		snapshot = FieldSnapshot.from_payload(payload.get('field') or {})
		if not snapshot.selector:
			return
		decision = self.resolver.on_blur(snapshot, self.clock())
		if decision is not None:
			await self._add_type_event(decision)

	async def _handle_change(self, payload: Dict[str, Any]) -> None:
		if not self.config.captures('form_input_change'):
			return
		snapshot = FieldSnapshot.from_payload(payload.get('field') or {})
		await self.add_event(
			'form_input_change',
			selector=snapshot.selector or None,
			value=snapshot.value,
			metadata={'fieldType': snapshot.field_type, 'tagName': snapshot.tag_name},
		)

	async def _add_type_event(self, decision: CommitDecision) -> None:
		value = self.masker.mask(decision.value, decision.field_type, decision.selector)
		await self.add_event(
			'type',
			selector=decision.selector,
			value=value,
			metadata={
				'captureReason': decision.reason,
				'fieldType': decision.field_type,
				'tagName': decision.tag_name,
				'masked': value != decision.value,
			},
		)

	# --- Timers ---

	async def _poll_fields(self) -> None:
		if not self.should_capture() or self._binding is None:
			return
		try:
			raw = await self.page.evaluate(SNAPSHOT_FIELDS_JS, self._binding)
		except Exception as e:
			if self.page.is_closed():
				await self._fail(f'Page closed during input polling: {e}')
			else:
				# Expected while a navigation replaces the document
				self.log.debug(f'Input polling skipped: {e}')
			return
		snapshots = [FieldSnapshot.from_payload(item) for item in raw or []]
		for decision in self.resolver.on_poll(snapshots, self.clock()):
			await self._add_type_event(decision)

	async def _interval_screenshot(self) -> None:
		if self.should_capture():
			await self.take_screenshot('interval')

	def _on_frame_navigated(self, url: str, is_main_frame: bool) -> None:
		if not is_main_frame or not self.should_capture():
			return
		signalled_at = self.clock()
		if self._is_duplicate_navigation(url, signalled_at):
			self.log.debug(f'Dropping duplicate navigation to {url}')
			return
		self._pending_navigation = (url, signalled_at)
		self.timers.call_later('navigation', self.config.timings.navigation_debounce_ms, self._commit_navigation)

	async def _commit_navigation(self) -> None:
		pending = self._pending_navigation
		self._pending_navigation = None
		if pending is None or not self.should_capture():
			return
		url, signalled_at = pending
		if self._is_duplicate_navigation(url, signalled_at):
			return
		self._last_navigation = (url, signalled_at)
		await self.add_event('navigation', url=url, metadata={'title': await self._safe_title()})

	def _is_duplicate_navigation(self, url: str, signalled_at: int) -> bool:
		if self._last_navigation is None:
			return False
		last_url, last_at = self._last_navigation
		return url == last_url and signalled_at - last_at < self.config.timings.duplicate_navigation_window_ms

	def _on_console_message(self, message_type: str, text: str) -> None:
		if message_type == 'error':
			self.log.debug(f'Page console error: {text}')

	# --- Helpers ---

	async def _fail(self, reason: str) -> None:
		recording = self.recording
		if recording is None or not self.is_active():
			return
		self.log.error(f'❌ Recording {recording.id} failed: {reason}')
		self.timers.cancel_all()
		async with self._lock:
			self._freeze(recording, 'error')
		await self._detach_listeners()
		await self._broadcast_status(f'Recording failed: {reason}')

	def _freeze(self, recording: Recording, status: RecordingStatus) -> None:
		recording.status = status
		recording.end_time = max(self.clock(), recording.start_time)
		recording.duration = recording.end_time - recording.start_time
		recording.metadata.total_events = len(recording.events)

	def _warn_cap(self, cap: str) -> None:
		if not self._cap_warned:
			self.log.warning(f'⚠️ Recording cap reached ({cap}), further events are dropped')
			self._cap_warned = True

	async def _safe_title(self) -> Optional[str]:
		try:
			return await self.page.title()
		except Exception as e:
			self.log.debug(f'Could not read page title: {e}')
			return None

	async def _broadcast_status(self, message: str) -> None:
		recording = self.recording
		await emit(
			self.broadcast,
			BroadcastMessage(
				type='recording_status',
				message=message,
				session_id=self.session_id,
				recording_id=recording.id if recording else None,
				data={'status': self.status, 'totalEvents': len(recording.events) if recording else 0},
			),
		)

	@staticmethod
	def _coordinates(payload: Dict[str, Any]) -> Optional[Coordinates]:
		if payload.get('x') is None or payload.get('y') is None:
			return None
		return Coordinates(x=payload['x'], y=payload['y'])

	@staticmethod
	def _modifiers(payload: Dict[str, Any]) -> Dict[str, bool]:
		return {key: bool(payload.get(key)) for key in ('ctrlKey', 'shiftKey', 'altKey', 'metaKey')}
