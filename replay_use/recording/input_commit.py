"""
Input-commit resolution.

Decides when an in-progress edit of a text field becomes one `type` event.
Three channels feed the same per-field state table, in priority order:

1. keyboard: Tab/Enter inside the field commits the value seen at key-down and
   opens a cool-down window that silences the other two channels;
2. blur: a field losing focus commits a non-trivial value nobody captured yet;
3. polling: a periodic snapshot commits fields that changed, lost focus and
   stayed quiet long enough.

The resolver is pure bookkeeping: callers pass the current time in
milliseconds, which keeps it deterministic under test.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Literal, Optional

from replay_use.recording.config import CaptureTimings

CaptureReason = Literal['tab_enter_immediate', 'blur_backup_safety', 'polling_detection_optimized']

KEYBOARD: CaptureReason = 'tab_enter_immediate'
BLUR: CaptureReason = 'blur_backup_safety'
POLLING: CaptureReason = 'polling_detection_optimized'


@dataclass
class FieldSnapshot:
	selector: str
	value: str
	field_type: Optional[str] = None
	tag_name: Optional[str] = None
	is_focused: bool = False

	@classmethod
	def from_payload(cls, payload: Dict[str, Any]) -> 'FieldSnapshot':
		return cls(
			selector=str(payload.get('selector') or ''),
			value=str(payload.get('value') or ''),
			field_type=payload.get('fieldType'),
			tag_name=payload.get('tagName'),
			is_focused=bool(payload.get('isFocused', False)),
		)


@dataclass
class FieldState:
	last_value: str
	last_change: float
	pending: bool = False
	last_capture: Optional[float] = None
	last_committed_value: Optional[str] = None
	captured_by: Optional[CaptureReason] = None
	keyboard_cooldown_until: float = 0

	def in_keyboard_cooldown(self, now: float) -> bool:
		return self.captured_by == KEYBOARD and now < self.keyboard_cooldown_until


@dataclass
class CommitDecision:
	selector: str
	value: str
	reason: CaptureReason
	field_type: Optional[str] = None
	tag_name: Optional[str] = None


class InputCommitResolver:
	def __init__(self, timings: Optional[CaptureTimings] = None):
		self.timings = timings or CaptureTimings()
		self.fields: Dict[str, FieldState] = {}

	def observe(self, snapshot: FieldSnapshot, now: float) -> FieldState:
		"""Record the value currently in the field, marking it pending if it changed."""
		state = self.fields.get(snapshot.selector)
		if state is None:
			state = FieldState(last_value=snapshot.value, last_change=now)
			self.fields[snapshot.selector] = state
		elif snapshot.value != state.last_value:
			state.last_value = snapshot.value
			state.last_change = now
			state.pending = snapshot.value != state.last_committed_value
		return state

	def on_keyboard_commit(self, snapshot: FieldSnapshot, now: float) -> Optional[CommitDecision]:
		state = self.observe(snapshot, now)
		if not snapshot.value:
			return None
		# Enter pressed twice on the same value
		if state.in_keyboard_cooldown(now) and snapshot.value == state.last_committed_value:
			return None
		return self._commit(snapshot, state, KEYBOARD, now)

	def on_blur(self, snapshot: FieldSnapshot, now: float) -> Optional[CommitDecision]:
		state = self.observe(snapshot, now)
		if state.in_keyboard_cooldown(now):
			return None
		# A field first seen at blur, or seen mid-edit by a poll, still counts
		if snapshot.value == state.last_committed_value:
			return None
		if len(snapshot.value) < self.timings.min_commit_value_length:
			return None
		return self._commit(snapshot, state, BLUR, now)

	def on_poll(self, snapshots: Iterable[FieldSnapshot], now: float) -> List[CommitDecision]:
		decisions: List[CommitDecision] = []
		for snapshot in snapshots:
			if not snapshot.selector:
				continue
			state = self.observe(snapshot, now)
			if not state.pending or snapshot.is_focused:
				continue
			if state.in_keyboard_cooldown(now):
				continue
			if now - state.last_change <= self.timings.poll_change_quiet_ms:
				continue
			if state.last_capture is not None and now - state.last_capture <= self.timings.poll_capture_quiet_ms:
				continue
			if len(snapshot.value) < self.timings.min_commit_value_length:
				continue
			decisions.append(self._commit(snapshot, state, POLLING, now))
		return decisions

	def reset(self) -> None:
		self.fields.clear()

	def _commit(self, snapshot: FieldSnapshot, state: FieldState, reason: CaptureReason, now: float) -> CommitDecision:
		state.pending = False
		state.last_capture = now
		state.last_committed_value = snapshot.value
		state.captured_by = reason
		if reason == KEYBOARD:
			state.keyboard_cooldown_until = now + self.timings.keyboard_capture_cooldown_ms
		return CommitDecision(
			selector=snapshot.selector,
			value=snapshot.value,
			reason=reason,
			field_type=snapshot.field_type,
			tag_name=snapshot.tag_name,
		)
