from typing import Optional


class ReplayUseError(Exception):
	"""Base class for every error raised by replay_use."""


class CaptureSetupError(ReplayUseError):
	"""Attaching the capture listeners to the page failed; the recording was not started."""

	def __init__(self, message: str, cause: Optional[BaseException] = None):
		super().__init__(message)
		self.cause = cause


class RecordingStateError(ReplayUseError):
	"""A recording transition was requested from a state that does not allow it."""


class RecordingAlreadyActiveError(RecordingStateError):
	pass


class PlaybackStateError(ReplayUseError):
	pass


class PlaybackAlreadyActiveError(PlaybackStateError):
	pass


class InvalidSeekIndexError(ReplayUseError, IndexError):
	def __init__(self, index: int, total_events: int):
		super().__init__(f'Invalid event index {index}: recording has {total_events} events')
		self.index = index
		self.total_events = total_events


class ExportValidationError(ReplayUseError, ValueError):
	pass


class RecordingNotFoundError(ReplayUseError, KeyError):
	def __str__(self) -> str:
		return f'Recording not found: {self.args[0]}'


class SessionNotFoundError(ReplayUseError, KeyError):
	def __str__(self) -> str:
		return f'Session not found: {self.args[0]}'


class PlaybackExecutionError(ReplayUseError):
	"""Replaying a single event failed."""

	def __init__(self, event_index: int, event_type: str, cause: BaseException):
		super().__init__(f'Event {event_index} ({event_type}) failed: {cause}')
		self.event_index = event_index
		self.event_type = event_type
		self.cause = cause


class PlaybackNotFoundError(ReplayUseError, KeyError):
	def __str__(self) -> str:
		return f'No playback for recording: {self.args[0]}'
