import logging
from typing import Any, Dict, List, Optional, Tuple

from replay_use.broadcast import BroadcastFn, BroadcastMessage, emit
from replay_use.exceptions import (
	PlaybackNotFoundError,
	PlaybackAlreadyActiveError,
	RecordingAlreadyActiveError,
	RecordingNotFoundError,
	RecordingStateError,
)
from replay_use.export.service import export_recording, import_recording
from replay_use.export.views import ExportOptions, ExportResult
from replay_use.playback.service import PlaybackService
from replay_use.playback.views import PlaybackConfig, PlaybackState
from replay_use.recording.service import RecordingService
from replay_use.recording.views import Recording, RecordingConfig, RecordingStats, RecordingStatus, calculate_stats

from .logging_broadcast import session_id_var
from .session_manager import SessionManager

logger = logging.getLogger(__name__)

PLAYBACK_ACTIONS = ('pause', 'resume', 'stop')


class ReplayService:
	"""Recording and playback control for every registered browser session."""

	def __init__(self, sessions: SessionManager, broadcast: Optional[BroadcastFn] = None) -> None:
		self.sessions = sessions
		self.broadcast = broadcast

		# Recordings stay retrievable after they stop; eviction is the caller's job
		self.recordings: Dict[str, Recording] = {}
		self.recorders: Dict[str, RecordingService] = {}
		self.players: Dict[str, PlaybackService] = {}

		sessions.add_close_listener(self._on_session_closed)

	# ---------- Recording ----------

	async def start_recording(self, session_id: str, config: Optional[RecordingConfig] = None) -> Recording:
		session = self.sessions.get(session_id)
		for recording_id, recorder in self.recorders.items():
			if recorder.session_id == session_id and recorder.is_active():
				raise RecordingAlreadyActiveError(f'Recording {recording_id} is already active for session {session_id}')

		config = (config or RecordingConfig()).model_copy(update={'session_id': session_id})
		recorder = RecordingService(session.page, config, broadcast=self.broadcast, session_id=session_id)

		token = session_id_var.set(session_id)
		try:
			recording = await recorder.start_capture()
		finally:
			session_id_var.reset(token)

		self.recordings[recording.id] = recording
		self.recorders[recording.id] = recorder
		logger.info(f'🔴 Recording {recording.id} started for session {session_id}')
		return recording

	async def stop_recording(self, recording_id: str) -> Tuple[Recording, RecordingStats]:
		if recording_id not in self.recorders:
			# Already stopped: stopping again returns the finished recording
			recording = self.get_recording(recording_id)
			return recording, calculate_stats(recording)
		recorder = self._recorder(recording_id)
		recording = await recorder.stop_capture()
		self.recorders.pop(recording_id, None)
		stats = calculate_stats(recording)
		logger.info(f'⏹️ Recording {recording_id} finished with {stats.total_events} events')
		return recording, stats

	async def toggle_pause(self, recording_id: str) -> RecordingStatus:
		recorder = self._recorder(recording_id)
		if recorder.status == 'recording':
			await recorder.pause_capture()
		elif recorder.status == 'paused':
			await recorder.resume_capture()
		else:
			raise RecordingStateError(f'Cannot pause or resume a recording with status {recorder.status}')
		return recorder.status

	def get_recording(self, recording_id: str) -> Recording:
		recording = self.recordings.get(recording_id)
		if recording is None:
			raise RecordingNotFoundError(recording_id)
		return recording

	def list_recordings(self) -> List[Recording]:
		return sorted(self.recordings.values(), key=lambda r: r.start_time)

	def recording_status(self, session_id: str) -> Tuple[Optional[Recording], Optional[RecordingStats], bool]:
		"""Latest recording for a session, preferring an active one."""
		candidates = [r for r in self.recordings.values() if r.session_id == session_id]
		if not candidates:
			return None, None, False
		active = [r for r in candidates if r.status in ('recording', 'paused')]
		recording = max(active or candidates, key=lambda r: r.start_time)
		recorder = self.recorders.get(recording.id)
		stats = recorder.get_recording_stats() if recorder else calculate_stats(recording)
		return recording, stats, recording.status in ('recording', 'paused')

	async def export(self, recording_id: str, options: ExportOptions) -> ExportResult:
		recording = self.get_recording(recording_id)
		result = export_recording(recording, options)
		await emit(
			self.broadcast,
			BroadcastMessage(
				type='recording_status',
				message=f'Export finished: {result.filename}',
				session_id=recording.session_id,
				recording_id=recording_id,
				data={'format': result.format, 'size': result.size, 'filename': result.filename},
			),
		)
		return result

	def import_document(self, document: Dict[str, Any]) -> Recording:
		recording = import_recording(document)
		self.recordings[recording.id] = recording
		return recording

	# ---------- Playback ----------

	async def start_playback(self, recording_id: str, session_id: str, config: Optional[PlaybackConfig] = None) -> PlaybackService:
		session = self.sessions.get(session_id)
		recording = self.get_recording(recording_id)
		existing = self.players.get(recording_id)
		if existing is not None and existing.is_active():
			raise PlaybackAlreadyActiveError(f'Playback already running for recording {recording_id}')

		player = PlaybackService(session.page, recording, config, broadcast=self.broadcast, session_id=session_id)
		await player.start_playback()
		self.players[recording_id] = player
		return player

	async def control_playback(self, recording_id: str, action: str) -> PlaybackState:
		if action not in PLAYBACK_ACTIONS:
			raise ValueError(f'Invalid playback action: {action}. Expected one of {", ".join(PLAYBACK_ACTIONS)}')
		player = self._player(recording_id)
		if action == 'pause':
			await player.pause_playback()
		elif action == 'resume':
			await player.resume_playback()
		else:
			await player.stop_playback()
			self.players.pop(recording_id, None)
		return player.get_status()

	async def seek_playback(self, recording_id: str, event_index: int) -> PlaybackState:
		player = self._player(recording_id)
		await player.seek_to_event(event_index)
		return player.get_status()

	def playback_status(self, recording_id: str) -> PlaybackState:
		return self._player(recording_id).get_status()

	# ---------- Lifecycle ----------

	async def _on_session_closed(self, session_id: str) -> None:
		for recording_id, recorder in list(self.recorders.items()):
			if recorder.session_id == session_id:
				await recorder.stop_capture()
				self.recorders.pop(recording_id, None)
		for recording_id, player in list(self.players.items()):
			if player.session_id == session_id:
				await player.stop_playback()
				self.players.pop(recording_id, None)

	async def shutdown(self) -> None:
		for recorder in list(self.recorders.values()):
			await recorder.stop_capture()
		for player in list(self.players.values()):
			await player.stop_playback()
		self.recorders.clear()
		self.players.clear()
		await self.sessions.shutdown()

	def _recorder(self, recording_id: str) -> RecordingService:
		recorder = self.recorders.get(recording_id)
		if recorder is None:
			raise RecordingNotFoundError(recording_id)
		return recorder

	def _player(self, recording_id: str) -> PlaybackService:
		player = self.players.get(recording_id)
		if player is None:
			raise PlaybackNotFoundError(recording_id)
		return player
