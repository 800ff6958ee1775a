from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from replay_use.export.views import ExportOptions, ExportResult
from replay_use.playback.views import PlaybackConfig, PlaybackState
from replay_use.recording.views import (
	Recording,
	RecordingConfig,
	RecordingEvent,
	RecordingStats,
	RecordingStatus,
	WireModel,
)


# Session Models
class SessionCreateRequest(WireModel):
	browser_ws_endpoint: Optional[str] = Field(None, alias='browserWSEndpoint')


class SessionResponse(WireModel):
	success: bool = True
	session_id: str
	message: str


class SessionListResponse(WireModel):
	success: bool = True
	sessions: List[Dict[str, Any]]
	total: int


# Recording Request Models
class RecordingStartRequest(WireModel):
	session_id: str
	config: Optional[RecordingConfig] = None


class RecordingIdRequest(WireModel):
	recording_id: str


class RecordingExportRequest(WireModel):
	recording_id: str
	options: ExportOptions = Field(default_factory=ExportOptions)


# Recording Response Models
class RecordingStartResponse(WireModel):
	success: bool = True
	recording_id: str
	session_id: str
	message: str
	config: RecordingConfig


class RecordingStopResponse(WireModel):
	success: bool = True
	recording_id: str
	message: str
	stats: RecordingStats
	recording: Recording


class RecordingPauseResponse(WireModel):
	success: bool = True
	recording_id: str
	message: str
	status: RecordingStatus


class RecordingStatusResponse(WireModel):
	success: bool = True
	recording_id: Optional[str] = None
	status: RecordingStatus = 'idle'
	stats: Optional[RecordingStats] = None
	current_event: Optional[RecordingEvent] = None
	is_active: bool = False


class RecordingSummary(WireModel):
	id: str
	session_id: str
	created_at: int
	duration: Optional[int] = None
	event_count: int
	status: RecordingStatus
	initial_url: Optional[str] = None


class RecordingListResponse(WireModel):
	success: bool = True
	recordings: List[RecordingSummary]
	total: int


class RecordingResponse(WireModel):
	success: bool = True
	recording: Recording


class RecordingExportResponse(ExportResult):
	success: bool = True


# Playback Models
class PlaybackStartRequest(WireModel):
	recording_id: str
	session_id: str
	config: Optional[PlaybackConfig] = None


class PlaybackControlRequest(WireModel):
	recording_id: str
	# Validated by the service so unknown actions map to 400
	action: str


class PlaybackSeekRequest(WireModel):
	recording_id: str
	event_index: int


class PlaybackResponse(WireModel):
	success: bool = True
	message: str
	recording_id: str
	action: Optional[Literal['start', 'pause', 'resume', 'stop', 'seek']] = None
	status: PlaybackState
