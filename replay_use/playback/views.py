from typing import Literal, Optional

from pydantic import Field

from replay_use.recording.views import WireModel

PlaybackStatus = Literal['stopped', 'playing', 'paused']


class PlaybackConfig(WireModel):
	speed: float = Field(1.0, gt=0)
	pause_on_error: bool = True
	skip_screenshots: bool = False
	start_from_event: Optional[int] = Field(None, ge=0)
	end_at_event: Optional[int] = Field(None, ge=0)


class PlaybackError(WireModel):
	event_index: int
	event_type: Optional[str] = None
	message: str


class PlaybackState(WireModel):
	status: PlaybackStatus = 'stopped'
	is_playing: bool = False
	current_event_index: int = 0
	total_events: int = 0
	elapsed_time: int = 0
	remaining_time: int = 0
	speed: float = 1.0
	last_error: Optional[PlaybackError] = None
