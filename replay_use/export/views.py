from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from replay_use.recording.views import RecordingConfig, RecordingStats, WireModel

EXPORT_VERSION = '1.0.0'

ExportFormat = Literal['json', 'playwright']
SUPPORTED_FORMATS: List[str] = ['json', 'playwright']


class ExportOptions(WireModel):
	# Plain str so unsupported formats reach validate_export_options
	format: str = 'json'
	include_screenshots: bool = False
	add_comments: bool = True
	minify_output: bool = False


class ExportResultMetadata(WireModel):
	exported_at: int
	original_recording_id: str
	event_count: int


class ExportResult(WireModel):
	format: ExportFormat
	content: str
	filename: str
	size: int
	metadata: ExportResultMetadata


class ExportTimeline(WireModel):
	start_time: int
	end_time: Optional[int] = None
	duration: Optional[int] = None
	total_events: int


class ExportStatistics(RecordingStats):
	estimated_size: int = 0


class ExportDocument(WireModel):
	"""Shape of a JSON export; `metadata` carries the recording metadata plus export fields."""

	metadata: Dict[str, Any]
	config: RecordingConfig = Field(default_factory=RecordingConfig)
	timeline: ExportTimeline
	events: List[Dict[str, Any]] = Field(default_factory=list)
	statistics: Optional[ExportStatistics] = None
