import time
import uuid
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from replay_use.browser.views import Viewport
from replay_use.recording.config import CaptureTimings

EventType = Literal[
	'click',
	'type',
	'navigation',
	'scroll',
	'hover',
	'wait',
	'key_press',
	'form_submit',
	'form_focus',
	'form_input_change',
	'form_navigation',
	'screenshot',
	'page_load',
]

RecordingStatus = Literal['idle', 'recording', 'paused', 'stopped', 'error']
RecordingMode = Literal['smart', 'detailed', 'minimal']


def now_ms() -> int:
	return int(time.time() * 1000)


class WireModel(BaseModel):
	"""snake_case in Python, camelCase on the wire."""

	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

	def to_wire(self, **kwargs: Any) -> Dict[str, Any]:
		return self.model_dump(by_alias=True, mode='json', **kwargs)


class Coordinates(WireModel):
	x: float
	y: float


# --- Events ---


class BaseRecordingEvent(WireModel):
	id: str = Field(default_factory=lambda: str(uuid.uuid4()))
	timestamp: int
	selector: Optional[str] = None
	value: Optional[str] = None
	coordinates: Optional[Coordinates] = None
	url: Optional[str] = None
	screenshot: Optional[str] = None
	metadata: Dict[str, Any] = Field(default_factory=dict)
	duration: Optional[int] = None


class ClickEvent(BaseRecordingEvent):
	type: Literal['click'] = 'click'


class TypeEvent(BaseRecordingEvent):
	type: Literal['type'] = 'type'


class NavigationEvent(BaseRecordingEvent):
	type: Literal['navigation'] = 'navigation'


class ScrollEvent(BaseRecordingEvent):
	type: Literal['scroll'] = 'scroll'


class HoverEvent(BaseRecordingEvent):
	type: Literal['hover'] = 'hover'


class WaitEvent(BaseRecordingEvent):
	type: Literal['wait'] = 'wait'


class KeyPressEvent(BaseRecordingEvent):
	type: Literal['key_press'] = 'key_press'


class FormSubmitEvent(BaseRecordingEvent):
	type: Literal['form_submit'] = 'form_submit'


class FormFocusEvent(BaseRecordingEvent):
	type: Literal['form_focus'] = 'form_focus'


class FormInputChangeEvent(BaseRecordingEvent):
	type: Literal['form_input_change'] = 'form_input_change'


class FormNavigationEvent(BaseRecordingEvent):
	type: Literal['form_navigation'] = 'form_navigation'


class ScreenshotEvent(BaseRecordingEvent):
	type: Literal['screenshot'] = 'screenshot'


class PageLoadEvent(BaseRecordingEvent):
	type: Literal['page_load'] = 'page_load'


RecordingEvent = Annotated[
	Union[
		ClickEvent,
		TypeEvent,
		NavigationEvent,
		ScrollEvent,
		HoverEvent,
		WaitEvent,
		KeyPressEvent,
		FormSubmitEvent,
		FormFocusEvent,
		FormInputChangeEvent,
		FormNavigationEvent,
		ScreenshotEvent,
		PageLoadEvent,
	],
	Field(discriminator='type'),
]

EVENT_MODELS: Dict[str, type[BaseRecordingEvent]] = {
	model.model_fields['type'].default: model
	for model in (
		ClickEvent,
		TypeEvent,
		NavigationEvent,
		ScrollEvent,
		HoverEvent,
		WaitEvent,
		KeyPressEvent,
		FormSubmitEvent,
		FormFocusEvent,
		FormInputChangeEvent,
		FormNavigationEvent,
		ScreenshotEvent,
		PageLoadEvent,
	)
}

event_adapter: TypeAdapter[RecordingEvent] = TypeAdapter(RecordingEvent)


def build_event(event_type: str, **fields: Any) -> BaseRecordingEvent:
	"""Construct the event model for `event_type`, raising KeyError for unknown types."""
	return EVENT_MODELS[event_type](**fields)


# --- Recording ---


class RecordingConfig(WireModel):
	session_id: Optional[str] = None
	events: List[EventType] = Field(default_factory=lambda: ['click', 'type', 'navigation'])
	mode: RecordingMode = 'smart'
	delay: int = Field(0, ge=0)
	capture_screenshots: bool = False
	screenshot_interval: Optional[int] = Field(None, gt=0)
	max_duration: Optional[int] = Field(None, gt=0)
	max_events: Optional[int] = Field(None, ge=0)
	mask_sensitive_values: bool = False
	timings: CaptureTimings = Field(default_factory=CaptureTimings)

	def captures(self, event_type: str) -> bool:
		return event_type in self.events


class RecordingMetadata(WireModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='allow')

	user_agent: Optional[str] = None
	viewport: Optional[Viewport] = None
	initial_url: Optional[str] = None
	total_events: int = 0
	total_screenshots: int = 0


class Recording(WireModel):
	id: str
	session_id: str
	config: RecordingConfig
	events: List[RecordingEvent] = Field(default_factory=list)
	status: RecordingStatus = 'idle'
	start_time: int
	end_time: Optional[int] = None
	duration: Optional[int] = None
	metadata: RecordingMetadata = Field(default_factory=RecordingMetadata)

	@classmethod
	def create(cls, session_id: str, config: RecordingConfig, start_time: Optional[int] = None) -> 'Recording':
		start = start_time if start_time is not None else now_ms()
		return cls(
			id=f'recording_{start}_{uuid.uuid4().hex[:9]}',
			session_id=session_id,
			config=config,
			start_time=start,
		)

	@classmethod
	def load_from_json(cls, json_path: str | Path) -> 'Recording':
		"""Load a recording saved with `save_to_path` (not an export document)."""
		with open(json_path, 'r', encoding='utf-8') as f:
			return cls.model_validate_json(f.read())

	def save_to_path(self, json_path: str | Path) -> None:
		with open(json_path, 'w', encoding='utf-8') as f:
			f.write(self.model_dump_json(by_alias=True, indent=2))


class RecordingStats(WireModel):
	total_events: int
	events_by_type: Dict[str, int]
	duration: int
	average_event_interval: float
	screenshot_count: int


def calculate_stats(recording: Recording, now: Optional[int] = None) -> RecordingStats:
	events_by_type: Dict[str, int] = {}
	for event in recording.events:
		events_by_type[event.type] = events_by_type.get(event.type, 0) + 1

	if recording.duration is not None:
		duration = recording.duration
	else:
		duration = (now if now is not None else now_ms()) - recording.start_time

	intervals = [b.timestamp - a.timestamp for a, b in zip(recording.events, recording.events[1:])]
	average = sum(intervals) / len(intervals) if intervals else 0.0

	return RecordingStats(
		total_events=len(recording.events),
		events_by_type=events_by_type,
		duration=max(0, duration),
		average_event_interval=average,
		screenshot_count=recording.metadata.total_screenshots,
	)
