"""
Recording engine.

- RecordingService: capture lifecycle and timeline
- InputCommitResolver: decides when a text-field edit becomes a `type` event
- views: the event model and Recording
"""

from replay_use.recording.config import CaptureTimings
from replay_use.recording.input_commit import CommitDecision, FieldSnapshot, InputCommitResolver
from replay_use.recording.masking import PassthroughMasker, SensitiveValueMasker, ValueMasker
from replay_use.recording.service import RecordingService
from replay_use.recording.views import (
	EVENT_MODELS,
	BaseRecordingEvent,
	Recording,
	RecordingConfig,
	RecordingEvent,
	RecordingMetadata,
	RecordingStats,
	build_event,
	calculate_stats,
)

__all__ = [
	'CaptureTimings',
	'CommitDecision',
	'FieldSnapshot',
	'InputCommitResolver',
	'PassthroughMasker',
	'SensitiveValueMasker',
	'ValueMasker',
	'RecordingService',
	'EVENT_MODELS',
	'BaseRecordingEvent',
	'Recording',
	'RecordingConfig',
	'RecordingEvent',
	'RecordingMetadata',
	'RecordingStats',
	'build_event',
	'calculate_stats',
]
