"""
replay_use: record browser interactions and replay them deterministically.
"""

from replay_use.broadcast import BroadcastMessage
from replay_use.browser import PageCapability, PlaywrightPage
from replay_use.export import export_recording, import_recording
from replay_use.playback import PlaybackConfig, PlaybackService, PlaybackState
from replay_use.recording import Recording, RecordingConfig, RecordingService

__version__ = '0.1.0'
__all__ = [
	'BroadcastMessage',
	'PageCapability',
	'PlaywrightPage',
	'export_recording',
	'import_recording',
	'PlaybackConfig',
	'PlaybackService',
	'PlaybackState',
	'Recording',
	'RecordingConfig',
	'RecordingService',
]
