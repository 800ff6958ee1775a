from replay_use.playback.service import PlaybackService, compute_inter_event_delay
from replay_use.playback.views import PlaybackConfig, PlaybackError, PlaybackState

__all__ = ['PlaybackService', 'compute_inter_event_delay', 'PlaybackConfig', 'PlaybackError', 'PlaybackState']
