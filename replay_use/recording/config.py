"""
Capture timing configuration.

The windows below were tuned empirically against real sites. They are kept as
named defaults and can be overridden per recording through CaptureTimings.
"""

from typing import FrozenSet

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

NAVIGATION_DEBOUNCE_MS = 300
DUPLICATE_NAVIGATION_WINDOW_MS = 1000
SCROLL_DEBOUNCE_MS = 100
HOVER_DEBOUNCE_MS = 200

INPUT_POLL_INTERVAL_MS = 2000
POLL_CHANGE_QUIET_MS = 2500
POLL_CAPTURE_QUIET_MS = 3500
KEYBOARD_CAPTURE_COOLDOWN_MS = 3000
MIN_COMMIT_VALUE_LENGTH = 2

PLAYBACK_MIN_DELAY_MS = 100
PLAYBACK_MAX_DELAY_MS = 5000
PLAYBACK_PROGRESS_EVERY = 5

SCREENSHOT_QUALITY = 80

SPECIAL_KEYS: FrozenSet[str] = frozenset(
	{
		'Enter',
		'Tab',
		'Escape',
		'Backspace',
		'Delete',
		'ArrowUp',
		'ArrowDown',
		'ArrowLeft',
		'ArrowRight',
	}
)

# Keys that commit the value of the focused field before focus moves
COMMIT_KEYS: FrozenSet[str] = frozenset({'Tab', 'Enter'})

EDITABLE_FIELD_SELECTOR = 'input, textarea, [contenteditable]'


class CaptureTimings(BaseModel):
	"""Debounce and cool-down windows in milliseconds."""

	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

	navigation_debounce_ms: int = Field(NAVIGATION_DEBOUNCE_MS, ge=0)
	duplicate_navigation_window_ms: int = Field(DUPLICATE_NAVIGATION_WINDOW_MS, ge=0)
	scroll_debounce_ms: int = Field(SCROLL_DEBOUNCE_MS, ge=0)
	hover_debounce_ms: int = Field(HOVER_DEBOUNCE_MS, ge=0)
	input_poll_interval_ms: int = Field(INPUT_POLL_INTERVAL_MS, gt=0)
	poll_change_quiet_ms: int = Field(POLL_CHANGE_QUIET_MS, ge=0)
	poll_capture_quiet_ms: int = Field(POLL_CAPTURE_QUIET_MS, ge=0)
	keyboard_capture_cooldown_ms: int = Field(KEYBOARD_CAPTURE_COOLDOWN_MS, ge=0)
	min_commit_value_length: int = Field(MIN_COMMIT_VALUE_LENGTH, ge=0)
