"""
Export and import of recordings.

JSON exports are round-trip stable: `import_recording` rebuilds a Recording
whose events compare equal to the exported ones (screenshots included only
when asked for). The `playwright` format renders an equivalent standalone
Python script.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from replay_use.exceptions import ExportValidationError
from replay_use.export.views import (
	EXPORT_VERSION,
	SUPPORTED_FORMATS,
	ExportDocument,
	ExportOptions,
	ExportResult,
	ExportResultMetadata,
	ExportStatistics,
	ExportTimeline,
)
from replay_use.recording.config import PLAYBACK_MAX_DELAY_MS, PLAYBACK_MIN_DELAY_MS
from replay_use.recording.views import (
	BaseRecordingEvent,
	Recording,
	RecordingMetadata,
	calculate_stats,
	event_adapter,
	now_ms,
)
from replay_use.playback.service import map_key

logger = logging.getLogger(__name__)

# Keys of an export's metadata block that are not recording metadata
_EXPORT_ONLY_KEYS = ('recordingId', 'sessionId', 'exportedAt', 'format', 'version')


def validate_export_options(options: ExportOptions) -> None:
	if options.format not in SUPPORTED_FORMATS:
		raise ExportValidationError(
			f'Unsupported export format: {options.format}. Supported formats: {", ".join(SUPPORTED_FORMATS)}'
		)
	if options.format == 'playwright' and options.include_screenshots:
		logger.warning('⚠️ Screenshots in script exports become screenshot calls, image data is not embedded')


def export_recording(recording: Recording, options: Optional[ExportOptions] = None) -> ExportResult:
	options = options or ExportOptions()
	validate_export_options(options)
	logger.info(f'📤 Exporting recording {recording.id} as {options.format}')

	if options.format == 'json':
		content = _render_json(recording, options)
		filename = f'recording_{recording.id}.json'
	else:
		content = generate_playwright_script(recording, options)
		filename = f'recording_{recording.id}_playwright.py'

	result = ExportResult(
		format=options.format,
		content=content,
		filename=filename,
		size=len(content.encode('utf-8')),
		metadata=ExportResultMetadata(
			exported_at=now_ms(),
			original_recording_id=recording.id,
			event_count=len(recording.events),
		),
	)
	logger.info(f'✅ Export finished: {filename} ({round(result.size / 1024)}KB)')
	return result


def build_export_document(recording: Recording, include_screenshots: bool = False) -> Dict[str, Any]:
	events: List[Dict[str, Any]] = []
	for event in recording.events:
		data = event.to_wire()
		if not include_screenshots:
			data.pop('screenshot', None)
		events.append(data)

	return {
		'metadata': {
			'recordingId': recording.id,
			'sessionId': recording.session_id,
			'exportedAt': datetime.now(timezone.utc).isoformat(),
			'format': 'json',
			'version': EXPORT_VERSION,
			**recording.metadata.to_wire(),
		},
		'config': recording.config.to_wire(),
		'timeline': ExportTimeline(
			start_time=recording.start_time,
			end_time=recording.end_time,
			duration=recording.duration,
			total_events=len(recording.events),
		).to_wire(),
		'events': events,
		'statistics': export_statistics(recording).to_wire(),
	}


def export_statistics(recording: Recording) -> ExportStatistics:
	stats = calculate_stats(recording)
	# base64 carries 4 characters per 3 bytes
	screenshot_bytes = sum(round(len(event.screenshot) * 3 / 4) for event in recording.events if event.screenshot)
	return ExportStatistics(**stats.model_dump(), estimated_size=round(screenshot_bytes / 1024))


def import_recording(source: Union[str, bytes, Dict[str, Any]]) -> Recording:
	"""Rebuild a stopped Recording from a JSON export document."""
	try:
		raw = json.loads(source) if isinstance(source, (str, bytes)) else source
		document = ExportDocument.model_validate(raw)
	except (ValueError, ValidationError) as e:
		raise ExportValidationError(f'Invalid recording export: {e}') from e

	metadata = dict(document.metadata)
	recording_id = metadata.get('recordingId')
	if not recording_id:
		raise ExportValidationError('Invalid recording export: metadata.recordingId is missing')
	session_id = metadata.get('sessionId') or document.config.session_id or 'imported'
	for key in _EXPORT_ONLY_KEYS:
		metadata.pop(key, None)

	try:
		events = [event_adapter.validate_python(item) for item in document.events]
		recording_metadata = RecordingMetadata.model_validate(metadata)
	except ValidationError as e:
		raise ExportValidationError(f'Invalid recording export: {e}') from e

	recording = Recording(
		id=recording_id,
		session_id=session_id,
		config=document.config,
		events=events,
		status='stopped',
		start_time=document.timeline.start_time,
		end_time=document.timeline.end_time,
		duration=document.timeline.duration,
		metadata=recording_metadata,
	)
	logger.info(f'📥 Imported recording {recording.id} with {len(events)} events')
	return recording


def load_export(path: Union[str, Path]) -> Recording:
	with open(path, 'r', encoding='utf-8') as f:
		return import_recording(f.read())


def write_export(result: ExportResult, output: Union[str, Path]) -> Path:
	"""Write an export to `output`, or into it under the export's filename when it is a directory."""
	path = Path(output)
	if path.is_dir():
		path = path / result.filename
	path.parent.mkdir(parents=True, exist_ok=True)
	path.write_text(result.content, encoding='utf-8')
	logger.info(f'💾 Saved export to {path}')
	return path


# --- Rendering ---


def _render_json(recording: Recording, options: ExportOptions) -> str:
	document = build_export_document(recording, include_screenshots=options.include_screenshots)
	if options.minify_output:
		return json.dumps(document, separators=(',', ':'), ensure_ascii=False)
	return json.dumps(document, indent=2, ensure_ascii=False)


def generate_playwright_script(recording: Recording, options: Optional[ExportOptions] = None) -> str:
	options = options or ExportOptions(format='playwright')
	lines: List[str] = []
	comments = options.add_comments

	if comments:
		lines += [
			f'# Recording {recording.id}',
			f'# Exported at {datetime.now(timezone.utc).isoformat()}',
			f'# Events: {len(recording.events)}, duration: {round((recording.duration or 0) / 1000)}s',
			'',
		]
	lines += [
		'import asyncio',
		'',
		'from playwright.async_api import async_playwright',
		'',
		'',
		'async def main():',
		'    async with async_playwright() as p:',
		'        browser = await p.chromium.launch(headless=False)',
		'        page = await browser.new_page()',
	]

	body: List[str] = []
	viewport = recording.metadata.viewport
	if viewport:
		body.append(f"await page.set_viewport_size({{'width': {viewport.width}, 'height': {viewport.height}}})")
	if recording.metadata.initial_url:
		body.append(f'await page.goto({recording.metadata.initial_url!r})')

	last_timestamp = recording.start_time
	for index, event in enumerate(recording.events):
		if event.type == 'screenshot' and not options.include_screenshots:
			continue
		gap = event.timestamp - last_timestamp
		if recording.config.delay > 0 and gap > PLAYBACK_MIN_DELAY_MS:
			body.append(f'await page.wait_for_timeout({min(gap, PLAYBACK_MAX_DELAY_MS)})')
		if comments:
			stamp = datetime.fromtimestamp(event.timestamp / 1000, tz=timezone.utc).isoformat()
			body.append(f'# {index}: {event.type} at {stamp}')
		body += _event_lines(event, index, comments)
		last_timestamp = event.timestamp

	body += ['await page.wait_for_timeout(1000)', 'await browser.close()']
	lines += [f'        {line}' for line in body]
	lines += ['', '', "if __name__ == '__main__':", '    asyncio.run(main())', '']
	return '\n'.join(lines)


_SET_VALUE_JS = (
	"(el, v) => { if (el.type === 'checkbox' || el.type === 'radio') { el.checked = v === 'true'; } "
	"else { el.value = v; } el.dispatchEvent(new Event('change', { bubbles: true })); }"
)


def _event_lines(event: BaseRecordingEvent, index: int, comments: bool) -> List[str]:
	selector = event.selector
	coords = event.coordinates
	value = event.value or ''

	if event.type == 'click' and selector:
		return [f'await page.click({selector!r})']
	elif event.type == 'click' and coords:
		return [f'await page.mouse.click({coords.x}, {coords.y})']
	elif event.type == 'type' and selector:
		return [
			f'await page.click({selector!r})',
			f"await page.press({selector!r}, 'ControlOrMeta+A')",
			f'await page.locator({selector!r}).press_sequentially({value!r})',
		]
	elif event.type == 'navigation' and event.url:
		return [f"await page.goto({event.url!r}, wait_until='domcontentloaded')"]
	elif event.type == 'scroll' and coords:
		return [f"await page.evaluate('window.scrollTo({coords.x}, {coords.y})')"]
	elif event.type == 'hover' and selector:
		return [f'await page.hover({selector!r})']
	elif event.type == 'wait':
		return [f'await page.wait_for_timeout({event.duration or 1000})']
	elif event.type in ('key_press', 'form_navigation') and event.value:
		return [f'await page.keyboard.press({map_key(event.value)!r})']
	elif event.type == 'form_submit' and selector:
		return [f"await page.locator({selector!r}).evaluate('(form) => form.submit()')"]
	elif event.type == 'form_focus' and selector:
		return [f'await page.focus({selector!r})']
	elif event.type == 'form_input_change' and selector:
		return [f'await page.locator({selector!r}).evaluate({_SET_VALUE_JS!r}, {value!r})']
	elif event.type == 'screenshot':
		return [f"await page.screenshot(path='screenshot_{index}.png')"]
	elif event.type == 'page_load':
		return ["await page.wait_for_load_state('domcontentloaded')"]
	return [f'# Skipped {event.type} event without a target'] if comments else []
