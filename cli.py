import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
from playwright.async_api import async_playwright

from replay_use import config
from replay_use.browser.page import PlaywrightPage
from replay_use.exceptions import ReplayUseError
from replay_use.export.service import export_recording, load_export, write_export
from replay_use.export.views import SUPPORTED_FORMATS, ExportOptions
from replay_use.playback.service import PlaybackService
from replay_use.playback.views import PlaybackConfig
from replay_use.recording.service import RecordingService
from replay_use.recording.views import EVENT_MODELS, RecordingConfig, calculate_stats

app = typer.Typer(
	name='replay-use',
	help='Record browser interactions and replay them.',
	add_completion=False,
	no_args_is_help=True,
)

logging.basicConfig(level=config.LOG_LEVEL.upper(), format='%(asctime)s [%(levelname)s] [%(name)s] %(message)s')


def get_default_save_dir() -> Path:
	"""Returns the default save directory for recordings."""
	tmp_dir = Path('./tmp').resolve()
	tmp_dir.mkdir(parents=True, exist_ok=True)
	return tmp_dir


@app.command(name='record', help='Opens a browser at URL and records interactions until the window is closed.')
def record_command(
	url: str = typer.Argument(..., help='Page to start recording on.', show_default=False),
	output: Optional[Path] = typer.Option(
		None,
		'--output',
		'-o',
		help='File or directory for the JSON export (defaults to ./tmp).',
	),
	events: Optional[List[str]] = typer.Option(
		None,
		'--event',
		'-e',
		help='Event type to capture; repeat for several (defaults to click, type and navigation).',
	),
	duration: Optional[int] = typer.Option(None, '--duration', help='Stop after this many seconds.'),
	screenshots: bool = typer.Option(False, '--screenshots', help='Capture screenshots while recording.'),
	mask: bool = typer.Option(False, '--mask', help='Mask sensitive field values (passwords, emails, card numbers).'),
):
	unknown = [e for e in events or [] if e not in EVENT_MODELS]
	if unknown:
		typer.secho(f'Unknown event types: {", ".join(unknown)}', fg=typer.colors.RED)
		raise typer.Exit(code=1)

	recording_config = RecordingConfig(
		capture_screenshots=screenshots,
		mask_sensitive_values=mask,
		max_duration=duration * 1000 if duration else None,
	)
	if events:
		recording_config.events = list(events)

	async def _record():
		async with async_playwright() as p:
			browser = await p.chromium.launch(headless=False)
			page = await browser.new_page()
			closed = asyncio.Event()
			page.on('close', lambda _: closed.set())
			await page.goto(url)

			recorder = RecordingService(PlaywrightPage(page), recording_config, session_id='cli')
			await recorder.start_capture()
			typer.secho('Recording... close the browser window to stop.', fg=typer.colors.GREEN, bold=True)

			try:
				await asyncio.wait_for(closed.wait(), timeout=duration)
			except asyncio.TimeoutError:
				typer.echo(f'Duration of {duration}s reached.')

			recording = await recorder.stop_capture()
			if not page.is_closed():
				await browser.close()
			return recording

	try:
		recording = asyncio.run(_record())
	except ReplayUseError as e:
		typer.secho(f'Recording failed: {e}', fg=typer.colors.RED)
		raise typer.Exit(code=1)

	stats = calculate_stats(recording)
	result = export_recording(recording, ExportOptions(include_screenshots=screenshots))
	saved = write_export(result, output or get_default_save_dir())
	typer.secho(f'Captured {stats.total_events} events in {round(stats.duration / 1000)}s.', fg=typer.colors.GREEN)
	typer.echo(f'Saved to {typer.style(str(saved), fg=typer.colors.MAGENTA)}')


@app.command(name='replay', help='Replays a recording JSON export in a browser.')
def replay_command(
	recording_path: Path = typer.Argument(
		...,
		exists=True,
		file_okay=True,
		dir_okay=False,
		readable=True,
		help='Path to the recording JSON export.',
		show_default=False,
	),
	speed: float = typer.Option(1.0, '--speed', min=0.1, help='Playback speed multiplier.'),
	pause_on_error: bool = typer.Option(
		True,
		'--pause-on-error/--continue-on-error',
		help='Stop at the first failing event, or log it and carry on.',
	),
	skip_screenshots: bool = typer.Option(False, '--skip-screenshots', help='Skip recorded screenshot events.'),
):
	try:
		recording = load_export(recording_path)
	except (OSError, ReplayUseError) as e:
		typer.secho(f'Error loading recording: {e}', fg=typer.colors.RED)
		raise typer.Exit(code=1)

	typer.echo(typer.style(f'Replaying {len(recording.events)} events from {recording.id}', bold=True))
	playback_config = PlaybackConfig(speed=speed, pause_on_error=pause_on_error, skip_screenshots=skip_screenshots)

	async def _replay():
		async with async_playwright() as p:
			browser = await p.chromium.launch(headless=config.HEADLESS)
			page = await browser.new_page()
			player = PlaybackService(PlaywrightPage(page), recording, playback_config, session_id='cli')
			await player.start_playback()
			await player.wait_until_done()
			await browser.close()
			return player.get_status()

	state = asyncio.run(_replay())
	if state.last_error is not None:
		error = state.last_error
		typer.secho(f'Playback paused at event {error.event_index} ({error.event_type}): {error.message}', fg=typer.colors.RED)
		raise typer.Exit(code=1)
	typer.secho('Playback completed!', fg=typer.colors.GREEN, bold=True)


@app.command(name='export', help='Converts a recording JSON export into another format.')
def export_command(
	recording_path: Path = typer.Argument(
		...,
		exists=True,
		file_okay=True,
		dir_okay=False,
		readable=True,
		help='Path to the recording JSON export.',
		show_default=False,
	),
	export_format: str = typer.Option('playwright', '--format', '-f', help=f'One of: {", ".join(SUPPORTED_FORMATS)}.'),
	output: Optional[Path] = typer.Option(None, '--output', '-o', help='File or directory to write to (defaults to ./tmp).'),
	include_screenshots: bool = typer.Option(False, '--include-screenshots', help='Keep screenshot data in the export.'),
	minify: bool = typer.Option(False, '--minify', help='Compact JSON output.'),
):
	try:
		recording = load_export(recording_path)
		options = ExportOptions(format=export_format, include_screenshots=include_screenshots, minify_output=minify)
		result = export_recording(recording, options)
	except (OSError, ReplayUseError) as e:
		typer.secho(f'Export failed: {e}', fg=typer.colors.RED)
		raise typer.Exit(code=1)

	saved = write_export(result, output or get_default_save_dir())
	typer.secho(f'Exported {result.metadata.event_count} events to {saved}', fg=typer.colors.GREEN)


if __name__ == '__main__':
	app()
