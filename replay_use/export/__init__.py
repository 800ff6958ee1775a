from replay_use.export.service import (
	build_export_document,
	export_recording,
	generate_playwright_script,
	import_recording,
	load_export,
	validate_export_options,
	write_export,
)
from replay_use.export.views import ExportOptions, ExportResult

__all__ = [
	'build_export_document',
	'export_recording',
	'generate_playwright_script',
	'import_recording',
	'load_export',
	'validate_export_options',
	'write_export',
	'ExportOptions',
	'ExportResult',
]
