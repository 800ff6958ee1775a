"""
Runtime configuration.

Settings are read from the environment once at import time. A `.env` file in the
project root is loaded first so local development does not need exported variables.
"""

import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

root_dir = Path(__file__).parent.parent
load_dotenv(dotenv_path=root_dir / '.env')

logger = logging.getLogger(__name__)

BROWSER_WS_ENDPOINT: Optional[str] = os.getenv('BROWSER_WS_ENDPOINT')

SERVER_HOST: str = os.getenv('REPLAY_USE_HOST', '127.0.0.1')
SERVER_PORT: int = int(os.getenv('REPLAY_USE_PORT', '8000'))
LOG_LEVEL: str = os.getenv('REPLAY_USE_LOG_LEVEL', 'info')
LOG_DIR: str = os.getenv('REPLAY_USE_LOG_DIR', os.path.join('tmp', 'logs'))

SESSION_TIMEOUT_MINUTES: int = int(os.getenv('SESSION_TIMEOUT_MINUTES', '10'))
SESSION_CLEANUP_INTERVAL_SECONDS: int = int(os.getenv('SESSION_CLEANUP_INTERVAL_SECONDS', '60'))

HEADLESS: bool = os.getenv('HEADLESS', 'true').lower() == 'true'


def validate_environment(require_browser_endpoint: bool = False) -> None:
	"""Raise ValueError listing every required variable that is missing or malformed."""
	problems: List[str] = []

	if require_browser_endpoint and not os.getenv('BROWSER_WS_ENDPOINT'):
		problems.append('BROWSER_WS_ENDPOINT is required to attach to a remote browser')

	for name in ('REPLAY_USE_PORT', 'SESSION_TIMEOUT_MINUTES', 'SESSION_CLEANUP_INTERVAL_SECONDS'):
		raw = os.getenv(name)
		if raw is not None and not raw.isdigit():
			problems.append(f'{name} must be a positive integer, got {raw!r}')

	if os.getenv('HEADLESS', 'true').lower() not in ('true', 'false'):
		problems.append('HEADLESS must be "true" or "false"')

	if problems:
		for problem in problems:
			logger.error(f'Environment problem: {problem}')
		raise ValueError('Invalid environment: ' + '; '.join(problems))
