import logging
from typing import Optional

from .service import ReplayService
from .session_manager import SessionManager
from .websocket_manager import websocket_manager

logger = logging.getLogger(__name__)

_service: Optional[ReplayService] = None


def get_service() -> ReplayService:
	global _service
	if _service is None:
		_service = ReplayService(sessions=SessionManager(), broadcast=websocket_manager.schedule_broadcast)
		logger.info('ReplayService initialized')
	return _service


def reset_service() -> None:
	"""Drop the cached service so the next call builds a fresh one."""
	global _service
	_service = None
