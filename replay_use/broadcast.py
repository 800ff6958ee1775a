"""
Broadcast sink contract.

The engines push status and event notifications to observers through a plain
callable. Delivery is fire-and-forget: the engines never wait for an answer and
never retry, a failing sink is logged and ignored.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

BroadcastType = Literal[
	'recording_status',
	'recording_event',
	'playback_status',
	'playback_progress',
	'playback_error',
	'playback_complete',
]


class BroadcastMessage(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

	type: BroadcastType
	message: str
	session_id: Optional[str] = None
	recording_id: Optional[str] = None
	data: Optional[Dict[str, Any]] = None

	def to_wire(self) -> Dict[str, Any]:
		return self.model_dump(by_alias=True, exclude_none=True)


BroadcastFn = Callable[[BroadcastMessage], Union[None, Awaitable[None]]]


async def emit(sink: Optional[BroadcastFn], message: BroadcastMessage) -> None:
	"""Hand a message to the sink, swallowing any failure it raises."""
	if sink is None:
		return
	try:
		result = sink(message)
		if inspect.isawaitable(result):
			await result
	except Exception as e:
		logger.error(f'❌ Broadcast sink failed for {message.type}: {e}')
