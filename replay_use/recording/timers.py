"""Named, cancellable asyncio timers owned by one engine instance."""

import asyncio
import logging
from typing import Awaitable, Callable, Dict

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class TimerGroup:
	"""
	A set of named timers backed by asyncio tasks.

	Scheduling a timer under a name that is already pending replaces it, which is
	what debouncing needs. `cancel_all` is the single teardown call used on pause
	and stop. A timer cancelling its own group from inside its callback is
	unregistered but allowed to finish the callback.
	"""

	def __init__(self, owner: str = ''):
		self.owner = owner
		self._tasks: Dict[str, asyncio.Task] = {}

	def call_later(self, name: str, delay_ms: float, callback: TimerCallback) -> None:
		self.cancel(name)

		async def runner() -> None:
			await asyncio.sleep(delay_ms / 1000)
			# Unregister first so the callback may reschedule under the same name
			if self._tasks.get(name) is asyncio.current_task():
				del self._tasks[name]
			await self._run(name, callback)

		self._tasks[name] = asyncio.create_task(runner(), name=f'{self.owner}:{name}')

	def call_every(self, name: str, interval_ms: float, callback: TimerCallback) -> None:
		self.cancel(name)

		async def runner() -> None:
			me = asyncio.current_task()
			while self._tasks.get(name) is me:
				await asyncio.sleep(interval_ms / 1000)
				if self._tasks.get(name) is not me:
					break
				await self._run(name, callback)

		self._tasks[name] = asyncio.create_task(runner(), name=f'{self.owner}:{name}')

	def is_pending(self, name: str) -> bool:
		task = self._tasks.get(name)
		return task is not None and not task.done()

	def cancel(self, name: str) -> None:
		task = self._tasks.pop(name, None)
		if task is None or task.done():
			return
		if task is not asyncio.current_task():
			task.cancel()

	def cancel_all(self) -> None:
		for name in list(self._tasks):
			self.cancel(name)

	def __len__(self) -> int:
		return sum(1 for task in self._tasks.values() if not task.done())

	async def _run(self, name: str, callback: TimerCallback) -> None:
		try:
			await callback()
		except asyncio.CancelledError:
			raise
		except Exception as e:
			logger.error(f'❌ Timer {self.owner}:{name} failed: {e}')
