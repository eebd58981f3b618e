from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from agent_proxy.core.errors import ThreadBusy


class ThreadGuard:
	"""
	Rejects a second turn on a thread while one is still being served.

	Runs on one thread must not interleave, otherwise one turn's watermark can
	capture another turn's reply. The guard is per process: with several
	workers two turns on the same thread can still race through different
	workers.
	"""

	def __init__(self) -> None:
		self._active: set[str] = set()

	def is_busy(self, thread_id: str) -> bool:
		return thread_id in self._active

	@asynccontextmanager
	async def hold(self, thread_id: Optional[str]) -> AsyncIterator[None]:
		# new conversations have nothing to race with
		if not thread_id:
			yield
			return

		if thread_id in self._active:
			raise ThreadBusy(
				"Another message on this conversation is still being processed",
				thread_id=thread_id,
			)
		self._active.add(thread_id)
		try:
			yield
		finally:
			self._active.discard(thread_id)
