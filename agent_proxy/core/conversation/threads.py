from typing import Optional

from loguru import logger

from agent_proxy.core.errors import ThreadNotFound
from agent_proxy.core.metrics import THREADS_CREATED

from .backend import ConversationStore
from .models import Message


class ThreadManager:
	"""Makes sure a turn has a thread and records the user's message on it."""

	def __init__(self, store: ConversationStore) -> None:
		self.store = store

	async def create_thread(self) -> str:
		thread = await self.store.create_thread()
		THREADS_CREATED.inc()
		logger.info(f"Created new thread {thread.id}")
		return thread.id

	async def ensure_thread(self, thread_id: Optional[str] = None) -> str:
		# existing ids are trusted; a stale one is caught on append
		if thread_id:
			return thread_id
		return await self.create_thread()

	async def add_user_message(
		self,
		message: str,
		thread_id: Optional[str] = None,
	) -> tuple[str, Message]:
		"""
		Append the user's message, creating the thread when needed.

		- No thread_id: create a thread, then append.
		- thread_id unknown to the store: log a warning, create a new thread and
		  append there once. The caller receives the new id.
		- Any other store failure propagates (StoreUnavailable), no retry.
		"""
		thread_id = await self.ensure_thread(thread_id)
		try:
			msg = await self.store.append_message(thread_id, "user", message)
		except ThreadNotFound:
			logger.warning(f"Thread {thread_id} not found. Creating a new one.")
			thread_id = await self.create_thread()
			msg = await self.store.append_message(thread_id, "user", message)

		logger.debug(f"Appended user message to thread={thread_id} ({len(message)} chars)")
		return thread_id, msg
