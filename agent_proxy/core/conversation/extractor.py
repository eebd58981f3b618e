from loguru import logger

from agent_proxy.core.errors import NoReplyProduced
from agent_proxy.core.metrics import NO_REPLY_TURNS

from .backend import ConversationStore
from .models import Message, Run


def belongs_to_run(msg: Message, run: Run) -> bool:
	"""
	True for assistant messages produced by `run`.

	Messages linked to a run are matched on the link. Unlinked messages fall
	back to the watermark: strictly newer than the run's creation time.
	"""
	if msg.role != "assistant":
		return False
	if msg.run_id is not None:
		return msg.run_id == run.id
	return msg.created_at > run.created_at


def select_reply(messages: list[Message], run: Run) -> Message | None:
	candidates = [m for m in messages if belongs_to_run(m, run) and m.content.strip()]
	if not candidates:
		return None
	# ids are not time ordered across the store, sort explicitly
	candidates.sort(key=lambda m: m.created_at, reverse=True)
	return candidates[0]


class ResponseExtractor:
	def __init__(self, store: ConversationStore) -> None:
		self.store = store

	async def extract_reply(self, thread_id: str, run: Run) -> str:
		messages = await self.store.list_messages(thread_id)
		logger.debug(f"Found {len(messages)} messages in thread={thread_id}")

		reply = select_reply(messages, run)
		if reply is None:
			NO_REPLY_TURNS.inc()
			logger.warning(
				f"No assistant message for run {run.id} among {len(messages)} "
				f"messages in thread={thread_id}"
			)
			raise NoReplyProduced(
				"The run completed without producing a reply", thread_id=thread_id
			)

		logger.info(f"Reply for run {run.id}: message {reply.id} ({len(reply.content)} chars)")
		return reply.content
