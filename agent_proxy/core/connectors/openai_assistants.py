from datetime import datetime, timezone
from typing import Any, Optional

import httpx
import openai
from loguru import logger
from openai import AsyncOpenAI

from agent_proxy.core.conversation.backend import AgentBackend
from agent_proxy.core.conversation.models import (
	AgentHandle,
	ConversationThread,
	Message,
	Run,
)
from agent_proxy.core.errors import (
	BackendUnavailable,
	RunCreationFailed,
	RunFailed,
	StoreRejected,
	StoreUnavailable,
	ThreadNotFound,
)

TRANSIENT_ERRORS = (
	openai.APIConnectionError,  # includes APITimeoutError
	openai.RateLimitError,
	openai.InternalServerError,
)


def _ts(value: Optional[int]) -> datetime:
	return datetime.fromtimestamp(value or 0, tz=timezone.utc)


def first_text(content: Any) -> str:
	"""Text of the first text block of a message (empty when there is none)."""
	for block in content or []:
		if getattr(block, "type", None) == "text":
			text = getattr(block, "text", None)
			value = getattr(text, "value", text)
			if value:
				return str(value)
	return ""


def _failure_reason(run: Any) -> Optional[str]:
	last_error = getattr(run, "last_error", None)
	if last_error is not None:
		code = getattr(last_error, "code", None)
		message = getattr(last_error, "message", None)
		if code and message:
			return f"{code}: {message}"
		return code or message
	incomplete = getattr(run, "incomplete_details", None)
	if incomplete is not None and getattr(incomplete, "reason", None):
		return incomplete.reason
	return None


def to_run(raw: Any, thread_id: str) -> Run:
	return Run(
		id=raw.id,
		thread_id=getattr(raw, "thread_id", None) or thread_id,
		agent_id=raw.assistant_id,
		status=raw.status,
		created_at=_ts(raw.created_at),
		failure_reason=_failure_reason(raw),
	)


def to_message(raw: Any, thread_id: str) -> Message:
	return Message(
		id=raw.id,
		thread_id=getattr(raw, "thread_id", None) or thread_id,
		role="assistant" if raw.role == "assistant" else "user",
		content=first_text(raw.content),
		created_at=_ts(raw.created_at),
		run_id=getattr(raw, "run_id", None),
	)


class OpenAIAssistantsBackend(AgentBackend):
	"""
	Agents/Threads/Runs/Messages over an OpenAI Assistants-compatible API.

	Works against api.openai.com or any compatible endpoint (AI Foundry
	projects, gateways) via `base_url`. Timestamps on this API have second
	resolution, so messages are matched to runs through `run_id` when present.

	The SDK retry loop is switched off: the orchestrator owns retries and the
	timeout budget, so every call is a single bounded HTTP attempt.
	"""

	name = "openai"

	def __init__(
		self,
		api_key: Optional[str] = None,
		base_url: Optional[str] = None,
		client: Optional[AsyncOpenAI] = None,
		timeout: float = 30.0,
		http_client: Optional[httpx.AsyncClient] = None,
	) -> None:
		self.client = client or AsyncOpenAI(
			api_key=api_key,
			base_url=base_url,
			max_retries=0,
			timeout=timeout,
			http_client=http_client,
		)

	async def aclose(self) -> None:
		await self.client.close()

	# agent directory
	async def get_agent(self, agent_id: str) -> AgentHandle:
		try:
			agent = await self.client.beta.assistants.retrieve(agent_id)
		except TRANSIENT_ERRORS as e:
			raise BackendUnavailable(f"Agent directory unreachable: {e}") from e
		except openai.APIStatusError as e:
			raise RunCreationFailed(f"Agent {agent_id} not accessible: {e.message}") from e
		return AgentHandle(id=agent.id, name=agent.name)

	# conversation store
	async def create_thread(self) -> ConversationThread:
		try:
			thread = await self.client.beta.threads.create()
		except TRANSIENT_ERRORS as e:
			raise StoreUnavailable(f"Failed to create thread: {e}") from e
		except openai.APIError as e:
			raise StoreRejected(f"Thread creation rejected: {e}") from e
		return ConversationThread(id=thread.id, created_at=_ts(thread.created_at))

	async def append_message(self, thread_id: str, role: str, content: str) -> Message:
		try:
			msg = await self.client.beta.threads.messages.create(
				thread_id=thread_id,
				role=role,  # type: ignore[arg-type]
				content=content,
			)
		except openai.NotFoundError as e:
			raise ThreadNotFound(f"Thread {thread_id} not found", thread_id=thread_id) from e
		except TRANSIENT_ERRORS as e:
			raise StoreUnavailable(
				f"Failed to append message: {e}", thread_id=thread_id
			) from e
		except openai.APIError as e:
			raise StoreRejected(
				f"Message rejected: {e}", thread_id=thread_id
			) from e
		return to_message(msg, thread_id)

	async def list_messages(self, thread_id: str) -> list[Message]:
		messages: list[Message] = []
		try:
			async for raw in self.client.beta.threads.messages.list(
				thread_id=thread_id, order="asc", limit=100
			):
				messages.append(to_message(raw, thread_id))
		except TRANSIENT_ERRORS as e:
			raise StoreUnavailable(
				f"Failed to list messages: {e}", thread_id=thread_id
			) from e
		except openai.APIError as e:
			raise StoreRejected(
				f"Message listing rejected: {e}", thread_id=thread_id
			) from e
		return messages

	# run engine
	async def create_run(self, thread_id: str, agent: AgentHandle) -> Run:
		try:
			raw = await self.client.beta.threads.runs.create(
				thread_id=thread_id, assistant_id=agent.id
			)
		except openai.APIError as e:
			raise RunCreationFailed(
				f"Run engine rejected the run: {e}", thread_id=thread_id
			) from e
		return to_run(raw, thread_id)

	async def get_run(self, thread_id: str, run_id: str) -> Run:
		try:
			raw = await self.client.beta.threads.runs.retrieve(run_id, thread_id=thread_id)
		except TRANSIENT_ERRORS as e:
			raise BackendUnavailable(
				f"Failed to fetch run {run_id}: {e}", thread_id=thread_id
			) from e
		except openai.APIError as e:
			raise RunFailed(
				f"Run {run_id} could not be fetched: {e}", thread_id=thread_id
			) from e
		return to_run(raw, thread_id)

	async def cancel_run(self, thread_id: str, run_id: str) -> None:
		await self.client.beta.threads.runs.cancel(run_id, thread_id=thread_id)
		logger.debug(f"Cancellation requested for run {run_id}")
