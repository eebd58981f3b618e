from __future__ import annotations

from typing import Optional

from loguru import logger

from agent_proxy.core.conversation import (
	AgentBackend,
	AgentHandle,
	ChatTurnResult,
	OrchestratorConfig,
	ResponseExtractor,
	RunOrchestrator,
	ThreadGuard,
	ThreadManager,
)
from agent_proxy.core.errors import NoReplyProduced, ProxyError
from agent_proxy.core.metrics import CHAT_ERRORS, CHAT_REQUESTS, observe
from agent_proxy.settings import Settings

from .validation import validate_chat_request


class ChatService:
	"""
	One chat turn: validate -> thread -> run -> reply.

	Holds no per-request state; the only process-wide values are the
	immutable configuration, the cached agent handle and the thread guard.
	"""

	def __init__(
		self,
		backend: AgentBackend,
		agent_id: str,
		config: OrchestratorConfig,
		*,
		agent_name: Optional[str] = None,
		max_message_length: int = 4000,
		no_reply_text: str = "I processed your request but didn't generate a response.",
		orchestrator: Optional[RunOrchestrator] = None,
	) -> None:
		self.backend = backend
		self.agent_id = agent_id
		self.agent_name = agent_name
		self.max_message_length = max_message_length
		self.no_reply_text = no_reply_text
		self.threads = ThreadManager(backend)
		self.orchestrator = orchestrator or RunOrchestrator(backend, config)
		self.extractor = ResponseExtractor(backend)
		self.guard = ThreadGuard()
		self._agent: Optional[AgentHandle] = None

	@classmethod
	def from_settings(cls, backend: AgentBackend, agent_id: str, settings: Settings) -> ChatService:
		config = OrchestratorConfig(
			poll_interval=settings.POLL_INTERVAL_SECONDS,
			timeout=settings.POLL_TIMEOUT_SECONDS,
			max_fetch_retries=settings.MAX_STATUS_FETCH_RETRIES,
			cancel_on_timeout=settings.CANCEL_ON_TIMEOUT,
		)
		return cls(
			backend,
			agent_id,
			config,
			agent_name=settings.AGENT_NAME,
			max_message_length=settings.MAX_MESSAGE_LENGTH,
			no_reply_text=settings.NO_REPLY_TEXT,
		)

	async def get_agent(self) -> AgentHandle:
		if self._agent is None:
			self._agent = await self.backend.get_agent(self.agent_id)
			logger.info(f"Resolved agent {self._agent.name} ({self._agent.id})")
		return self._agent

	async def create_thread(self) -> str:
		try:
			return await self.threads.create_thread()
		except ProxyError as e:
			CHAT_ERRORS.labels(e.error_kind).inc()
			raise

	async def send_message(
		self,
		message: Optional[str],
		thread_id: Optional[str] = None,
	) -> ChatTurnResult:
		CHAT_REQUESTS.inc()
		try:
			with observe("validate"):
				message, thread_id = validate_chat_request(
					message, thread_id, self.max_message_length
				)
			logger.info(f"Processing message ({len(message)} chars) thread={thread_id or 'new'}")

			async with self.guard.hold(thread_id):
				agent = await self.get_agent()

				with observe("ensure_thread"):
					thread_id, _ = await self.threads.add_user_message(message, thread_id)

				with observe("run"):
					outcome = await self.orchestrator.start_and_await_run(thread_id, agent)

				with observe("extract"):
					try:
						reply = await self.extractor.extract_reply(thread_id, outcome.run)
					except NoReplyProduced as e:
						CHAT_ERRORS.labels(e.error_kind).inc()
						return ChatTurnResult(
							thread_id=thread_id,
							reply_text=self.no_reply_text,
							status="error",
							error_detail=e.detail,
							run_id=outcome.run.id,
							agent_name=agent.name or self.agent_name,
							poll_count=outcome.polls,
						)

		except ProxyError as e:
			CHAT_ERRORS.labels(e.error_kind).inc()
			if e.thread_id is None and thread_id:
				e.thread_id = thread_id
			raise

		return ChatTurnResult(
			thread_id=thread_id,
			reply_text=reply,
			run_id=outcome.run.id,
			agent_name=agent.name or self.agent_name,
			poll_count=outcome.polls,
		)
