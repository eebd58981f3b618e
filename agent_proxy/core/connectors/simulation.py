import asyncio
import time
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import uuid4

from loguru import logger

from agent_proxy.core.conversation.backend import AgentBackend
from agent_proxy.core.conversation.models import (
	AgentHandle,
	ConversationThread,
	Message,
	Run,
	RunBucket,
	RunStatus,
)
from agent_proxy.core.errors import (
	BackendUnavailable,
	RunCreationFailed,
	ThreadNotFound,
)
from agent_proxy.core.utils import now_utc

# (keywords, reply)
CANNED_REPLIES: list[tuple[tuple[str, ...], str]] = [
	(
		("survival", "prognosis"),
		"Survival rates vary significantly depending on the type, stage, and "
		"individual factors. Please discuss your specific situation with a "
		"specialist who knows your history.",
	),
	(
		("treatment", "therapy"),
		"Treatments vary by type and stage. Common approaches include surgery, "
		"medication and therapy. What type of treatment information are you "
		"looking for?",
	),
	(
		("side effect",),
		"Side effects depend on the treatment. Common ones include fatigue, "
		"nausea and changes in appetite. Discuss any side effects with your "
		"care team.",
	),
	(
		("support", "help"),
		"There are many support resources available, including support groups, "
		"counseling services and advocacy organizations.",
	),
]


def canned_reply(message: str, agent_name: str) -> str:
	lower = message.lower()
	for keywords, reply in CANNED_REPLIES:
		if any(k in lower for k in keywords):
			return reply
	return (
		f"Thank you for your question about '{message}'. As {agent_name}, I'm "
		"designed to provide helpful information. Could you provide more context "
		"so I can give you the most relevant response?"
	)


SIMULATED_AGENT_ID = "simulated-agent"


class _SimRun:
	def __init__(self, run: Run, agent: AgentHandle, started: float) -> None:
		self.run = run
		self.agent = agent
		self.started = started
		self.cancelled = False


class SimulationBackend(AgentBackend):
	"""
	In-memory Agent Directory, Conversation Store and Run Engine.

	A run stays `queued` for the first half of `latency` seconds, then
	`in_progress`, and completes once `latency` has elapsed, appending one
	canned assistant reply linked to the run. Message timestamps are strictly
	increasing per thread.
	"""

	name = "simulation"

	def __init__(
		self,
		agents: Optional[dict[str, str]] = None,
		latency: float = 1.0,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		# agent_id -> display name
		self.agents: dict[str, str] = dict(agents or {})
		self.latency = latency
		self._clock = clock
		self._threads: dict[str, ConversationThread] = {}
		self._messages: dict[str, list[Message]] = {}
		self._runs: dict[str, _SimRun] = {}
		self._last_ts: dict[str, datetime] = {}
		self._lock = asyncio.Lock()

	def _next_ts(self, thread_id: str) -> datetime:
		ts = now_utc()
		last = self._last_ts.get(thread_id)
		if last is not None and ts <= last:
			ts = last + timedelta(microseconds=1)
		self._last_ts[thread_id] = ts
		return ts

	def _require_thread(self, thread_id: str) -> None:
		if thread_id not in self._threads:
			raise ThreadNotFound(f"Thread {thread_id} not found", thread_id=thread_id)

	# agent directory
	async def get_agent(self, agent_id: str) -> AgentHandle:
		if agent_id not in self.agents:
			raise RunCreationFailed(f"Agent {agent_id} not found")
		return AgentHandle(id=agent_id, name=self.agents[agent_id])

	# conversation store
	async def create_thread(self) -> ConversationThread:
		async with self._lock:
			thread_id = f"thread_{uuid4().hex}"
			thread = ConversationThread(id=thread_id, created_at=self._next_ts(thread_id))
			self._threads[thread_id] = thread
			self._messages[thread_id] = []
		return thread

	async def append_message(self, thread_id: str, role: str, content: str) -> Message:
		async with self._lock:
			self._require_thread(thread_id)
			msg = Message(
				id=f"msg_{uuid4().hex}",
				thread_id=thread_id,
				role=role,  # type: ignore[arg-type]
				content=content,
				created_at=self._next_ts(thread_id),
			)
			self._messages[thread_id].append(msg)
		return msg

	async def list_messages(self, thread_id: str) -> list[Message]:
		async with self._lock:
			self._require_thread(thread_id)
			for sim in self._runs.values():
				if sim.run.thread_id == thread_id:
					self._advance(sim)
			return list(self._messages[thread_id])

	# run engine
	async def create_run(self, thread_id: str, agent: AgentHandle) -> Run:
		async with self._lock:
			if thread_id not in self._threads:
				raise RunCreationFailed(f"Thread {thread_id} not found", thread_id=thread_id)
			if agent.id not in self.agents:
				raise RunCreationFailed(f"Agent {agent.id} not found", thread_id=thread_id)
			run = Run(
				id=f"run_{uuid4().hex}",
				thread_id=thread_id,
				agent_id=agent.id,
				status=RunStatus.QUEUED,
				created_at=self._next_ts(thread_id),
			)
			self._runs[run.id] = _SimRun(run, agent, self._clock())
		return run

	async def get_run(self, thread_id: str, run_id: str) -> Run:
		async with self._lock:
			sim = self._runs.get(run_id)
			if sim is None or sim.run.thread_id != thread_id:
				raise BackendUnavailable(f"Run {run_id} not found", thread_id=thread_id)
			self._advance(sim)
			return sim.run

	async def cancel_run(self, thread_id: str, run_id: str) -> None:
		async with self._lock:
			sim = self._runs.get(run_id)
			if sim is None or sim.run.bucket is not RunBucket.PENDING:
				return
			sim.cancelled = True
			sim.run = sim.run.model_copy(update={"status": RunStatus.CANCELLED})
			logger.info(f"Simulated run {run_id} cancelled")

	def _advance(self, sim: _SimRun) -> None:
		if sim.run.bucket is not RunBucket.PENDING:
			return

		elapsed = self._clock() - sim.started
		if elapsed < self.latency / 2:
			return
		if elapsed < self.latency:
			sim.run = sim.run.model_copy(update={"status": RunStatus.IN_PROGRESS})
			return

		thread_id = sim.run.thread_id
		history = self._messages[thread_id]
		last_user = next((m for m in reversed(history) if m.role == "user"), None)
		reply = canned_reply(
			last_user.content if last_user else "", sim.agent.name or sim.agent.id
		)
		history.append(
			Message(
				id=f"msg_{uuid4().hex}",
				thread_id=thread_id,
				role="assistant",
				content=reply,
				created_at=self._next_ts(thread_id),
				run_id=sim.run.id,
			)
		)
		sim.run = sim.run.model_copy(update={"status": RunStatus.COMPLETED})
