"""
Shared fakes for the chat pipeline tests.
"""

import itertools
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from agent_proxy.core.conversation import (
	AgentBackend,
	AgentHandle,
	ConversationThread,
	Message,
	OrchestratorConfig,
	Run,
	RunStatus,
)
from agent_proxy.core.errors import (
	BackendUnavailable,
	RunCreationFailed,
	StoreUnavailable,
	ThreadNotFound,
)

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


class FakeClock:
	"""Monotonic clock whose sleep just advances time."""

	def __init__(self) -> None:
		self.now = 0.0
		self.sleeps: list[float] = []

	def __call__(self) -> float:
		return self.now

	async def sleep(self, seconds: float) -> None:
		self.sleeps.append(seconds)
		self.now += seconds


class ScriptedBackend(AgentBackend):
	"""
	In-memory collaborators with a scripted run lifecycle.

	- `statuses`: what successive get_run calls report for every run (the last
	  entry repeats).
	- `replies`: assistant text appended when a run first reports completed,
	  consumed in order; None means the run produces no message.
	- `link_runs`: set run_id on assistant messages (otherwise only the
	  timestamp watermark can identify them).
	- `fetch_errors`: number of get_run calls that raise BackendUnavailable
	  before succeeding.
	Every event gets a timestamp one second after the previous one.
	"""

	name = "scripted"

	def __init__(
		self,
		statuses: Optional[list[str]] = None,
		*,
		replies: Optional[list[Optional[str]]] = None,
		link_runs: bool = False,
		failure_reason: Optional[str] = None,
	) -> None:
		self.agents = {"agent-1": "Helper"}
		self.statuses = list(statuses or ["completed"])
		self.replies = list(replies) if replies is not None else None
		self.link_runs = link_runs
		self.failure_reason = failure_reason
		self.fetch_errors = 0
		self.store_down = False
		self.reject_runs = False
		self.calls: Counter = Counter()
		self.messages: dict[str, list[Message]] = {}
		self.runs: dict[str, Run] = {}
		self.cancelled: list[str] = []
		self._polls: dict[str, int] = {}
		self._replied: set[str] = set()
		self._tick = 0
		self._ids = itertools.count(1)

	def _ts(self) -> datetime:
		self._tick += 1
		return T0 + timedelta(seconds=self._tick)

	def _id(self, prefix: str) -> str:
		return f"{prefix}_{next(self._ids)}"

	def add_message(
		self, thread_id: str, role: str, content: str, run_id: Optional[str] = None
	) -> Message:
		msg = Message(
			id=self._id("msg"),
			thread_id=thread_id,
			role=role,  # type: ignore[arg-type]
			content=content,
			created_at=self._ts(),
			run_id=run_id,
		)
		self.messages[thread_id].append(msg)
		return msg

	def _next_reply(self, run: Run) -> Optional[str]:
		if self.replies is None:
			last_user = [m for m in self.messages[run.thread_id] if m.role == "user"][-1]
			return f"reply to: {last_user.content}"
		return self.replies.pop(0) if self.replies else None

	async def get_agent(self, agent_id: str) -> AgentHandle:
		self.calls["get_agent"] += 1
		if agent_id not in self.agents:
			raise RunCreationFailed(f"Agent {agent_id} not found")
		return AgentHandle(id=agent_id, name=self.agents[agent_id])

	async def create_thread(self) -> ConversationThread:
		self.calls["create_thread"] += 1
		if self.store_down:
			raise StoreUnavailable("store down")
		thread = ConversationThread(id=self._id("thread"), created_at=self._ts())
		self.messages[thread.id] = []
		return thread

	async def append_message(self, thread_id: str, role: str, content: str) -> Message:
		self.calls["append_message"] += 1
		if self.store_down:
			raise StoreUnavailable("store down")
		if thread_id not in self.messages:
			raise ThreadNotFound(f"Thread {thread_id} not found", thread_id=thread_id)
		return self.add_message(thread_id, role, content)

	async def list_messages(self, thread_id: str) -> list[Message]:
		self.calls["list_messages"] += 1
		# newest first, the way most stores page
		return list(reversed(self.messages[thread_id]))

	async def create_run(self, thread_id: str, agent: AgentHandle) -> Run:
		self.calls["create_run"] += 1
		if self.reject_runs:
			raise RunCreationFailed("agent misconfigured", thread_id=thread_id)
		run = Run(
			id=self._id("run"),
			thread_id=thread_id,
			agent_id=agent.id,
			status=RunStatus.QUEUED,
			created_at=self._ts(),
		)
		self.runs[run.id] = run
		self._polls[run.id] = 0
		return run

	async def get_run(self, thread_id: str, run_id: str) -> Run:
		self.calls["get_run"] += 1
		if self.fetch_errors > 0:
			self.fetch_errors -= 1
			raise BackendUnavailable("network blip")

		n = self._polls[run_id]
		self._polls[run_id] = n + 1
		status = self.statuses[min(n, len(self.statuses) - 1)]
		update: dict = {"status": RunStatus.parse(status)}
		if status == "failed" and self.failure_reason:
			update["failure_reason"] = self.failure_reason

		run = self.runs[run_id].model_copy(update=update)
		self.runs[run_id] = run

		if run.status is RunStatus.COMPLETED and run_id not in self._replied:
			self._replied.add(run_id)
			text = self._next_reply(run)
			if text is not None:
				self.add_message(
					thread_id,
					"assistant",
					text,
					run_id=run_id if self.link_runs else None,
				)
		return run

	async def cancel_run(self, thread_id: str, run_id: str) -> None:
		self.calls["cancel_run"] += 1
		self.cancelled.append(run_id)


@pytest.fixture
def clock() -> FakeClock:
	return FakeClock()


@pytest.fixture
def config() -> OrchestratorConfig:
	return OrchestratorConfig(poll_interval=0.5, timeout=120.0, max_fetch_retries=3)


@pytest.fixture
def backend() -> ScriptedBackend:
	return ScriptedBackend()
