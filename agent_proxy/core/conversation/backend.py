"""
Collaborator interfaces the chat pipeline depends on.

A backend (OpenAI Assistants-compatible API, in-memory simulation, test
fakes) implements all three roles; the pipeline only talks to these
methods. Implementations translate their own transport errors into the
`agent_proxy.core.errors` taxonomy:

- transient transport failures raise `BackendUnavailable`
  (`StoreUnavailable` for conversation-store calls)
- appending to an unknown thread raises `ThreadNotFound`
- a run the engine refuses to create raises `RunCreationFailed`
"""

import abc

from .models import AgentHandle, ConversationThread, Message, Run


class AgentDirectory(abc.ABC):
	@abc.abstractmethod
	async def get_agent(self, agent_id: str) -> AgentHandle: ...


class ConversationStore(abc.ABC):
	@abc.abstractmethod
	async def create_thread(self) -> ConversationThread: ...

	@abc.abstractmethod
	async def append_message(self, thread_id: str, role: str, content: str) -> Message: ...

	@abc.abstractmethod
	async def list_messages(self, thread_id: str) -> list[Message]:
		"""All messages of the thread. Callers must not rely on the order."""
		...


class RunEngine(abc.ABC):
	@abc.abstractmethod
	async def create_run(self, thread_id: str, agent: AgentHandle) -> Run: ...

	@abc.abstractmethod
	async def get_run(self, thread_id: str, run_id: str) -> Run: ...

	@abc.abstractmethod
	async def cancel_run(self, thread_id: str, run_id: str) -> None:
		"""Request cancellation of a run; failures are raised to the caller."""


class AgentBackend(AgentDirectory, ConversationStore, RunEngine):
	name: str = "backend"

	async def aclose(self) -> None:
		return None
