from .backend import AgentBackend, AgentDirectory, ConversationStore, RunEngine
from .extractor import ResponseExtractor
from .guard import ThreadGuard
from .models import (
	AgentHandle,
	ChatTurnResult,
	ConversationThread,
	Message,
	Run,
	RunBucket,
	RunStatus,
)
from .orchestrator import OrchestratorConfig, RunOrchestrator, RunOutcome
from .threads import ThreadManager

__all__ = [
	"AgentBackend",
	"AgentDirectory",
	"AgentHandle",
	"ChatTurnResult",
	"ConversationStore",
	"ConversationThread",
	"Message",
	"OrchestratorConfig",
	"ResponseExtractor",
	"Run",
	"RunBucket",
	"RunEngine",
	"RunOrchestrator",
	"RunOutcome",
	"RunStatus",
	"ThreadGuard",
	"ThreadManager",
]
