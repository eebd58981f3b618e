from loguru import logger

from agent_proxy.core.conversation.backend import AgentBackend
from agent_proxy.core.errors import ConfigurationError
from agent_proxy.settings import Settings

from .openai_assistants import OpenAIAssistantsBackend
from .simulation import SIMULATED_AGENT_ID, SimulationBackend


def build_backend(settings: Settings) -> AgentBackend:
	if settings.AGENT_BACKEND == "simulation":
		agent_id = settings.AGENT_ID or SIMULATED_AGENT_ID
		logger.info(f"Using simulation backend (agent {agent_id})")
		return SimulationBackend(
			agents={agent_id: settings.AGENT_NAME},
			latency=settings.SIMULATION_LATENCY_SECONDS,
		)

	if not settings.AGENT_ID:
		raise ConfigurationError("AGENT_ID is required for the openai backend")
	if not settings.OPENAI_API_KEY:
		raise ConfigurationError("OPENAI_API_KEY is required for the openai backend")

	logger.info(f"Using OpenAI Assistants backend at {settings.OPENAI_BASE_URL or 'default endpoint'}")
	return OpenAIAssistantsBackend(
		api_key=settings.OPENAI_API_KEY,
		base_url=settings.OPENAI_BASE_URL,
		timeout=settings.OPENAI_REQUEST_TIMEOUT_SECONDS,
	)
