from loguru import logger

from agent_proxy.chat.controllers import ChatService

from .schemas import HealthOut


async def check_connection(service: ChatService) -> tuple[bool, str, str | None]:
	"""
	Fresh Agent Directory lookup, bypassing the cached handle.

	Returns (reachable, human readable status, agent name).
	"""
	try:
		agent = await service.backend.get_agent(service.agent_id)
	except Exception as e:
		logger.warning(f"Agent connectivity check failed: {type(e).__name__}: {e}")
		return False, f"Disconnected - {type(e).__name__}: {e}", None

	return True, f"Connected - Agent '{agent.name or agent.id}' accessible", agent.name


async def read_health(service: ChatService, version: str, environment: str) -> HealthOut:
	ok, connection_status, agent_name = await check_connection(service)
	return HealthOut(
		status="healthy" if ok else "degraded",
		version=version,
		environment=environment,
		backend=service.backend.name,
		agent_id=service.agent_id,
		agent_name=agent_name or service.agent_name,
		connection_status=connection_status,
	)
