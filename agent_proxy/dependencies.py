from contextlib import asynccontextmanager

from loguru import logger

from agent_proxy.chat.controllers import ChatService
from agent_proxy.core.connectors import build_backend
from agent_proxy.core.connectors.simulation import SIMULATED_AGENT_ID
from agent_proxy.settings import Settings


@asynccontextmanager
async def lifespan(app):
	settings = getattr(app.state, "settings", None) or Settings.get()

	logger.info(f"Initializing {settings.AGENT_BACKEND} agent backend...")
	backend = build_backend(settings)
	agent_id = settings.AGENT_ID or SIMULATED_AGENT_ID

	app.state.settings = settings
	app.state.backend = backend
	app.state.chat_service = ChatService.from_settings(backend, agent_id, settings)
	logger.info(
		f"Agent proxy ready: agent={settings.AGENT_NAME} ({agent_id}), "
		f"poll every {settings.POLL_INTERVAL_SECONDS}s up to {settings.POLL_TIMEOUT_SECONDS}s"
	)

	try:
		yield
	finally:
		await backend.aclose()
		logger.info("Agent backend closed.")
