from fastapi import APIRouter, Depends, Request

from agent_proxy.chat.controllers import ChatService
from agent_proxy.chat.dependencies import get_chat_service

from .controllers import read_health
from .schemas import HealthOut

router = APIRouter()


@router.get("/health", response_model=HealthOut)
async def health(
	request: Request,
	service: ChatService = Depends(get_chat_service),
) -> HealthOut:
	settings = getattr(request.app.state, "settings", None)
	environment = settings.ENVIRONMENT if settings else "unknown"
	return await read_health(service, request.app.version, environment)
