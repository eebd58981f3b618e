from fastapi import APIRouter, Depends
from loguru import logger

from agent_proxy.core.errors import InternalError, ProxyError

from .controllers import ChatService
from .dependencies import get_chat_service
from .schemas import (
	CreateThreadResponse,
	ErrorResponse,
	SendMessageRequest,
	SendMessageResponse,
)

router = APIRouter()

ERROR_RESPONSES: dict[int | str, dict] = {
	code: {"model": ErrorResponse} for code in (400, 409, 500, 502, 503, 504)
}


@router.post("/sendMessage", response_model=SendMessageResponse, responses=ERROR_RESPONSES)
@router.post("/chat", response_model=SendMessageResponse, include_in_schema=False)
async def send_message(
	payload: SendMessageRequest,
	service: ChatService = Depends(get_chat_service),
) -> SendMessageResponse:
	try:
		result = await service.send_message(payload.message, payload.thread_id)
	except ProxyError:
		raise
	except Exception as e:
		logger.exception("Error processing chat request")
		raise InternalError(
			"An error occurred processing your request", thread_id=payload.thread_id
		) from e

	return SendMessageResponse(
		thread_id=result.thread_id,
		reply=result.reply_text,
		status=result.status,
		error_detail=result.error_detail,
		agent_name=result.agent_name,
	)


@router.post("/createThread", response_model=CreateThreadResponse, responses=ERROR_RESPONSES)
async def create_thread(
	service: ChatService = Depends(get_chat_service),
) -> CreateThreadResponse:
	try:
		thread_id = await service.create_thread()
	except ProxyError:
		raise
	except Exception as e:
		logger.exception("Error creating thread")
		raise InternalError("Failed to create thread") from e

	return CreateThreadResponse(thread_id=thread_id)
