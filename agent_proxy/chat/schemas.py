from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from agent_proxy.core.utils import now_utc


class CamelModel(BaseModel):
	# camelCase on the wire, snake_case accepted as well
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SendMessageRequest(CamelModel):
	message: Optional[str] = Field(None, description="User message")
	thread_id: Optional[str] = Field(None, description="Optional existing thread")


class SendMessageResponse(CamelModel):
	thread_id: str
	reply: str
	status: Literal["success", "error"] = "success"
	error_detail: Optional[str] = None
	agent_name: Optional[str] = None
	timestamp: datetime = Field(default_factory=now_utc)


class CreateThreadResponse(CamelModel):
	thread_id: str


class ErrorResponse(CamelModel):
	error_kind: str
	detail: str
	retryable: bool = False
	thread_id: Optional[str] = None
