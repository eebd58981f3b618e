from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from agent_proxy.chat.schemas import CamelModel
from agent_proxy.core.utils import now_utc


class HealthOut(CamelModel):
	status: Literal["healthy", "degraded"]
	timestamp: datetime = Field(default_factory=now_utc)
	version: str
	environment: str
	backend: str
	agent_id: str
	agent_name: Optional[str] = None
	connection_status: str
