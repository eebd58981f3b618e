from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from agent_proxy.core.utils import ensure_aware_utc


class RunBucket(str, Enum):
	PENDING = "pending"
	SUCCESS = "success"
	TERMINAL_FAILURE = "terminal_failure"


class RunStatus(str, Enum):
	QUEUED = "queued"
	IN_PROGRESS = "in_progress"
	REQUIRES_ACTION = "requires_action"
	CANCELLING = "cancelling"
	COMPLETED = "completed"
	FAILED = "failed"
	CANCELLED = "cancelled"
	EXPIRED = "expired"
	INCOMPLETE = "incomplete"
	UNKNOWN = "unknown"

	@classmethod
	def parse(cls, raw: Any) -> "RunStatus":
		"""
		Normalize the spellings different backends use ("InProgress",
		"in-progress", "running", "canceled", ...). Anything unrecognised maps
		to UNKNOWN, which is treated as a terminal failure.
		"""
		if isinstance(raw, RunStatus):
			return raw
		text = str(getattr(raw, "value", raw) or "").strip().lower()
		text = text.replace("-", "_").replace(" ", "_")
		text = _STATUS_ALIASES.get(text, text)
		try:
			return cls(text)
		except ValueError:
			return cls.UNKNOWN

	@property
	def bucket(self) -> RunBucket:
		if self in _PENDING:
			return RunBucket.PENDING
		if self is RunStatus.COMPLETED:
			return RunBucket.SUCCESS
		return RunBucket.TERMINAL_FAILURE


_STATUS_ALIASES = {
	"inprogress": "in_progress",
	"running": "in_progress",
	"requiresaction": "requires_action",
	"canceled": "cancelled",
	"canceling": "cancelling",
}

_PENDING = frozenset(
	{
		RunStatus.QUEUED,
		RunStatus.IN_PROGRESS,
		RunStatus.REQUIRES_ACTION,
		RunStatus.CANCELLING,
	}
)


class CreatedAtMixin(BaseModel):
	"""Keeps `created_at` timezone-aware in UTC so watermarks compare safely."""

	created_at: datetime

	@field_validator("created_at", mode="after")
	@classmethod
	def _ensure_aware_utc(cls, dt: datetime) -> datetime:
		return ensure_aware_utc(dt)


class AgentHandle(BaseModel):
	model_config = ConfigDict(frozen=True)

	id: str
	name: Optional[str] = None


class ConversationThread(CreatedAtMixin):
	model_config = ConfigDict(frozen=True)

	id: str


class Message(CreatedAtMixin):
	model_config = ConfigDict(frozen=True)

	id: str
	thread_id: str
	role: Literal["user", "assistant"]
	content: str = ""
	# set when the backend links a message to the run that produced it
	run_id: Optional[str] = None


class Run(CreatedAtMixin):
	model_config = ConfigDict(frozen=True)

	id: str
	thread_id: str
	agent_id: str
	status: RunStatus
	failure_reason: Optional[str] = None

	@field_validator("status", mode="before")
	@classmethod
	def _normalize_status(cls, v: Any) -> RunStatus:
		return RunStatus.parse(v)

	@property
	def bucket(self) -> RunBucket:
		return self.status.bucket


class ChatTurnResult(BaseModel):
	thread_id: str
	reply_text: str
	status: Literal["success", "error"] = "success"
	error_detail: Optional[str] = None
	run_id: Optional[str] = None
	agent_name: Optional[str] = None
	poll_count: int = Field(default=0, ge=0)
