from functools import lru_cache
from typing import Literal, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
	# agent backend
	AGENT_BACKEND: Literal["openai", "simulation"] = "openai"
	AGENT_ID: Optional[str] = None
	AGENT_NAME: str = "AI in A Box"

	# openai / ai foundry
	OPENAI_API_KEY: Optional[str] = None
	OPENAI_BASE_URL: Optional[str] = None
	OPENAI_REQUEST_TIMEOUT_SECONDS: float = 30.0

	# run polling
	POLL_INTERVAL_SECONDS: float = 0.5
	POLL_TIMEOUT_SECONDS: float = 120.0
	MAX_STATUS_FETCH_RETRIES: int = 3
	CANCEL_ON_TIMEOUT: bool = False

	# chat
	MAX_MESSAGE_LENGTH: int = 4000
	NO_REPLY_TEXT: str = (
		"I processed your request but didn't generate a response. Please try again."
	)

	# simulation
	SIMULATION_LATENCY_SECONDS: float = 1.0

	# fastapi
	HOST: str = "0.0.0.0"
	PORT: int = 8000
	RELOAD: bool = False
	WORKERS: int = 1
	CORS_ORIGINS: list[str] = ["*"]
	ENVIRONMENT: str = "development"
	LOG_LEVEL: str = "INFO"

	model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

	@model_validator(mode="after")
	def _check_polling(self) -> "Settings":
		if self.POLL_INTERVAL_SECONDS <= 0:
			raise ValueError("POLL_INTERVAL_SECONDS must be > 0")
		if self.POLL_TIMEOUT_SECONDS < self.POLL_INTERVAL_SECONDS:
			raise ValueError("POLL_TIMEOUT_SECONDS must be >= POLL_INTERVAL_SECONDS")
		if self.MAX_MESSAGE_LENGTH < 1:
			raise ValueError("MAX_MESSAGE_LENGTH must be >= 1")
		if self.OPENAI_REQUEST_TIMEOUT_SECONDS <= 0:
			raise ValueError("OPENAI_REQUEST_TIMEOUT_SECONDS must be > 0")
		if self.MAX_STATUS_FETCH_RETRIES < 0:
			raise ValueError("MAX_STATUS_FETCH_RETRIES must be >= 0")
		return self

	@classmethod
	@lru_cache
	def get(cls) -> "Settings":
		return Settings()
