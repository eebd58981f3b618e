from typing import Any, Optional


class ProxyError(Exception):
	"""
	Base class for every failure the chat pipeline surfaces to callers.

	Subclasses pin `error_kind` (the stable name rendered to clients),
	`status_code` (HTTP mapping) and `retryable` (whether the UI should offer
	a "try again" state rather than a correction prompt).
	"""

	error_kind: str = "ProxyError"
	status_code: int = 500
	retryable: bool = False

	def __init__(self, detail: str = "", *, thread_id: Optional[str] = None) -> None:
		super().__init__(detail or self.error_kind)
		self.detail = detail or self.error_kind
		self.thread_id = thread_id

	def to_dict(self) -> dict[str, Any]:
		body: dict[str, Any] = {
			"errorKind": self.error_kind,
			"detail": self.detail,
			"retryable": self.retryable,
		}
		if self.thread_id:
			body["threadId"] = self.thread_id
		return body


class ConfigurationError(ProxyError):
	error_kind = "ConfigurationError"


class InvalidRequest(ProxyError):
	error_kind = "InvalidRequest"
	status_code = 400


class ThreadBusy(ProxyError):
	error_kind = "ThreadBusy"
	status_code = 409
	retryable = True


class BackendUnavailable(ProxyError):
	"""Transient transport/backend failure (network blip, 5xx, rate limit)."""

	error_kind = "BackendUnavailable"
	status_code = 503
	retryable = True


class StoreUnavailable(BackendUnavailable):
	error_kind = "StoreUnavailable"


class ThreadNotFound(StoreUnavailable):
	error_kind = "ThreadNotFound"


class StoreRejected(ProxyError):
	"""The conversation store refused the call (auth, bad request)."""

	error_kind = "StoreRejected"
	status_code = 502


class RunCreationFailed(ProxyError):
	error_kind = "RunCreationFailed"
	status_code = 502


class RunFailed(ProxyError):
	error_kind = "RunFailed"
	status_code = 502

	def __init__(
		self,
		detail: str = "",
		*,
		status: Optional[str] = None,
		thread_id: Optional[str] = None,
	) -> None:
		super().__init__(detail, thread_id=thread_id)
		self.status = status


class RunTimeout(ProxyError):
	error_kind = "RunTimeout"
	status_code = 504
	retryable = True


class NoReplyProduced(ProxyError):
	"""Run completed but left no assistant message for this turn."""

	error_kind = "NoReplyProduced"
	status_code = 200


class InternalError(ProxyError):
	error_kind = "InternalError"
