from typing import Optional

from agent_proxy.core.errors import InvalidRequest


def validate_chat_request(
	message: Optional[str],
	thread_id: Optional[str],
	max_length: int,
) -> tuple[str, Optional[str]]:
	"""
	Check an inbound chat turn before any backend is touched.

	Returns the message and the thread id (None means "start a new
	conversation"). The message is passed through as typed; only the
	emptiness and length checks look at the trimmed text.
	"""
	if message is None or not isinstance(message, str):
		raise InvalidRequest("Message is required")

	stripped = message.strip()
	if not stripped:
		raise InvalidRequest("Message is required")
	if len(stripped) > max_length:
		raise InvalidRequest(
			f"Message is too long ({len(stripped)} characters, max {max_length})"
		)

	# blank ids from the UI mean "no thread yet"
	if thread_id is not None and not thread_id.strip():
		thread_id = None

	return message, thread_id
