from datetime import datetime, timezone


def now_utc() -> datetime:
	return datetime.now(timezone.utc)


def ensure_aware_utc(dt: datetime) -> datetime:
	"""Ensures that the datetime is timezone-aware and in UTC."""
	if dt.tzinfo is None:
		return dt.replace(tzinfo=timezone.utc)
	return dt.astimezone(timezone.utc)
