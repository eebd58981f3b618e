import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram

# Counts
CHAT_REQUESTS = Counter(
	"chat_requests_total",
	"Chat turns received",
)
CHAT_ERRORS = Counter(
	"chat_errors_total",
	"Chat turns that ended in an error",
	["kind"],
)
THREADS_CREATED = Counter(
	"threads_created_total",
	"Conversation threads created",
)
RUN_OUTCOMES = Counter(
	"run_outcomes_total",
	"Runs by final outcome",
	["outcome"],
	# completed | failed | timeout | creation_failed
)
RUN_POLLS = Counter(
	"run_status_polls_total",
	"Run status fetches",
)
RUN_FETCH_ERRORS = Counter(
	"run_status_fetch_errors_total",
	"Transient errors while fetching run status",
)
NO_REPLY_TURNS = Counter(
	"no_reply_turns_total",
	"Completed runs that produced no assistant message",
)

# latency per stage (seconds)
STAGE_LATENCY = Histogram(
	"chat_stage_latency_seconds",
	"Latency per chat pipeline stage",
	["stage"],
	# validate | ensure_thread | run | extract
	buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30, 60, 120),
)


@contextmanager
def observe(stage: str):
	start = time.perf_counter()
	try:
		yield
	finally:
		STAGE_LATENCY.labels(stage).observe(time.perf_counter() - start)
