from collections import defaultdict
from typing import Any, Dict, Optional

from prometheus_client.metrics import MetricWrapperBase

from agent_proxy.core.metrics import (
	CHAT_ERRORS,
	CHAT_REQUESTS,
	NO_REPLY_TURNS,
	RUN_FETCH_ERRORS,
	RUN_OUTCOMES,
	RUN_POLLS,
	STAGE_LATENCY,
	THREADS_CREATED,
)

# Order of the stages in one chat turn
PIPELINE_STAGES = ("validate", "ensure_thread", "run", "extract")


def _totals(metric: MetricWrapperBase, label: Optional[str] = None) -> Any:
	"""Counter total, or totals keyed by one label when `label` is given."""
	by_label: Dict[str, int] = defaultdict(int)
	for family in metric.collect():
		for sample in family.samples:
			if sample.name.endswith("_total"):
				by_label[sample.labels.get(label, "") if label else ""] += int(sample.value)
	if label is None:
		return by_label.get("", 0)
	return dict(by_label)


def stage_timings() -> Dict[str, Dict[str, Any]]:
	"""Observed count and mean seconds for every pipeline stage, in turn order."""
	counts: Dict[str, int] = defaultdict(int)
	sums: Dict[str, float] = defaultdict(float)
	for family in STAGE_LATENCY.collect():
		for sample in family.samples:
			stage = sample.labels.get("stage")
			if sample.name.endswith("_count"):
				counts[stage] += int(sample.value)
			elif sample.name.endswith("_sum"):
				sums[stage] += sample.value

	stages = list(PIPELINE_STAGES) + sorted(set(counts) - set(PIPELINE_STAGES))
	return {
		stage: {
			"count": counts[stage],
			"avg_seconds": round(sums[stage] / counts[stage], 4) if counts[stage] else None,
		}
		for stage in stages
	}


def chat_summary() -> Dict[str, Any]:
	turns = _totals(CHAT_REQUESTS)
	errors = _totals(CHAT_ERRORS, "kind")
	return {
		"turns": {
			"received": turns,
			"no_reply": _totals(NO_REPLY_TURNS),
			"errors": errors,
			"failed": sum(errors.values()),
		},
		"threads_created": _totals(THREADS_CREATED),
		"runs": {
			"outcomes": _totals(RUN_OUTCOMES, "outcome"),
			"status_polls": _totals(RUN_POLLS),
			"status_fetch_errors": _totals(RUN_FETCH_ERRORS),
		},
		"stages": stage_timings(),
	}
