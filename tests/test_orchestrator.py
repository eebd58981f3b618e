"""
Tests for the run polling loop.
Run with: pytest tests/test_orchestrator.py
"""

import asyncio
import time
from unittest.mock import AsyncMock

import pytest

from agent_proxy.core.conversation import (
	AgentHandle,
	OrchestratorConfig,
	RunEngine,
	RunOrchestrator,
	RunStatus,
)
from agent_proxy.core.errors import (
	BackendUnavailable,
	RunCreationFailed,
	RunFailed,
	RunTimeout,
)
from tests.conftest import FakeClock, ScriptedBackend

AGENT = AgentHandle(id="agent-1", name="Helper")


async def _thread(backend: ScriptedBackend) -> str:
	thread = await backend.create_thread()
	await backend.append_message(thread.id, "user", "Hello")
	return thread.id


def _orchestrator(backend, config, clock: FakeClock) -> RunOrchestrator:
	return RunOrchestrator(backend, config, clock=clock, sleep=clock.sleep)


# ---------------------------------------------------------------------------
# OrchestratorConfig
# ---------------------------------------------------------------------------

def test_config_rejects_non_positive_interval():
	with pytest.raises(ValueError):
		OrchestratorConfig(poll_interval=0, timeout=10)


def test_config_rejects_ceiling_below_interval():
	with pytest.raises(ValueError):
		OrchestratorConfig(poll_interval=1.0, timeout=0.5)


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_completes_after_pending_polls(config, clock):
	"""Repeated pending statuses are not an error; completion ends the loop."""
	backend = ScriptedBackend(["queued", "in_progress", "in_progress", "completed"])
	thread_id = await _thread(backend)

	outcome = await _orchestrator(backend, config, clock).start_and_await_run(thread_id, AGENT)

	assert outcome.run.status is RunStatus.COMPLETED
	assert outcome.polls == 4
	assert clock.sleeps == [0.5, 0.5, 0.5, 0.5]
	assert backend.calls["create_run"] == 1


@pytest.mark.asyncio
async def test_fixed_poll_cadence(config, clock):
	"""The interval does not back off."""
	backend = ScriptedBackend(["in_progress"] * 10 + ["completed"])
	thread_id = await _thread(backend)

	await _orchestrator(backend, config, clock).start_and_await_run(thread_id, AGENT)

	assert set(clock.sleeps) == {0.5}


@pytest.mark.asyncio
async def test_run_already_complete_at_creation(config, clock):
	backend = ScriptedBackend()
	thread_id = await _thread(backend)
	orch = _orchestrator(backend, config, clock)
	run = await backend.create_run(thread_id, AGENT)
	run = run.model_copy(update={"status": RunStatus.COMPLETED})

	outcome = await orch.await_run(run)

	assert outcome.polls == 0
	assert clock.sleeps == []


# ---------------------------------------------------------------------------
# Failure states
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_failed_run_carries_reason(config, clock):
	backend = ScriptedBackend(["in_progress", "failed"], failure_reason="content_filter")
	thread_id = await _thread(backend)

	with pytest.raises(RunFailed) as exc_info:
		await _orchestrator(backend, config, clock).start_and_await_run(thread_id, AGENT)

	assert exc_info.value.detail == "content_filter"
	assert exc_info.value.status == "failed"
	assert exc_info.value.thread_id == thread_id


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["cancelled", "expired", "canceled"])
async def test_other_terminal_statuses_fail(config, clock, status):
	backend = ScriptedBackend([status])
	thread_id = await _thread(backend)

	with pytest.raises(RunFailed) as exc_info:
		await _orchestrator(backend, config, clock).start_and_await_run(thread_id, AGENT)

	assert "cancelled" in exc_info.value.detail or "expired" in exc_info.value.detail


@pytest.mark.asyncio
async def test_unknown_status_is_terminal(config, clock):
	backend = ScriptedBackend(["exploded"])
	thread_id = await _thread(backend)

	with pytest.raises(RunFailed) as exc_info:
		await _orchestrator(backend, config, clock).start_and_await_run(thread_id, AGENT)

	assert exc_info.value.status == "unknown"


@pytest.mark.asyncio
async def test_creation_failure_is_not_retried(config, clock):
	backend = ScriptedBackend()
	backend.reject_runs = True
	thread_id = await _thread(backend)

	with pytest.raises(RunCreationFailed):
		await _orchestrator(backend, config, clock).start_and_await_run(thread_id, AGENT)

	assert backend.calls["create_run"] == 1
	assert backend.calls["get_run"] == 0
	assert clock.sleeps == []


@pytest.mark.asyncio
async def test_unreachable_engine_on_create_is_creation_failure(config, clock):
	backend = ScriptedBackend()
	backend.create_run = AsyncMock(side_effect=BackendUnavailable("connection refused"))
	thread_id = await _thread(backend)

	with pytest.raises(RunCreationFailed) as exc_info:
		await _orchestrator(backend, config, clock).start_and_await_run(thread_id, AGENT)

	assert "connection refused" in exc_info.value.detail
	backend.create_run.assert_awaited_once()


# ---------------------------------------------------------------------------
# Transient fetch errors
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_transient_fetch_errors_are_retried(config, clock):
	backend = ScriptedBackend(["in_progress", "completed"])
	backend.fetch_errors = 3
	thread_id = await _thread(backend)

	outcome = await _orchestrator(backend, config, clock).start_and_await_run(thread_id, AGENT)

	assert outcome.run.status is RunStatus.COMPLETED
	assert backend.calls["get_run"] == 5


@pytest.mark.asyncio
async def test_too_many_fetch_errors_become_run_failed(config, clock):
	backend = ScriptedBackend(["completed"])
	backend.fetch_errors = 4
	thread_id = await _thread(backend)

	with pytest.raises(RunFailed) as exc_info:
		await _orchestrator(backend, config, clock).start_and_await_run(thread_id, AGENT)

	assert "network blip" in exc_info.value.detail
	assert backend.calls["get_run"] == 4


@pytest.mark.asyncio
async def test_fetch_error_count_resets_after_success(config, clock):
	"""Only consecutive failures count against the retry limit."""
	backend = ScriptedBackend(["in_progress", "in_progress", "completed"])
	thread_id = await _thread(backend)
	orch = _orchestrator(backend, config, clock)
	real_get_run = backend.get_run
	script = iter(["err", "err", "err", "ok", "err", "err", "err", "ok", "ok"])

	async def flaky(thread_id, run_id):
		if next(script) == "err":
			raise BackendUnavailable("blip")
		return await real_get_run(thread_id, run_id)

	backend.get_run = flaky

	outcome = await orch.start_and_await_run(thread_id, AGENT)
	assert outcome.run.status is RunStatus.COMPLETED


@pytest.mark.asyncio
async def test_fetch_errors_do_not_reset_timeout_budget(clock):
	config = OrchestratorConfig(poll_interval=0.5, timeout=5.0, max_fetch_retries=3)
	backend = ScriptedBackend(["in_progress"])
	backend.fetch_errors = 3
	thread_id = await _thread(backend)

	with pytest.raises(RunTimeout):
		await _orchestrator(backend, config, clock).start_and_await_run(thread_id, AGENT)

	assert clock.now == pytest.approx(5.0)


# ---------------------------------------------------------------------------
# Timeout
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_never_completing_run_times_out_within_bound(config, clock):
	backend = ScriptedBackend(["in_progress"])
	thread_id = await _thread(backend)

	with pytest.raises(RunTimeout) as exc_info:
		await _orchestrator(backend, config, clock).start_and_await_run(thread_id, AGENT)

	assert exc_info.value.retryable
	assert config.timeout <= clock.now <= config.timeout + config.poll_interval
	assert backend.calls["get_run"] == 240


@pytest.mark.asyncio
async def test_final_poll_at_ceiling_catches_completion(clock):
	"""A run finishing inside the last partial interval is not a timeout."""
	config = OrchestratorConfig(poll_interval=0.5, timeout=1.2)
	backend = ScriptedBackend(["in_progress", "in_progress", "completed"])
	thread_id = await _thread(backend)

	outcome = await _orchestrator(backend, config, clock).start_and_await_run(thread_id, AGENT)

	assert outcome.run.status is RunStatus.COMPLETED
	assert clock.sleeps[:2] == [0.5, 0.5]
	assert clock.sleeps[2] == pytest.approx(0.2)
	assert clock.now == pytest.approx(1.2)


@pytest.mark.asyncio
async def test_timeout_leaves_run_alone_by_default(config, clock):
	backend = ScriptedBackend(["queued"])
	thread_id = await _thread(backend)

	with pytest.raises(RunTimeout):
		await _orchestrator(backend, config, clock).start_and_await_run(thread_id, AGENT)

	assert backend.cancelled == []


@pytest.mark.asyncio
async def test_timeout_cancels_run_when_configured(clock):
	config = OrchestratorConfig(poll_interval=0.5, timeout=2.0, cancel_on_timeout=True)
	backend = ScriptedBackend(["queued"])
	thread_id = await _thread(backend)

	with pytest.raises(RunTimeout):
		await _orchestrator(backend, config, clock).start_and_await_run(thread_id, AGENT)

	assert backend.cancelled == list(backend.runs)


@pytest.mark.asyncio
async def test_cancel_errors_do_not_mask_timeout(clock):
	config = OrchestratorConfig(poll_interval=0.5, timeout=1.0, cancel_on_timeout=True)
	backend = ScriptedBackend(["queued"])
	backend.cancel_run = AsyncMock(side_effect=BackendUnavailable("nope"))
	thread_id = await _thread(backend)

	with pytest.raises(RunTimeout):
		await _orchestrator(backend, config, clock).start_and_await_run(thread_id, AGENT)

	backend.cancel_run.assert_awaited_once()


def test_run_engines_must_define_cancellation():
	class NoCancel(RunEngine):
		async def create_run(self, thread_id, agent):
			raise AssertionError

		async def get_run(self, thread_id, run_id):
			raise AssertionError

	with pytest.raises(TypeError):
		NoCancel()


# ---------------------------------------------------------------------------
# Slow and rejected status fetches
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_hanging_status_fetch_cannot_outlive_the_ceiling():
	"""Uses the real clock: a fetch that never returns is cut off at the deadline."""
	config = OrchestratorConfig(poll_interval=0.1, timeout=0.3)
	backend = ScriptedBackend(["in_progress"])
	thread_id = await _thread(backend)

	async def hang(thread_id, run_id):
		await asyncio.sleep(2.0)
		raise AssertionError("fetch should have been abandoned")

	backend.get_run = hang
	orch = RunOrchestrator(backend, config)

	started = time.monotonic()
	with pytest.raises(RunTimeout):
		await orch.start_and_await_run(thread_id, AGENT)
	wall = time.monotonic() - started

	assert wall <= config.timeout + config.poll_interval + 0.2


@pytest.mark.asyncio
async def test_slow_status_fetch_within_deadline_still_completes():
	config = OrchestratorConfig(poll_interval=0.05, timeout=1.0)
	backend = ScriptedBackend(["in_progress", "completed"])
	thread_id = await _thread(backend)
	real_get_run = backend.get_run

	async def slow(thread_id, run_id):
		await asyncio.sleep(0.1)
		return await real_get_run(thread_id, run_id)

	backend.get_run = slow

	outcome = await RunOrchestrator(backend, config).start_and_await_run(thread_id, AGENT)
	assert outcome.run.status is RunStatus.COMPLETED
	assert outcome.polls == 2


@pytest.mark.asyncio
async def test_rejected_status_fetch_fails_without_retrying(config, clock):
	backend = ScriptedBackend(["in_progress"])
	backend.get_run = AsyncMock(side_effect=RunFailed("Run run-1 could not be fetched: 404"))
	thread_id = await _thread(backend)

	with pytest.raises(RunFailed) as exc_info:
		await _orchestrator(backend, config, clock).start_and_await_run(thread_id, AGENT)

	assert not exc_info.value.retryable
	backend.get_run.assert_awaited_once()
	assert clock.now == pytest.approx(config.poll_interval)
