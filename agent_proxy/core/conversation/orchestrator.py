import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from loguru import logger

from agent_proxy.core.errors import (
	BackendUnavailable,
	RunCreationFailed,
	RunFailed,
	RunTimeout,
)
from agent_proxy.core.metrics import RUN_FETCH_ERRORS, RUN_OUTCOMES, RUN_POLLS

from .backend import RunEngine
from .models import AgentHandle, Run, RunBucket


@dataclass(frozen=True)
class OrchestratorConfig:
	poll_interval: float = 0.5
	timeout: float = 120.0
	max_fetch_retries: int = 3
	cancel_on_timeout: bool = False

	def __post_init__(self) -> None:
		if self.poll_interval <= 0:
			raise ValueError("poll_interval must be > 0")
		if self.timeout < self.poll_interval:
			raise ValueError("timeout must be >= poll_interval")
		if self.max_fetch_retries < 0:
			raise ValueError("max_fetch_retries must be >= 0")


@dataclass
class RunOutcome:
	run: Run
	polls: int
	elapsed: float


class RunOrchestrator:
	"""
	Starts a run and waits for it to reach a terminal state.

	The engine only exposes status by polling, so this is a bounded wait loop
	with a fixed cadence:

	- pending (queued / in_progress / requires_action): sleep one interval and
	  poll again, until the ceiling is reached.
	- completed: return the run.
	- failed / cancelled / expired: raise RunFailed with the engine's reason.
	- status fetch raises BackendUnavailable or overruns its deadline: retry
	  up to `max_fetch_retries` consecutive times, then raise RunFailed.
	  Retries consume the same timeout budget.
	- status fetch is rejected outright (RunFailed from the engine): give up.

	Each status fetch is bounded by the remaining budget plus one interval.

	The last sleep before the ceiling is shortened to the remaining budget and
	followed by one final poll, so a run finishing right at the ceiling is not
	reported as a timeout. Worst case wall time is the ceiling plus one poll
	interval.
	"""

	def __init__(
		self,
		engine: RunEngine,
		config: OrchestratorConfig,
		*,
		clock: Callable[[], float] = time.monotonic,
		sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
	) -> None:
		self.engine = engine
		self.config = config
		self._clock = clock
		self._sleep = sleep

	async def start_run(self, thread_id: str, agent: AgentHandle) -> Run:
		try:
			run = await self.engine.create_run(thread_id, agent)
		except RunCreationFailed:
			RUN_OUTCOMES.labels("creation_failed").inc()
			raise
		except BackendUnavailable as e:
			RUN_OUTCOMES.labels("creation_failed").inc()
			raise RunCreationFailed(
				f"Run engine unavailable: {e.detail}", thread_id=thread_id
			) from e

		logger.info(f"Started run {run.id} on thread={thread_id} status={run.status.value}")
		return run

	async def start_and_await_run(self, thread_id: str, agent: AgentHandle) -> RunOutcome:
		run = await self.start_run(thread_id, agent)
		return await self.await_run(run)

	async def await_run(self, run: Run) -> RunOutcome:
		cfg = self.config
		start = self._clock()
		polls = 0
		fetch_failures = 0
		last_status = run.status

		while True:
			elapsed = self._clock() - start

			if run.bucket is RunBucket.SUCCESS:
				RUN_OUTCOMES.labels("completed").inc()
				logger.info(
					f"Run {run.id} completed after {polls} polls in {elapsed:.1f}s"
				)
				return RunOutcome(run=run, polls=polls, elapsed=elapsed)

			if run.bucket is RunBucket.TERMINAL_FAILURE:
				RUN_OUTCOMES.labels("failed").inc()
				reason = run.failure_reason or f"Run ended with status '{run.status.value}'"
				logger.error(
					f"Run {run.id} {run.status.value} after {elapsed:.1f}s: {reason}"
				)
				raise RunFailed(reason, status=run.status.value, thread_id=run.thread_id)

			if elapsed >= cfg.timeout:
				RUN_OUTCOMES.labels("timeout").inc()
				logger.warning(
					f"Run {run.id} still '{run.status.value}' after {elapsed:.1f}s "
					f"({polls} polls), giving up"
				)
				if cfg.cancel_on_timeout:
					await self._cancel_quietly(run)
				raise RunTimeout(
					f"Run did not finish within {cfg.timeout:g}s", thread_id=run.thread_id
				)

			await self._sleep(min(cfg.poll_interval, cfg.timeout - elapsed))

			fetch_deadline = max(cfg.timeout - (self._clock() - start), 0) + cfg.poll_interval
			try:
				RUN_POLLS.inc()
				polls += 1
				run = await asyncio.wait_for(
					self.engine.get_run(run.thread_id, run.id), timeout=fetch_deadline
				)
			except RunFailed as e:
				RUN_OUTCOMES.labels("failed").inc()
				logger.error(f"Status fetch for run {run.id} rejected: {e.detail}")
				raise
			except asyncio.TimeoutError as e:
				if self._clock() - start >= cfg.timeout:
					continue
				RUN_FETCH_ERRORS.inc()
				fetch_failures += 1
				logger.warning(
					f"Status fetch for run {run.id} exceeded {fetch_deadline:.1f}s "
					f"({fetch_failures}/{cfg.max_fetch_retries})"
				)
				if fetch_failures > cfg.max_fetch_retries:
					RUN_OUTCOMES.labels("failed").inc()
					raise RunFailed(
						"Could not fetch run status: request timed out",
						thread_id=run.thread_id,
					) from e
				continue
			except BackendUnavailable as e:
				RUN_FETCH_ERRORS.inc()
				fetch_failures += 1
				logger.warning(
					f"Status fetch for run {run.id} failed "
					f"({fetch_failures}/{cfg.max_fetch_retries}): {e.detail}"
				)
				if fetch_failures > cfg.max_fetch_retries:
					RUN_OUTCOMES.labels("failed").inc()
					raise RunFailed(
						f"Could not fetch run status: {e.detail}",
						thread_id=run.thread_id,
					) from e
				continue

			fetch_failures = 0
			if run.status is not last_status:
				logger.debug(
					f"Run {run.id} status change: {last_status.value} -> "
					f"{run.status.value} at {self._clock() - start:.1f}s"
				)
				last_status = run.status

	async def _cancel_quietly(self, run: Run) -> None:
		try:
			await self.engine.cancel_run(run.thread_id, run.id)
			logger.info(f"Requested cancellation of abandoned run {run.id}")
		except Exception:
			logger.exception(f"Cancelling run {run.id} failed (continuing)")
