import asyncio
import random
from typing import Any, Awaitable, Callable, Optional, Protocol

from loguru import logger

from awx_job_client.errors import AttemptsExhaustedError, WatchTimeoutError
from awx_job_client.models import BackoffConfig, JobSnapshot, JobStatus, WatchConfig

StatusCallback = Callable[[JobSnapshot], Awaitable[Any]]
SleepFunc = Callable[[float], Awaitable[Any]]


class Poller(Protocol):
    async def poll(self, job_id: int) -> JobSnapshot: ...


class JobWatchStrategy(Protocol):
    """Observes a launched job until it completes.

    Returns the final snapshot or raises the one error that ended the watch.
    """

    async def watch(
        self, poller: Poller, job_id: int, config: WatchConfig
    ) -> JobSnapshot: ...


class CheckOnceWatcher:
    """Polls exactly once and returns the snapshot whatever its status"""

    def __init__(self):
        self.logger = logger

    async def watch(
        self, poller: Poller, job_id: int, config: WatchConfig
    ) -> JobSnapshot:
        snapshot = await poller.poll(job_id)
        self.logger.info(f"Job {job_id} checked once: {snapshot.status.value}")
        return snapshot


class PollingWatcher:
    """Polls a job at a fixed interval until it reaches a terminal status.

    At most `config.max_attempts` polls are performed: the attempt counter is
    incremented after each successful poll and compared with the bound before
    sleeping, so the last poll is never followed by a wasted delay. A failed
    poll ends the watch immediately with that error.

    The loop runs in a background task that resolves a single future. When
    the caller stops waiting (cancellation or `config.timeout`) the task is
    cancelled before `watch` returns.
    """

    def __init__(
        self,
        on_status_change: Optional[StatusCallback] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.on_status_change = on_status_change
        self.logger = logger
        self._sleep = sleep

    async def watch(
        self, poller: Poller, job_id: int, config: WatchConfig
    ) -> JobSnapshot:
        outcome: asyncio.Future = asyncio.get_running_loop().create_future()
        task = asyncio.create_task(
            self._run(poller, job_id, config, outcome),
            name=f"watch-workflow-job-{job_id}",
        )
        try:
            if config.timeout is None:
                return await outcome
            try:
                return await asyncio.wait_for(outcome, config.timeout)
            except asyncio.TimeoutError:
                self.logger.warning(
                    f"Gave up waiting for job {job_id} after {config.timeout}s"
                )
                raise WatchTimeoutError(job_id, config.timeout) from None
        finally:
            if not task.done():
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _run(
        self,
        poller: Poller,
        job_id: int,
        config: WatchConfig,
        outcome: asyncio.Future,
    ) -> None:
        try:
            snapshot = await self._converge(poller, job_id, config)
        except asyncio.CancelledError:
            if not outcome.done():
                outcome.cancel()
            raise
        except Exception as e:
            if outcome.done():
                self.logger.debug(f"Dropping late error for job {job_id}: {e!r}")
            else:
                outcome.set_exception(e)
        else:
            if not outcome.done():
                outcome.set_result(snapshot)

    async def _converge(
        self, poller: Poller, job_id: int, config: WatchConfig
    ) -> JobSnapshot:
        attempt = 0
        last_status: Optional[JobStatus] = None

        while True:
            snapshot = await poller.poll(job_id)
            attempt += 1

            await self._handle_status_change(snapshot, last_status)
            last_status = snapshot.status

            if snapshot.status.is_terminal:
                self.logger.info(
                    f"Job {job_id} finished as {snapshot.status.value} after {attempt} polls"
                )
                return snapshot

            if config.bounded and attempt >= config.max_attempts:
                self.logger.warning(
                    f"Job {job_id} still {snapshot.status.value} after {attempt} polls"
                )
                raise AttemptsExhaustedError(config.max_attempts, snapshot)

            await self._wait_before_retry(attempt, config)

    async def _handle_status_change(
        self, snapshot: JobSnapshot, last_status: Optional[JobStatus]
    ) -> None:
        """Invoke the status change callback if the status has changed"""
        if last_status != snapshot.status and self.on_status_change is not None:
            self.logger.debug(f"Job {snapshot.id} status changed to {snapshot.status.value}")
            await self.on_status_change(snapshot)

    def _calculate_delay(self, attempt: int, config: WatchConfig) -> float:
        return config.poll_interval

    async def _wait_before_retry(self, attempt: int, config: WatchConfig) -> None:
        delay = self._calculate_delay(attempt, config)
        self.logger.debug(f"Job still in flight, waiting {delay:.2f}s before next attempt")
        await self._sleep(delay)


class BackoffWatcher(PollingWatcher):
    """Polls with exponential backoff, starting from `config.poll_interval`"""

    def __init__(
        self,
        backoff: Optional[BackoffConfig] = None,
        on_status_change: Optional[StatusCallback] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        super().__init__(on_status_change=on_status_change, sleep=sleep)
        self.backoff = backoff or BackoffConfig()

    def _calculate_delay(self, attempt: int, config: WatchConfig) -> float:
        delay = min(
            config.poll_interval * (self.backoff.backoff_factor ** (attempt - 1)),
            self.backoff.max_delay,
        )

        # Add random jitter between 0-20% of the delay
        if self.backoff.jitter:
            delay *= 1 + 0.2 * random.random()
        return delay
