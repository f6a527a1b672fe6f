import asyncio
from typing import List, Sequence, Union

import pytest
from awx_job_client.errors import (
    APIError,
    AttemptsExhaustedError,
    TransportError,
    WatchTimeoutError,
)
from awx_job_client.models import UNBOUNDED, BackoffConfig, JobSnapshot, JobStatus, WatchConfig
from awx_job_client.watcher import BackoffWatcher, CheckOnceWatcher, PollingWatcher


class ScriptedPoller:
    """Answers polls from a script of statuses or exceptions."""

    def __init__(self, script: Sequence[Union[str, Exception]]):
        self.script = list(script)
        self.calls = 0

    async def poll(self, job_id: int) -> JobSnapshot:
        step = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        if isinstance(step, Exception):
            raise step
        return JobSnapshot(
            id=job_id,
            status=JobStatus(step),
            raw_response={"id": job_id, "status": step},
        )


class SleepRecorder:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.mark.asyncio
async def test_resolves_with_terminal_snapshot(sleeps):
    """Scenario: running, running, successful with a bound of 5 polls."""
    poller = ScriptedPoller(["running", "running", "successful"])
    watcher = PollingWatcher(sleep=sleeps)

    result = await watcher.watch(poller, 7, WatchConfig(poll_interval=1, max_attempts=5))

    assert result.id == 7
    assert result.status == JobStatus.successful
    assert poller.calls == 3
    assert sleeps.delays == [1, 1]


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["failed", "error", "canceled"])
async def test_unsuccessful_terminal_status_is_not_an_error(sleeps, status):
    poller = ScriptedPoller(["pending", "waiting", status])

    result = await PollingWatcher(sleep=sleeps).watch(poller, 1, WatchConfig())

    assert result.status == JobStatus(status)
    assert poller.calls == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("max_attempts", [1, 2, 5])
async def test_exhaustion_polls_exactly_max_attempts(sleeps, max_attempts):
    poller = ScriptedPoller(["running"])

    with pytest.raises(AttemptsExhaustedError) as exc_info:
        await PollingWatcher(sleep=sleeps).watch(
            poller, 3, WatchConfig(poll_interval=0.5, max_attempts=max_attempts)
        )

    assert poller.calls == max_attempts
    # no sleep after the last poll
    assert len(sleeps.delays) == max_attempts - 1
    assert exc_info.value.max_attempts == max_attempts
    assert exc_info.value.snapshot.id == 3
    assert exc_info.value.snapshot.status == JobStatus.running


@pytest.mark.asyncio
async def test_terminal_on_last_allowed_poll_wins_over_exhaustion(sleeps):
    poller = ScriptedPoller(["running", "running", "successful"])

    result = await PollingWatcher(sleep=sleeps).watch(
        poller, 1, WatchConfig(max_attempts=3)
    )

    assert result.status == JobStatus.successful
    assert poller.calls == 3


@pytest.mark.asyncio
async def test_unbounded_waits_for_terminal_status(sleeps):
    poller = ScriptedPoller(["running"] * 500 + ["successful"])

    result = await PollingWatcher(sleep=sleeps).watch(
        poller, 1, WatchConfig(poll_interval=0, max_attempts=UNBOUNDED)
    )

    assert result.status == JobStatus.successful
    assert poller.calls == 501


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error", [TransportError("connection reset"), APIError(500, "Server error")]
)
async def test_poll_failure_stops_immediately(sleeps, error):
    poller = ScriptedPoller(["pending", "running", error, "successful"])

    with pytest.raises(type(error)) as exc_info:
        await PollingWatcher(sleep=sleeps).watch(
            poller, 1, WatchConfig(max_attempts=UNBOUNDED)
        )

    assert exc_info.value is error
    assert poller.calls == 3
    assert len(sleeps.delays) == 2


@pytest.mark.asyncio
async def test_unexpected_error_in_background_task_is_delivered(sleeps):
    poller = ScriptedPoller([RuntimeError("boom")])

    with pytest.raises(RuntimeError, match="boom"):
        await PollingWatcher(sleep=sleeps).watch(poller, 1, WatchConfig())


@pytest.mark.asyncio
async def test_status_change_callback_fires_on_changes_only(sleeps):
    seen = []

    async def on_status_change(snapshot):
        seen.append(snapshot.status)

    poller = ScriptedPoller(["pending", "pending", "running", "running", "successful"])
    watcher = PollingWatcher(on_status_change=on_status_change, sleep=sleeps)

    await watcher.watch(poller, 1, WatchConfig())

    assert seen == [JobStatus.pending, JobStatus.running, JobStatus.successful]


@pytest.mark.asyncio
async def test_timeout_cancels_background_loop():
    poller = ScriptedPoller(["running"])
    watcher = PollingWatcher()
    config = WatchConfig(poll_interval=0.01, max_attempts=UNBOUNDED, timeout=0.1)

    with pytest.raises(WatchTimeoutError) as exc_info:
        await watcher.watch(poller, 9, config)

    assert isinstance(exc_info.value, TimeoutError)
    assert exc_info.value.job_id == 9
    calls = poller.calls
    await asyncio.sleep(0.05)
    assert poller.calls == calls
    assert not [t for t in asyncio.all_tasks() if t.get_name() == "watch-workflow-job-9"]


@pytest.mark.asyncio
async def test_caller_cancellation_stops_background_loop():
    poller = ScriptedPoller(["running"])
    watcher = PollingWatcher()
    config = WatchConfig(poll_interval=0.01, max_attempts=UNBOUNDED)

    caller = asyncio.create_task(watcher.watch(poller, 4, config))
    await asyncio.sleep(0.05)
    caller.cancel()
    with pytest.raises(asyncio.CancelledError):
        await caller

    calls = poller.calls
    await asyncio.sleep(0.05)
    assert calls > 0
    assert poller.calls == calls


@pytest.mark.asyncio
async def test_check_once_returns_in_flight_snapshot():
    poller = ScriptedPoller(["running", "successful"])

    result = await CheckOnceWatcher().watch(poller, 1, WatchConfig(max_attempts=1))

    assert result.status == JobStatus.running
    assert poller.calls == 1


@pytest.mark.asyncio
async def test_backoff_delays_grow_and_cap(sleeps):
    poller = ScriptedPoller(["running"] * 5 + ["successful"])
    watcher = BackoffWatcher(
        backoff=BackoffConfig(backoff_factor=2.0, max_delay=5.0, jitter=False),
        sleep=sleeps,
    )

    await watcher.watch(poller, 1, WatchConfig(poll_interval=1.0))

    assert sleeps.delays == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_backoff_jitter_stays_within_twenty_percent():
    watcher = BackoffWatcher(backoff=BackoffConfig(backoff_factor=3.0, max_delay=100.0))
    config = WatchConfig(poll_interval=2.0)

    for attempt in range(1, 4):
        base = 2.0 * 3.0 ** (attempt - 1)
        delay = watcher._calculate_delay(attempt, config)
        assert base <= delay <= base * 1.2
