"""Tests for the Runner."""

import asyncio

import pytest
import pytest_asyncio
from conftest import pid_alive, posix_only, read_pids, wait_until

from pulse_core.cancel import CancelToken
from pulse_core.models import RunnerState
from pulse_core.runner import Runner

pytestmark = posix_only


@pytest_asyncio.fixture
async def listening():
    """Start runner.listen() in the background; stop it on teardown."""
    started = []

    async def start(runner: Runner) -> asyncio.Task:
        token = CancelToken()
        task = asyncio.create_task(runner.listen(token))
        started.append((token, task))
        return task

    yield start

    for token, task in started:
        token.cancel()
        await asyncio.wait_for(task, 10.0)


def runs(workdir):
    return read_pids(workdir / "runs.log")


@pytest.mark.asyncio
async def test_refresh_starts_process(program, workdir, notifier, listening):
    runner = Runner(program, working_dir=workdir, args=["--port", "8080"], notifier=notifier)
    await listening(runner)

    runner.refresh()
    await wait_until(lambda: runs(workdir) and runner.state == RunnerState.RUNNING)

    pid = runs(workdir)[0]
    assert runner.pid == pid
    assert (workdir / "runs.log").read_text().split()[1:] == ["--port", "8080"]
    assert f"Started app (pid {pid})" in notifier.texts("info")


@pytest.mark.asyncio
async def test_refresh_before_listen_is_kept(program, workdir, listening):
    runner = Runner(program, working_dir=workdir)
    runner.refresh()

    await listening(runner)

    await wait_until(lambda: runner.state == RunnerState.RUNNING)


@pytest.mark.asyncio
async def test_refresh_restarts_process(program, workdir, listening):
    runner = Runner(program, working_dir=workdir)
    await listening(runner)

    runner.refresh()
    await wait_until(lambda: len(runs(workdir)) == 1)
    runner.refresh()
    await wait_until(lambda: len(runs(workdir)) == 2 and runner.state == RunnerState.RUNNING)

    first, second = runs(workdir)
    assert not pid_alive(first)
    assert runner.pid == second


@pytest.mark.asyncio
async def test_stop(program, workdir, listening):
    runner = Runner(program, working_dir=workdir)
    await listening(runner)
    runner.refresh()
    await wait_until(lambda: runner.state == RunnerState.RUNNING)
    pid = runner.pid

    runner.stop()
    await wait_until(lambda: runner.state == RunnerState.IDLE)

    assert runner.pid is None
    assert not pid_alive(pid)


@pytest.mark.asyncio
async def test_stop_when_idle_is_noop(program, workdir, listening):
    runner = Runner(program, working_dir=workdir)
    await listening(runner)

    runner.stop()
    await asyncio.sleep(0.1)

    assert runner.state == RunnerState.IDLE
    assert runs(workdir) == []


@pytest.mark.asyncio
async def test_kill_after_grace_period(program, workdir, notifier, listening):
    runner = Runner(program, working_dir=workdir, args=["--ignore-sigint"], grace_period=0.3, notifier=notifier)
    await listening(runner)
    runner.refresh()
    await wait_until(lambda: runs(workdir) and runner.state == RunnerState.RUNNING)
    pid = runner.pid

    runner.stop()
    await wait_until(lambda: runner.state == RunnerState.IDLE, timeout=5.0)

    assert not pid_alive(pid)
    assert f"Process {pid} did not exit within 0.3s, killing it" in notifier.texts("warning")


@pytest.mark.asyncio
async def test_pending_requests_coalesce(program, workdir, listening):
    runner = Runner(program, working_dir=workdir)
    for _ in range(5):
        runner.refresh()

    await listening(runner)
    await wait_until(lambda: runner.state == RunnerState.RUNNING)
    await asyncio.sleep(0.3)

    assert len(runs(workdir)) == 1


@pytest.mark.asyncio
async def test_latest_request_wins(program, workdir, listening):
    runner = Runner(program, working_dir=workdir)
    runner.refresh()
    runner.stop()

    await listening(runner)
    await asyncio.sleep(0.3)

    assert runner.state == RunnerState.IDLE
    assert runs(workdir) == []


@pytest.mark.asyncio
async def test_unexpected_exit_is_reported(program, workdir, notifier, listening):
    runner = Runner(program, working_dir=workdir, args=["--exit", "3"], notifier=notifier)
    await listening(runner)

    runner.refresh()
    await wait_until(lambda: any("exited with code 3" in m for m in notifier.texts("warning")))

    await wait_until(lambda: runner.state == RunnerState.IDLE)
    assert runner.pid is None


@pytest.mark.asyncio
async def test_spawn_failure(tmp_path, workdir, notifier, listening):
    runner = Runner(tmp_path / "missing", working_dir=workdir, notifier=notifier)
    await listening(runner)

    runner.refresh()
    await wait_until(lambda: notifier.texts("error"))

    assert notifier.texts("error")[0].startswith(f"Failed to start {tmp_path / 'missing'}")
    assert runner.state == RunnerState.IDLE


@pytest.mark.asyncio
async def test_cancel_stops_process(program, workdir):
    runner = Runner(program, working_dir=workdir)
    token = CancelToken()
    task = asyncio.create_task(runner.listen(token))
    runner.refresh()
    await wait_until(lambda: runner.state == RunnerState.RUNNING)
    pid = runner.pid

    token.cancel()
    await asyncio.wait_for(task, 5.0)

    assert not pid_alive(pid)
    assert runner.state == RunnerState.IDLE
