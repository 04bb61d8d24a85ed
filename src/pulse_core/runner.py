"""Supervision of the single target process."""

import asyncio
import logging
import threading
from collections.abc import Sequence
from pathlib import Path

from pulse_core.cancel import CancelToken
from pulse_core.models import RunnerRequest, RunnerState, RunningProcess
from pulse_core.notifier import NoOpNotifier, PulseNotifier
from pulse_core.process import force_kill, request_graceful_stop

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = 3.0


class Runner:
    """Keep at most one instance of the target binary alive.

    Callers only send requests: refresh() (stop the current instance, start a
    new one) and stop() (stop the current instance). Requests never block and
    coalesce - only the latest pending request is acted upon. The instance
    itself is owned by the listen() loop.

    States: IDLE -> STARTING -> RUNNING -> STOPPING -> IDLE, or
    STOPPING -> STARTING when a refresh supersedes the stop.
    """

    def __init__(
        self,
        binary_path: str | Path,
        working_dir: str | Path = ".",
        args: Sequence[str] = (),
        grace_period: float = DEFAULT_GRACE_PERIOD,
        notifier: PulseNotifier | None = None,
    ):
        """Initialize runner.

        Args:
            binary_path: Executable to supervise
            working_dir: Working directory of the process
            args: Arguments passed to the process
            grace_period: Seconds to wait after the interrupt before killing
            notifier: Progress notifications (silent by default)
        """
        self.binary_path = Path(binary_path)
        self.working_dir = Path(working_dir)
        self.args = list(args)
        self.grace_period = grace_period
        self.notifier = notifier or NoOpNotifier()
        self.state = RunnerState.IDLE

        self._current: RunningProcess | None = None
        self._lock = threading.Lock()
        self._pending: RunnerRequest | None = None
        self._wakeup = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def pid(self) -> int | None:
        """Pid of the live instance, if any."""
        instance = self._current
        if instance is None or not instance.alive:
            return None
        return instance.pid

    def refresh(self) -> None:
        """Request a restart of the target process."""
        self._request(RunnerRequest.REFRESH)

    def stop(self) -> None:
        """Request the target process to be stopped."""
        self._request(RunnerRequest.STOP)

    async def listen(self, token: CancelToken) -> None:
        """Drive the runner until token is cancelled, then stop the instance."""
        with self._lock:
            self._loop = asyncio.get_running_loop()

        cancel_task = asyncio.ensure_future(token.wait())
        try:
            while not token.cancelled:
                request = self._take()
                if request is None:
                    wake_task = asyncio.ensure_future(self._wakeup.wait())
                    try:
                        await asyncio.wait({wake_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
                    finally:
                        wake_task.cancel()
                    self._wakeup.clear()
                    continue

                await self._apply(request, token)
        finally:
            cancel_task.cancel()
            with self._lock:
                self._loop = None
            await self._stop_instance()
            self.state = RunnerState.IDLE
            logger.debug("Runner stopped")

    async def _apply(self, request: RunnerRequest, token: CancelToken) -> None:
        await self._stop_instance()

        # Requests that arrived while stopping: only the latest one counts
        newer = self._take()
        if newer is not None:
            request = newer

        if request == RunnerRequest.REFRESH and not token.cancelled:
            await self._start_instance()
        else:
            self.state = RunnerState.IDLE

    async def _start_instance(self) -> None:
        self.state = RunnerState.STARTING
        try:
            proc = await asyncio.create_subprocess_exec(
                str(self.binary_path),
                *self.args,
                cwd=str(self.working_dir),
            )
        except OSError as e:
            self.notifier.error(f"Failed to start {self.binary_path}: {e}")
            self.state = RunnerState.IDLE
            return

        instance = RunningProcess(process=proc, working_dir=self.working_dir, args=list(self.args))
        instance.supervisor = asyncio.create_task(self._supervise(instance))
        self._current = instance
        self.state = RunnerState.RUNNING
        self.notifier.info(f"Started {self.binary_path.name} (pid {proc.pid})")

    async def _supervise(self, instance: RunningProcess) -> None:
        returncode = await instance.process.wait()
        if instance.stopping:
            return

        if returncode != 0:
            self.notifier.warning(f"Process {instance.pid} exited with code {returncode}")
        else:
            self.notifier.info(f"Process {instance.pid} exited")
        if self._current is instance:
            self.state = RunnerState.IDLE

    async def _stop_instance(self) -> None:
        """Interrupt the instance, kill it after the grace period, and reap it."""
        instance = self._current
        if instance is None:
            return

        self.state = RunnerState.STOPPING
        instance.stopping = True
        supervisor = instance.supervisor

        if instance.alive:
            logger.debug(f"Stopping process {instance.pid}")
            request_graceful_stop(instance.process)
            try:
                await asyncio.wait_for(asyncio.shield(supervisor), self.grace_period)
            except asyncio.TimeoutError:
                self.notifier.warning(
                    f"Process {instance.pid} did not exit within {self.grace_period:g}s, killing it"
                )
                force_kill(instance.process)

        await supervisor
        self._current = None
        logger.debug(f"Process {instance.pid} stopped (code {instance.process.returncode})")

    def _request(self, request: RunnerRequest) -> None:
        with self._lock:
            self._pending = request
            loop = self._loop
        if loop is None:
            # Picked up once listen() starts
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._wakeup.set()
        else:
            loop.call_soon_threadsafe(self._wakeup.set)

    def _take(self) -> RunnerRequest | None:
        with self._lock:
            request, self._pending = self._pending, None
        return request
