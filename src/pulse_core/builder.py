"""Build step: optional pre-build command followed by the compiler."""

import asyncio
import inspect
import logging
import time
from collections.abc import Callable, Sequence
from pathlib import Path

from pulse_core.cancel import CancelToken
from pulse_core.models import BuildOutcome, BuildResult, BuildTask
from pulse_core.notifier import NoOpNotifier, PulseNotifier
from pulse_core.process import kill_tree, process_group_kwargs, shell_command

logger = logging.getLogger(__name__)

DEFAULT_BUILD_COMMAND = ("go", "build")


class Builder:
    """Produce the output binary from a package by running external tools.

    Both the pre-build command and the build tool inherit the standard streams.
    Every subprocess is bound to the task's token: cancelling it kills the
    subprocess together with its descendants. The builder never runs the
    binary it produces.
    """

    def __init__(
        self,
        package_path: str | Path,
        output_path: str | Path,
        build_args: Sequence[str] = (),
        prebuild_command: str | None = None,
        build_command: Sequence[str] = DEFAULT_BUILD_COMMAND,
        notifier: PulseNotifier | None = None,
    ):
        """Initialize builder.

        Args:
            package_path: Package passed to the build tool
            output_path: Binary location handed to the build tool via -o
            build_args: Extra build tool arguments
            prebuild_command: Shell command run before every build
            build_command: Build tool invocation preceding the arguments
            notifier: Progress notifications (silent by default)
        """
        self.package_path = Path(package_path)
        self.output_path = Path(output_path)
        self.build_args = list(build_args)
        self.prebuild_command = prebuild_command or None
        self.build_command = list(build_command)
        self.notifier = notifier or NoOpNotifier()
        self._success_callbacks: list[Callable] = []
        self._pending_callbacks: set[asyncio.Task] = set()

    def new_task(self, token: CancelToken) -> BuildTask:
        """Create the task for one build attempt."""
        return BuildTask(
            package_path=self.package_path,
            output_path=self.output_path,
            token=token,
            build_args=list(self.build_args),
            prebuild_command=self.prebuild_command,
        )

    def command(self, task: BuildTask) -> list[str]:
        """Build tool argv for a task."""
        return [
            *self.build_command,
            "-o",
            str(task.output_path),
            *task.build_args,
            str(task.package_path),
        ]

    def on_success(self, callback: Callable[[BuildResult], None]) -> None:
        """Register a consumer of successful builds.

        Args:
            callback: Callable(result) - may be async
        """
        self._success_callbacks.append(callback)

    async def build(self, token: CancelToken) -> BuildResult:
        """Run one build attempt bound to token."""
        return await self.run_task(self.new_task(token))

    async def run_task(self, task: BuildTask) -> BuildResult:
        """Run the pre-build command (if any) and the build tool.

        Args:
            task: Build attempt

        Returns:
            BuildResult; never raises for subprocess failures or cancellation
        """
        start = time.monotonic()

        if task.prebuild_command:
            self.notifier.info(f"Pre-build: {task.prebuild_command}")
            result = await self._run(shell_command(task.prebuild_command), task.token, "Pre-build command")
            if not result.ok:
                return self._finish(result, start)

        self.notifier.info("Building...")
        logger.debug(f"Build command: {self.command(task)}")
        result = await self._run(self.command(task), task.token, "Build")
        return self._finish(result, start)

    async def _run(self, argv: list[str], token: CancelToken, label: str) -> BuildResult:
        if token.cancelled:
            return BuildResult(BuildOutcome.CANCELLED)

        try:
            proc = await asyncio.create_subprocess_exec(*argv, **process_group_kwargs())
        except OSError as e:
            return BuildResult(BuildOutcome.FAILED, error=f"{label} could not start: {e}")

        wait_task = asyncio.ensure_future(proc.wait())
        cancel_task = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({wait_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            await self._reap(proc, wait_task)
            raise
        finally:
            cancel_task.cancel()

        if proc.returncode is None:
            await self._reap(proc, wait_task)

        if token.cancelled:
            return BuildResult(BuildOutcome.CANCELLED, returncode=proc.returncode)
        if proc.returncode != 0:
            return BuildResult(
                BuildOutcome.FAILED,
                returncode=proc.returncode,
                error=f"{label} exited with code {proc.returncode}",
            )
        return BuildResult(BuildOutcome.SUCCESS, returncode=0)

    @staticmethod
    async def _reap(proc: asyncio.subprocess.Process, wait_task: asyncio.Future) -> None:
        logger.debug(f"Killing build process tree {proc.pid}")
        await kill_tree(proc)
        await asyncio.shield(wait_task)

    def _finish(self, result: BuildResult, start: float) -> BuildResult:
        result.duration = time.monotonic() - start

        if result.outcome == BuildOutcome.SUCCESS:
            self.notifier.info(f"Build succeeded ({result.duration_str})")
            self._notify_success(result)
        elif result.outcome == BuildOutcome.CANCELLED:
            self.notifier.info("Build aborted")
        else:
            self.notifier.error(f"Build failed: {result.error}")
        return result

    def _notify_success(self, result: BuildResult) -> None:
        for callback in self._success_callbacks:
            try:
                if inspect.iscoroutinefunction(callback):
                    task = asyncio.create_task(callback(result))
                    self._pending_callbacks.add(task)
                    task.add_done_callback(self._pending_callbacks.discard)
                else:
                    callback(result)
            except Exception as e:
                logger.exception(f"Error in build success callback: {e}")
