"""Orchestrator: ties the watcher, builder and runner into the reload loop."""

import asyncio
import logging
from pathlib import Path

from pulse_core.builder import Builder
from pulse_core.cancel import CancelToken
from pulse_core.config import PulseConfig, output_binary_path
from pulse_core.errors import WalkCancelledError
from pulse_core.file_watcher import FileWatcher
from pulse_core.ignore import collect_ignore_patterns
from pulse_core.models import BuildResult, RestartPolicy
from pulse_core.notifier import NoOpNotifier, PulseNotifier
from pulse_core.runner import Runner
from pulse_core.watchers import WatcherConfig

logger = logging.getLogger(__name__)


class Orchestrator:
    """Main reload loop. Primary embed point.

    Every change signal stops the runner (under RestartPolicy.STOP_FIRST),
    cancels the in-flight build and starts a new one; a successful build
    refreshes the runner. The loop itself only waits on signals - builds and
    process supervision run as separate tasks.

    Usage (Embedded):
        orchestrator = Orchestrator.from_config(config)
        token = CancelToken()
        await orchestrator.run(token)   # until token.cancel()
    """

    def __init__(
        self,
        config: PulseConfig,
        watcher: FileWatcher,
        builder: Builder,
        runner: Runner,
        notifier: PulseNotifier | None = None,
    ):
        """Initialize orchestrator.

        Args:
            config: Run configuration
            watcher: Source of change signals
            builder: Builds the output binary
            runner: Supervises the output binary
            notifier: Optional notification handler (defaults to NoOpNotifier - silent)
        """
        self.config = config
        self.watcher = watcher
        self.builder = builder
        self.runner = runner
        self.notifier = notifier or NoOpNotifier()

        self.builds_started = 0
        self.last_result: BuildResult | None = None
        self._token: CancelToken | None = None
        self._build_token: CancelToken | None = None
        self._build_task: asyncio.Task | None = None

    @classmethod
    def from_config(
        cls,
        config: PulseConfig,
        notifier: PulseNotifier | None = None,
        output_path: str | Path | None = None,
    ) -> "Orchestrator":
        """Wire a watcher, builder and runner from a configuration.

        Args:
            config: Run configuration
            notifier: Shared by all components
            output_path: Binary location (derived from the package path if omitted)

        Returns:
            Ready-to-run Orchestrator
        """
        output_path = Path(output_path) if output_path else output_binary_path(config.package_path)
        logger.debug(f"Output binary path: {output_path}")

        patterns = collect_ignore_patterns(config.watch_dirs, config.excludes, not config.disable_preset)
        watcher = FileWatcher(
            WatcherConfig(
                dirs=list(config.watch_dirs),
                ignore_patterns=patterns,
                extensions=config.extensions,
                debounce_ms=config.debounce_ms,
            )
        )
        builder = Builder(
            config.package_path,
            output_path,
            build_args=config.build_args,
            prebuild_command=config.prebuild_command,
            build_command=config.build_command,
            notifier=notifier,
        )
        runner = Runner(
            output_path,
            working_dir=config.working_dir,
            args=config.run_args,
            grace_period=config.grace_period,
            notifier=notifier,
        )
        return cls(config, watcher, builder, runner, notifier=notifier)

    @property
    def output_path(self) -> Path:
        return self.builder.output_path

    @property
    def building(self) -> bool:
        return self._build_task is not None and not self._build_task.done()

    async def run(self, token: CancelToken) -> None:
        """Watch, build and run until token is cancelled or the watcher stops.

        On exit the runner is stopped, any build is cancelled and reaped, the
        watcher is closed and the output binary is removed.

        Raises:
            WatcherError: If the watcher stopped with a terminal error
        """
        self._token = token
        for root in self.config.watch_dirs:
            try:
                await asyncio.to_thread(self.watcher.add_directory, root, token)
            except WalkCancelledError:
                logger.debug(f"Startup walk of {root} cancelled")
                return

        signal = self.watcher.listen(asyncio.get_running_loop())
        runner_token = token.child()
        runner_task = asyncio.create_task(self.runner.listen(runner_token))
        cancel_task = asyncio.ensure_future(token.wait())

        try:
            while True:
                signal_task = asyncio.ensure_future(signal.wait())
                try:
                    await asyncio.wait({signal_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
                finally:
                    if not signal_task.done():
                        signal_task.cancel()

                if token.cancelled:
                    logger.debug("Shutdown requested")
                    break
                if not signal_task.result():
                    logger.debug("Change signal closed")
                    break

                self._on_change()
        finally:
            cancel_task.cancel()
            await self._shutdown(runner_token, runner_task)

        if signal.error is not None:
            raise signal.error

    def _on_change(self) -> None:
        """React to one change signal. Never blocks."""
        logger.debug("Change detected")
        if self.config.restart_policy == RestartPolicy.STOP_FIRST:
            self.runner.stop()

        previous = self._build_task
        self._cancel_build()

        self._build_token = self._token.child()
        self._build_task = asyncio.create_task(self._build(self._build_token, previous))
        self.builds_started += 1

    async def _build(self, token: CancelToken, previous: asyncio.Task | None) -> None:
        if previous is not None:
            # The superseded build reaps its subprocess before a new one spawns
            await asyncio.wait({previous})
        if token.cancelled:
            return

        result = await self.builder.build(token)
        if token.cancelled:
            return
        self.last_result = result
        if result.ok:
            self.runner.refresh()

    def _cancel_build(self) -> None:
        if self._build_token is not None:
            self._build_token.cancel()
            self._build_token = None

    async def _shutdown(self, runner_token: CancelToken, runner_task: asyncio.Task) -> None:
        self.runner.stop()
        self._cancel_build()
        if self._build_task is not None:
            await asyncio.wait({self._build_task})
            if not self._build_task.cancelled() and self._build_task.exception() is not None:
                logger.error(f"Build task failed: {self._build_task.exception()}")

        runner_token.cancel()
        await runner_task
        self.watcher.close()
        self._remove_output()
        self.notifier.info("Stopped")

    def _remove_output(self) -> None:
        try:
            self.output_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove {self.output_path}: {e}")
