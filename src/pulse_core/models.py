"""Shared data models for pulse_core."""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pulse_core.cancel import CancelToken


class BuildOutcome(Enum):
    """How a build attempt ended."""

    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RunnerState(Enum):
    """Lifecycle state of the supervised process."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class RestartPolicy(Enum):
    """When the running instance is stopped relative to a rebuild."""

    STOP_FIRST = "stop_first"
    """Stop on every change; restart only after the next successful build."""

    KEEP_RUNNING = "keep_running"
    """Leave the instance running until a rebuild succeeds."""


class RunnerRequest(Enum):
    """Control requests accepted by the runner."""

    REFRESH = "refresh"
    STOP = "stop"


@dataclass
class BuildTask:
    """Inputs of a single build attempt. Never reused: its token is single-use."""

    package_path: Path
    """Package handed to the build tool."""

    output_path: Path
    """Where the build tool writes the binary."""

    token: CancelToken
    """Cancelling this aborts the attempt and kills its subprocesses."""

    build_args: list[str] = field(default_factory=list)
    """Extra arguments for the build tool."""

    prebuild_command: str | None = None
    """Shell command run before compiling."""


@dataclass
class BuildResult:
    """Result of a build attempt."""

    outcome: BuildOutcome

    returncode: int | None = None
    """Exit code of the step that decided the outcome (None if never exited)."""

    duration: float = 0.0
    """Wall time in seconds."""

    error: str | None = None
    """Failure description."""

    @property
    def ok(self) -> bool:
        return self.outcome == BuildOutcome.SUCCESS

    @property
    def duration_str(self) -> str:
        if self.duration < 1:
            return f"{self.duration * 1000:.0f}ms"
        return f"{self.duration:.2f}s"


@dataclass
class RunningProcess:
    """A live instance of the target binary."""

    process: asyncio.subprocess.Process
    working_dir: Path
    args: list[str]

    supervisor: asyncio.Task | None = None
    """Task that reaps the process when it exits on its own."""

    stopping: bool = False
    """Set once a stop was requested, so the exit is not reported as unexpected."""

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def alive(self) -> bool:
        return self.process.returncode is None
