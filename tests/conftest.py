"""Pytest configuration and fixtures."""

import asyncio
import os
import sys
import time
from pathlib import Path

import pytest

# Add src directory to Python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from pulse_core.change_signal import ChangeSignal  # noqa: E402
from pulse_core.notifier import RecordingNotifier  # noqa: E402

posix_only = pytest.mark.skipif(os.name == "nt", reason="relies on POSIX signals and shebang scripts")


# Stand-in for `go build`: writes the package's program.py to the -o path as
# an executable script. Behaviour is driven by a `mode` file in the package:
# "ok", "fail", or "sleep <seconds>" (then succeed).
FAKE_BUILD = """\
import os
import sys
import time
from pathlib import Path

args = sys.argv[1:]
out = Path(args[args.index("-o") + 1])
pkg = Path(args[-1])

mode_file = pkg / "mode"
mode = mode_file.read_text().strip() if mode_file.exists() else "ok"

with open(pkg / "builds.log", "a") as f:
    f.write(f"{os.getpid()} {' '.join(args)}\\n")

if mode.startswith("sleep"):
    time.sleep(float(mode.split()[1]))
if mode == "fail":
    print("main.go:3: syntax error", file=sys.stderr)
    sys.exit(2)

out.write_text(f"#!{sys.executable}\\n" + (pkg / "program.py").read_text())
os.chmod(out, 0o755)
"""

# Target program: records its pid in runs.log (in its working directory) and
# runs until interrupted. --ignore-sigint makes it deaf to the interrupt,
# --exit N makes it exit right away with code N.
PROGRAM = """\
import os
import signal
import sys
import time

if "--ignore-sigint" in sys.argv:
    signal.signal(signal.SIGINT, signal.SIG_IGN)

with open("runs.log", "a") as f:
    f.write(f"{os.getpid()} {' '.join(sys.argv[1:])}\\n")

if "--exit" in sys.argv:
    sys.exit(int(sys.argv[sys.argv.index("--exit") + 1]))

try:
    while True:
        time.sleep(0.05)
except KeyboardInterrupt:
    sys.exit(0)
"""


@pytest.fixture
def fake_build(tmp_path) -> Path:
    """Path to the fake build tool script."""
    path = tmp_path / "fake_build.py"
    path.write_text(FAKE_BUILD)
    return path


@pytest.fixture
def build_command(fake_build) -> tuple[str, ...]:
    """Build command running the fake build tool."""
    return (sys.executable, str(fake_build))


@pytest.fixture
def package(tmp_path) -> Path:
    """Package directory containing the program the fake build tool "compiles"."""
    pkg = tmp_path / "pkg"
    pkg.mkdir()
    (pkg / "program.py").write_text(PROGRAM)
    return pkg


@pytest.fixture
def workdir(tmp_path) -> Path:
    """Working directory of the target process (holds runs.log)."""
    wd = tmp_path / "work"
    wd.mkdir()
    return wd


@pytest.fixture
def program(tmp_path) -> Path:
    """Ready-made executable copy of the target program."""
    path = tmp_path / "bin" / "app"
    path.parent.mkdir()
    path.write_text(f"#!{sys.executable}\n" + PROGRAM)
    path.chmod(0o755)
    return path


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


class FakeNotifier:
    """ChangeNotifier double recording subscriptions."""

    def __init__(self, add_error: Exception | None = None):
        self.added: list[str] = []
        self.discarded: list[str] = []
        self.add_error = add_error
        self.start_error: Exception | None = None
        self.started = False
        self.stopped = False

    def add(self, path: str) -> None:
        if self.add_error is not None:
            raise self.add_error
        self.added.append(path)

    def discard(self, path: str) -> None:
        self.discarded.append(path)

    def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.started = True

    def stop(self) -> None:
        self.stopped = True


class FakeWatcher:
    """Watcher double whose change signal is fired by the test."""

    def __init__(self):
        self.signal: ChangeSignal | None = None
        self.roots: list = []
        self.closed = False

    def add_directory(self, root, token=None) -> int:
        self.roots.append(root)
        return 1

    def listen(self, loop) -> ChangeSignal:
        self.signal = ChangeSignal(loop)
        self.signal.fire()
        return self.signal

    def close(self) -> None:
        self.closed = True
        if self.signal is not None:
            self.signal.close()


def read_pids(log: Path) -> list[int]:
    """Pids recorded in a builds.log / runs.log file."""
    if not log.exists():
        return []
    return [int(line.split()[0]) for line in log.read_text().splitlines() if line.strip()]


def pid_alive(pid: int) -> bool:
    """Whether pid is a live (non-zombie) process."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True

    # Orphans killed by a signal may linger as zombies until init reaps them
    try:
        state = Path(f"/proc/{pid}/stat").read_text().rsplit(")", 1)[1].split()[0]
    except (OSError, IndexError):
        return True
    return state not in ("Z", "X")


async def wait_until(predicate, timeout: float = 10.0, interval: float = 0.02) -> None:
    """Poll predicate until it is true or fail after timeout seconds."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError(f"Condition not met within {timeout}s")
        await asyncio.sleep(interval)
