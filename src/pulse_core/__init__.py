"""pulse-core: building blocks of the pulse live-reload loop."""

__version__ = "0.1.0"

from pulse_core.builder import Builder
from pulse_core.cancel import CancelToken
from pulse_core.change_signal import ChangeSignal
from pulse_core.config import PulseConfig, build_config, load_config_file, output_binary_path, validate_config
from pulse_core.debounce import Debouncer
from pulse_core.errors import ConfigError, PulseError, WalkCancelledError, WatcherError
from pulse_core.file_watcher import FileWatcher, WatchdogNotifier
from pulse_core.ignore import DEFAULT_PRESET, IgnoreMatcher, collect_ignore_patterns
from pulse_core.models import (
    BuildOutcome,
    BuildResult,
    BuildTask,
    RestartPolicy,
    RunnerState,
    RunningProcess,
)
from pulse_core.notifier import LoggingNotifier, NoOpNotifier, PulseNotifier
from pulse_core.runner import Runner
from pulse_core.watchers import ChangeNotifier, WatcherConfig

__all__ = [
    "__version__",
    # Models
    "BuildOutcome",
    "BuildResult",
    "BuildTask",
    "RestartPolicy",
    "RunnerState",
    "RunningProcess",
    # Components
    "Builder",
    "CancelToken",
    "ChangeSignal",
    "Debouncer",
    "FileWatcher",
    "WatchdogNotifier",
    "IgnoreMatcher",
    "Runner",
    # Watchers
    "ChangeNotifier",
    "WatcherConfig",
    "DEFAULT_PRESET",
    "collect_ignore_patterns",
    # Config
    "PulseConfig",
    "build_config",
    "load_config_file",
    "output_binary_path",
    "validate_config",
    # Notifiers
    "PulseNotifier",
    "NoOpNotifier",
    "LoggingNotifier",
    # Errors
    "PulseError",
    "ConfigError",
    "WatcherError",
    "WalkCancelledError",
]
